"""
Reboot Safety Monitor

Decides whether a reboot requested by a job actually happened.

When a reboot job starts, the agent records the host's uptime in the job
result (the checkpoint) and then reboots. On a later poll the restarted
agent compares a fresh uptime with the checkpoint:

- uptime is lower than the checkpoint -> the counter restarted, reboot done
- uptime grew by more than MAX_REBOOT_DURATION -> the host never went down
- otherwise -> still in flight, check again next cycle
"""

from guardian.common.exceptions import RebootCheckError, RebootFailure, UptimeError
from guardian.common.logging_setup import get_service_logger
from guardian.services.system.uptime import UptimeSource

from .models import CHECKPOINT_PREFIX, Job, parse_checkpoint

logger = get_service_logger("jobs.reboot")

# Seconds a reboot may take before it is judged failed. Also the minimum
# uptime before a new reboot is started, to avoid reboot loops.
MAX_REBOOT_DURATION = 300


class RebootSafetyMonitor:
    """Checks running reboot jobs against the current uptime"""

    def __init__(self, uptime_source: UptimeSource, max_reboot_duration: int = MAX_REBOOT_DURATION):
        self.uptime_source = uptime_source
        self.max_reboot_duration = max_reboot_duration

    def check(self, job: Job) -> bool:
        """
        Has the reboot recorded in ``job.result`` completed?

        Returns:
            True if the host rebooted, False if no conclusion yet

        Raises:
            RebootCheckError: with reason MALFORMED_CHECKPOINT, STILL_RUNNING
                or UPTIME_UNAVAILABLE
        """
        before = parse_checkpoint(job.result)
        if before is None:
            logger.warning(f"Unexpected reboot job result: {job.result!r}")
            raise RebootCheckError(
                RebootFailure.MALFORMED_CHECKPOINT,
                f"result does not match '{CHECKPOINT_PREFIX}<seconds>'",
            )

        try:
            now = self.uptime_source.uptime_seconds()
        except UptimeError as e:
            raise RebootCheckError(RebootFailure.UPTIME_UNAVAILABLE, f"error getting uptime: {e}") from e

        if now < before:
            return True

        if now - before > self.max_reboot_duration:
            raise RebootCheckError(
                RebootFailure.STILL_RUNNING,
                f"system is still running after the reboot was initiated "
                f"(uptime {now}s, checkpoint {before}s)",
            )

        logger.debug(f"Reboot still in progress (uptime {now}s, checkpoint {before}s)")
        return False
