"""
Job Orchestrator

Runs every five minutes from the scheduler:

1. ``process_running_jobs`` - confirm reboots started on an earlier cycle
2. ``process_new_jobs`` - verify, then execute, newly submitted jobs

Job lifecycle (the server is the system of record, the agent only pushes
transitions):

    submitted --verify--> running --> completed | failed
        |                    ^
        +--bad signature / unknown type--> failed

A reboot job stays "running" across the reboot with the pre-reboot uptime
in its result; the restarted agent finishes it on a later poll.

Only "submitted" and "running" jobs are ever fetched, so terminal jobs are
never re-processed.
"""

from typing import Awaitable, Callable

from guardian.common.config import AgentConfig
from guardian.common.exceptions import (
    ApiError,
    CommandError,
    CommandTimeoutError,
    GuardianError,
    PackageManagerError,
    RebootCheckError,
    RebootError,
    RebootFailure,
    SignatureFormatError,
    UptimeError,
)
from guardian.common.logging_setup import LogContext, get_service_logger
from guardian.services.system.packages import PackageManager, detect_package_manager
from guardian.services.system.reboot import initiate_reboot
from guardian.services.system.shell import CommandResult, run_shell_command
from guardian.services.system.uptime import UptimeSource

from .client import JobClient
from .models import Job, JobStatus, JobType, format_checkpoint, parse_package_list
from .reboot_monitor import MAX_REBOOT_DURATION, RebootSafetyMonitor
from .signature import validate_payload

logger = get_service_logger("jobs")

# Failure reasons reported to the control plane
REASON_UNVERIFIABLE = "could not find valid host security key or failed to verify job payload"
REASON_BAD_SIGNATURE = "invalid job payload signature"
REASON_UNKNOWN_TYPE = "unknown job type"
REASON_NO_PACKAGE_MANAGER = "no supported package manager found"
REASON_NO_PACKAGES = "no packages to update"
REASON_REBOOT_NO_UPTIME = "Reboot failed, because we couldn't check the uptime of the host"
REASON_REBOOT_NOT_INITIATED = "Reboot failed, because we couldn't initiate the reboot"
REBOOT_SUCCEEDED = "Rebooted successfully"

REBOOT_FAILURE_REASONS = {
    RebootFailure.MALFORMED_CHECKPOINT: "We couldn't check the uptime of the host, just before the reboot",
    RebootFailure.STILL_RUNNING: "System is still running after the reboot was initiated",
    RebootFailure.UPTIME_UNAVAILABLE: "We couldn't check the uptime of the host, after the reboot",
}

PackageManagerFactory = Callable[[float | None], PackageManager]
ShellRunner = Callable[[str, float | None], CommandResult]
InventoryRefresh = Callable[[PackageManager], Awaitable[None]]


class JobOrchestrator:
    """
    Fetches, verifies and executes jobs for this host.

    Host primitives are injected so the state machine can be exercised
    without touching the machine it runs on.
    """

    def __init__(
        self,
        config: AgentConfig,
        client: JobClient,
        uptime_source: UptimeSource,
        package_manager_factory: PackageManagerFactory = detect_package_manager,
        reboot: Callable[[], None] = initiate_reboot,
        shell: ShellRunner = run_shell_command,
        refresh_inventory: InventoryRefresh | None = None,
    ):
        self.config = config
        self.client = client
        self.uptime_source = uptime_source
        self.reboot_monitor = RebootSafetyMonitor(uptime_source)
        self.package_manager_factory = package_manager_factory
        self.reboot = reboot
        self.shell = shell
        self.refresh_inventory = refresh_inventory

        # Set once the reboot primitive returned; the rest of the current
        # batch waits for the restart
        self.reboot_initiated = False

        self._handlers = {
            JobType.UPDATE: self._run_update,
            JobType.REBOOT: self._start_reboot,
            JobType.COMMAND: self._run_command,
            JobType.SCRIPT: self._accept_placeholder,
            JobType.UPDATE_AGENT: self._accept_placeholder,
        }

    @property
    def hostname(self) -> str:
        return self.client.hostname

    # ------------------------------------------------------------------
    # Running jobs
    # ------------------------------------------------------------------

    async def process_running_jobs(self) -> None:
        """
        Re-check jobs left "running" on an earlier cycle.

        Only reboot jobs are confirmed here; other running jobs finished (or
        died) with a previous agent process and are left as they are.

        Raises:
            ApiError: the running jobs could not be fetched
        """
        jobs = await self.client.fetch_jobs(JobStatus.RUNNING)
        if not jobs:
            logger.info(f"No running jobs found for host {self.hostname}")
            return

        for job in jobs:
            with LogContext(job_id=job.job_id, job_type=job.job_type):
                if job.job_type != JobType.REBOOT:
                    logger.debug(f"Leaving running {job.job_type} job {job.job_id} untouched")
                    continue
                await self._confirm_reboot(job)

    async def _confirm_reboot(self, job: Job) -> None:
        try:
            rebooted = self.reboot_monitor.check(job)
        except RebootCheckError as e:
            logger.warning(f"Reboot job {job.job_id} failed: {e}")
            await self._push(job, JobStatus.FAILED, REBOOT_FAILURE_REASONS[e.reason])
            return

        if rebooted:
            logger.info(f"Reboot job {job.job_id} completed")
            await self._push(job, JobStatus.COMPLETED, REBOOT_SUCCEEDED)

    # ------------------------------------------------------------------
    # Submitted jobs
    # ------------------------------------------------------------------

    async def process_new_jobs(self) -> None:
        """
        Verify and dispatch submitted jobs, in server order.

        Raises:
            ApiError: the submitted jobs could not be fetched; the whole
                batch is retried next cycle
        """
        self.reboot_initiated = False

        jobs = await self.client.fetch_jobs(JobStatus.SUBMITTED)
        if not jobs:
            logger.info(f"No jobs found for host {self.hostname}")
            return

        for job in jobs:
            with LogContext(job_id=job.job_id, job_type=job.job_type):
                await self.handle_submitted_job(job)

            if self.reboot_initiated:
                logger.info("Reboot initiated, leaving remaining jobs for after the restart")
                return

    async def handle_submitted_job(self, job: Job) -> None:
        """Verify one submitted job and run its handler"""
        message = job.signing_message(self.hostname)
        try:
            valid = validate_payload(self.config.host_security_keys, message, job.signature)
        except SignatureFormatError as e:
            logger.warning(f"Failed to validate job payload {job.job_id}: {e}")
            await self._push(job, JobStatus.FAILED, REASON_UNVERIFIABLE)
            return

        if not valid:
            logger.warning(f"Invalid job payload signature for job {job.job_id}")
            await self._push(job, JobStatus.FAILED, REASON_BAD_SIGNATURE)
            return

        handler = self._handlers.get(_job_type(job))
        if handler is None:
            logger.warning(f"Unknown job type {job.job_type!r} for job {job.job_id}")
            await self._push(job, JobStatus.FAILED, REASON_UNKNOWN_TYPE)
            return

        logger.info(f"Processing {job.job_type} job {job.job_id}")
        await handler(job)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _run_update(self, job: Job) -> None:
        if not await self._push(job, JobStatus.RUNNING):
            return

        packages = parse_package_list(job.job_data)
        if not packages:
            await self._push(job, JobStatus.FAILED, REASON_NO_PACKAGES)
            return

        try:
            package_manager = self.package_manager_factory(self.config.command_timeout_s)
        except PackageManagerError as e:
            logger.error(f"Error detecting package manager: {e}")
            await self._push(job, JobStatus.FAILED, REASON_NO_PACKAGE_MANAGER)
            return

        logger.info(f"Updating packages with {package_manager.name}: {', '.join(packages)}")
        try:
            if packages == ["all"]:
                result = package_manager.update_all()
            else:
                result = package_manager.update_packages(packages)
        except CommandTimeoutError as e:
            logger.error(f"Package update timed out: {e}")
            await self._push(job, JobStatus.FAILED, f"failed to update packages: {e.message}")
            return
        except CommandError as e:
            logger.error(f"Error updating packages: {e}")
            await self._push(job, JobStatus.FAILED, f"failed to update packages {e.stderr}")
            return

        await self._push(job, JobStatus.COMPLETED, result.stdout)

        if self.refresh_inventory is not None:
            try:
                await self.refresh_inventory(package_manager)
            except GuardianError as e:
                if not e.recoverable:
                    raise
                logger.error(f"Could not refresh update inventory: {e}")

    async def _run_command(self, job: Job) -> None:
        if not await self._push(job, JobStatus.RUNNING):
            return

        logger.info(f"Executing command: {job.job_data}")
        try:
            result = self.shell(job.job_data, self.config.command_timeout_s)
        except CommandTimeoutError as e:
            logger.error(f"Command timed out: {e}")
            await self._push(job, JobStatus.FAILED, e.message)
            return
        except CommandError as e:
            logger.error(f"Error executing command: {e}")
            await self._push(job, JobStatus.FAILED, f"failed to execute command: {e.stderr}")
            return

        await self._push(job, JobStatus.COMPLETED, result.stdout)

    async def _start_reboot(self, job: Job) -> None:
        try:
            uptime = self.uptime_source.uptime_seconds()
        except UptimeError as e:
            logger.error(f"Reboot job: error getting uptime: {e}")
            await self._push(job, JobStatus.FAILED, REASON_REBOOT_NO_UPTIME)
            return

        if uptime < MAX_REBOOT_DURATION:
            # Rebooting a host that just came up risks a reboot loop
            logger.info(
                f"Reboot job: uptime {uptime}s is below {MAX_REBOOT_DURATION}s, "
                "waiting until it is safe to reboot"
            )
            return

        # Without the checkpoint on the server the reboot can't be confirmed
        if not await self._push(job, JobStatus.RUNNING, format_checkpoint(uptime)):
            return

        try:
            self.reboot()
        except RebootError as e:
            logger.error(f"Reboot job: error initiating reboot: {e}")
            await self._push(job, JobStatus.FAILED, REASON_REBOOT_NOT_INITIATED)
            return

        self.reboot_initiated = True

    async def _accept_placeholder(self, job: Job) -> None:
        # Reserved job types: accepted, but left pending until implemented
        logger.info(f"No action for {job.job_type} job {job.job_id}, leaving it pending")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _push(self, job: Job, status: JobStatus, result: str = "") -> bool:
        """
        Push a status update, returning whether the server accepted it.

        Recoverable API errors are logged; the job keeps its last server
        status and is seen again on a later poll.
        """
        try:
            await self.client.update_status(job.job_id, status, result)
        except ApiError as e:
            if not e.recoverable:
                raise
            logger.error(f"Error updating job {job.job_id} to {status.value}: {e}")
            return False
        return True


def _job_type(job: Job) -> JobType | None:
    try:
        return JobType(job.job_type)
    except ValueError:
        return None
