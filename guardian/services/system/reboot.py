"""
Reboot Primitive

Asks the OS to reboot. On success the call usually returns before the
host goes down; the job that requested it is confirmed later, from the
restarted agent, by comparing uptimes.
"""

import subprocess

from guardian.common.exceptions import RebootError
from guardian.common.logging_setup import get_service_logger

logger = get_service_logger("system.reboot")

REBOOT_COMMAND = ["systemctl", "reboot"]
REBOOT_TIMEOUT_SECONDS = 30


def initiate_reboot(command: list[str] | None = None) -> None:
    """
    Issue the reboot command.

    Raises:
        RebootError: the command is missing, was denied, or timed out
    """
    args = command or REBOOT_COMMAND
    logger.warning("Initiating system reboot", extra={"command": " ".join(args)})

    try:
        subprocess.run(
            args,
            check=True,
            capture_output=True,
            encoding="utf-8",
            errors="replace",
            timeout=REBOOT_TIMEOUT_SECONDS,
        )
    except subprocess.CalledProcessError as e:
        raise RebootError(f"reboot command failed ({e.returncode}): {(e.stderr or '').strip()}") from e
    except subprocess.TimeoutExpired as e:
        raise RebootError("reboot command timed out") from e
    except (FileNotFoundError, PermissionError) as e:
        raise RebootError(f"reboot command not available: {e}") from e
