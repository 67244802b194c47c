"""
Subprocess Execution

Runs commands with captured output. Calls block until the child exits (or
the timeout expires); the agent has a single control loop, so a long
command delays everything queued behind it.
"""

import subprocess
from dataclasses import dataclass

from guardian.common.exceptions import CommandError, CommandTimeoutError
from guardian.common.logging_setup import get_service_logger

logger = get_service_logger("system.shell")

SHELL = "bash"


@dataclass
class CommandResult:
    """Captured output of a finished command"""
    stdout: str
    stderr: str
    returncode: int


def _as_text(value: str | bytes | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def run_command(args: list[str], timeout: float | None = None) -> CommandResult:
    """
    Run ``args`` and capture stdout/stderr.

    Output is decoded as UTF-8; undecodable bytes are replaced.

    Raises:
        CommandError: non-zero exit, or the executable can't be started
        CommandTimeoutError: the command exceeded ``timeout`` seconds
    """
    command = " ".join(args)
    logger.debug(f"Running: {command}")

    try:
        completed = subprocess.run(
            args,
            capture_output=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise CommandTimeoutError(
            command,
            timeout or 0,
            stdout=_as_text(e.stdout),
            stderr=_as_text(e.stderr),
        ) from e
    except FileNotFoundError as e:
        raise CommandError(f"command not found: {args[0]}", stderr=str(e)) from e
    except OSError as e:
        raise CommandError(f"cannot execute {args[0]}: {e}", stderr=str(e)) from e

    result = CommandResult(
        stdout=completed.stdout,
        stderr=completed.stderr,
        returncode=completed.returncode,
    )

    if completed.returncode != 0:
        raise CommandError(
            f"command failed: {completed.stderr.strip()}",
            stdout=result.stdout,
            stderr=result.stderr,
            returncode=result.returncode,
        )

    return result


def run_shell_command(command: str, timeout: float | None = None) -> CommandResult:
    """Run ``command`` through ``bash -c``"""
    return run_command([SHELL, "-c", command], timeout=timeout)
