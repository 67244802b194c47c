"""
Custom Exception Classes for the Cloud Guardian agent

Hierarchical exception structure for error handling across services.
"""

from enum import Enum


class GuardianError(Exception):
    """Base exception for all Cloud Guardian agent errors"""

    def __init__(self, message: str, recoverable: bool = True):
        self.message = message
        self.recoverable = recoverable
        super().__init__(message)


class ConfigError(GuardianError):
    """Configuration-related errors"""

    def __init__(self, message: str, recoverable: bool = False):
        super().__init__(f"Config Error: {message}", recoverable)


class ApiError(GuardianError):
    """Control API request failed (transport error or non-2xx response)"""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        url: str | None = None,
        recoverable: bool = True,
    ):
        self.status_code = status_code
        self.url = url
        super().__init__(f"API Error: {message}", recoverable)


class ClientConfigError(ApiError):
    """Bad API URL or API key - no further progress is possible"""

    def __init__(self, message: str, status_code: int | None = None, url: str | None = None):
        super().__init__(message, status_code, url, recoverable=False)


class SignatureFormatError(GuardianError):
    """Key material or signature could not be decoded"""

    def __init__(self, message: str):
        super().__init__(f"Signature Error: {message}", recoverable=True)


class RebootFailure(str, Enum):
    """Reasons a reboot confirmation can fail"""
    MALFORMED_CHECKPOINT = "malformed_checkpoint"
    STILL_RUNNING = "still_running"
    UPTIME_UNAVAILABLE = "uptime_unavailable"


class RebootCheckError(GuardianError):
    """Reboot confirmation reached a definitive (or undeterminable) failure"""

    def __init__(self, reason: RebootFailure, message: str):
        self.reason = reason
        super().__init__(f"Reboot check [{reason.value}]: {message}", recoverable=True)


class UptimeError(GuardianError):
    """Host uptime could not be read"""

    def __init__(self, message: str):
        super().__init__(f"Uptime Error: {message}", recoverable=True)


class RebootError(GuardianError):
    """The OS reboot primitive failed"""

    def __init__(self, message: str):
        super().__init__(f"Reboot Error: {message}", recoverable=True)


class PackageManagerError(GuardianError):
    """Package manager missing or unusable"""

    def __init__(self, message: str):
        super().__init__(f"Package Manager Error: {message}", recoverable=True)


class CommandError(GuardianError):
    """Subprocess exited with a non-zero status"""

    def __init__(self, message: str, stdout: str = "", stderr: str = "", returncode: int | None = None):
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode
        super().__init__(message, recoverable=True)


class CommandTimeoutError(CommandError):
    """Subprocess did not finish within its timeout"""

    def __init__(self, command: str, timeout: float, stdout: str = "", stderr: str = ""):
        self.command = command
        self.timeout = timeout
        super().__init__(
            f"command timed out after {timeout:g} seconds",
            stdout=stdout,
            stderr=stderr,
        )
