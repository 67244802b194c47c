"""
Host Uptime

Reads the kernel's monotonic uptime counter. Reboot detection relies on
this counter restarting from zero; the wall clock can jump during boot
(NTP) and is never used for it.
"""

from pathlib import Path
from typing import Protocol

from guardian.common.exceptions import UptimeError

PROC_UPTIME = Path("/proc/uptime")


class UptimeSource(Protocol):
    """Anything that can report whole seconds since boot"""

    def uptime_seconds(self) -> int:
        ...


class ProcUptimeSource:
    """Uptime from /proc/uptime"""

    def __init__(self, path: Path = PROC_UPTIME):
        self.path = path

    def uptime_seconds(self) -> int:
        try:
            content = self.path.read_text()
        except OSError as e:
            raise UptimeError(f"cannot read {self.path}: {e}") from e
        return parse_proc_uptime(content)


def parse_proc_uptime(content: str) -> int:
    """Parse ``"<uptime> <idle>"`` into whole seconds of uptime"""
    parts = content.split()
    if not parts:
        raise UptimeError("empty uptime data")
    try:
        seconds = float(parts[0])
    except ValueError as e:
        raise UptimeError(f"invalid uptime value {parts[0]!r}") from e
    if seconds < 0:
        raise UptimeError(f"negative uptime {seconds}")
    return int(seconds)
