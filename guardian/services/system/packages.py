"""
Package Manager Capability

One interface over the host's package manager (apt on Debian/Ubuntu, dnf
on Fedora/RHEL): list installed packages, check for (security) updates and
apply updates.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from guardian.common.exceptions import CommandError, PackageManagerError
from guardian.common.logging_setup import get_service_logger

from .shell import CommandResult, run_command

logger = get_service_logger("system.packages")

_WHITESPACE = re.compile(r"\s+")


class UpdateType(str, Enum):
    """Which updates to report"""
    ALL = "all"
    SECURITY = "security"


@dataclass
class Package:
    """An installed or upgradable package"""
    name: str
    version: str
    repo: str

    def to_dict(self) -> dict[str, str]:
        return {
            "name": self.name.lower(),
            "version": self.version.lower(),
            "repo": self.repo.lower(),
        }


class PackageManager(ABC):
    """Capability interface used by jobs and inventory reporting"""

    name = "unknown"

    def __init__(self, timeout: float | None = None):
        # Applies to upgrade runs; listing commands are expected to be quick
        self.timeout = timeout

    @abstractmethod
    def installed_packages(self) -> list[Package]:
        ...

    @abstractmethod
    def check_updates(self, update_type: UpdateType) -> tuple[list[Package], list[Package]]:
        """Return (updates, obsolete)"""

    @abstractmethod
    def update_all(self) -> CommandResult:
        ...

    @abstractmethod
    def update_packages(self, names: list[str]) -> CommandResult:
        ...


class Apt(PackageManager):
    """Debian / Ubuntu"""

    name = "apt"

    def installed_packages(self) -> list[Package]:
        result = run_command(["apt", "list", "--installed"])
        return parse_apt_list(result.stdout)

    def check_updates(self, update_type: UpdateType) -> tuple[list[Package], list[Package]]:
        try:
            run_command(["apt", "update"])
        except CommandError as e:
            # Stale lists still give a useful answer
            logger.warning(f"apt update failed: {e}")

        result = run_command(["apt", "list", "--upgradable"])
        return parse_apt_upgradable(result.stdout, update_type)

    def update_all(self) -> CommandResult:
        return run_command(["apt", "upgrade", "--assume-yes", "--quiet"], timeout=self.timeout)

    def update_packages(self, names: list[str]) -> CommandResult:
        return run_command(
            ["apt", "--only-upgrade", "--assume-yes", "--quiet", "install", *names],
            timeout=self.timeout,
        )


class Dnf(PackageManager):
    """Fedora / RHEL"""

    name = "dnf"

    # `dnf check-update` exits 100 when updates are available
    UPDATES_AVAILABLE = 100

    def installed_packages(self) -> list[Package]:
        result = run_command(["dnf", "list", "installed", "--quiet"])
        return parse_dnf_list(result.stdout)

    def check_updates(self, update_type: UpdateType) -> tuple[list[Package], list[Package]]:
        args = ["dnf", "check-update", "--quiet"]
        if update_type == UpdateType.SECURITY:
            args.append("--security")
        try:
            output = run_command(args).stdout
        except CommandError as e:
            if e.returncode != self.UPDATES_AVAILABLE:
                raise
            output = e.stdout
        return parse_dnf_check_update(output)

    def update_all(self) -> CommandResult:
        return run_command(["dnf", "update", "--assumeyes", "--quiet"], timeout=self.timeout)

    def update_packages(self, names: list[str]) -> CommandResult:
        return run_command(["dnf", "update", "--assumeyes", "--quiet", *names], timeout=self.timeout)


def detect_package_manager(timeout: float | None = None, root: Path = Path("/")) -> PackageManager:
    """
    Pick the package manager present on this host (dnf wins over apt).

    Raises:
        PackageManagerError: neither is installed
    """
    if (root / "usr/bin/dnf").exists():
        return Dnf(timeout)
    if (root / "usr/bin/apt").exists():
        return Apt(timeout)
    raise PackageManagerError("no supported package manager found")


def _apt_line(line: str) -> Package | None:
    # name/repo[,repo2] version arch [status]
    name, sep, rest = line.partition("/")
    if not sep:
        return None
    fields = rest.split(" ")
    if len(fields) < 2:
        return None
    return Package(name=name, version=fields[1], repo=fields[0])


def _skip_apt_line(line: str) -> bool:
    return not line.strip() or line.startswith(("Listing...", "WARNING:"))


def parse_apt_list(output: str) -> list[Package]:
    """Parse ``apt list --installed``"""
    packages = []
    for line in output.splitlines():
        if _skip_apt_line(line):
            continue
        if pkg := _apt_line(line):
            packages.append(pkg)
    return packages


def parse_apt_upgradable(output: str, update_type: UpdateType) -> tuple[list[Package], list[Package]]:
    """Parse ``apt list --upgradable``; security updates come from ``-security`` pockets"""
    updates: list[Package] = []
    obsolete: list[Package] = []
    for line in output.splitlines():
        if _skip_apt_line(line):
            continue
        if update_type == UpdateType.SECURITY and "-security" not in line:
            continue
        pkg = _apt_line(line)
        if pkg is None:
            continue
        if "obsolete" in pkg.repo:
            obsolete.append(pkg)
        else:
            updates.append(pkg)
    return updates, obsolete


def _dnf_line(line: str) -> Package | None:
    parts = _WHITESPACE.split(line.strip())
    if len(parts) < 3:
        return None
    return Package(name=parts[0], version=parts[1], repo=parts[2])


def parse_dnf_list(output: str) -> list[Package]:
    """Parse ``dnf list installed``"""
    packages = []
    for line in output.splitlines():
        if not line.strip() or line.startswith("Installed Packages"):
            continue
        if pkg := _dnf_line(line):
            packages.append(pkg)
    return packages


def parse_dnf_check_update(output: str) -> tuple[list[Package], list[Package]]:
    """Parse ``dnf check-update``; entries after "Obsoleting Packages" are obsolete"""
    updates: list[Package] = []
    obsolete: list[Package] = []
    in_obsolete = False
    for line in output.splitlines():
        if not line.strip() or line.startswith("Last metadata expiration check"):
            continue
        if line.startswith("Obsoleting Packages"):
            in_obsolete = True
            continue
        pkg = _dnf_line(line)
        if pkg is None:
            continue
        (obsolete if in_obsolete else updates).append(pkg)
    return updates, obsolete
