"""
Host Reporter

Pushes host state to the control API:
- ping and basic monitoring (every 5 minutes)
- system info, available updates and installed packages (daily)
- available updates again right after an update job
"""

from guardian import __version__
from guardian.common.api import ApiClient
from guardian.common.config import AgentConfig
from guardian.common.logging_setup import get_service_logger
from guardian.services.system.metrics_collector import MetricsCollector
from guardian.services.system.packages import (
    Package,
    PackageManager,
    UpdateType,
    detect_package_manager,
)

logger = get_service_logger("reporting")


def format_packages(packages: list[Package]) -> list[dict[str, str]]:
    return [pkg.to_dict() for pkg in packages]


class HostReporter:
    """Reports monitoring and inventory data for one host"""

    def __init__(
        self,
        config: AgentConfig,
        api: ApiClient,
        hostname: str,
        metrics_collector: MetricsCollector | None = None,
        package_manager_factory=detect_package_manager,
    ):
        self.config = config
        self.api = api
        self.hostname = hostname
        self.metrics_collector = metrics_collector or MetricsCollector()
        self.package_manager_factory = package_manager_factory

    async def register(self) -> None:
        """Register this host with the control plane"""
        logger.info(f"Registering client with hostname {self.hostname}")
        await self.api.post(f"hosts/register/{self.hostname}", {})
        logger.info(f"Client registered successfully with hostname {self.hostname}")

    async def ping(self) -> None:
        await self.api.post(f"hosts/ping/{self.hostname}", {})
        logger.info(f"Ping submitted successfully for {self.hostname}")

    async def report_monitoring(self) -> None:
        """Basic monitoring: uptime, load, CPU, memory, disks, users, interfaces"""
        metrics = self.metrics_collector.collect()
        await self.api.post(f"hosts/monitoring/{self.hostname}", metrics.to_dict())
        logger.info(
            f"Basic monitoring submitted successfully for {self.hostname}",
            extra={"uptime": metrics.uptime_seconds},
        )

    async def report_system_info(self) -> None:
        info = self.metrics_collector.system_info()
        if self.config.debug:
            logger.debug(f"Operating system: {info.os_name} {info.os_version_id}")

        await self.api.post(f"hosts/osinfo/{self.hostname}", {
            "os_name": info.os_name,
            "os_version_id": info.os_version_id,
            "is_container": info.is_container,
            "agent_version": __version__,
            "agent_running_as_root": info.agent_running_as_root,
            "accepted_public_keys": self.config.host_security_keys,
        })
        logger.info(f"System information submitted successfully for {self.hostname}")

    async def report_updates(self, package_manager: PackageManager, update_type: UpdateType) -> None:
        updates, obsolete = package_manager.check_updates(update_type)
        if self.config.debug:
            for pkg in updates:
                logger.debug(f"{update_type.value} update: {pkg.name} - {pkg.version} ({pkg.repo})")
            for pkg in obsolete:
                logger.debug(f"Obsolete: {pkg.name} - {pkg.version} ({pkg.repo})")

        security = "true" if update_type == UpdateType.SECURITY else "false"
        await self.api.post(
            f"hosts/updates/{self.hostname}",
            {"updates": format_packages(updates)},
            params={"security": security},
        )
        logger.info(
            f"Updates submitted successfully for {self.hostname}",
            extra={"update_type": update_type.value, "count": len(updates)},
        )

    async def refresh_updates(self, package_manager: PackageManager) -> None:
        """Report all and security updates (used after an update job)"""
        await self.report_updates(package_manager, UpdateType.ALL)
        await self.report_updates(package_manager, UpdateType.SECURITY)

    async def report_installed_packages(self, package_manager: PackageManager) -> None:
        packages = package_manager.installed_packages()
        await self.api.post(f"hosts/packages/{self.hostname}", {"packages": format_packages(packages)})
        logger.info(
            f"Installed packages submitted successfully for {self.hostname}",
            extra={"count": len(packages)},
        )

    async def report_inventory(self) -> None:
        """Daily: system info, updates (all, security), installed packages"""
        package_manager = self.package_manager_factory(self.config.command_timeout_s)
        await self.report_system_info()
        await self.refresh_updates(package_manager)
        await self.report_installed_packages(package_manager)
