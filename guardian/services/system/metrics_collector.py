"""
System Metrics Collector

Collects host telemetry for the five-minute monitoring report:
- Uptime and load average
- CPU usage and CPU info
- Memory and swap usage
- Disk usage per mounted filesystem
- Logged-in users
- Network interfaces and IPv4 routes
- Process counts
- Block devices, software RAID and restart hints

Also gathers the daily system info (OS release, container, root).
"""

import os
import platform
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import psutil

from guardian.common.logging_setup import get_service_logger

from .host_details import read_block_devices, read_mdstat, read_need_restart, read_routes
from .uptime import ProcUptimeSource, UptimeSource

logger = get_service_logger("system.metrics")

_CONTAINER_MARKERS = (Path("/.dockerenv"), Path("/run/.containerenv"))


@dataclass
class SystemMetrics:
    """Basic monitoring payload"""
    uptime_seconds: int
    load_average: dict[str, float]
    cpu_usage_pct: float
    cpu_info: dict[str, Any]
    memory: dict[str, Any]
    tasks: dict[str, int]
    disk_free: list[dict[str, Any]] = field(default_factory=list)
    logged_in_users: list[dict[str, Any]] = field(default_factory=list)
    network_interfaces: list[dict[str, Any]] = field(default_factory=list)
    routes: list[dict[str, Any]] = field(default_factory=list)
    block_devices: list[dict[str, Any]] = field(default_factory=list)
    mdstat: dict[str, Any] = field(default_factory=dict)
    need_restart: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SystemInfo:
    """Daily host identification payload"""
    os_name: str
    os_version_id: str
    is_container: bool
    agent_running_as_root: bool


class MetricsCollector:
    """Collects system metrics from the host"""

    def __init__(self, uptime_source: UptimeSource | None = None):
        self.uptime_source = uptime_source or ProcUptimeSource()

    def collect(self) -> SystemMetrics:
        """Collect current system metrics"""
        return SystemMetrics(
            uptime_seconds=self.uptime_source.uptime_seconds(),
            load_average=self._get_load_average(),
            cpu_usage_pct=psutil.cpu_percent(interval=0.1),
            cpu_info=self._get_cpu_info(),
            memory=self._get_memory(),
            tasks=self._get_tasks(),
            disk_free=self._get_disk_usage(),
            logged_in_users=self._get_users(),
            network_interfaces=self._get_interfaces(),
            routes=read_routes(),
            block_devices=read_block_devices(),
            mdstat=read_mdstat(),
            need_restart=read_need_restart(),
        )

    def system_info(self) -> SystemInfo:
        """OS release, container and privilege facts"""
        try:
            release = platform.freedesktop_os_release()
        except OSError as e:
            logger.warning(f"Could not read os-release: {e}")
            release = {}

        return SystemInfo(
            os_name=release.get("NAME", platform.system()),
            os_version_id=release.get("VERSION_ID", ""),
            is_container=any(marker.exists() for marker in _CONTAINER_MARKERS),
            agent_running_as_root=os.geteuid() == 0,
        )

    def _get_load_average(self) -> dict[str, float]:
        one, five, fifteen = psutil.getloadavg()
        return {
            "one": round(one, 2),
            "five": round(five, 2),
            "fifteen": round(fifteen, 2),
        }

    def _get_cpu_info(self) -> dict[str, Any]:
        freq = psutil.cpu_freq()
        return {
            "model": platform.processor() or platform.machine(),
            "cores": psutil.cpu_count(logical=False) or 0,
            "threads": psutil.cpu_count(logical=True) or 0,
            "mhz": round(freq.current, 1) if freq else None,
        }

    def _get_memory(self) -> dict[str, Any]:
        mem = psutil.virtual_memory()
        swap = psutil.swap_memory()
        return {
            "total": mem.total,
            "available": mem.available,
            "used_pct": round(mem.percent, 1),
            "swap_total": swap.total,
            "swap_used_pct": round(swap.percent, 1),
        }

    def _get_tasks(self) -> dict[str, int]:
        counts: dict[str, int] = {"total": 0}
        for proc in psutil.process_iter(["status"]):
            status = proc.info.get("status") or "unknown"
            counts["total"] += 1
            counts[status] = counts.get(status, 0) + 1
        return counts

    def _get_disk_usage(self) -> list[dict[str, Any]]:
        disks = []
        for part in psutil.disk_partitions(all=False):
            try:
                usage = psutil.disk_usage(part.mountpoint)
            except (PermissionError, OSError):
                continue
            disks.append({
                "device": part.device,
                "mountpoint": part.mountpoint,
                "fstype": part.fstype,
                "total": usage.total,
                "free": usage.free,
                "used_pct": round(usage.percent, 1),
            })
        return disks

    def _get_users(self) -> list[dict[str, Any]]:
        return [
            {"name": user.name, "terminal": user.terminal, "host": user.host, "started": user.started}
            for user in psutil.users()
        ]

    def _get_interfaces(self) -> list[dict[str, Any]]:
        stats = psutil.net_if_stats()
        interfaces = []
        for name, addrs in psutil.net_if_addrs().items():
            stat = stats.get(name)
            interfaces.append({
                "name": name,
                "is_up": bool(stat and stat.isup),
                "mtu": stat.mtu if stat else None,
                "addresses": [
                    {
                        "family": getattr(addr.family, "name", str(addr.family)),
                        "address": addr.address,
                        "netmask": addr.netmask,
                    }
                    for addr in addrs
                ],
            })
        return interfaces
