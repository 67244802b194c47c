"""
Host Details

Extra monitoring readings that psutil doesn't cover directly:

- IPv4 routes from /proc/net/route
- block devices from /sys/class/block (lsblk-style)
- software RAID state from /proc/mdstat
- restart hints: kernel upgraded since boot, processes mapping deleted files
"""

import ipaddress
import re
from pathlib import Path
from typing import Any

import psutil

from guardian.common.logging_setup import get_service_logger

logger = get_service_logger("system.host")

PROC_NET_ROUTE = Path("/proc/net/route")
PROC_MDSTAT = Path("/proc/mdstat")
SYS_CLASS_BLOCK = Path("/sys/class/block")
SYS_BLOCK = Path("/sys/block")

_MD_DEVICE = re.compile(r"(\S+)\[(\d+)\]")
_MD_SIZE = re.compile(r"(\d+)\s+blocks.*\[(\d+)/(\d+)\]\s+\[([U_]+)\]")
_MD_PROGRESS = re.compile(
    r"(recovery|resync|reshape|check)\s*=\s*([\d.]+)%.*?finish=(\S+).*?speed=(\d+)K/sec"
)
_SERVICE_CGROUP = re.compile(r"system\.slice/(.+?)\.service")

# Deleted mappings that never call for a restart
_IGNORED_DELETED = ("/dev/zero", "SYSV", "/memfd:", "/tmp")


# ----------------------------------------------------------------------
# Routes
# ----------------------------------------------------------------------

def _hex_ipv4(value: str) -> str:
    # /proc/net/route stores addresses as little-endian hex
    return str(ipaddress.IPv4Address(int.from_bytes(bytes.fromhex(value), "little")))


def parse_proc_net_route(content: str) -> list[dict[str, Any]]:
    """Parse /proc/net/route into route entries"""
    routes = []
    for line in content.splitlines()[1:]:
        fields = line.split()
        if len(fields) < 11:
            continue
        try:
            mask = _hex_ipv4(fields[7])
            routes.append({
                "destination": _hex_ipv4(fields[1]),
                "gateway": _hex_ipv4(fields[2]),
                "netmask": mask,
                "prefix_length": ipaddress.IPv4Network(f"0.0.0.0/{mask}").prefixlen,
                "iface": fields[0],
                "metric": int(fields[6]),
                "flags": int(fields[3], 16),
            })
        except ValueError:
            logger.debug(f"Skipping unparsable route line: {line!r}")
    return routes


def read_routes(path: Path = PROC_NET_ROUTE) -> list[dict[str, Any]]:
    try:
        return parse_proc_net_route(path.read_text())
    except OSError as e:
        logger.warning(f"Could not read routes from {path}: {e}")
        return []


# ----------------------------------------------------------------------
# Block devices
# ----------------------------------------------------------------------

def _read(path: Path) -> str:
    try:
        return path.read_text().strip()
    except OSError:
        return ""


def _optional(path: Path) -> str | None:
    return _read(path) or None


def _list_dir(path: Path) -> list[str]:
    if not path.is_dir():
        return []
    return sorted(entry.name for entry in path.iterdir())


def _block_type(name: str, device_dir: Path) -> str:
    if (device_dir / "partition").exists():
        return "part"
    if (device_dir / "md").exists():
        return "raid"
    if name.startswith("dm-"):
        uuid = _read(device_dir / "dm" / "uuid")
        if uuid.startswith("LVM-"):
            return "lvm"
        if uuid.startswith("CRYPT-"):
            return "crypt"
        return "dm"
    if name.startswith("loop"):
        return "loop"
    return "disk"


def _mountpoints() -> dict[str, str]:
    return {part.device: part.mountpoint for part in psutil.disk_partitions(all=True)}


def read_block_devices(
    sys_block: Path = SYS_CLASS_BLOCK,
    mountpoints: dict[str, str] | None = None,
) -> list[dict[str, Any]]:
    """
    Block devices as lsblk would list them.

    Args:
        sys_block: sysfs block class directory
        mountpoints: device path -> mountpoint (default: psutil partitions)
    """
    if not sys_block.is_dir():
        return []
    if mountpoints is None:
        mountpoints = _mountpoints()

    devices = []
    for device_dir in sorted(sys_block.iterdir()):
        name = device_dir.name
        path = f"/dev/{name}"
        slaves = _list_dir(device_dir / "slaves")
        size_sectors = _read(device_dir / "size")
        devices.append({
            "name": name,
            "path": path,
            "maj:min": _read(device_dir / "dev"),
            "size": int(size_sectors) * 512 if size_sectors.isdigit() else 0,
            "ro": _read(device_dir / "ro") == "1",
            "type": _block_type(name, device_dir),
            "pkname": slaves[0] if slaves else None,
            "holders": _list_dir(device_dir / "holders"),
            "mountpoint": mountpoints.get(path),
            "model": _optional(device_dir / "device" / "model"),
            "vendor": _optional(device_dir / "device" / "vendor"),
            "serial": _optional(device_dir / "device" / "serial"),
            "state": _optional(device_dir / "device" / "state"),
        })
    return devices


# ----------------------------------------------------------------------
# Software RAID
# ----------------------------------------------------------------------

def parse_mdstat(content: str) -> dict[str, Any]:
    """Parse /proc/mdstat into personalities and arrays"""
    personalities: list[str] = []
    arrays: list[dict[str, Any]] = []
    current: dict[str, Any] | None = None

    for raw in content.splitlines():
        line = raw.strip()
        if not line or line.startswith("unused devices"):
            continue

        if line.startswith("Personalities"):
            personalities = [p.strip("[]") for p in line.split()[2:] if p.startswith("[")]
            continue

        if " : " in line:
            fields = line.split()
            current = {
                "name": fields[0],
                "state": fields[2],
                "level": fields[3] if len(fields) > 3 and "[" not in fields[3] else "",
                "devices": [
                    {"name": name, "slot": int(slot)}
                    for name, slot in _MD_DEVICE.findall(line)
                ],
                "blocks": 0,
                "raid_disks": 0,
                "active_disks": 0,
                "health": "",
                "progress": None,
            }
            arrays.append(current)
            continue

        if current is None:
            continue

        if match := _MD_SIZE.search(line):
            current["blocks"] = int(match.group(1))
            current["raid_disks"] = int(match.group(2))
            current["active_disks"] = int(match.group(3))
            current["health"] = match.group(4)

        if match := _MD_PROGRESS.search(line):
            current["progress"] = {
                "type": match.group(1),
                "percent": float(match.group(2)),
                "eta": match.group(3),
                "speed_kps": int(match.group(4)),
            }

    return {"personalities": personalities, "arrays": arrays}


def read_mdstat(path: Path = PROC_MDSTAT, sys_block: Path = SYS_BLOCK) -> dict[str, Any]:
    """RAID state; hosts without the md driver report no arrays"""
    if not path.exists():
        return {"personalities": [], "arrays": []}
    try:
        mdstat = parse_mdstat(path.read_text())
    except OSError as e:
        logger.warning(f"Could not read {path}: {e}")
        return {"personalities": [], "arrays": []}

    for array in mdstat["arrays"]:
        md_dir = sys_block / array["name"] / "md"
        array["chunk_size"] = _read(md_dir / "chunk_size")
        array["metadata"] = _read(md_dir / "metadata_version")
    return mdstat


# ----------------------------------------------------------------------
# Restart hints
# ----------------------------------------------------------------------

def kernel_needs_reboot(
    running_release: str,
    modules_dir: Path = Path("/lib/modules"),
) -> bool:
    """True when the newest installed kernel isn't the running one"""
    if not modules_dir.is_dir():
        return False
    installed = sorted(entry.name for entry in modules_dir.iterdir())
    if not installed:
        return False
    return running_release.strip() != installed[-1]


def _deleted_mappings(proc: psutil.Process) -> list[str]:
    files = []
    for mapping in proc.memory_maps(grouped=True):
        path = mapping.path
        if not path.endswith("(deleted)"):
            continue
        if any(marker in path for marker in _IGNORED_DELETED):
            continue
        files.append(path.removesuffix("(deleted)").strip())
    return files


def classify_cgroup(cgroup: str) -> tuple[str, str] | None:
    """("service", name) or ("container", runtime) for a /proc/<pid>/cgroup body"""
    if match := _SERVICE_CGROUP.search(cgroup):
        return "service", match.group(1)
    for marker, runtime in (("kubepods", "kubernetes"), ("docker", "docker"), ("libpod", "podman")):
        if marker in cgroup:
            return "container", runtime
    return None


def read_need_restart(
    osrelease_path: Path = Path("/proc/sys/kernel/osrelease"),
    modules_dir: Path = Path("/lib/modules"),
) -> dict[str, Any]:
    """Services, containers and users still running code that was replaced on disk"""
    services: dict[str, list[str]] = {}
    containers: dict[str, list[str]] = {}
    users: set[str] = set()

    for proc in psutil.process_iter(["pid", "username"]):
        try:
            files = _deleted_mappings(proc)
        except (psutil.AccessDenied, psutil.NoSuchProcess, psutil.ZombieProcess, OSError):
            continue
        if not files:
            continue

        owner = classify_cgroup(_read(Path(f"/proc/{proc.pid}/cgroup")))
        if owner is None:
            if proc.info.get("username"):
                users.add(proc.info["username"])
        elif owner[0] == "service":
            services.setdefault(owner[1], []).extend(files)
        else:
            containers.setdefault(owner[1], []).extend(files)

    return {
        "reboot_required": kernel_needs_reboot(_read(osrelease_path), modules_dir),
        "services": services,
        "users": sorted(users),
        "containers": containers,
    }
