"""Host reporting endpoints."""

import asyncio
import json
from pathlib import Path

import httpx

from guardian.common.api import ApiClient
from guardian.services.reporting.reporter import HostReporter
from guardian.services.system.host_details import (
    classify_cgroup,
    kernel_needs_reboot,
    parse_mdstat,
    parse_proc_net_route,
    read_block_devices,
    read_mdstat,
)
from guardian.services.system.metrics_collector import MetricsCollector, SystemInfo, SystemMetrics
from guardian.services.system.packages import Package, UpdateType

from .conftest import FakeUptime


class FakeMetrics:
    def collect(self):
        return SystemMetrics(
            uptime_seconds=1234,
            load_average={"one": 0.1, "five": 0.2, "fifteen": 0.3},
            cpu_usage_pct=3.5,
            cpu_info={"cores": 2},
            memory={"total": 1024},
            tasks={"total": 80},
        )

    def system_info(self):
        return SystemInfo(
            os_name="Ubuntu",
            os_version_id="22.04",
            is_container=False,
            agent_running_as_root=True,
        )


class FakeInventory:
    def installed_packages(self):
        return [Package("Bash", "5.1", "jammy")]

    def check_updates(self, update_type):
        if update_type == UpdateType.SECURITY:
            return [Package("openssl", "3.0.2", "jammy-security")], []
        return [Package("openssl", "3.0.2", "jammy-security"), Package("curl", "7.81", "jammy-updates")], []


def make_reporter(agent_config):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={})

    api = ApiClient(agent_config, transport=httpx.MockTransport(handler))
    reporter = HostReporter(
        config=agent_config,
        api=api,
        hostname="web-01",
        metrics_collector=FakeMetrics(),
        package_manager_factory=lambda timeout: FakeInventory(),
    )
    return reporter, requests


def test_ping_and_monitoring(agent_config):
    reporter, requests = make_reporter(agent_config)

    asyncio.run(reporter.ping())
    asyncio.run(reporter.report_monitoring())

    assert [r.url.path for r in requests] == ["/v1/hosts/ping/web-01", "/v1/hosts/monitoring/web-01"]
    assert json.loads(requests[1].content)["uptime_seconds"] == 1234


def test_daily_inventory(agent_config, signer):
    reporter, requests = make_reporter(agent_config)

    asyncio.run(reporter.report_inventory())

    paths = [(r.url.path, r.url.params.get("security")) for r in requests]
    assert paths == [
        ("/v1/hosts/osinfo/web-01", None),
        ("/v1/hosts/updates/web-01", "false"),
        ("/v1/hosts/updates/web-01", "true"),
        ("/v1/hosts/packages/web-01", None),
    ]
    osinfo = json.loads(requests[0].content)
    assert osinfo["os_name"] == "Ubuntu"
    assert osinfo["accepted_public_keys"] == [signer.public_key_hex]
    assert len(json.loads(requests[1].content)["updates"]) == 2
    assert json.loads(requests[3].content)["packages"] == [{"name": "bash", "version": "5.1", "repo": "jammy"}]


def test_register(agent_config):
    reporter, requests = make_reporter(agent_config)
    asyncio.run(reporter.register())
    assert requests[0].url.path == "/v1/hosts/register/web-01"


def test_metrics_collector_uses_uptime_source():
    metrics = MetricsCollector(FakeUptime(4321)).collect().to_dict()

    assert metrics["uptime_seconds"] == 4321
    assert set(metrics["load_average"]) == {"one", "five", "fifteen"}
    assert metrics["tasks"]["total"] >= 1
    assert {"routes", "block_devices", "mdstat", "need_restart"} <= set(metrics)


PROC_NET_ROUTE = (
    "Iface\tDestination\tGateway \tFlags\tRefCnt\tUse\tMetric\tMask\t\tMTU\tWindow\tIRTT\n"
    "eth0\t00000000\t0100A8C0\t0003\t0\t0\t100\t00000000\t0\t0\t0\n"
    "eth0\t0000A8C0\t00000000\t0001\t0\t0\t100\t00FFFFFF\t0\t0\t0\n"
)

MDSTAT = """Personalities : [raid1] [linear]
md0 : active raid1 sdb1[1] sda1[0]
      1047552 blocks super 1.2 [2/1] [U_]
      [==>..................]  recovery = 12.6% (132096/1047552) finish=0.7min speed=22016K/sec

unused devices: <none>
"""


def test_routes_are_decoded():
    default, local = parse_proc_net_route(PROC_NET_ROUTE)
    assert default == {
        "destination": "0.0.0.0",
        "gateway": "192.168.0.1",
        "netmask": "0.0.0.0",
        "prefix_length": 0,
        "iface": "eth0",
        "metric": 100,
        "flags": 3,
    }
    assert local["destination"] == "192.168.0.0"
    assert local["prefix_length"] == 24


def test_mdstat_degraded_array_in_recovery():
    mdstat = parse_mdstat(MDSTAT)
    assert mdstat["personalities"] == ["raid1", "linear"]
    (array,) = mdstat["arrays"]
    assert array["name"] == "md0"
    assert array["level"] == "raid1"
    assert array["devices"] == [{"name": "sdb1", "slot": 1}, {"name": "sda1", "slot": 0}]
    assert (array["raid_disks"], array["active_disks"], array["health"]) == (2, 1, "U_")
    assert array["progress"] == {"type": "recovery", "percent": 12.6, "eta": "0.7min", "speed_kps": 22016}


def test_mdstat_missing_means_no_arrays(tmp_path):
    assert read_mdstat(tmp_path / "mdstat") == {"personalities": [], "arrays": []}


def test_block_devices_from_sysfs(tmp_path):
    sda = tmp_path / "sda"
    (sda / "device").mkdir(parents=True)
    (sda / "size").write_text("2097152\n")
    (sda / "dev").write_text("8:0\n")
    (sda / "ro").write_text("0\n")
    (sda / "device" / "model").write_text("QEMU HARDDISK   \n")
    sda1 = tmp_path / "sda1"
    sda1.mkdir()
    (sda1 / "partition").write_text("1\n")
    (sda1 / "size").write_text("2048\n")

    devices = read_block_devices(tmp_path, mountpoints={"/dev/sda1": "/boot"})

    assert [(d["name"], d["type"], d["size"], d["mountpoint"]) for d in devices] == [
        ("sda", "disk", 1073741824, None),
        ("sda1", "part", 1048576, "/boot"),
    ]
    assert devices[0]["model"] == "QEMU HARDDISK"
    assert devices[1]["model"] is None


def test_kernel_needs_reboot(tmp_path):
    modules = tmp_path / "modules"
    (modules / "6.8.0-40-generic").mkdir(parents=True)
    (modules / "6.8.0-45-generic").mkdir()
    assert kernel_needs_reboot("6.8.0-40-generic\n", modules)
    assert not kernel_needs_reboot("6.8.0-45-generic", modules)
    assert not kernel_needs_reboot("6.8.0-45-generic", Path(tmp_path / "none"))


def test_classify_cgroup():
    assert classify_cgroup("0::/system.slice/nginx.service\n") == ("service", "nginx")
    assert classify_cgroup("0::/system.slice/docker-abc.scope") == ("container", "docker")
    assert classify_cgroup("0::/user.slice/user-1000.slice/session-2.scope") is None
