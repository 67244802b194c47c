"""Shared fixtures and fakes for agent tests."""

from dataclasses import dataclass, field

import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature

from guardian.common.config import AgentConfig
from guardian.common.exceptions import ApiError, CommandError, UptimeError
from guardian.services.jobs.models import Job, JobStatus
from guardian.services.jobs.signature import SECP256K1_ORDER
from guardian.services.system.shell import CommandResult

HOSTNAME = "web-01"


class Signer:
    """Signs messages the way the controller does: low-s r||s over SHA-256"""

    def __init__(self) -> None:
        self.private_key = ec.generate_private_key(ec.SECP256K1())
        self.public_key_hex = self.private_key.public_key().public_bytes(
            encoding=serialization.Encoding.X962,
            format=serialization.PublicFormat.UncompressedPoint,
        ).hex()

    def sign(self, message: str) -> str:
        der = self.private_key.sign(message.encode("utf-8"), ec.ECDSA(hashes.SHA256()))
        r, s = decode_dss_signature(der)
        if s > SECP256K1_ORDER // 2:
            s = SECP256K1_ORDER - s
        return (r.to_bytes(32, "big") + s.to_bytes(32, "big")).hex()

    def signed_job(
        self,
        job_id: str,
        job_type: str,
        job_data: str = "",
        hostname: str = HOSTNAME,
        created_at: str = "2026-10-18T12:00:00.000Z",
    ) -> Job:
        job = Job(
            job_id=job_id,
            created_at=created_at,
            job_type=job_type,
            job_data=job_data,
            status=JobStatus.SUBMITTED.value,
        )
        job.signature = self.sign(job.signing_message(hostname))
        return job


class FakeJobClient:
    """In-memory job client recording every fetch and push."""

    def __init__(self, hostname: str = HOSTNAME) -> None:
        self.hostname = hostname
        self.jobs: dict[JobStatus, list[Job]] = {}
        self.fetched: list[JobStatus] = []
        self.pushes: list[tuple[str, str, str]] = []
        self.fetch_error: Exception | None = None
        self.failing_statuses: set[JobStatus] = set()

    async def fetch_jobs(self, status: JobStatus) -> list[Job]:
        self.fetched.append(status)
        if self.fetch_error is not None:
            raise self.fetch_error
        return list(self.jobs.get(status, []))

    async def update_status(self, job_id: str, status: JobStatus, result: str = "") -> None:
        if status in self.failing_statuses:
            raise ApiError("server error 500", status_code=500)
        self.pushes.append((job_id, status.value, result))


class FakeUptime:
    """Uptime source returning a fixed value or raising."""

    def __init__(self, seconds: int = 1000, error: Exception | None = None) -> None:
        self.seconds = seconds
        self.error = error

    def uptime_seconds(self) -> int:
        if self.error is not None:
            raise self.error
        return self.seconds


@dataclass
class FakePackageManager:
    """Package manager recording update calls."""

    name: str = "fake"
    stdout: str = "upgraded 3 packages\n"
    fail_stderr: str | None = None
    calls: list[tuple[str, list[str]]] = field(default_factory=list)

    def update_all(self) -> CommandResult:
        self.calls.append(("update_all", []))
        return self._result()

    def update_packages(self, names: list[str]) -> CommandResult:
        self.calls.append(("update_packages", list(names)))
        return self._result()

    def _result(self) -> CommandResult:
        if self.fail_stderr is not None:
            raise CommandError("command failed", stderr=self.fail_stderr, returncode=100)
        return CommandResult(stdout=self.stdout, stderr="", returncode=0)


class FakeReboot:
    """Reboot primitive that records calls instead of rebooting."""

    def __init__(self, error: Exception | None = None) -> None:
        self.calls = 0
        self.error = error

    def __call__(self) -> None:
        self.calls += 1
        if self.error is not None:
            raise self.error


@pytest.fixture
def signer() -> Signer:
    return Signer()


@pytest.fixture
def agent_config(signer: Signer) -> AgentConfig:
    return AgentConfig(
        api_url="https://api.example.test/v1/",
        api_key="0123456789abcdef",
        host_security_keys=[signer.public_key_hex],
        command_timeout_s=60,
    )


@pytest.fixture
def job_client() -> FakeJobClient:
    return FakeJobClient()


@pytest.fixture
def uptime_unavailable() -> FakeUptime:
    return FakeUptime(error=UptimeError("cannot read /proc/uptime"))
