"""
Job Data Model

Server-issued units of work and the helpers that derive the two strings
the agent must reproduce exactly: the canonical signing message and the
reboot checkpoint.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

CHECKPOINT_PREFIX = "initiated reboot, uptime: "

_CHECKPOINT_VALUE = re.compile(r"[0-9]+")


class JobStatus(str, Enum):
    """Job lifecycle states"""
    SUBMITTED = "submitted"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class JobType(str, Enum):
    """Known job types"""
    UPDATE = "update"
    REBOOT = "reboot"
    COMMAND = "command"
    SCRIPT = "script"
    UPDATE_AGENT = "update_agent"


@dataclass
class Job:
    """
    A job as received from the control API.

    ``job_type`` and ``status`` keep the raw server strings so that job
    types this agent doesn't know yet still parse (and get rejected
    explicitly instead of crashing the batch).
    """
    job_id: str
    signature: str = ""
    created_at: str = ""
    job_type: str = ""
    job_data: str = ""
    result: str = ""
    status: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Job":
        """Build a Job from the API's camelCase JSON"""
        return cls(
            job_id=str(data.get("jobId") or ""),
            signature=data.get("signature") or "",
            created_at=data.get("createdAt") or "",
            job_type=data.get("jobType") or "",
            job_data=data.get("jobData") or "",
            result=data.get("result") or "",
            status=data.get("status") or "",
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "jobId": self.job_id,
            "signature": self.signature,
            "createdAt": self.created_at,
            "jobType": self.job_type,
            "jobData": self.job_data,
            "result": self.result,
            "status": self.status,
        }

    def signing_message(self, hostname: str) -> str:
        """
        Canonical message the controller signed for this job.

        Values are substituted verbatim with no escaping; the byte string
        must match what the controller hashed.
        """
        return (
            '{"createdAt":"' + self.created_at
            + '","hostname":"' + hostname
            + '","jobType":"' + self.job_type
            + '","jobData":"' + self.job_data
            + '"}'
        )


def format_checkpoint(uptime_seconds: int) -> str:
    """Result string recorded just before rebooting"""
    return f"{CHECKPOINT_PREFIX}{uptime_seconds}"


def parse_checkpoint(result: str) -> int | None:
    """
    Extract the pre-reboot uptime from a checkpoint result.

    Returns None unless ``result`` is exactly the prefix followed by a
    non-negative base-10 integer.
    """
    if not result.startswith(CHECKPOINT_PREFIX):
        return None
    value = result[len(CHECKPOINT_PREFIX):]
    if not _CHECKPOINT_VALUE.fullmatch(value):
        return None
    return int(value)


def parse_package_list(job_data: str) -> list[str]:
    """Split an update job's comma separated package list"""
    return [name.strip() for name in job_data.split(",") if name.strip()]
