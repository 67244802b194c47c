"""
Job Processing

Fetches jobs from the control API, verifies their signatures, executes
them and confirms reboots across restarts.
"""

from .client import JobClient
from .models import Job, JobStatus, JobType
from .orchestrator import JobOrchestrator
from .reboot_monitor import MAX_REBOOT_DURATION, RebootSafetyMonitor
from .signature import validate_payload

__all__ = [
    "Job",
    "JobStatus",
    "JobType",
    "JobClient",
    "JobOrchestrator",
    "RebootSafetyMonitor",
    "MAX_REBOOT_DURATION",
    "validate_payload",
]
