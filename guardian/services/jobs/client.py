"""
Job Client

Request/response access to the job endpoints. No retries: failures are
raised to the caller and the job is simply seen again on the next poll.
"""

from guardian.common.api import ApiClient
from guardian.common.exceptions import ApiError
from guardian.common.logging_setup import get_service_logger

from .models import Job, JobStatus

logger = get_service_logger("jobs.client")


class JobClient:
    """Fetches jobs for this host and pushes status updates"""

    def __init__(self, api: ApiClient, hostname: str):
        self.api = api
        self.hostname = hostname

    async def fetch_jobs(self, status: JobStatus) -> list[Job]:
        """
        Jobs for this host in ``status``.

        A 404 means the host has no such jobs.

        Raises:
            ApiError: transport failure, unexpected status or bad envelope
        """
        logger.debug(f"Fetching {status.value} jobs", extra={"hostname": self.hostname})
        body = await self.api.get(
            f"jobs/hosts/{self.hostname}",
            params={"job_status": status.value},
            not_found_ok=True,
        )
        if body is None:
            return []

        if not isinstance(body, dict):
            raise ApiError("job response is not an object")
        content = body.get("content") or []
        if not isinstance(content, list):
            raise ApiError("job response content is not a list")

        return [Job.from_dict(item) for item in content if isinstance(item, dict)]

    async def update_status(self, job_id: str, status: JobStatus, result: str = "") -> None:
        """
        Push a status transition for ``job_id``.

        Raises:
            ApiError: the server did not accept the update
        """
        logger.info(
            f"Updating job {job_id} status to {status.value}",
            extra={"status": status.value},
        )
        await self.api.put(
            f"jobs/{job_id}",
            {"status": status.value, "result": result},
            not_found_fatal=False,
        )
