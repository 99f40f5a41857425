"""Repository for the background job queue (jobs container, partitioned by /userId).

Jobs are consumed by an external at-least-once worker that retries with
exponential backoff until maxAttempts; this service only enqueues.
"""

import logging
from uuid import uuid4

from azure.cosmos import ContainerProxy

from marginalia.db import get_jobs_container
from marginalia.srs.time import utc_now_iso

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3


class JobRepository:
    """Repository for job documents."""

    def __init__(self, container: ContainerProxy | None = None):
        self._container = container

    @property
    def container(self) -> ContainerProxy:
        if self._container is None:
            self._container = get_jobs_container()
        return self._container

    def enqueue(
        self,
        job_type: str,
        payload: dict,
        user_id: str,
        run_at_iso: str | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> str:
        """Insert a pending job and return its id."""
        job_id = str(uuid4())
        self.container.create_item(
            body={
                "id": job_id,
                "userId": user_id,
                "type": job_type,
                "payload": payload,
                "status": "pending",
                "attempts": 0,
                "maxAttempts": max_attempts,
                "runAt": run_at_iso or utc_now_iso(),
                "lastError": None,
                "createdAt": utc_now_iso(),
            }
        )
        logger.info("Enqueued %s job %s for user %s", job_type, job_id, user_id)
        return job_id


# Singleton instance
_job_repository: JobRepository | None = None


def get_job_repository() -> JobRepository:
    global _job_repository
    if _job_repository is None:
        _job_repository = JobRepository()
    return _job_repository
