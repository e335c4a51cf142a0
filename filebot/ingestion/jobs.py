"""
Background Jobs Module
======================

Defines arq tasks for running attachment extraction off the request path.
Uses Redis as the job queue backend.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from arq import create_pool
from arq.connections import RedisSettings

from filebot.core.errors import InvalidRequestError
from filebot.ingestion.pipeline import Filebot

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    """Status of an extraction job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class JobResult:
    """Result of an extraction job."""

    job_id: str
    project_id: str
    storage_location: str
    status: JobStatus
    started_at: datetime | None = None
    completed_at: datetime | None = None
    report: dict[str, Any] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    duration_seconds: float | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "job_id": self.job_id,
            "project_id": self.project_id,
            "storage_location": self.storage_location,
            "status": self.status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "report": self.report,
            "errors": self.errors,
            "duration_seconds": self.duration_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JobResult:
        """Rebuild a JobResult from its serialized form."""
        return cls(
            job_id=data["job_id"],
            project_id=data["project_id"],
            storage_location=data["storage_location"],
            status=JobStatus(data["status"]),
            started_at=datetime.fromisoformat(data["started_at"]) if data["started_at"] else None,
            completed_at=datetime.fromisoformat(data["completed_at"]) if data["completed_at"] else None,
            report=data.get("report", {}),
            errors=data.get("errors", []),
            duration_seconds=data.get("duration_seconds"),
        )


def get_redis_settings() -> RedisSettings:
    """Get Redis connection settings from environment."""
    return RedisSettings(
        host=os.environ.get("REDIS_HOST", "localhost"),
        port=int(os.environ.get("REDIS_PORT", "6379")),
        database=int(os.environ.get("REDIS_DB", "0")),
    )


async def extract_project_attachments(
    ctx: dict[str, Any],
    project_id: str,
    storage_location: str,
    packages: list[dict[str, Any]],
) -> dict[str, Any]:
    """
    Extraction task.

    Args:
        ctx: arq context (may carry a shared Filebot under "filebot")
        project_id: Project the attachments belong to
        storage_location: ``bucket`` or ``bucket/subprefix``
        packages: Package-grouped attachment descriptors

    Returns:
        JobResult as dictionary
    """
    result = JobResult(
        job_id=ctx.get("job_id", str(uuid4())),
        project_id=project_id,
        storage_location=storage_location,
        status=JobStatus.RUNNING,
        started_at=datetime.now(UTC),
    )

    try:
        filebot = ctx.get("filebot") or Filebot()
        report = await filebot.extract_attachments(project_id, storage_location, packages)
        result.report = report.to_dict()
        result.errors.extend(report.errors)
        result.status = JobStatus.COMPLETED

    except InvalidRequestError as e:
        logger.warning(f"Rejected extraction job for project {project_id}: {e}")
        result.status = JobStatus.FAILED
        result.errors.append(str(e))

    except Exception as e:
        logger.exception(f"Extraction job failed for project {project_id}: {e}")
        result.status = JobStatus.FAILED
        result.errors.append(str(e))

    finally:
        result.completed_at = datetime.now(UTC)
        if result.started_at and result.completed_at:
            result.duration_seconds = (result.completed_at - result.started_at).total_seconds()

    return result.to_dict()


async def extract_attachments_sync(
    project_id: str,
    storage_location: str,
    packages: list[dict[str, Any]],
    filebot: Filebot | None = None,
) -> JobResult:
    """
    Run extraction in-process (without arq).

    Useful for CLI commands with --sync flag.
    """
    ctx: dict[str, Any] = {"job_id": str(uuid4())}
    if filebot is not None:
        ctx["filebot"] = filebot
    result_dict = await extract_project_attachments(ctx, project_id, storage_location, packages)
    return JobResult.from_dict(result_dict)


async def enqueue_extraction(
    project_id: str,
    storage_location: str,
    packages: list[dict[str, Any]],
) -> str:
    """
    Enqueue an extraction job for async processing.

    Returns:
        Job ID
    """
    redis = await create_pool(get_redis_settings())
    job = await redis.enqueue_job(
        "extract_project_attachments", project_id, storage_location, packages
    )
    await redis.close()
    return job.job_id


async def get_job_status(job_id: str) -> dict[str, Any] | None:
    """
    Get the status of an extraction job.

    Args:
        job_id: Job ID to look up

    Returns:
        Job info dict, or None if not found
    """
    from arq.jobs import Job, JobStatus as ArqJobStatus

    redis = await create_pool(get_redis_settings())
    try:
        job = Job(job_id, redis)
        status = await job.status()
        if status == ArqJobStatus.not_found:
            return None

        result = None
        if status == ArqJobStatus.complete:
            result = await job.result(timeout=1)

        return {
            "job_id": job_id,
            "status": status.value,
            "result": result,
        }
    finally:
        await redis.close()


async def startup(ctx: dict[str, Any]) -> None:
    """Share one Filebot across the jobs a worker runs."""
    ctx["filebot"] = Filebot()


class WorkerSettings:
    """arq worker settings."""

    functions = [extract_project_attachments]
    on_startup = startup
    redis_settings = get_redis_settings()
    max_jobs = 5
    job_timeout = 3600  # 1 hour
    keep_result = 86400  # 24 hours
