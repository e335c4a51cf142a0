"""
Batch Persister Module
======================

Writes extraction results to object storage as content-addressed objects.
Writes are queued, flushed in small groups and bounded by a maximum number
of in-flight operations. Failed writes are logged and counted, never raised.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from filebot.ingestion.config import PersistConfig
from filebot.ingestion.extractor import ExtractionResult
from filebot.ingestion.normalizer import Normalizer
from filebot.ingestion.storage import ObjectStore, StorageLocation

logger = logging.getLogger(__name__)


@dataclass
class PendingWrite:
    """A single object write waiting in the batch queue."""

    key: str
    body: bytes
    content_type: str
    metadata: dict[str, str]


@dataclass
class PersistResult:
    """Outcome of persisting a batch."""

    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "errors": self.errors,
        }


def build_metadata(project_id: str, item: ExtractionResult) -> dict[str, str]:
    """
    Build the stored metadata for an extraction result.

    Values are ASCII so every storage backend can carry them verbatim.
    """
    descriptor = item.descriptor
    return {
        "projectid": Normalizer.to_storage_safe(project_id),
        "name": descriptor.name,
        "uri": Normalizer.to_storage_safe(descriptor.uri),
        "description": descriptor.description,
        "packagename": descriptor.package_name,
        "md5": item.download.md5,
        "convertok": "yes" if item.convert_ok else "no",
    }


class BatchPersister:
    """Queues object writes and flushes them with bounded concurrency."""

    def __init__(self, store: ObjectStore, config: PersistConfig | None = None) -> None:
        self.store = store
        self.config = config or PersistConfig()

    def build_write(
        self, project_id: str, location: StorageLocation, item: ExtractionResult
    ) -> PendingWrite:
        """Turn an extraction result into the object that represents it."""
        return PendingWrite(
            key=location.object_key(project_id, item.download.content_key),
            body=item.body.encode("utf-8"),
            content_type=item.content_type,
            metadata=build_metadata(project_id, item),
        )

    async def _write(
        self,
        semaphore: asyncio.Semaphore,
        location: StorageLocation,
        write: PendingWrite,
    ) -> None:
        async with semaphore:
            await asyncio.to_thread(
                self.store.put,
                location.bucket,
                write.key,
                write.body,
                write.content_type,
                write.metadata,
            )

    async def _flush(
        self,
        semaphore: asyncio.Semaphore,
        location: StorageLocation,
        queue: list[PendingWrite],
        result: PersistResult,
    ) -> None:
        outcomes = await asyncio.gather(
            *(self._write(semaphore, location, write) for write in queue),
            return_exceptions=True,
        )
        for write, outcome in zip(queue, outcomes):
            result.attempted += 1
            if isinstance(outcome, BaseException):
                result.failed += 1
                result.errors.append(f"{write.key}: {outcome}")
                logger.error(
                    f"Failed to save {location.bucket}/{write.key}: {outcome}",
                    extra={"object_metadata": write.metadata},
                )
            else:
                result.succeeded += 1
        queue.clear()

    async def save_batch(
        self,
        project_id: str,
        location: StorageLocation,
        items: list[ExtractionResult],
    ) -> PersistResult:
        """
        Persist every extraction result.

        Args:
            project_id: Project the attachments belong to
            location: Target bucket and optional prefix
            items: Results to persist

        Returns:
            PersistResult with per-write success and failure counts
        """
        result = PersistResult()
        semaphore = asyncio.Semaphore(self.config.max_in_flight)
        queue: list[PendingWrite] = []

        for item in items:
            queue.append(self.build_write(project_id, location, item))
            if len(queue) >= self.config.auto_flush_at:
                await self._flush(semaphore, location, queue, result)

        if queue:
            await self._flush(semaphore, location, queue, result)

        if result.failed:
            logger.error(
                f"Saved {result.succeeded} of {result.attempted} objects for project {project_id}"
            )
        return result
