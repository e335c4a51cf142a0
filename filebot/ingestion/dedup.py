"""Dedup checker: drops attachments already stored for a project."""

from __future__ import annotations

import asyncio
import logging

from filebot.ingestion.normalizer import FileDescriptor
from filebot.ingestion.storage import ObjectStore, StorageLocation

logger = logging.getLogger(__name__)


class DedupChecker:
    """
    Skips descriptors whose object already exists in storage.

    The check reads before writing and is not atomic: two concurrent runs for
    the same project and URI may both pass it and write the same key.
    """

    def __init__(self, store: ObjectStore) -> None:
        self.store = store

    def is_processed(
        self, project_id: str, location: StorageLocation, descriptor: FileDescriptor
    ) -> bool:
        """Check whether the descriptor's object exists."""
        key = location.object_key(project_id, descriptor.content_key)
        return self.store.exists(location.bucket, key)

    async def remove_processed(
        self,
        project_id: str,
        location: StorageLocation,
        descriptors: list[FileDescriptor],
    ) -> list[FileDescriptor]:
        """
        Return descriptors that have not been stored yet.

        Storage errors propagate to the caller.
        """
        remaining = []
        for descriptor in descriptors:
            if await asyncio.to_thread(self.is_processed, project_id, location, descriptor):
                logger.debug(f"Skipped existing file '{descriptor.name}' ({descriptor.uri})")
                continue
            remaining.append(descriptor)
        return remaining
