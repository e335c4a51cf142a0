"""
Attachment Pipeline Module
==========================

Entry points for extracting a project's attachments into object storage
and reading them back.

Extraction stages, run strictly in sequence:
1. Normalize - flatten package groups, compute content keys, clean metadata
2. Filter - drop video and archive attachments
3. Dedupe - drop attachments already stored for the project
4. Fetch - download into a per-run working area
5. Extract - convert to markup via the extraction service
6. Persist - write content-addressed objects in bounded batches
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from filebot.core.errors import InvalidRequestError
from filebot.core.schema import PackageGroup, PackageIndexEntry
from filebot.ingestion.config import FilebotConfig, get_default_config
from filebot.ingestion.crawler import Fetcher
from filebot.ingestion.dedup import DedupChecker
from filebot.ingestion.extractor import Extractor
from filebot.ingestion.filters import FileFilter
from filebot.ingestion.normalizer import Normalizer
from filebot.ingestion.persister import BatchPersister
from filebot.ingestion.reader import AttachmentReader
from filebot.ingestion.storage import ObjectStore, StorageLocation, create_store
from filebot.ingestion.workspace import working_area

logger = logging.getLogger(__name__)


@dataclass
class ExtractionReport:
    """How many attachments survived each stage of one extraction run."""

    project_id: str
    received: int = 0
    normalized: int = 0
    filtered: int = 0
    deduplicated: int = 0
    downloaded: int = 0
    converted: int = 0
    persisted: int = 0
    failed_writes: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "project_id": self.project_id,
            "received": self.received,
            "normalized": self.normalized,
            "filtered": self.filtered,
            "deduplicated": self.deduplicated,
            "downloaded": self.downloaded,
            "converted": self.converted,
            "persisted": self.persisted,
            "failed_writes": self.failed_writes,
            "errors": self.errors,
        }


def _require(project_id: str | None, storage_location: str | None) -> StorageLocation:
    if not project_id:
        raise InvalidRequestError("Provide a project id")
    if not storage_location:
        raise InvalidRequestError("Provide a storage location")
    return StorageLocation.parse(storage_location)


class Filebot:
    """
    Extracts and reconstitutes project attachments.

    Every collaborator can be injected; by default they are built from the
    filebot configuration.
    """

    def __init__(
        self,
        config: FilebotConfig | None = None,
        store: ObjectStore | None = None,
        fetch_transport: httpx.AsyncBaseTransport | None = None,
        extraction_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or get_default_config()
        self.store = store or create_store(self.config.storage)

        self.normalizer = Normalizer()
        self.file_filter = FileFilter(self.config.filters.disallowed_patterns)
        self.dedup = DedupChecker(self.store)
        self.fetcher = Fetcher(self.config.fetch, transport=fetch_transport)
        self.extractor = Extractor(self.config.extraction, transport=extraction_transport)
        self.persister = BatchPersister(self.store, self.config.persist)
        self.reader = AttachmentReader(self.store, self.config.read.max_fetch_size_bytes)

    async def extract_attachments(
        self,
        project_id: str,
        storage_location: str,
        packages: list[dict[str, Any]] | list[PackageGroup],
    ) -> ExtractionReport:
        """
        Extract text from a project's attachments and store it.

        Per-item failures never abort the run; the report records how many
        attachments made it through each stage.

        Args:
            project_id: Project the attachments belong to
            storage_location: ``bucket`` or ``bucket/subprefix``
            packages: Package-grouped attachment descriptors

        Returns:
            ExtractionReport with per-stage counts

        Raises:
            InvalidRequestError: If an argument is missing or no packages were given
        """
        location = _require(project_id, storage_location)
        if not packages:
            raise InvalidRequestError("Provide a non-empty list of packages")

        report = ExtractionReport(project_id=project_id, received=len(packages))

        descriptors = self.normalizer.normalize(packages)
        report.normalized = len(descriptors)

        descriptors = self.file_filter.filter(descriptors)
        report.filtered = len(descriptors)

        descriptors = await self.dedup.remove_processed(project_id, location, descriptors)
        report.deduplicated = len(descriptors)

        if not descriptors:
            logger.info(f"No new attachments for project {project_id}")
            return report

        with working_area(self.config.workspace.base_path) as area:
            downloads = await self.fetcher.fetch_batch(descriptors, area)
            report.downloaded = len(downloads)

            results = await self.extractor.extract_batch(downloads)
            report.converted = sum(1 for r in results if r.convert_ok)

        if results:
            persisted = await self.persister.save_batch(project_id, location, results)
            report.persisted = persisted.succeeded
            report.failed_writes = persisted.failed
            report.errors.extend(persisted.errors)

            logger.info(
                f"Saved batch to {location} for project {project_id}",
                extra={"project_id": project_id, "batch_size": persisted.succeeded},
            )

        return report

    async def get_attachments(
        self, project_id: str, storage_location: str
    ) -> list[PackageIndexEntry]:
        """
        Reconstitute a project's stored attachments grouped by package.

        Args:
            project_id: Project identifier
            storage_location: ``bucket`` or ``bucket/subprefix``

        Returns:
            PackageIndexEntries in order of first-seen package name; empty if
            nothing is stored for the project
        """
        location = _require(project_id, storage_location)
        return await asyncio.to_thread(self.reader.get_attachments, project_id, location)

    async def delete_attachments(self, project_id: str, storage_location: str) -> int:
        """
        Delete every stored object of a project.

        Returns:
            Number of objects deleted
        """
        location = _require(project_id, storage_location)
        return await asyncio.to_thread(self._delete_prefix, project_id, location)

    def _delete_prefix(self, project_id: str, location: StorageLocation) -> int:
        prefix = location.project_prefix(project_id)
        keys = [summary.key for summary in self.store.list_objects(location.bucket, prefix)]
        for key in keys:
            self.store.delete(location.bucket, key)
        logger.info(f"Deleted {len(keys)} objects from {location} for project {project_id}")
        return len(keys)
