"""
Reconstitution Reader Module
============================

Reads a project's stored attachments back out of object storage and
regroups them by package name for indexing.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from bs4 import BeautifulSoup

from filebot.core.schema import NOT_AVAILABLE, PackageFile, PackageIndexEntry
from filebot.ingestion.storage import ObjectInfo, ObjectStore, StorageLocation

logger = logging.getLogger(__name__)

BYTE_UNITS = ["B", "KB", "MB", "GB", "TB"]

_WHITESPACE_RE = re.compile(r"\s+")


def format_bytes(size: int, precision: int = 2) -> str:
    """
    Format a byte count with a binary unit suffix.

    Args:
        size: Number of bytes
        precision: Decimal places to round to

    Returns:
        Human readable size, e.g. "1.5 KB"
    """
    size = max(size, 0)
    power = (size.bit_length() - 1) // 10 if size else 0
    power = min(power, len(BYTE_UNITS) - 1)
    value = size / (1 << (10 * power))
    return f"{round(value, precision):g} {BYTE_UNITS[power]}"


def clean_body(body: str) -> str:
    """Strip all markup, collapse whitespace and trim."""
    text = BeautifulSoup(body, "html.parser").get_text(" ")
    return _WHITESPACE_RE.sub(" ", text).strip()


@dataclass
class StoredAttachment:
    """A stored attachment after size and content checks."""

    name: str
    description: str
    package_name: str
    uri: str
    size_bytes: int
    body: str


class AttachmentReader:
    """Reconstitutes stored attachments into package index entries."""

    def __init__(self, store: ObjectStore, max_fetch_size_bytes: int) -> None:
        self.store = store
        self.max_fetch_size_bytes = max_fetch_size_bytes

    def _load(self, location: StorageLocation, info: ObjectInfo) -> StoredAttachment | None:
        metadata = info.metadata

        if "binary" in metadata:
            return None

        if info.size > self.max_fetch_size_bytes:
            logger.info(
                f"File larger than max fetch size, skipped {info.key} ({format_bytes(info.size)})"
            )
            return None

        stored = self.store.get(location.bucket, info.key)
        body = clean_body(stored.body.decode("utf-8", errors="replace"))
        if not body:
            return None

        return StoredAttachment(
            name=metadata.get("name") or NOT_AVAILABLE,
            description=metadata.get("description") or NOT_AVAILABLE,
            package_name=metadata.get("packagename") or NOT_AVAILABLE,
            uri=metadata.get("uri", ""),
            size_bytes=info.size,
            body=body,
        )

    def read_attachments(self, project_id: str, location: StorageLocation) -> list[StoredAttachment]:
        """
        Load every usable attachment stored for a project, in listing order.

        Args:
            project_id: Project identifier
            location: Bucket and optional prefix

        Returns:
            StoredAttachments that passed the binary, size and content checks
        """
        prefix = location.project_prefix(project_id)
        if not self.store.prefix_exists(location.bucket, prefix):
            return []

        attachments = []
        for summary in self.store.list_objects(location.bucket, prefix):
            info = self.store.head(location.bucket, summary.key)
            attachment = self._load(location, info)
            if attachment is not None:
                attachments.append(attachment)

        logger.info(
            f"Finished fetching {len(attachments)} files from {location} for project {project_id}"
        )
        return attachments

    @staticmethod
    def group_by_package(attachments: list[StoredAttachment]) -> list[PackageIndexEntry]:
        """Group attachments by package name, in order of first appearance."""
        packages: dict[str, PackageIndexEntry] = {}
        for attachment in attachments:
            entry = packages.get(attachment.package_name)
            if entry is None:
                entry = PackageIndexEntry(package_name=attachment.package_name)
                packages[attachment.package_name] = entry
            entry.package_details.append(
                PackageFile(
                    file_description=attachment.description,
                    file_name=attachment.name,
                    file_uri=attachment.uri,
                    file_body=attachment.body,
                )
            )
        return list(packages.values())

    def get_attachments(self, project_id: str, location: StorageLocation) -> list[PackageIndexEntry]:
        """Read a project's attachments and group them by package."""
        return self.group_by_package(self.read_attachments(project_id, location))
