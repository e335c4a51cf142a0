"""
Descriptor Normalizer Module
============================

Flattens package-grouped attachment trees into a uniform list of
FileDescriptor records with storage-safe metadata and stable content keys.
"""

from __future__ import annotations

import hashlib
import html
import logging
import re
import unicodedata
from dataclasses import dataclass
from typing import Any

import bleach

from filebot.core.schema import NOT_AVAILABLE, PackageGroup, parse_package_tree

logger = logging.getLogger(__name__)


@dataclass
class FileDescriptor:
    """
    A single attachment flowing through the pipeline.

    ``uri`` and ``content_key`` are kept verbatim; every other field is
    sanitised to the storage-safe character set.
    """

    uri: str
    content_key: str
    name: str = NOT_AVAILABLE
    description: str = NOT_AVAILABLE
    package_name: str = NOT_AVAILABLE


def content_key(uri: str) -> str:
    """
    Compute the content key for a URI.

    The key identifies the attachment in storage and for deduplication, so it
    depends on the URI alone.

    Args:
        uri: Source location of the attachment

    Returns:
        Hex-encoded MD5 digest of the URI
    """
    return hashlib.md5(uri.encode("utf-8")).hexdigest()


class Normalizer:
    """
    Normalizes caller-supplied package trees into FileDescriptors.

    Handles:
    - Skipping secure packages and attachments without a URI
    - Repairing FTP links glued onto the project site prefix
    - Defaulting missing display metadata
    - Reducing metadata to a small HTML allow-list in plain ASCII
    """

    # Project site prefix erroneously prepended to FTP links
    MALFORMED_FTP_PREFIX = "https://www.fbo.govFTP://"

    KEEP_TAGS = frozenset({"p", "br"})

    _NEWLINES_RE = re.compile(r"(\r\n|\r|\n)+")
    _WHITESPACE_RE = re.compile(r"\s+")

    def repair_uri(self, uri: str) -> str:
        """Rewrite a project-site-prefixed FTP link to a bare ftp:// URL."""
        return uri.replace(self.MALFORMED_FTP_PREFIX, "ftp://")

    def clean_dirty_html(self, value: str | None) -> str:
        """
        Reduce a markup fragment to allow-listed tags without attributes.

        Args:
            value: Raw text or HTML

        Returns:
            Cleaned single-line string
        """
        if not value:
            return ""

        cleaned = bleach.clean(
            value,
            tags=self.KEEP_TAGS,
            attributes={},
            strip=True,
            strip_comments=True,
        )
        # bleach escapes the text it keeps; stored metadata is plain text
        cleaned = html.unescape(cleaned)
        cleaned = self._NEWLINES_RE.sub("\n", cleaned)
        cleaned = self._WHITESPACE_RE.sub(" ", cleaned)
        return cleaned.strip()

    @staticmethod
    def to_storage_safe(value: str) -> str:
        """
        Transliterate to ASCII, dropping characters with no ASCII form.

        Args:
            value: Any unicode string

        Returns:
            ASCII-only string
        """
        decomposed = unicodedata.normalize("NFKD", value)
        return decomposed.encode("ascii", "ignore").decode("ascii")

    def sanitize(self, value: str | None) -> str:
        """Clean markup and reduce to the storage-safe character set."""
        return self.to_storage_safe(self.clean_dirty_html(value))

    def _display_value(self, value: str | None) -> str:
        if value is None or value == "":
            return NOT_AVAILABLE
        return self.sanitize(value)

    def normalize_package(self, group: PackageGroup) -> list[FileDescriptor]:
        """
        Normalize the attachments of a single package.

        Args:
            group: Validated package group

        Returns:
            Descriptors for every attachment with a URI, in input order
        """
        if group.package_secure:
            logger.debug(f"Skipping secure package '{group.package_name}'")
            return []

        package_name = self._display_value(group.package_name)
        descriptors = []

        for item in group.files:
            if not item.uri:
                continue

            uri = self.repair_uri(item.uri)
            descriptors.append(
                FileDescriptor(
                    uri=uri,
                    content_key=content_key(uri),
                    name=self._display_value(item.name),
                    description=self._display_value(item.description),
                    package_name=package_name,
                )
            )

        return descriptors

    def normalize(
        self, packages: list[dict[str, Any]] | list[PackageGroup]
    ) -> list[FileDescriptor]:
        """
        Flatten a package-grouped tree into an ordered list of descriptors.

        Args:
            packages: Raw or validated package groups

        Returns:
            Flat list of FileDescriptors
        """
        output: list[FileDescriptor] = []
        for group in parse_package_tree(packages):
            output.extend(self.normalize_package(group))
        return output
