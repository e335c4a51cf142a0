"""Type/location filter for attachments that must never be downloaded."""

from __future__ import annotations

import logging
import re

from filebot.ingestion.config import DEFAULT_DISALLOWED_PATTERNS
from filebot.ingestion.normalizer import FileDescriptor

logger = logging.getLogger(__name__)


class FileFilter:
    """Drops video and archive attachments, judged by URI and display name."""

    def __init__(self, disallowed_patterns: list[str] | None = None) -> None:
        patterns = disallowed_patterns if disallowed_patterns is not None else DEFAULT_DISALLOWED_PATTERNS
        self.disallowed_patterns = list(patterns)
        self._pattern = re.compile("|".join(self.disallowed_patterns)) if self.disallowed_patterns else None

    def is_allowed(self, descriptor: FileDescriptor) -> bool:
        """Check the concatenated URI and name against the disallowed patterns."""
        if self._pattern is None:
            return True
        return self._pattern.search(descriptor.uri + descriptor.name) is None

    def filter(self, descriptors: list[FileDescriptor]) -> list[FileDescriptor]:
        """Return the descriptors that pass the filter, preserving order."""
        allowed = []
        for descriptor in descriptors:
            if self.is_allowed(descriptor):
                allowed.append(descriptor)
            else:
                logger.info(f"Filtered disallowed file type: {descriptor.uri}")
        return allowed
