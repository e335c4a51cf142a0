"""
Filebot Ingestion Framework
===========================

This package provides the pipeline that turns a project's declared file
attachments into extracted text stored in object storage, and the read path
that reconstitutes them for indexing.

Pipeline Stages:
1. Normalize - Flatten package groups, compute content keys, clean metadata
2. Filter - Drop video and archive attachments
3. Dedupe - Skip attachments already stored for the project
4. Fetch - Download attachments into a per-run working area
5. Extract - Convert files to markup via the extraction service
6. Persist - Write content-addressed objects in bounded batches
"""

from filebot.ingestion.config import (
    FilebotConfig,
    get_default_config,
    reset_default_config,
)
from filebot.ingestion.normalizer import (
    FileDescriptor,
    Normalizer,
    content_key,
)
from filebot.ingestion.filters import FileFilter
from filebot.ingestion.storage import (
    LocalObjectStore,
    ObjectStore,
    S3ObjectStore,
    StorageLocation,
    create_store,
)
from filebot.ingestion.dedup import DedupChecker
from filebot.ingestion.crawler import (
    DownloadResult,
    Fetcher,
)
from filebot.ingestion.extractor import (
    ExtractionResult,
    Extractor,
)
from filebot.ingestion.persister import (
    BatchPersister,
    PersistResult,
)
from filebot.ingestion.reader import (
    AttachmentReader,
    format_bytes,
)
from filebot.ingestion.workspace import (
    WorkingArea,
    working_area,
)
from filebot.ingestion.pipeline import (
    ExtractionReport,
    Filebot,
)

__all__ = [
    # Config
    "FilebotConfig",
    "get_default_config",
    "reset_default_config",
    # Normalizer
    "FileDescriptor",
    "Normalizer",
    "content_key",
    # Filter
    "FileFilter",
    # Storage
    "LocalObjectStore",
    "ObjectStore",
    "S3ObjectStore",
    "StorageLocation",
    "create_store",
    # Dedup
    "DedupChecker",
    # Fetch
    "DownloadResult",
    "Fetcher",
    # Extract
    "ExtractionResult",
    "Extractor",
    # Persist
    "BatchPersister",
    "PersistResult",
    # Read
    "AttachmentReader",
    "format_bytes",
    # Workspace
    "WorkingArea",
    "working_area",
    # Pipeline
    "ExtractionReport",
    "Filebot",
]
