"""
Extractor Adapter Module
========================

Submits downloaded files to a Tika-compatible extraction service and
classifies each result. Extraction never drops a file: failures become
placeholder records so that the attempt is still persisted.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from pathlib import Path

import httpx

from filebot.ingestion.config import ExtractionConfig
from filebot.ingestion.crawler import CHUNK_SIZE, DownloadResult
from filebot.ingestion.normalizer import FileDescriptor

logger = logging.getLogger(__name__)

MARKUP_CONTENT_TYPE = "text/html"
REPLACEMENT_CHARACTER = "\ufffd"


@dataclass
class ExtractionResult:
    """A downloaded file annotated with its extraction outcome."""

    download: DownloadResult
    convert_ok: bool
    extracted_body: str | None = None
    content_type: str = MARKUP_CONTENT_TYPE

    @property
    def descriptor(self) -> FileDescriptor:
        return self.download.descriptor

    @property
    def body(self) -> str:
        """Body to persist: extracted markup, or the content digest as a placeholder."""
        if self.convert_ok and self.extracted_body is not None:
            return self.extracted_body
        return self.download.md5


async def _iter_file(path: Path) -> AsyncIterator[bytes]:
    with open(path, "rb") as f:
        while chunk := f.read(CHUNK_SIZE):
            yield chunk


class Extractor:
    """Client for the text extraction service."""

    def __init__(
        self,
        config: ExtractionConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or ExtractionConfig()
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.config.timeout, transport=self._transport)

    async def convert_to_html(self, client: httpx.AsyncClient, path: Path) -> str | None:
        """
        Convert one file to markup.

        Args:
            client: HTTP client to use
            path: Local file to convert

        Returns:
            The service response, or None if the call failed
        """
        try:
            response = await client.put(
                self.config.endpoint,
                content=_iter_file(path),
                headers={
                    "Accept": self.config.accept,
                    "Content-Length": str(path.stat().st_size),
                },
            )
        except httpx.TimeoutException:
            logger.warning(f"Extraction timed out for {path.name}")
            return None
        except (httpx.HTTPError, OSError) as e:
            logger.error(f"Extraction failed for {path.name}: {e}")
            return None

        if not response.is_success:
            logger.warning(f"Extraction service returned HTTP {response.status_code} for {path.name}")
            return None

        return response.text

    def classify(self, download: DownloadResult, result: str | None) -> ExtractionResult:
        """
        Decide whether an extraction result is usable.

        Results that are missing or shorter than the configured minimum
        become placeholders.
        """
        if not result or len(result) < self.config.min_length:
            return ExtractionResult(download=download, convert_ok=False)

        return ExtractionResult(
            download=download,
            convert_ok=True,
            extracted_body=result.replace(REPLACEMENT_CHARACTER, "_"),
        )

    async def extract_batch(self, downloads: list[DownloadResult]) -> list[ExtractionResult]:
        """
        Extract every downloaded file sequentially.

        Args:
            downloads: Successfully downloaded files

        Returns:
            One ExtractionResult per download, in input order
        """
        results = []
        async with self._client() as client:
            for download in downloads:
                text = await self.convert_to_html(client, download.local_path)
                results.append(self.classify(download, text))

        converted = sum(1 for r in results if r.convert_ok)
        logger.info(f"Extracted text from {converted} of {len(results)} files")
        return results
