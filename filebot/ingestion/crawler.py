"""
Attachment Fetcher Module
=========================

Downloads attachment URLs into a working area, one at a time, dropping any
attachment that cannot be fetched.
"""

from __future__ import annotations

import hashlib
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

import httpx

from filebot.ingestion.config import FetchConfig
from filebot.ingestion.normalizer import FileDescriptor
from filebot.ingestion.workspace import WorkingArea

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


@dataclass
class DownloadResult:
    """A descriptor whose content was saved to the working area."""

    descriptor: FileDescriptor
    local_path: Path
    md5: str

    @property
    def content_key(self) -> str:
        return self.descriptor.content_key


def compute_file_digest(path: Path | str) -> str:
    """
    Compute the MD5 digest of a file.

    Args:
        path: File to hash

    Returns:
        Hex-encoded MD5 digest
    """
    digest = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


class Fetcher:
    """
    Downloads attachments over HTTP(S).

    Features:
    - Only http/https URLs are fetched; anything else fails immediately
    - Short connect timeout and bounded total timeout
    - Certificate verification off by default, since attachment mirrors
      routinely serve broken chains
    - No retries: a failed download drops the attachment
    """

    def __init__(
        self,
        config: FetchConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or FetchConfig()
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.timeout, connect=self.config.connect_timeout),
            verify=self.config.verify_tls,
            follow_redirects=True,
            headers={"User-Agent": self.config.user_agent},
            transport=self._transport,
        )

    def is_fetchable(self, uri: str) -> bool:
        """Check whether the URI parses and uses a scheme the fetcher handles."""
        try:
            scheme = urlparse(uri).scheme
        except ValueError:
            return False
        return scheme.lower() in self.config.allowed_schemes

    async def download_one(
        self, client: httpx.AsyncClient, uri: str, save_path: Path
    ) -> str | None:
        """
        Stream one URL to disk.

        Args:
            client: HTTP client to use
            uri: URL to download
            save_path: Destination file

        Returns:
            MD5 digest of the saved bytes, or None if the download failed
        """
        partial_path = save_path.with_name(save_path.name + ".part")
        try:
            if not self.is_fetchable(uri):
                logger.info(f"Unsupported or malformed URL, skipping {uri}")
                return None

            async with client.stream("GET", uri) as response:
                if response.status_code != 200:
                    logger.info(f"Download of {uri} returned HTTP {response.status_code}")
                    return None

                with open(partial_path, "wb") as f:
                    async for chunk in response.aiter_bytes(CHUNK_SIZE):
                        f.write(chunk)

            os.replace(partial_path, save_path)
            return compute_file_digest(save_path)

        except httpx.TimeoutException:
            logger.info(f"Timeout downloading {uri}")
        except httpx.HTTPError as e:
            logger.info(f"HTTP error downloading {uri}: {e}")
        except (httpx.InvalidURL, ValueError) as e:
            logger.info(f"Invalid URL {uri}: {e}")
        except OSError as e:
            logger.warning(f"Could not save {uri} to {save_path}: {e}")

        partial_path.unlink(missing_ok=True)
        return None

    async def fetch_batch(
        self, descriptors: list[FileDescriptor], area: WorkingArea
    ) -> list[DownloadResult]:
        """
        Download attachments sequentially into the working area.

        Each file is named by its content key.

        Args:
            descriptors: Attachments to download
            area: Working area for this run

        Returns:
            DownloadResults for successful downloads, in input order
        """
        results = []
        async with self._client() as client:
            for descriptor in descriptors:
                save_path = area.file_path(descriptor.content_key)
                md5 = await self.download_one(client, descriptor.uri, save_path)
                if md5 is None:
                    continue
                results.append(DownloadResult(descriptor=descriptor, local_path=save_path, md5=md5))

        logger.info(f"Downloaded {len(results)} of {len(descriptors)} files")
        return results
