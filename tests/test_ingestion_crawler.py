"""Tests for the attachment fetcher."""

import hashlib
from pathlib import Path

import httpx
import pytest

from filebot.ingestion.config import FetchConfig
from filebot.ingestion.crawler import Fetcher, compute_file_digest
from filebot.ingestion.normalizer import FileDescriptor, content_key
from filebot.ingestion.workspace import WorkingArea


def _descriptor(uri: str) -> FileDescriptor:
    return FileDescriptor(uri=uri, content_key=content_key(uri))


def _handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/doc.pdf":
        return httpx.Response(200, content=b"%PDF-1.4 test document")
    if path == "/missing.pdf":
        return httpx.Response(404, content=b"not found")
    if path == "/slow.pdf":
        raise httpx.ReadTimeout("timed out", request=request)
    if path == "/refused.pdf":
        raise httpx.ConnectError("connection refused", request=request)
    return httpx.Response(500)


class TestComputeFileDigest:
    """Tests for file hashing."""

    def test_md5_of_file(self, tmp_path: Path) -> None:
        """Test the digest matches hashlib over the same bytes."""
        path = tmp_path / "f"
        path.write_bytes(b"test content")
        assert compute_file_digest(path) == hashlib.md5(b"test content").hexdigest()


class TestFetcher:
    """Tests for the Fetcher class."""

    @pytest.fixture
    def fetcher(self) -> Fetcher:
        """Create a fetcher backed by a mock transport."""
        return Fetcher(FetchConfig(), transport=httpx.MockTransport(_handler))

    @pytest.fixture
    def area(self, tmp_path: Path) -> WorkingArea:
        """Create a working area."""
        return WorkingArea(path=tmp_path)

    def test_is_fetchable(self, fetcher: Fetcher) -> None:
        """Test only http and https are fetched."""
        assert fetcher.is_fetchable("https://example.gov/a.pdf") is True
        assert fetcher.is_fetchable("HTTP://example.gov/a.pdf") is True
        assert fetcher.is_fetchable("ftp://example.gov/a.pdf") is False
        assert fetcher.is_fetchable("mailto:someone@example.gov") is False

    def test_default_timeouts(self) -> None:
        """Test default connect and total timeouts."""
        config = FetchConfig()
        assert config.connect_timeout == 2.0
        assert config.timeout == 30.0
        assert config.verify_tls is False

    @pytest.mark.asyncio
    async def test_successful_download(self, fetcher: Fetcher, area: WorkingArea) -> None:
        """Test a 200 response is saved under the content key."""
        descriptor = _descriptor("https://example.gov/doc.pdf")
        results = await fetcher.fetch_batch([descriptor], area)

        assert len(results) == 1
        result = results[0]
        assert result.descriptor is descriptor
        assert result.local_path == area.path / descriptor.content_key
        assert result.local_path.read_bytes() == b"%PDF-1.4 test document"
        assert result.md5 == hashlib.md5(b"%PDF-1.4 test document").hexdigest()
        assert result.md5 != descriptor.content_key

    @pytest.mark.asyncio
    async def test_failures_dropped(self, fetcher: Fetcher, area: WorkingArea) -> None:
        """Test failed downloads are removed without aborting the batch."""
        descriptors = [
            _descriptor("https://example.gov/missing.pdf"),
            _descriptor("https://example.gov/slow.pdf"),
            _descriptor("https://example.gov/refused.pdf"),
            _descriptor("ftp://example.gov/doc.pdf"),
            _descriptor("https://example.gov/doc.pdf"),
        ]
        results = await fetcher.fetch_batch(descriptors, area)

        assert [r.descriptor.uri for r in results] == ["https://example.gov/doc.pdf"]

    def test_malformed_uri_not_fetchable(self, fetcher: Fetcher) -> None:
        """Test URIs that fail to parse are rejected instead of raising."""
        assert fetcher.is_fetchable("http://[bad/doc.pdf") is False

    @pytest.mark.asyncio
    async def test_malformed_uri_dropped(self, fetcher: Fetcher, area: WorkingArea) -> None:
        """Test a malformed URI is dropped and the rest of the batch still downloads."""
        descriptors = [
            _descriptor("http://[bad/doc.pdf"),
            _descriptor("https://example.gov/doc.pdf"),
        ]
        results = await fetcher.fetch_batch(descriptors, area)

        assert [r.descriptor.uri for r in results] == ["https://example.gov/doc.pdf"]

    @pytest.mark.asyncio
    async def test_no_partial_files_left(self, fetcher: Fetcher, area: WorkingArea) -> None:
        """Test failed downloads leave nothing in the working area."""
        await fetcher.fetch_batch([_descriptor("https://example.gov/slow.pdf")], area)
        assert list(area.path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_unsupported_scheme_makes_no_request(self, area: WorkingArea) -> None:
        """Test non-HTTP URLs fail without touching the network."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, content=b"x")

        fetcher = Fetcher(transport=httpx.MockTransport(handler))
        results = await fetcher.fetch_batch([_descriptor("ftp://ftp.example.gov/a.pdf")], area)

        assert results == []
        assert calls == []

    @pytest.mark.asyncio
    async def test_sends_user_agent(self, area: WorkingArea) -> None:
        """Test the configured user agent is sent."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["ua"] = request.headers.get("User-Agent")
            return httpx.Response(200, content=b"x")

        fetcher = Fetcher(FetchConfig(user_agent="TestBot/1.0"), transport=httpx.MockTransport(handler))
        await fetcher.fetch_batch([_descriptor("https://example.gov/a.pdf")], area)
        assert seen["ua"] == "TestBot/1.0"
