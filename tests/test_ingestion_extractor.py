"""Tests for the extractor adapter."""

from pathlib import Path

import httpx
import pytest

from filebot.ingestion.config import ExtractionConfig
from filebot.ingestion.crawler import DownloadResult
from filebot.ingestion.extractor import MARKUP_CONTENT_TYPE, Extractor
from filebot.ingestion.normalizer import FileDescriptor, content_key

LONG_HTML = "<html><body><p>" + ("Statement of work. " * 20) + "</p></body></html>"


def _download(tmp_path: Path, name: str = "doc.pdf", data: bytes = b"%PDF-1.4") -> DownloadResult:
    uri = f"https://example.gov/{name}"
    descriptor = FileDescriptor(uri=uri, content_key=content_key(uri))
    path = tmp_path / descriptor.content_key
    path.write_bytes(data)
    return DownloadResult(descriptor=descriptor, local_path=path, md5="d41d8cd98f00b204e9800998ecf8427e")


class TestClassify:
    """Tests for result classification."""

    @pytest.fixture
    def extractor(self) -> Extractor:
        """Create an extractor with default config."""
        return Extractor()

    def test_long_result_ok(self, extractor: Extractor, tmp_path: Path) -> None:
        """Test a result of at least 200 characters is kept."""
        result = extractor.classify(_download(tmp_path), "x" * 200)
        assert result.convert_ok is True
        assert result.extracted_body == "x" * 200
        assert result.body == "x" * 200
        assert result.content_type == MARKUP_CONTENT_TYPE

    def test_short_result_placeholder(self, extractor: Extractor, tmp_path: Path) -> None:
        """Test a short result becomes the content digest placeholder."""
        download = _download(tmp_path)
        result = extractor.classify(download, "x" * 199)
        assert result.convert_ok is False
        assert result.extracted_body is None
        assert result.body == download.md5
        assert result.content_type == MARKUP_CONTENT_TYPE

    def test_missing_result_placeholder(self, extractor: Extractor, tmp_path: Path) -> None:
        """Test a failed call becomes the content digest placeholder."""
        download = _download(tmp_path)
        for value in (None, ""):
            result = extractor.classify(download, value)
            assert result.convert_ok is False
            assert result.body == download.md5

    def test_replacement_character_sanitized(self, extractor: Extractor, tmp_path: Path) -> None:
        """Test U+FFFD is mapped to an underscore."""
        text = "\ufffd" + "a" * 250
        result = extractor.classify(_download(tmp_path), text)
        assert result.extracted_body == "_" + "a" * 250

    def test_min_length_configurable(self, tmp_path: Path) -> None:
        """Test the threshold comes from config."""
        extractor = Extractor(ExtractionConfig(min_length=10))
        assert extractor.classify(_download(tmp_path), "x" * 10).convert_ok is True


class TestExtractor:
    """Tests for calls to the extraction service."""

    @pytest.mark.asyncio
    async def test_puts_file_with_accept_header(self, tmp_path: Path) -> None:
        """Test the file is PUT to the endpoint requesting markup."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["accept"] = request.headers.get("Accept")
            seen["body"] = request.content
            return httpx.Response(200, text=LONG_HTML)

        extractor = Extractor(transport=httpx.MockTransport(handler))
        results = await extractor.extract_batch([_download(tmp_path, data=b"file bytes")])

        assert seen == {
            "method": "PUT",
            "url": "http://localhost:9998/tika",
            "accept": "text/html",
            "body": b"file bytes",
        }
        assert results[0].convert_ok is True
        assert results[0].extracted_body == LONG_HTML

    @pytest.mark.asyncio
    async def test_failures_kept_as_placeholders(self, tmp_path: Path) -> None:
        """Test every download yields a result, whatever the service does."""
        responses = iter(
            [
                httpx.Response(200, text="too short"),
                httpx.Response(500, text=LONG_HTML),
                "timeout",
                httpx.Response(200, text=LONG_HTML),
            ]
        )

        def handler(request: httpx.Request) -> httpx.Response:
            response = next(responses)
            if isinstance(response, str):
                raise httpx.ReadTimeout("timed out", request=request)
            return response

        downloads = [_download(tmp_path, name=f"doc{i}.pdf") for i in range(4)]
        extractor = Extractor(transport=httpx.MockTransport(handler))
        results = await extractor.extract_batch(downloads)

        assert [r.convert_ok for r in results] == [False, False, False, True]
        assert [r.download for r in results] == downloads

    @pytest.mark.asyncio
    async def test_empty_batch(self) -> None:
        """Test an empty batch makes no calls."""
        extractor = Extractor(transport=httpx.MockTransport(lambda r: httpx.Response(500)))
        assert await extractor.extract_batch([]) == []
