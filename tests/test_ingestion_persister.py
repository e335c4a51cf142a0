"""Tests for the batch persister."""

import threading
import time
from pathlib import Path

import pytest

from filebot.ingestion.config import PersistConfig
from filebot.ingestion.crawler import DownloadResult
from filebot.ingestion.extractor import ExtractionResult
from filebot.ingestion.normalizer import FileDescriptor, content_key
from filebot.ingestion.persister import BatchPersister, build_metadata
from filebot.ingestion.storage import LocalObjectStore, StorageLocation

MD5 = "0cc175b9c0f1b6a831c399e269772661"


def _result(index: int, convert_ok: bool = True) -> ExtractionResult:
    uri = f"https://example.gov/doc{index}.pdf"
    descriptor = FileDescriptor(
        uri=uri,
        content_key=content_key(uri),
        name=f"Doc {index}",
        description="Not Available",
        package_name="P1",
    )
    download = DownloadResult(descriptor=descriptor, local_path=Path(f"/tmp/{index}"), md5=MD5)
    if convert_ok:
        return ExtractionResult(download=download, convert_ok=True, extracted_body=f"<p>Body {index}</p>")
    return ExtractionResult(download=download, convert_ok=False)


class FailingStore(LocalObjectStore):
    """Local store that rejects writes for selected keys."""

    def __init__(self, base_path: Path, fail_keys: set[str]) -> None:
        super().__init__(base_path)
        self.fail_keys = fail_keys

    def put(self, bucket, key, body, content_type, metadata) -> None:
        if key in self.fail_keys:
            raise ConnectionError(f"write rejected for {key}")
        super().put(bucket, key, body, content_type, metadata)


class CountingStore(LocalObjectStore):
    """Local store that records the peak number of concurrent writes."""

    def __init__(self, base_path: Path) -> None:
        super().__init__(base_path)
        self._lock = threading.Lock()
        self.in_flight = 0
        self.peak = 0

    def put(self, bucket, key, body, content_type, metadata) -> None:
        with self._lock:
            self.in_flight += 1
            self.peak = max(self.peak, self.in_flight)
        time.sleep(0.02)
        try:
            super().put(bucket, key, body, content_type, metadata)
        finally:
            with self._lock:
                self.in_flight -= 1


class TestBuildMetadata:
    """Tests for stored metadata."""

    def test_schema(self) -> None:
        """Test the metadata keys and values written for an object."""
        item = _result(1)
        assert build_metadata("P1", item) == {
            "projectid": "P1",
            "name": "Doc 1",
            "uri": "https://example.gov/doc1.pdf",
            "description": "Not Available",
            "packagename": "P1",
            "md5": MD5,
            "convertok": "yes",
        }

    def test_convert_failed(self) -> None:
        """Test failed conversions are flagged."""
        assert build_metadata("P1", _result(1, convert_ok=False))["convertok"] == "no"

    def test_values_are_ascii(self) -> None:
        """Test non-ASCII URIs are transliterated for metadata."""
        item = _result(1)
        item.download.descriptor.uri = "https://example.gov/résumé.pdf"
        assert build_metadata("P1", item)["uri"] == "https://example.gov/resume.pdf"


class TestBatchPersister:
    """Tests for BatchPersister."""

    @pytest.mark.asyncio
    async def test_writes_content_addressed_objects(self, tmp_path: Path) -> None:
        """Test each result is stored at project/content-key."""
        store = LocalObjectStore(tmp_path)
        location = StorageLocation.parse("bucket")
        items = [_result(1), _result(2, convert_ok=False)]

        result = await BatchPersister(store).save_batch("P1", location, items)

        assert (result.attempted, result.succeeded, result.failed) == (2, 2, 0)

        ok = store.get("bucket", f"P1/{items[0].download.content_key}")
        assert ok.body == b"<p>Body 1</p>"
        assert ok.content_type == "text/html"
        assert ok.metadata["convertok"] == "yes"

        placeholder = store.get("bucket", f"P1/{items[1].download.content_key}")
        assert placeholder.body == MD5.encode()
        assert placeholder.metadata["convertok"] == "no"

    @pytest.mark.asyncio
    async def test_writes_under_location_prefix(self, tmp_path: Path) -> None:
        """Test the bucket sub-prefix is applied to keys."""
        store = LocalObjectStore(tmp_path)
        item = _result(1)
        await BatchPersister(store).save_batch("P1", StorageLocation.parse("bucket/fbo"), [item])
        assert store.exists("bucket", f"fbo/P1/{item.download.content_key}")

    @pytest.mark.asyncio
    async def test_failures_counted_not_raised(self, tmp_path: Path) -> None:
        """Test a failing write does not stop the rest of the batch."""
        items = [_result(i) for i in range(7)]
        bad_key = f"P1/{items[3].download.content_key}"
        store = FailingStore(tmp_path, {bad_key})

        result = await BatchPersister(store).save_batch("P1", StorageLocation.parse("bucket"), items)

        assert (result.attempted, result.succeeded, result.failed) == (7, 6, 1)
        assert bad_key in result.errors[0]
        assert not store.exists("bucket", bad_key)
        assert store.exists("bucket", f"P1/{items[6].download.content_key}")

    @pytest.mark.asyncio
    async def test_failures_logged_with_metadata(self, tmp_path: Path, caplog) -> None:
        """Test failed writes are logged with the item's metadata."""
        item = _result(1)
        store = FailingStore(tmp_path, {f"P1/{item.download.content_key}"})

        await BatchPersister(store).save_batch("P1", StorageLocation.parse("bucket"), [item])

        records = [r for r in caplog.records if r.levelname == "ERROR" and hasattr(r, "object_metadata")]
        assert records
        assert records[0].object_metadata["uri"] == "https://example.gov/doc1.pdf"

    @pytest.mark.asyncio
    async def test_concurrency_bounded(self, tmp_path: Path) -> None:
        """Test no more writes run at once than a flush group holds."""
        store = CountingStore(tmp_path)
        items = [_result(i) for i in range(12)]
        config = PersistConfig(max_in_flight=10, auto_flush_at=5)

        result = await BatchPersister(store, config).save_batch("P1", StorageLocation.parse("bucket"), items)

        assert result.succeeded == 12
        assert 1 <= store.peak <= 5

    @pytest.mark.asyncio
    async def test_in_flight_limit(self, tmp_path: Path) -> None:
        """Test the in-flight limit caps concurrency below the flush size."""
        store = CountingStore(tmp_path)
        items = [_result(i) for i in range(6)]
        config = PersistConfig(max_in_flight=2, auto_flush_at=6)

        await BatchPersister(store, config).save_batch("P1", StorageLocation.parse("bucket"), items)

        assert store.peak <= 2

    @pytest.mark.asyncio
    async def test_empty_batch(self, tmp_path: Path) -> None:
        """Test nothing is written for an empty batch."""
        result = await BatchPersister(LocalObjectStore(tmp_path)).save_batch(
            "P1", StorageLocation.parse("bucket"), []
        )
        assert result.to_dict() == {"attempted": 0, "succeeded": 0, "failed": 0, "errors": []}
