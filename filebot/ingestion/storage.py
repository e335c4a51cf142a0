"""
Object Storage Module
=====================

Provides the narrow object-store interface filebot needs, with an S3
implementation for production and a local filesystem implementation for
development and tests.
"""

from __future__ import annotations

import json
import logging
import os
from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

import boto3
from botocore.exceptions import ClientError

from filebot.core.errors import StorageLocationError
from filebot.ingestion.config import StorageConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StorageLocation:
    """
    A bucket, optionally qualified with a key prefix.

    Locations are written as ``bucket`` or ``bucket/subprefix``.
    """

    bucket: str
    prefix: str = ""

    @classmethod
    def parse(cls, location: str) -> StorageLocation:
        """Split a ``bucket/subprefix`` composite into its parts."""
        if not location or not location.strip("/"):
            raise StorageLocationError("Provide a storage location")

        bucket, _, prefix = location.strip("/").partition("/")
        return cls(bucket=bucket, prefix=prefix.strip("/"))

    def project_prefix(self, project_id: str) -> str:
        """Key prefix under which a project's objects live, with trailing slash."""
        if self.prefix:
            return f"{self.prefix}/{project_id}/"
        return f"{project_id}/"

    def object_key(self, project_id: str, content_key: str) -> str:
        """Full object key for one attachment of a project."""
        return f"{self.project_prefix(project_id)}{content_key}"

    def __str__(self) -> str:
        return f"{self.bucket}/{self.prefix}" if self.prefix else self.bucket


@dataclass
class ObjectSummary:
    """A listed object."""

    key: str
    size: int


@dataclass
class ObjectInfo:
    """Object attributes available without fetching the body."""

    key: str
    size: int
    content_type: str = ""
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class StoredObject:
    """An object with its body."""

    key: str
    body: bytes
    content_type: str = ""
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def size(self) -> int:
        return len(self.body)


class ObjectStore(ABC):
    """
    Abstract base class for object storage.

    Metadata keys are lower case and values must be ASCII; implementations
    return metadata exactly as written.
    """

    @abstractmethod
    def exists(self, bucket: str, key: str) -> bool:
        """Check whether an object exists."""

    @abstractmethod
    def prefix_exists(self, bucket: str, prefix: str) -> bool:
        """Check whether any object exists under a key prefix."""

    @abstractmethod
    def list_objects(self, bucket: str, prefix: str) -> Iterator[ObjectSummary]:
        """Iterate over objects under a key prefix in key order."""

    @abstractmethod
    def head(self, bucket: str, key: str) -> ObjectInfo:
        """Fetch size, content type and metadata of an object."""

    @abstractmethod
    def get(self, bucket: str, key: str) -> StoredObject:
        """Fetch an object with its body."""

    @abstractmethod
    def put(
        self,
        bucket: str,
        key: str,
        body: bytes,
        content_type: str,
        metadata: dict[str, str],
    ) -> None:
        """Write an object, replacing any existing one at the same key."""

    @abstractmethod
    def delete(self, bucket: str, key: str) -> None:
        """Delete an object. Deleting a missing object is not an error."""


class S3ObjectStore(ObjectStore):
    """Amazon S3 (or S3-compatible) object storage."""

    def __init__(
        self,
        region: str | None = None,
        endpoint_url: str | None = None,
        client=None,
    ) -> None:
        """
        Initialize the S3 store.

        Args:
            region: AWS region name
            endpoint_url: Custom endpoint for S3-compatible services
            client: Pre-built boto3 S3 client (overrides region/endpoint)
        """
        self.region = region
        self.endpoint_url = endpoint_url
        self.client = client or boto3.client(
            "s3", region_name=region, endpoint_url=endpoint_url
        )

    @staticmethod
    def _is_not_found(error: ClientError) -> bool:
        code = error.response.get("Error", {}).get("Code", "")
        return code in ("404", "NoSuchKey", "NotFound")

    def exists(self, bucket: str, key: str) -> bool:
        try:
            self.client.head_object(Bucket=bucket, Key=key)
        except ClientError as e:
            if self._is_not_found(e):
                return False
            raise
        return True

    def prefix_exists(self, bucket: str, prefix: str) -> bool:
        response = self.client.list_objects_v2(Bucket=bucket, Prefix=prefix, MaxKeys=1)
        return bool(response.get("Contents") or response.get("CommonPrefixes"))

    def list_objects(self, bucket: str, prefix: str) -> Iterator[ObjectSummary]:
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
            for item in page.get("Contents", []):
                yield ObjectSummary(key=item["Key"], size=int(item.get("Size", 0)))

    def head(self, bucket: str, key: str) -> ObjectInfo:
        response = self.client.head_object(Bucket=bucket, Key=key)
        return ObjectInfo(
            key=key,
            size=int(response.get("ContentLength", 0)),
            content_type=response.get("ContentType", ""),
            metadata=dict(response.get("Metadata", {})),
        )

    def get(self, bucket: str, key: str) -> StoredObject:
        response = self.client.get_object(Bucket=bucket, Key=key)
        return StoredObject(
            key=key,
            body=response["Body"].read(),
            content_type=response.get("ContentType", ""),
            metadata=dict(response.get("Metadata", {})),
        )

    def put(
        self,
        bucket: str,
        key: str,
        body: bytes,
        content_type: str,
        metadata: dict[str, str],
    ) -> None:
        self.client.put_object(
            Bucket=bucket,
            Key=key,
            Body=body,
            ContentType=content_type,
            Metadata=metadata,
        )

    def delete(self, bucket: str, key: str) -> None:
        self.client.delete_object(Bucket=bucket, Key=key)


class LocalObjectStore(ObjectStore):
    """
    Local filesystem object storage.

    Directory structure:
        {base_path}/{bucket}/{key}                  object bodies
        {base_path}/.metadata/{bucket}/{key}.json   content type and metadata
    """

    METADATA_DIR = ".metadata"

    def __init__(self, base_path: str | Path) -> None:
        """
        Initialize local object storage.

        Args:
            base_path: Base directory for buckets
        """
        self.base_path = Path(base_path).expanduser().resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _bucket_path(self, bucket: str) -> Path:
        bucket_path = (self.base_path / bucket).resolve()
        if bucket_path.parent != self.base_path or bucket_path.name == self.METADATA_DIR:
            raise StorageLocationError(f"Invalid bucket name: {bucket}")
        return bucket_path

    def _body_path(self, bucket: str, key: str) -> Path:
        bucket_path = self._bucket_path(bucket)
        path = (bucket_path / key).resolve()
        # Keys are relative; anything resolving outside the bucket is rejected
        if path == bucket_path or not path.is_relative_to(bucket_path):
            raise StorageLocationError(f"Object key escapes bucket {bucket}: {key}")
        return path

    def _meta_path(self, bucket: str, key: str) -> Path:
        body_path = self._body_path(bucket, key)
        relative = body_path.relative_to(self._bucket_path(bucket)).as_posix()
        return self.base_path / self.METADATA_DIR / bucket / f"{relative}.json"

    def _read_meta(self, bucket: str, key: str) -> dict:
        meta_path = self._meta_path(bucket, key)
        if not meta_path.exists():
            return {"content_type": "", "metadata": {}}
        with open(meta_path) as f:
            return json.load(f)

    def exists(self, bucket: str, key: str) -> bool:
        return self._body_path(bucket, key).is_file()

    def prefix_exists(self, bucket: str, prefix: str) -> bool:
        return next(iter(self.list_objects(bucket, prefix)), None) is not None

    def list_objects(self, bucket: str, prefix: str) -> Iterator[ObjectSummary]:
        bucket_path = self._bucket_path(bucket)
        if not bucket_path.is_dir():
            return

        keys = sorted(
            path.relative_to(bucket_path).as_posix()
            for path in bucket_path.rglob("*")
            if path.is_file() and not path.name.endswith(".tmp")
        )
        for key in keys:
            if key.startswith(prefix):
                yield ObjectSummary(key=key, size=self._body_path(bucket, key).stat().st_size)

    def head(self, bucket: str, key: str) -> ObjectInfo:
        body_path = self._body_path(bucket, key)
        if not body_path.is_file():
            raise FileNotFoundError(f"No such object: {bucket}/{key}")

        meta = self._read_meta(bucket, key)
        return ObjectInfo(
            key=key,
            size=body_path.stat().st_size,
            content_type=meta.get("content_type", ""),
            metadata=dict(meta.get("metadata", {})),
        )

    def get(self, bucket: str, key: str) -> StoredObject:
        info = self.head(bucket, key)
        return StoredObject(
            key=key,
            body=self._body_path(bucket, key).read_bytes(),
            content_type=info.content_type,
            metadata=info.metadata,
        )

    def put(
        self,
        bucket: str,
        key: str,
        body: bytes,
        content_type: str,
        metadata: dict[str, str],
    ) -> None:
        body_path = self._body_path(bucket, key)
        meta_path = self._meta_path(bucket, key)
        body_path.parent.mkdir(parents=True, exist_ok=True)
        meta_path.parent.mkdir(parents=True, exist_ok=True)

        # Write metadata first so a visible body always has metadata
        tmp_meta = meta_path.with_name(meta_path.name + ".tmp")
        with open(tmp_meta, "w") as f:
            json.dump({"content_type": content_type, "metadata": metadata}, f)
        os.replace(tmp_meta, meta_path)

        tmp_body = body_path.with_name(body_path.name + ".tmp")
        with open(tmp_body, "wb") as f:
            f.write(body)
        os.replace(tmp_body, body_path)

    def delete(self, bucket: str, key: str) -> None:
        self._body_path(bucket, key).unlink(missing_ok=True)
        self._meta_path(bucket, key).unlink(missing_ok=True)


def create_store(config: StorageConfig) -> ObjectStore:
    """
    Build the object store selected by configuration.

    Args:
        config: Storage section of the filebot configuration

    Returns:
        An ObjectStore implementation
    """
    if config.backend == "local":
        return LocalObjectStore(config.local_path)
    if config.backend == "s3":
        return S3ObjectStore(region=config.region, endpoint_url=config.endpoint_url)
    raise ValueError(f"Unknown storage backend: {config.backend}")
