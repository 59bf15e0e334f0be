"""Artifact storage for transcoded outputs.

Two sinks are available, local filesystem and S3-compatible object storage.
Storing the same file under the same destination twice overwrites the first
copy, so a retried store never leaves duplicates behind.
"""

import asyncio
import os
import shutil
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Optional

from app.core.config import Settings
from app.modules.transcoding.schemas import StoredArtifact


class StoreError(Exception):
    """Persisting a finished artifact failed."""

    def __init__(self, reason: str, message: Optional[str] = None):
        self.reason = reason
        self.message = message
        super().__init__(f"{reason}: {message}" if message else reason)


def normalize_key(destination: str) -> str:
    """Normalize a destination into a relative, forward-slash key.

    Raises:
        StoreError: If the destination is empty or escapes its root
    """
    key = destination.replace("\\", "/").lstrip("/")
    parts = PurePosixPath(key).parts
    if not parts or ".." in parts:
        raise StoreError("invalid_destination", destination)
    return "/".join(parts)


def _remove_if_exists(path: str) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass


class ArtifactSink(ABC):
    """Where finished artifacts go."""

    @abstractmethod
    async def store(self, file_path: str, destination: str) -> StoredArtifact:
        """Persist ``file_path`` under ``destination``.

        Raises:
            StoreError: If the artifact could not be made durable
        """
        pass


class LocalArtifactSink(ArtifactSink):
    """Local filesystem sink."""

    def __init__(self, base_path: str, cdn_domain: Optional[str] = None):
        self.base_path = Path(base_path)
        self.cdn_domain = cdn_domain

    def _get_full_path(self, key: str) -> Path:
        return self.base_path / key

    def get_url(self, key: str) -> str:
        if self.cdn_domain:
            return f"https://{self.cdn_domain}/{key}"
        return f"file://{self._get_full_path(key).absolute()}"

    def _copy(self, file_path: str, key: str) -> int:
        dest_path = self._get_full_path(key)
        dest_path.parent.mkdir(parents=True, exist_ok=True)

        # Write to a sibling temp file and swap it in, readers never see a partial copy
        fd, tmp_name = tempfile.mkstemp(dir=dest_path.parent, prefix=f".{dest_path.name}.")
        try:
            with os.fdopen(fd, "wb") as dst, open(file_path, "rb") as src:
                shutil.copyfileobj(src, dst)
            # mkstemp creates 0600; stored artifacts get the permissions of the encoder output
            shutil.copymode(file_path, tmp_name)
            os.replace(tmp_name, dest_path)
        except BaseException:
            _remove_if_exists(tmp_name)
            raise
        return dest_path.stat().st_size

    async def store(self, file_path: str, destination: str) -> StoredArtifact:
        key = normalize_key(destination)
        try:
            file_size = await asyncio.to_thread(self._copy, file_path, key)
        except OSError as e:
            raise StoreError("write_failed", str(e)) from e

        return StoredArtifact(key=key, locator=self.get_url(key), file_size=file_size)


@dataclass
class S3Config:
    """Configuration for S3-compatible storage."""
    bucket: str
    region: str = "us-east-1"
    endpoint_url: Optional[str] = None
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    use_ssl: bool = True
    cdn_domain: Optional[str] = None


class S3ArtifactSink(ArtifactSink):
    """S3/MinIO compatible sink."""

    def __init__(self, config: S3Config, client=None):
        self.config = config
        self._client = client

    def _get_client(self):
        """Get or create S3 client."""
        if self._client is None:
            import boto3
            from botocore.config import Config as BotoConfig

            client_kwargs = {
                "service_name": "s3",
                "region_name": self.config.region or "us-east-1",
            }

            if self.config.access_key and self.config.secret_key:
                client_kwargs["aws_access_key_id"] = self.config.access_key
                client_kwargs["aws_secret_access_key"] = self.config.secret_key

            # For MinIO or other S3-compatible storage
            if self.config.endpoint_url:
                client_kwargs["endpoint_url"] = self.config.endpoint_url
                client_kwargs["config"] = BotoConfig(
                    signature_version="s3v4",
                    s3={"addressing_style": "path"},
                )
                if not self.config.use_ssl:
                    client_kwargs["use_ssl"] = False

            self._client = boto3.client(**client_kwargs)

        return self._client

    def get_url(self, key: str) -> str:
        if self.config.cdn_domain:
            return f"https://{self.config.cdn_domain}/{key}"
        if self.config.endpoint_url:
            return f"{self.config.endpoint_url.rstrip('/')}/{self.config.bucket}/{key}"
        return f"https://{self.config.bucket}.s3.{self.config.region}.amazonaws.com/{key}"

    def _put(self, file_path: str, key: str) -> StoredArtifact:
        client = self._get_client()
        file_size = os.path.getsize(file_path)

        with open(file_path, "rb") as f:
            response = client.put_object(
                Bucket=self.config.bucket,
                Key=key,
                Body=f,
                ContentType="video/mp4",
            )

        etag = (response or {}).get("ETag", "").strip('"') or None
        return StoredArtifact(
            key=key,
            locator=self.get_url(key),
            file_size=file_size,
            etag=etag,
        )

    async def store(self, file_path: str, destination: str) -> StoredArtifact:
        key = normalize_key(destination)
        try:
            return await asyncio.to_thread(self._put, file_path, key)
        except Exception as e:
            raise StoreError("upload_failed", str(e)) from e


def get_artifact_sink(settings: Settings) -> ArtifactSink:
    """Build the sink selected by ``STORAGE_BACKEND``.

    Raises:
        ValueError: For an unknown backend
    """
    backend = settings.STORAGE_BACKEND.lower()
    if backend == "local":
        return LocalArtifactSink(settings.LOCAL_STORAGE_PATH, cdn_domain=settings.CDN_DOMAIN)
    if backend in ("s3", "minio"):
        return S3ArtifactSink(
            S3Config(
                bucket=settings.STORAGE_BUCKET,
                region=settings.STORAGE_REGION or "us-east-1",
                endpoint_url=settings.STORAGE_ENDPOINT_URL,
                access_key=settings.STORAGE_ACCESS_KEY or None,
                secret_key=settings.STORAGE_SECRET_KEY or None,
                use_ssl=settings.STORAGE_USE_SSL,
                cdn_domain=settings.CDN_DOMAIN,
            )
        )
    raise ValueError(f"Unknown storage backend: {settings.STORAGE_BACKEND}")
