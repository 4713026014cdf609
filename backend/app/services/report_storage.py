"""
Report Blob Storage
===================

Generated files live under namespaced keys:

    institutions/{institution}/reports/{type}/{type}_{YYYY-MM-DD}_{HHMM}_{job8}.{ext}
    reports/{type}/{type}_{YYYY-MM-DD}_{HHMM}_{job8}.{ext}   (no institution)

``job8`` is the first eight characters of the job id, so two jobs finishing
in the same minute never share a file.

The job record stores an opaque file reference (the key for local storage,
a URL for S3). Downloads go through ``validate_report_key`` before any
storage call is made.
"""

from __future__ import annotations

import abc
import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import settings
from app.models.base import utc_now
from app.services.report_errors import ReportNotFoundError, ReportUpstreamError, ReportValidationError
from app.services.report_serializers import CONTENT_TYPES


logger = logging.getLogger(__name__)


ALLOWED_KEY_PREFIXES: tuple[str, ...] = ("reports/", "institutions/")
ALLOWED_EXTENSIONS: tuple[str, ...] = (".xlsx", ".csv", ".pdf", ".json")

_UNSAFE_SEGMENT_CHARS = re.compile(r"[^A-Za-z0-9_-]+")


@dataclass(frozen=True)
class KeyHints:
    report_type: str
    extension: str
    institution_id: str | None = None
    generated_at: datetime | None = None
    job_id: str | None = None


@dataclass(frozen=True)
class StoredBlob:
    reference: str
    key: str
    size: int


def _segment(value: str) -> str:
    cleaned = _UNSAFE_SEGMENT_CHARS.sub("_", str(value)).strip("_")
    return cleaned or "unknown"


def build_report_key(hints: KeyHints) -> str:
    generated_at = hints.generated_at or utc_now()
    report_type = _segment(hints.report_type)
    stem = f"{report_type}_{generated_at:%Y-%m-%d_%H%M}"
    if hints.job_id:
        stem = f"{stem}_{_segment(hints.job_id[:8])}"
    filename = f"{stem}.{_segment(hints.extension)}"
    if hints.institution_id:
        return f"institutions/{_segment(hints.institution_id)}/reports/{report_type}/{filename}"
    return f"reports/{report_type}/{filename}"


def validate_report_key(reference: str | None, *, bucket: str | None = None) -> str:
    """
    Turn a stored file reference back into a storage key, or reject it.

    Accepts bare keys and http(s) URLs (virtual-hosted or path-style; the
    bucket segment is stripped). Rejects traversal, null bytes, backslashes,
    absolute paths, unknown prefixes and unexpected extensions.
    """
    if not reference or not reference.strip():
        raise ReportValidationError("Report file reference is missing")

    raw = reference.strip()
    if "\x00" in raw or "%00" in raw:
        raise ReportValidationError("Invalid report file reference")

    if raw.lower().startswith(("http://", "https://")):
        key = urlparse(raw).path.lstrip("/")
        if bucket and key.startswith(f"{bucket}/"):
            key = key[len(bucket) + 1:]
    else:
        key = raw

    key = unquote(key)
    if "\x00" in key or "\\" in key or key.startswith("/"):
        raise ReportValidationError("Invalid report file reference")
    if any(part in ("..", ".") for part in key.split("/")):
        raise ReportValidationError("Invalid report file reference")
    if not key.startswith(ALLOWED_KEY_PREFIXES):
        raise ReportValidationError("Report file reference is outside the report namespace")
    if not key.lower().endswith(ALLOWED_EXTENSIONS):
        raise ReportValidationError("Unsupported report file type")
    return key


def content_type_for(key: str) -> str:
    ext = key.rsplit(".", 1)[-1].lower()
    return CONTENT_TYPES.get(ext, "application/octet-stream")


class BlobStore(abc.ABC):
    """Async blob storage for generated report files."""

    bucket: str | None = None

    @abc.abstractmethod
    async def put(self, data: bytes, hints: KeyHints) -> StoredBlob:
        ...

    @abc.abstractmethod
    async def get(self, key: str) -> bytes:
        ...

    @abc.abstractmethod
    async def delete(self, key: str) -> bool:
        ...

    @abc.abstractmethod
    async def health(self) -> dict[str, Any]:
        ...

    def key_for(self, reference: str) -> str:
        return validate_report_key(reference, bucket=self.bucket)


class LocalBlobStore(BlobStore):
    """
    Stores report files on the local filesystem.
    Suitable for development or single-server deployment.
    """

    def __init__(self, base_dir: str | Path):
        self.base_dir = Path(base_dir)

    def _path(self, key: str) -> Path:
        base = self.base_dir.resolve()
        path = (base / key).resolve()
        if base not in path.parents:
            raise ReportValidationError("Invalid report file reference")
        return path

    async def put(self, data: bytes, hints: KeyHints) -> StoredBlob:
        key = build_report_key(hints)
        path = self._path(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise ReportUpstreamError(f"Storage write failed: {e}") from e
        return StoredBlob(reference=key, key=key, size=len(data))

    async def get(self, key: str) -> bytes:
        path = self._path(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as e:
            raise ReportNotFoundError("Report file not found") from e
        except OSError as e:
            raise ReportUpstreamError(f"Storage read failed: {e}") from e

    async def delete(self, key: str) -> bool:
        path = self._path(key)
        try:
            await asyncio.to_thread(path.unlink)
            return True
        except FileNotFoundError:
            return False

    async def health(self) -> dict[str, Any]:
        try:
            await asyncio.to_thread(self.base_dir.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            return {"healthy": False, "backend": "local", "error": str(e)}
        return {"healthy": True, "backend": "local", "path": str(self.base_dir)}


class S3BlobStore(BlobStore):
    """
    Stores report files in S3 (or an S3-compatible endpoint such as MinIO).
    """

    def __init__(
        self,
        bucket: str,
        *,
        region: str | None = None,
        endpoint_url: str | None = None,
        public_url: str | None = None,
        client: Any = None,
    ):
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url
        self.public_url = (public_url or "").rstrip("/") or None
        self.s3 = client or boto3.client(
            "s3",
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
            region_name=region,
            endpoint_url=endpoint_url,
        )

    def reference_for(self, key: str) -> str:
        if self.public_url:
            return f"{self.public_url}/{key}"
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        region = self.region or "us-east-1"
        return f"https://{self.bucket}.s3.{region}.amazonaws.com/{key}"

    async def put(self, data: bytes, hints: KeyHints) -> StoredBlob:
        key = build_report_key(hints)
        try:
            await asyncio.to_thread(
                self.s3.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type_for(key),
            )
        except (BotoCoreError, ClientError) as e:
            raise ReportUpstreamError(f"S3 upload failed: {e}") from e
        return StoredBlob(reference=self.reference_for(key), key=key, size=len(data))

    async def get(self, key: str) -> bytes:
        def _read() -> bytes:
            obj = self.s3.get_object(Bucket=self.bucket, Key=key)
            return obj["Body"].read()

        try:
            return await asyncio.to_thread(_read)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                raise ReportNotFoundError("Report file not found") from e
            raise ReportUpstreamError(f"S3 download failed: {e}") from e
        except BotoCoreError as e:
            raise ReportUpstreamError(f"S3 download failed: {e}") from e

    async def delete(self, key: str) -> bool:
        try:
            await asyncio.to_thread(self.s3.delete_object, Bucket=self.bucket, Key=key)
            return True
        except (BotoCoreError, ClientError) as e:
            logger.warning("S3 delete failed for %s: %s", key, e)
            return False

    async def health(self) -> dict[str, Any]:
        try:
            await asyncio.to_thread(self.s3.head_bucket, Bucket=self.bucket)
        except (BotoCoreError, ClientError) as e:
            return {"healthy": False, "backend": "s3", "bucket": self.bucket, "error": str(e)}
        return {"healthy": True, "backend": "s3", "bucket": self.bucket}


def default_storage_dir() -> Path:
    return Path(settings.REPORT_STORAGE_DIR or "exports/reports")


def get_blob_store() -> BlobStore:
    if (settings.REPORT_STORAGE_BACKEND or "local").lower() == "s3":
        if not settings.REPORT_S3_BUCKET:
            raise RuntimeError("REPORT_S3_BUCKET must be set when REPORT_STORAGE_BACKEND=s3")
        return S3BlobStore(
            settings.REPORT_S3_BUCKET,
            region=settings.REPORT_S3_REGION,
            endpoint_url=settings.REPORT_S3_ENDPOINT_URL,
            public_url=settings.REPORT_S3_PUBLIC_URL,
        )
    return LocalBlobStore(default_storage_dir())
