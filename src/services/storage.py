"""
MinIO Object Storage Service
Forwarding letters and reimbursement documents
Source: https://min.io/docs/minio/linux/developers/python/minio-py.html
"""

import re
from dataclasses import dataclass
from io import BytesIO
from typing import Optional
from uuid import uuid4

from anyio import to_thread
from minio import Minio
from minio.error import S3Error

from src.api.config import settings
from src.core.config import PortalSettings, get_portal_settings
from src.services.errors import StorageUploadError, ValidationFailedError
from src.utils.logging import get_logger

logger = get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass
class UploadedDocument:
    """File received in a multipart request."""

    file_name: str
    content_type: Optional[str]
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def safe_object_name(prefix: str, file_name: str) -> str:
    """Unique object key under a prefix, keeping a sanitized original name."""
    cleaned = _UNSAFE_CHARS.sub("_", file_name).strip("._") or "document"
    return f"{prefix}/{uuid4().hex}-{cleaned}"


def validate_upload(
    file_name: str,
    content_type: Optional[str],
    size: int,
    portal_settings: Optional[PortalSettings] = None,
) -> None:
    """
    Check an upload against the allowed types and size limit.

    Raises:
        ValidationFailedError: If the file is empty, too large or of a
            disallowed type
    """
    portal_settings = portal_settings or get_portal_settings()
    errors: list[dict] = []

    if size <= 0:
        errors.append({"field": "file", "message": f"{file_name} is empty"})
    elif size > portal_settings.MAX_UPLOAD_BYTES:
        limit_mb = portal_settings.MAX_UPLOAD_BYTES / (1024 * 1024)
        errors.append({"field": "file", "message": f"{file_name} exceeds the {limit_mb:g} MB limit"})

    if (content_type or "").lower() not in portal_settings.allowed_upload_types:
        errors.append(
            {
                "field": "file",
                "message": f"{file_name} must be a PDF or image (got {content_type or 'unknown'})",
            }
        )

    if errors:
        raise ValidationFailedError("Invalid upload", errors)


async def read_upload(upload, portal_settings: Optional[PortalSettings] = None) -> UploadedDocument:
    """
    Read a multipart upload without buffering more than the size limit.

    A declared size over the limit is refused before reading; otherwise at
    most MAX_UPLOAD_BYTES + 1 bytes are read so validate_upload still sees
    an oversized body.
    """
    portal_settings = portal_settings or get_portal_settings()
    file_name = upload.filename or "document"
    limit = portal_settings.MAX_UPLOAD_BYTES
    if upload.size is not None and upload.size > limit:
        validate_upload(file_name, upload.content_type, upload.size, portal_settings)
    data = await upload.read(limit + 1)
    return UploadedDocument(file_name=file_name, content_type=upload.content_type, data=data)


class StorageService:
    """MinIO storage for uploaded portal documents."""

    def __init__(self, client: Optional[Minio] = None):
        self.client = client or Minio(
            settings.MINIO_ENDPOINT,
            access_key=settings.MINIO_ACCESS_KEY,
            secret_key=settings.MINIO_SECRET_KEY,
            secure=settings.MINIO_SECURE,
        )

    async def upload_document(
        self,
        bucket_name: str,
        object_name: str,
        data: bytes,
        content_type: str,
        metadata: dict | None = None,
    ) -> str:
        """
        Upload a document, running the blocking client in a worker thread.

        Returns:
            Object path "/{bucket}/{object}"

        Raises:
            StorageUploadError: If MinIO rejects or cannot receive the upload
        """
        try:
            return await to_thread.run_sync(
                self._upload_sync,
                bucket_name,
                object_name,
                data,
                content_type,
                metadata,
            )
        except (S3Error, OSError) as e:
            logger.error(f"Upload of {bucket_name}/{object_name} failed: {e}")
            raise StorageUploadError(f"Could not store {object_name.rsplit('/', 1)[-1]}: {e}") from e

    async def is_available(self) -> bool:
        """Whether MinIO answers a bucket listing."""
        try:
            await to_thread.run_sync(self.client.list_buckets)
            return True
        except (S3Error, OSError) as e:
            logger.error(f"Storage health check failed: {e}")
            return False

    def _ensure_bucket_sync(self, bucket_name: str) -> None:
        if not self.client.bucket_exists(bucket_name):
            self.client.make_bucket(bucket_name)
            logger.info(f"Created bucket: {bucket_name}")

    def _upload_sync(
        self,
        bucket_name: str,
        object_name: str,
        data: bytes,
        content_type: str,
        metadata: dict | None,
    ) -> str:
        self._ensure_bucket_sync(bucket_name)
        self.client.put_object(
            bucket_name,
            object_name,
            BytesIO(data),
            len(data),
            content_type=content_type,
            metadata=metadata or {},
        )
        logger.info(f"Uploaded file: {bucket_name}/{object_name}")
        return f"/{bucket_name}/{object_name}"


_storage_service: Optional[StorageService] = None


def get_storage_service() -> StorageService:
    """Get singleton StorageService instance."""
    global _storage_service
    if _storage_service is None:
        _storage_service = StorageService()
    return _storage_service
