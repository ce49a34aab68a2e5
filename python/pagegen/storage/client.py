"""Supabase Storage client for generated images.

Generated images are downloaded from the provider's temporary URL and
re-uploaded here, so the library never points at an expiring URL.
All methods receive the full storage_path directly.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx

from pagegen.config import Settings, get_settings
from pagegen.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ObjectMetadata:
    """Storage object metadata (advisory only)."""

    content_type: str
    size_bytes: int


class StorageError(Exception):
    """Storage operation error."""

    def __init__(self, message: str, code: str = "E_STORAGE_ERROR"):
        super().__init__(message)
        self.message = message
        self.code = code


class StorageClientBase(ABC):
    """Abstract base class for storage client implementations."""

    @abstractmethod
    def put_object(self, path: str, content: bytes, content_type: str) -> None:
        """Upload (or overwrite) an object.

        Raises:
            StorageError: If the upload fails.
        """
        ...

    @abstractmethod
    def head_object(self, path: str) -> ObjectMetadata | None:
        """Return metadata if the object exists, None otherwise."""
        ...

    @abstractmethod
    def delete_object(self, path: str) -> None:
        """Delete an object (best-effort, never raises)."""
        ...

    @abstractmethod
    def public_url(self, path: str) -> str:
        """Public URL for an object in the bucket."""
        ...


class StorageClient(StorageClientBase):
    """Production Supabase Storage client.

    Uses httpx for HTTP operations against the Supabase Storage API.
    """

    def __init__(self, supabase_url: str, service_key: str, bucket: str = "generated-images"):
        self._base_url = supabase_url.rstrip("/")
        self._bucket = bucket
        self._storage_url = f"{self._base_url}/storage/v1"
        self._headers = {
            "Authorization": f"Bearer {service_key}",
            "apikey": service_key,
        }

    def put_object(self, path: str, content: bytes, content_type: str) -> None:
        url = f"{self._storage_url}/object/{self._bucket}/{path}"
        headers = {**self._headers, "Content-Type": content_type, "x-upsert": "true"}

        with httpx.Client() as client:
            response = client.post(url, headers=headers, content=content, timeout=60.0)

        if response.status_code not in (200, 201):
            raise StorageError(
                f"Failed to upload object: {response.status_code} {response.text}",
                code="E_UPLOAD_FAILED",
            )

    def head_object(self, path: str) -> ObjectMetadata | None:
        url = f"{self._storage_url}/object/{self._bucket}/{path}"

        with httpx.Client() as client:
            response = client.head(url, headers=self._headers, timeout=30.0)

        if response.status_code != 200:
            # 404 and other errors both read as "doesn't exist"
            return None

        return ObjectMetadata(
            content_type=response.headers.get("content-type", "application/octet-stream"),
            size_bytes=int(response.headers.get("content-length", "0")),
        )

    def delete_object(self, path: str) -> None:
        url = f"{self._storage_url}/object/{self._bucket}/{path}"

        try:
            with httpx.Client() as client:
                response = client.delete(url, headers=self._headers, timeout=30.0)
            if response.status_code not in (200, 204, 404):
                logger.warning(
                    "storage.delete_failed", status_code=response.status_code, path=path
                )
        except httpx.HTTPError as e:
            logger.warning("storage.delete_error", path=path, error=str(e))

    def public_url(self, path: str) -> str:
        return f"{self._storage_url}/object/public/{self._bucket}/{path}"


class FakeStorageClient(StorageClientBase):
    """In-memory storage client for tests and local development."""

    def __init__(self):
        self._objects: dict[str, tuple[bytes, str]] = {}  # path -> (content, content_type)

    def put_object(self, path: str, content: bytes, content_type: str) -> None:
        self._objects[path] = (content, content_type)

    def head_object(self, path: str) -> ObjectMetadata | None:
        if path not in self._objects:
            return None
        content, content_type = self._objects[path]
        return ObjectMetadata(content_type=content_type, size_bytes=len(content))

    def delete_object(self, path: str) -> None:
        self._objects.pop(path, None)

    def public_url(self, path: str) -> str:
        return f"https://fake-storage.test/public/{path}"

    # Test helper methods

    def get_object(self, path: str) -> bytes | None:
        if path not in self._objects:
            return None
        return self._objects[path][0]

    def clear(self) -> None:
        self._objects.clear()


def get_storage_client(settings: Settings | None = None) -> StorageClientBase:
    """Get the configured storage client.

    Returns:
        StorageClient if SUPABASE_URL and SUPABASE_SERVICE_KEY are set,
        FakeStorageClient otherwise.
    """
    settings = settings or get_settings()
    if settings.supabase_url and settings.supabase_service_key:
        return StorageClient(
            supabase_url=settings.supabase_url,
            service_key=settings.supabase_service_key,
            bucket=settings.storage_bucket,
        )
    return FakeStorageClient()
