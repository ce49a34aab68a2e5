"""Storage module for generated image files.

Provides:
- StorageClient for Supabase Storage uploads
- FakeStorageClient for tests and local development
- Path building for generated images
"""

from pagegen.storage.client import (
    FakeStorageClient,
    ObjectMetadata,
    StorageClient,
    StorageClientBase,
    StorageError,
    get_storage_client,
)
from pagegen.storage.paths import build_image_path, get_image_extension

__all__ = [
    "StorageClient",
    "StorageClientBase",
    "FakeStorageClient",
    "ObjectMetadata",
    "StorageError",
    "get_storage_client",
    "build_image_path",
    "get_image_extension",
]
