"""Storage path building for generated images.

All path construction goes through build_image_path() so the test prefix
is applied exactly once.

Path Invariant:
    - Production: generated/{context_hash}/original.{ext}
    - Test: test_runs/{run_id}/generated/{context_hash}/original.{ext}

Rules:
    - No leading slash
    - No page or user identifiers in paths
"""

import os

# Environment variable for test run prefix
TEST_PREFIX_ENV_VAR = "STORAGE_TEST_PREFIX"

CONTENT_TYPE_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
}


def _get_test_prefix() -> str:
    prefix = os.environ.get(TEST_PREFIX_ENV_VAR, "")
    if prefix and not prefix.endswith("/"):
        prefix = f"{prefix}/"
    return prefix


def get_image_extension(content_type: str) -> str:
    """File extension for an image content type.

    Raises:
        ValueError: If the content type is not a supported image type.
    """
    if content_type not in CONTENT_TYPE_EXTENSIONS:
        raise ValueError(f"Content type '{content_type}' is not a supported image type")
    return CONTENT_TYPE_EXTENSIONS[content_type]


def build_image_path(context_hash: str, ext: str) -> str:
    """Build the storage path for a generated image.

    Example:
        >>> build_image_path("5d41402abc4b2a76b9719d911017c592", "png")
        'generated/5d41402abc4b2a76b9719d911017c592/original.png'
    """
    return f"{_get_test_prefix()}generated/{context_hash}/original.{ext}"
