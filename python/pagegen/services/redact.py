"""Log guard for provider and generation events.

Rendered prompts, completions and credentials must never reach the logs.
Events that describe provider calls pass their fields through safe_kv(),
which rejects those keys unless the value was reduced first (length or
hash), signalled by a suffix such as prompt_chars or content_sha256.
"""

import os

import structlog

FORBIDDEN_KEYS = frozenset(
    {
        "prompt",
        "system_message",
        "image_prompt",
        "content",
        "completion",
        "raw_body",
        "api_key",
        "bearer",
        "token",
        "secret",
        "password",
    }
)

REDACTED_SUFFIXES = ("_chars", "_length", "_sha256", "_hash")

# Environments where a violation is a bug to surface immediately
STRICT_ENVS = ("local", "test")


def safe_kv(*, _env: str | None = None, **fields) -> dict:
    """Return `fields` unchanged after checking none of them leaks content.

    A forbidden key raises ValueError in local and test; in staging and
    prod the fields are still returned and a safe_kv_violation warning is
    logged instead.

    Args:
        _env: PAGEGEN_ENV override (tests only).
    """
    violations = sorted(k for k in fields if k in FORBIDDEN_KEYS)
    if not violations:
        return fields

    env = _env or os.environ.get("PAGEGEN_ENV", "local")
    if env in STRICT_ENVS:
        raise ValueError(f"Forbidden log keys without redacted suffix: {violations}")

    structlog.get_logger(__name__).warning("safe_kv_violation", forbidden_keys=violations)
    return fields
