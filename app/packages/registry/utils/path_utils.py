"""Path utilities for object keys inside a dataset bucket.

Rules shared by the object facade and the batch staging area:
- keys never start with '/', the bucket root is the empty string;
- '.', '..', empty segments and the staging area are rejected for entry paths;
- listing prefixes may be empty or end with '/'.
"""

from __future__ import annotations

from typing import Optional

from app.packages.registry.core.constants import BATCH_STAGING_PREFIX


def norm_object_key(p: Optional[str]) -> str:
    s = (p or "").strip().replace("\\", "/")
    return s.lstrip("/")


def norm_entry_path(p: Optional[str]) -> Optional[str]:
    """Return the normalized entry path, or ``None`` when it is unusable."""
    key = norm_object_key(p).rstrip("/")
    if not key:
        return None
    if any(part in ("", ".", "..") for part in key.split("/")):
        return None
    if is_staging_key(key):
        return None
    return key


def staging_prefix(token: str) -> str:
    return f"{BATCH_STAGING_PREFIX}/{token}/"


def staging_key(token: str, path: str) -> str:
    return staging_prefix(token) + path


def is_staging_key(key: str) -> bool:
    return key == BATCH_STAGING_PREFIX or key.startswith(BATCH_STAGING_PREFIX + "/")
