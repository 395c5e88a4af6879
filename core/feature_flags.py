"""
Feature flags for video storage.

Environment variable VIDEO_STORE_MODE selects how finished videos are kept:
- "none": Nothing is stored; status reflects upstream directly
- "memory": Job id -> generation id map for the process lifetime (default)
- "filesystem": Finished videos are downloaded into the served video directory

Usage:
    from core.feature_flags import get_store_mode, StoreMode

    if get_store_mode() == StoreMode.NONE:
        # Resolve video URLs from upstream on every status check
"""

import os
from enum import Enum
from typing import Optional


class StoreMode(Enum):
    """Storage strategy for generated videos."""
    NONE = "none"              # Re-query upstream, serve direct URLs
    MEMORY = "memory"          # In-process job map, proxy downloads
    FILESYSTEM = "filesystem"  # Download to disk, serve as static files


def get_store_mode(value: Optional[str] = None) -> StoreMode:
    """Get the store mode from an explicit value or the environment."""
    mode = (value if value is not None else os.getenv("VIDEO_STORE_MODE", "memory")).lower()
    try:
        return StoreMode(mode)
    except ValueError:
        # Unknown values keep the in-memory default
        return StoreMode.MEMORY


def polls_in_background(mode: StoreMode) -> bool:
    """Whether submissions start a detached poller for this mode."""
    return mode != StoreMode.NONE


def get_store_status(value: Optional[str] = None) -> dict:
    """Get current storage configuration status."""
    mode = get_store_mode(value)
    return {
        "mode": mode.value,
        "description": {
            "none": "Status and video URLs resolved from upstream on demand",
            "memory": "Finished jobs tracked in memory until restart",
            "filesystem": "Finished videos saved to the served video directory",
        }[mode.value],
        "background_polling": polls_in_background(mode),
        "env_var": "VIDEO_STORE_MODE",
    }
