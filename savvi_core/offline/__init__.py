# =============================================================================
# savvi_core/offline/__init__.py
# Client-side persistence for savviFinance
# =============================================================================
"""
Offline support:

    LocalStorage  - string key/value store (JSON file)
    OfflineCache  - last known-good Data Snapshot per user
"""

from savvi_core.offline.local_storage import LocalStorage
from savvi_core.offline.offline_cache import OfflineCache, cache_key, OFFLINE_KEY_PREFIX

__all__ = [
    "LocalStorage",
    "OfflineCache",
    "cache_key",
    "OFFLINE_KEY_PREFIX",
]
