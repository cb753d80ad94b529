# =============================================================================
# savvi_core/offline/offline_cache.py
# Per-user Data Snapshot cache
# =============================================================================
"""
OfflineCache - the serialized shadow of the in-memory Data Snapshot.

One entry per user under `savvi-offline-{user_id}`. The entry is overwritten
wholesale after every successful fetch and read wholesale on a degraded start.
"""

from __future__ import annotations
from typing import Optional

from savvi_core.data.models import COLLECTIONS, DataSnapshot
from savvi_core.logging import get_logger
from savvi_core.offline.local_storage import LocalStorage

logger = get_logger(__name__)

OFFLINE_KEY_PREFIX = "savvi-offline"


def cache_key(user_id: str) -> str:
    return f"{OFFLINE_KEY_PREFIX}-{user_id}"


class OfflineCache:
    """
    Usage:
        cache = OfflineCache(storage)
        cache.save(user.id, snapshot)
        cached = cache.load(user.id)   # DataSnapshot or None
    """

    def __init__(self, storage: LocalStorage):
        self.storage = storage

    def save(self, user_id: str, snapshot: DataSnapshot) -> bool:
        """Write the snapshot for `user_id`. Returns False if it could not be serialized."""
        try:
            self.storage.set_json(cache_key(user_id), snapshot.to_dict())
        except (TypeError, ValueError) as e:
            logger.error(f"Error saving offline data: {e}")
            return False
        logger.info(f"Saved data to offline storage: {snapshot.counts()}")
        return True

    def load(self, user_id: Optional[str]) -> Optional[DataSnapshot]:
        """Return the cached snapshot for `user_id`, or None if absent or unreadable."""
        if not user_id:
            return None

        data = self.storage.get_json(cache_key(user_id))
        if data is None:
            return None
        if not isinstance(data, dict):
            logger.error(f"Ignoring malformed offline data for user {user_id}")
            return None

        try:
            snapshot = DataSnapshot.from_dict(data)
        except (TypeError, ValueError, AttributeError) as e:
            logger.error(f"Error loading offline data: {e}")
            return None

        logger.info("Loaded offline data successfully")
        return snapshot

    def has(self, user_id: Optional[str]) -> bool:
        return bool(user_id) and cache_key(user_id) in self.storage

    def clear(self, user_id: str) -> None:
        self.storage.remove_item(cache_key(user_id))

    def merge(self, user_id: str, fresh: DataSnapshot, failed: list) -> DataSnapshot:
        """
        Fill the collections named in `failed` from the previous cache entry.

        Collections that loaded successfully always come from `fresh`.
        """
        previous = self.load(user_id)
        if previous is None or not failed:
            return fresh

        kwargs = {}
        for name in COLLECTIONS:
            source = previous if name in failed else fresh
            kwargs[name] = list(getattr(source, name))
        return DataSnapshot(**kwargs)
