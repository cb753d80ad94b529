# =============================================================================
# savvi_core/offline/local_storage.py
# JSON-file key/value store for client-side state
# =============================================================================
"""
LocalStorage - string key/value persistence shared by the settings store,
the session manager's cached user and the offline snapshot cache.

Storage layout:
---------------
local_data/
├── local_storage.json     # unscoped store (scripts, tests)
└── clients/
    └── <client_id>.json   # one browser's {"savvi-user": "...", "savvi-offline-<uid>": "..."}

Values are stored as strings, like browser localStorage. A store scoped to a
client id only ever sees that client's keys. Every read re-reads the file and
every write merges into the file's current contents, so two stores on the
same file only overwrite the keys they change.
"""

from __future__ import annotations
import json
import re
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional

from savvi_core.logging import get_logger

logger = get_logger(__name__)

CLIENT_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

_file_lock = threading.Lock()


class LocalStorage:
    """
    Persistent string key/value store backed by one JSON file.

    Usage:
        storage = LocalStorage(Path("local_data"), client_id="3f2a9c")
        storage.set_item("savvi-language", "en")
        storage.get_item("savvi-language")   # "en"
        storage.set_json("savvi-user", {"id": "u1"})
    """

    STORAGE_FILE = "local_storage.json"
    CLIENTS_DIR = "clients"

    def __init__(
        self,
        storage_dir: Optional[Path] = None,
        persist: bool = True,
        client_id: Optional[str] = None,
    ):
        """
        Args:
            storage_dir: Directory holding the storage file
            persist: Keep data in memory only when False (tests, ephemeral sessions)
            client_id: Scope the store to one browser; letters, digits, '-' and '_'
        """
        if client_id is not None and not CLIENT_ID_PATTERN.match(client_id):
            raise ValueError(f"Invalid client id: {client_id!r}")
        self.storage_dir = Path(storage_dir) if storage_dir else None
        self.client_id = client_id
        self.persist = persist and self.storage_dir is not None
        self._items: Dict[str, str] = {}
        self._load()

    @property
    def path(self) -> Optional[Path]:
        if self.storage_dir is None:
            return None
        if self.client_id:
            return self.storage_dir / self.CLIENTS_DIR / f"{self.client_id}.json"
        return self.storage_dir / self.STORAGE_FILE

    def _read_file(self) -> Dict[str, str]:
        path = self.path
        if not path.exists():
            return {}
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return {str(k): str(v) for k, v in data.items()}
        except (json.JSONDecodeError, OSError, AttributeError) as e:
            logger.warning(f"Error loading local storage, starting empty: {e}")
            return {}

    def _load(self) -> None:
        if not self.persist:
            return
        with _file_lock:
            self._items = self._read_file()

    def _update(self, change: Callable[[Dict[str, str]], None]) -> None:
        """Apply `change` to the file's current contents and write it back."""
        if not self.persist:
            change(self._items)
            return
        with _file_lock:
            items = self._read_file()
            change(items)
            self._items = items
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path = self.path.with_suffix(".tmp")
                with open(tmp_path, "w", encoding="utf-8") as f:
                    json.dump(items, f, ensure_ascii=False)
                tmp_path.replace(self.path)
            except OSError as e:
                logger.error(f"Error saving local storage: {e}")

    # =========================================================================
    # STRING API
    # =========================================================================

    def get_item(self, key: str) -> Optional[str]:
        self._load()
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._update(lambda items: items.__setitem__(key, str(value)))

    def remove_item(self, key: str) -> None:
        self._update(lambda items: items.pop(key, None))

    def clear(self) -> None:
        self._update(lambda items: items.clear())

    def keys(self) -> Iterator[str]:
        self._load()
        return iter(list(self._items))

    def __contains__(self, key: str) -> bool:
        self._load()
        return key in self._items

    def __len__(self) -> int:
        self._load()
        return len(self._items)

    # =========================================================================
    # JSON HELPERS
    # =========================================================================

    def get_json(self, key: str) -> Optional[Any]:
        """
        Return the decoded JSON value for `key`.

        Returns None for a missing key or a value that is not valid JSON.
        """
        raw = self.get_item(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse stored value for '{key}': {e}")
            return None

    def set_json(self, key: str, value: Any) -> None:
        self.set_item(key, json.dumps(value, ensure_ascii=False, default=str))
