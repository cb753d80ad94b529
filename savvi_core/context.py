# =============================================================================
# savvi_core/context.py
# Application-scoped object wiring every savviFinance component
# =============================================================================
"""
AppContext - created once at startup and passed by reference to every
consumer. It owns the shared Remote Data Client, local storage, settings and
offline cache, and enforces that at most one SessionManager is active.
Local storage is scoped to `client_id`, one per browser.

Usage:
    context = AppContext(load_config(), client_id="3f2a9c")
    session = context.create_session_manager()
    machine = context.create_state_machine()
"""

from __future__ import annotations
from typing import Optional

from savvi_core.auth.session_manager import SessionManager
from savvi_core.config import AppConfig, load_config
from savvi_core.data.supabase_client import RemoteDataClient
from savvi_core.logging import get_logger
from savvi_core.offline.local_storage import LocalStorage
from savvi_core.offline.offline_cache import OfflineCache
from savvi_core.state.app_state import AppStateMachine
from savvi_core.state.settings_store import SettingsStore

logger = get_logger(__name__)


class AppContext:
    """Holds the single instance of each shared component."""

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        storage: Optional[LocalStorage] = None,
        remote: Optional[RemoteDataClient] = None,
        client_id: Optional[str] = None,
    ):
        self.config = config or load_config()
        self.storage = storage or LocalStorage(self.config.storage_dir, client_id=client_id)
        self.remote = remote or RemoteDataClient(self.config)
        self.settings = SettingsStore(self.storage)
        self.offline_cache = OfflineCache(self.storage)
        self._active_session: Optional[SessionManager] = None

    @property
    def active_session(self) -> Optional[SessionManager]:
        return self._active_session

    def claim_session_manager(self, manager: SessionManager) -> bool:
        """Make `manager` the active one unless another already is."""
        if self._active_session is not None and self._active_session is not manager:
            return False
        self._active_session = manager
        return True

    def release_session_manager(self, manager: SessionManager) -> None:
        if self._active_session is manager:
            self._active_session = None

    def create_session_manager(self) -> SessionManager:
        return SessionManager(
            remote=self.remote,
            storage=self.storage,
            timeouts=self.config.timeouts,
            redirect_url=self.config.redirect_url,
            context=self,
        )

    def create_state_machine(self) -> AppStateMachine:
        return AppStateMachine(
            remote=self.remote,
            offline_cache=self.offline_cache,
            timeouts=self.config.timeouts,
            merge_partial_cache=self.config.merge_partial_cache,
        )
