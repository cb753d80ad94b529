# =============================================================================
# savvi_core/state/app_state.py
# Application screen state machine and Data Snapshot lifecycle
# =============================================================================
"""
AppStateMachine - turns (session user, connection status) into exactly one
screen and owns the in-memory Data Snapshot.

Screens:
    loading -> ready | needs-setup | offline-mode | connection-error
    any error/offline screen -> (retry) -> loading
    needs-setup -> (setup complete) -> loading
    enter_offline_mode() -> offline-mode | error

Startup:
    disconnected: cached snapshot -> offline-mode, else connection-error
    connected:    probe `money_buckets` (8s)
                    relation missing -> needs-setup
                    other failure    -> offline-mode (cache) or connection-error
                    ok               -> load four collections -> ready

The four collections load concurrently, each under its own timeout, and a
failed collection degrades to an empty list. The result is always written to
the offline cache.
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from savvi_core.auth.session_manager import ConnectionStatus
from savvi_core.config import Timeouts
from savvi_core.data.models import COLLECTIONS, DataSnapshot, UserIdentity
from savvi_core.data.supabase_client import RemoteDataClient
from savvi_core.errors import (
    PartialDataError,
    SavviError,
    classify_error,
    is_schema_missing,
)
from savvi_core.logging import get_logger, LogContext
from savvi_core.offline.offline_cache import OfflineCache
from savvi_core.utils.async_utils import run_with_timeout

logger = get_logger(__name__)

# Manual retries after which "Continue Offline" is offered
OFFLINE_OPTION_RETRY_THRESHOLD = 2
NO_OFFLINE_DATA = "No offline data available"


class AppScreen(str, Enum):
    LOADING = "loading"
    CONNECTION_ERROR = "connection-error"
    NEEDS_SETUP = "needs-setup"
    READY = "ready"
    OFFLINE_MODE = "offline-mode"
    ERROR = "error"


@dataclass(frozen=True)
class AppStateSnapshot:
    """Immutable view of the state machine handed to listeners and the UI."""
    state: AppScreen
    error: Optional[str]
    retry_count: int
    data: DataSnapshot
    failed_collections: Tuple[str, ...] = ()

    @property
    def can_continue_offline(self) -> bool:
        if self.state == AppScreen.ERROR:
            return True
        return self.retry_count > OFFLINE_OPTION_RETRY_THRESHOLD

    @property
    def is_offline(self) -> bool:
        return self.state == AppScreen.OFFLINE_MODE


@dataclass
class LoadReport:
    """What one full snapshot fetch produced."""
    snapshot: DataSnapshot
    failed: List[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def partial(self) -> bool:
        return bool(self.failed)


class AppStateMachine:
    """
    Usage:
        machine = context.create_state_machine()
        await machine.on_session_change(session.user, session.connection_status)
        if machine.state == AppScreen.READY:
            render(machine.snapshot)
    """

    def __init__(
        self,
        remote: RemoteDataClient,
        offline_cache: OfflineCache,
        timeouts: Optional[Timeouts] = None,
        merge_partial_cache: bool = False,
    ):
        self.remote = remote
        self.offline_cache = offline_cache
        self.timeouts = timeouts or Timeouts()
        self.merge_partial_cache = merge_partial_cache

        self.state = AppScreen.LOADING
        self.error: Optional[str] = None
        self.retry_count = 0
        self.snapshot = DataSnapshot()
        self.failed_collections: Tuple[str, ...] = ()
        self.user: Optional[UserIdentity] = None
        self.connection_status = ConnectionStatus.CHECKING

        self._entered_for: Optional[Tuple[str, ConnectionStatus]] = None
        self._callbacks: List[Callable[[AppStateSnapshot], None]] = []
        self._active = True

    # =========================================================================
    # STATE
    # =========================================================================

    def view(self) -> AppStateSnapshot:
        return AppStateSnapshot(
            state=self.state,
            error=self.error,
            retry_count=self.retry_count,
            data=self.snapshot,
            failed_collections=self.failed_collections,
        )

    @property
    def can_continue_offline(self) -> bool:
        return self.view().can_continue_offline

    @property
    def is_active(self) -> bool:
        return self._active

    def register_callback(self, callback: Callable[[AppStateSnapshot], None]) -> None:
        self._callbacks.append(callback)

    def _transition(self, state: AppScreen, error: Optional[str] = None) -> None:
        if not self._active:
            return
        if state != self.state:
            logger.info(f"App state: {self.state.value} -> {state.value}")
        self.state = state
        self.error = error
        view = self.view()
        for callback in self._callbacks:
            try:
                callback(view)
            except Exception as e:
                logger.error(f"App state callback error: {e}", exc_info=True)

    def teardown(self) -> None:
        """In-flight fetches keep running but their results are discarded."""
        self._active = False

    def reset(self) -> None:
        """Forget the current user and return to the initial screen."""
        self.user = None
        self.snapshot = DataSnapshot()
        self.failed_collections = ()
        self.retry_count = 0
        self._entered_for = None
        self._transition(AppScreen.LOADING)

    # =========================================================================
    # ENTRY
    # =========================================================================

    async def on_session_change(
        self,
        user: Optional[UserIdentity],
        status: ConnectionStatus,
    ) -> bool:
        """
        Run the entry sequence once per (user id, connection status).

        Returns:
            True if the entry sequence ran
        """
        self.connection_status = status

        if user is None:
            if self.user is not None:
                self.reset()
            return False
        if status == ConnectionStatus.CHECKING:
            return False

        key = (user.id, status)
        if self._entered_for == key:
            return False
        self._entered_for = key

        if self.user is not None and self.user.id != user.id:
            self.snapshot = DataSnapshot()
            self.retry_count = 0
        self.user = user

        logger.info(f"Initializing app for user: {user.email} Connection: {status.value}")

        if status == ConnectionStatus.DISCONNECTED:
            logger.info("Auth disconnected, entering offline mode")
            self._enter_cached_or(AppScreen.CONNECTION_ERROR)
        else:
            await self.check_database_setup()
        return True

    def load_offline_data(self) -> bool:
        """Replace the in-memory snapshot with the cached one, if any."""
        if self.user is None:
            return False
        cached = self.offline_cache.load(self.user.id)
        if cached is None:
            return False
        if self._active:
            self.snapshot = cached
            self.failed_collections = ()
        return True

    def _enter_cached_or(self, fallback: AppScreen, error: Optional[str] = None) -> None:
        if self.load_offline_data():
            self._transition(AppScreen.OFFLINE_MODE)
        else:
            self._transition(fallback, error)

    async def check_database_setup(self) -> AppScreen:
        """Probe the primary collection and route to the matching screen."""
        logger.info("Starting database setup check...")
        self._transition(AppScreen.LOADING)

        try:
            await run_with_timeout(self.remote.probe(), self.timeouts.probe, "Database connection")
        except Exception as e:
            if not self._active:
                return self.state

            classified = classify_error(e, operation="probe")
            if is_schema_missing(e):
                logger.info("Tables don't exist, showing setup screen")
                self._transition(AppScreen.NEEDS_SETUP, classified.message)
            else:
                logger.warning(f"Database connection failed, trying offline mode: {classified.message}")
                self._enter_cached_or(AppScreen.CONNECTION_ERROR, classified.message)
            return self.state

        if not self._active:
            return self.state

        logger.info("Database connection successful, loading data...")
        try:
            await self.load_data()
        except Exception as e:
            message = classify_error(e).message
            logger.error(f"Error loading data: {message}", exc_info=True)
            self._enter_cached_or(AppScreen.CONNECTION_ERROR, message)
            return self.state

        self._transition(AppScreen.READY)
        return self.state

    # =========================================================================
    # DATA
    # =========================================================================

    async def _load_collection(self, table: str, label: str, user_id: str) -> list:
        return await run_with_timeout(
            self.remote.select_all_by_owner(table, user_id),
            self.timeouts.collection,
            label,
        )

    async def fetch_snapshot(self, user_id: str) -> LoadReport:
        """
        Load the four collections concurrently with all-settle semantics.

        Never raises for a failed collection: it comes back empty and is
        listed in the report.
        """
        names = list(COLLECTIONS)
        results = await asyncio.gather(
            *(
                self._load_collection(COLLECTIONS[name][0], name.capitalize(), user_id)
                for name in names
            ),
            return_exceptions=True,
        )

        rows: Dict[str, list] = {}
        report = LoadReport(snapshot=DataSnapshot())
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                report.failed.append(name)
                report.errors[name] = classify_error(result).message
                rows[name] = []
            else:
                rows[name] = result or []

        report.snapshot = DataSnapshot.from_dict(rows)

        if report.partial:
            partial = PartialDataError(
                "Some collections failed to load",
                failed=report.failed,
                details={"errors": report.errors},
            )
            logger.warning(str(partial))

        return report

    async def load_data(self) -> DataSnapshot:
        """Fetch the full snapshot, make it current and write it to the offline cache."""
        if self.user is None:
            raise SavviError("No user found, cannot load data", code="AUTH_002")

        user_id = self.user.id
        with LogContext(logger, "Loading user data"):
            report = await self.fetch_snapshot(user_id)

        if not self._active:
            return report.snapshot

        snapshot = report.snapshot
        if self.merge_partial_cache and report.partial:
            snapshot = self.offline_cache.merge(user_id, snapshot, report.failed)

        self.snapshot = snapshot
        self.failed_collections = tuple(report.failed)
        self.offline_cache.save(user_id, snapshot)
        logger.info(f"Data loaded successfully: {snapshot.counts()}")
        return snapshot

    async def refresh_data(self) -> bool:
        """
        Re-fetch the snapshot from `ready` or `offline-mode`.

        Failures keep the current screen and are only logged.
        """
        if self.state not in (AppScreen.READY, AppScreen.OFFLINE_MODE):
            logger.debug(f"Refresh ignored in state {self.state.value}")
            return False

        logger.info("Refreshing data...")
        try:
            await self.load_data()
        except Exception as e:
            logger.error(f"Error refreshing data: {e}", exc_info=True)
            return False

        self._transition(AppScreen.READY)
        logger.info("Data refreshed successfully")
        return True

    # =========================================================================
    # USER ACTIONS
    # =========================================================================

    async def retry(self) -> AppScreen:
        """Manual retry: bump the counter, reset the entry guard, probe again."""
        self.retry_count += 1
        logger.info(f"Retrying connection... ({self.retry_count})")
        self._entered_for = (
            (self.user.id, self.connection_status) if self.user is not None else None
        )
        return await self.check_database_setup()

    async def setup_complete(self) -> AppScreen:
        logger.info("Setup completed, checking database...")
        self._transition(AppScreen.LOADING)
        return await self.check_database_setup()

    def enter_offline_mode(self) -> AppScreen:
        """Explicit "Continue Offline" choice."""
        logger.info("Entering offline mode...")
        self._enter_cached_or(AppScreen.ERROR, NO_OFFLINE_DATA)
        return self.state
