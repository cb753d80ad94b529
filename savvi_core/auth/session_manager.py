# =============================================================================
# savvi_core/auth/session_manager.py
# Authentication state and connectivity signal for savviFinance
# =============================================================================
"""
SessionManager - the single authoritative authentication state.

Owns:
- the current User Identity (cached under `savvi-user` as an offline fallback)
- the Connection Status: checking -> connected | disconnected
- the subscription to provider auth events (deduplicated and debounced)
- sign in / sign up / reset password / sign out / profile update, each raced
  against a fixed timeout

Identity operations never raise: they return an AuthResult. Only one
SessionManager per AppContext may be active; a second `initialize()` is a
no-op.
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING, Callable, List, Optional

from savvi_core.auth.debounce import AuthEventDebouncer
from savvi_core.config import Timeouts
from savvi_core.data.models import UserIdentity
from savvi_core.data.supabase_client import AuthEvent, RemoteDataClient
from savvi_core.errors import (
    OperationTimeoutError,
    classify_error,
    error_message,
    is_network_class,
)
from savvi_core.logging import get_logger
from savvi_core.offline.local_storage import LocalStorage
from savvi_core.utils.async_utils import run_with_timeout

if TYPE_CHECKING:
    from savvi_core.context import AppContext

logger = get_logger(__name__)

USER_CACHE_KEY = "savvi-user"
SIGNED_OUT = "SIGNED_OUT"
DEFAULT_AVATAR = "🥕"

NETWORK_OFFLINE_NOTICE = "Network connection failed. Working in offline mode."
TIMEOUT_OFFLINE_NOTICE = "Connection timeout. Working in offline mode."
VERIFY_EMAIL_ADVISORY = "Please check your email for verification link before signing in."


class ConnectionStatus(str, Enum):
    CHECKING = "checking"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class SessionPhase(str, Enum):
    """Lifecycle of the credential: unknown -> validating -> valid | invalid."""
    UNKNOWN = "unknown"
    VALIDATING = "validating"
    VALID = "valid"
    INVALID = "invalid"


@dataclass(frozen=True)
class SessionState:
    """Immutable view of the session handed to listeners and the UI."""
    user: Optional[UserIdentity] = None
    loading: bool = True
    error: Optional[str] = None
    connection_status: ConnectionStatus = ConnectionStatus.CHECKING
    phase: SessionPhase = SessionPhase.UNKNOWN

    @property
    def user_id(self) -> Optional[str]:
        return self.user.id if self.user else None


@dataclass
class AuthResult:
    """
    Outcome of an identity operation.

    Three shapes:
        AuthResult.ok()                  success
        AuthResult.advise("Check email") success with an informational message
        AuthResult.fail("Bad password")  failure with the provider's reason
    """
    success: bool
    error: Optional[str] = None
    advisory: Optional[str] = None

    def __bool__(self) -> bool:
        return self.success

    @property
    def needs_verification(self) -> bool:
        return self.success and self.advisory is not None

    @classmethod
    def ok(cls) -> AuthResult:
        return cls(success=True)

    @classmethod
    def advise(cls, message: str) -> AuthResult:
        return cls(success=True, advisory=message)

    @classmethod
    def fail(cls, error: str) -> AuthResult:
        return cls(success=False, error=error)


class SessionManager:
    """
    Usage:
        session = context.create_session_manager()
        await session.initialize()
        result = await session.sign_in("user@example.com", "secret1")
        if not result:
            show(result.error)
    """

    def __init__(
        self,
        remote: RemoteDataClient,
        storage: LocalStorage,
        timeouts: Optional[Timeouts] = None,
        redirect_url: str = "",
        context: Optional[AppContext] = None,
    ):
        self.remote = remote
        self.storage = storage
        self.timeouts = timeouts or Timeouts()
        self.redirect_url = redirect_url
        self.context = context

        self._state = SessionState()
        self._callbacks: List[Callable[[SessionState], None]] = []
        self._auth_handler: Optional[Callable[[str, Optional[UserIdentity]], None]] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._debouncer: Optional[AuthEventDebouncer] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._active = False

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def user(self) -> Optional[UserIdentity]:
        return self._state.user

    @property
    def connection_status(self) -> ConnectionStatus:
        return self._state.connection_status

    @property
    def error(self) -> Optional[str]:
        return self._state.error

    @property
    def loading(self) -> bool:
        return self._state.loading

    @property
    def is_active(self) -> bool:
        return self._active

    def register_callback(self, callback: Callable[[SessionState], None]) -> None:
        """Register a listener called with the new SessionState after every change."""
        self._callbacks.append(callback)

    def _update(self, **changes) -> None:
        self._state = replace(self._state, **changes)
        for callback in self._callbacks:
            try:
                callback(self._state)
            except Exception as e:
                logger.error(f"Session callback error: {e}", exc_info=True)

    def _cache_user(self, user: UserIdentity) -> None:
        self.storage.set_json(USER_CACHE_KEY, user.to_dict())

    def _clear_cached_user(self) -> None:
        self.storage.remove_item(USER_CACHE_KEY)

    def load_cached_user(self) -> Optional[UserIdentity]:
        data = self.storage.get_json(USER_CACHE_KEY)
        if not isinstance(data, dict):
            return None
        user = UserIdentity.from_user(data)
        if user is not None:
            logger.info("Loaded user from offline storage")
        return user

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def initialize(self) -> bool:
        """
        Validate the stored session and subscribe to auth events.

        Returns:
            False if another SessionManager is already active (no-op)
        """
        if self.context is not None and not self.context.claim_session_manager(self):
            logger.info("Another SessionManager already exists, skipping initialization")
            return False

        self._active = True
        self._loop = asyncio.get_running_loop()
        logger.info("Getting initial session...")
        self._update(
            connection_status=ConnectionStatus.CHECKING,
            phase=SessionPhase.VALIDATING,
            loading=True,
        )

        try:
            payload = await run_with_timeout(
                self.remote.get_session(), self.timeouts.session, "Connection"
            )
        except Exception as e:
            if self._active:
                self._handle_initialize_error(e)
        else:
            if self._active:
                logger.info("Initial session retrieved")
                if payload.user is not None:
                    self._cache_user(payload.user)
                self._update(
                    user=payload.user,
                    error=None,
                    connection_status=ConnectionStatus.CONNECTED,
                    phase=SessionPhase.VALID if payload.has_session else SessionPhase.INVALID,
                )
        finally:
            if self._active:
                self._update(loading=False)

        if self._active:
            await self.subscribe_to_auth_changes()
        return True

    def _handle_initialize_error(self, error: Exception) -> None:
        classified = classify_error(error, operation="get_session")

        if is_network_class(classified):
            notice = (
                TIMEOUT_OFFLINE_NOTICE
                if isinstance(classified, OperationTimeoutError)
                else NETWORK_OFFLINE_NOTICE
            )
            logger.warning(f"Network connectivity issue detected: {classified.message}")
            self._update(
                user=self.load_cached_user(),
                error=notice,
                connection_status=ConnectionStatus.DISCONNECTED,
                phase=SessionPhase.INVALID,
            )
        else:
            logger.error(f"Auth initialization error: {classified.message}")
            self._update(
                error=classified.message or "Authentication failed",
                connection_status=ConnectionStatus.DISCONNECTED,
                phase=SessionPhase.INVALID,
            )

    async def subscribe_to_auth_changes(
        self,
        handler: Optional[Callable[[str, Optional[UserIdentity]], None]] = None,
    ) -> bool:
        """
        Listen for provider auth events (sign-in elsewhere, token refresh, sign-out).

        Args:
            handler: Optional callback receiving (event kind, resulting user)
                     for every applied event

        Returns:
            True once subscribed
        """
        if handler is not None:
            self._auth_handler = handler
        if self._unsubscribe is not None:
            return True

        loop = self._loop or asyncio.get_running_loop()
        self._loop = loop
        self._debouncer = AuthEventDebouncer(
            self.apply_auth_event,
            delay=self.timeouts.debounce,
            dedupe_window=self.timeouts.dedupe,
            loop=loop,
        )

        try:
            self._unsubscribe = await self.remote.on_auth_state_change(self._receive_auth_event)
        except Exception as e:
            logger.error(f"Failed to set up auth listener: {error_message(e)}")
            # Keep the session error initialize() already recorded
            if self._state.error is None:
                self._update(error="Failed to initialize authentication listener")
            return False

        logger.info("Auth listener set up successfully")
        return True

    def _receive_auth_event(self, event: AuthEvent) -> None:
        if self._debouncer is None or self._loop is None:
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            self._debouncer.submit(event)
        else:
            self._loop.call_soon_threadsafe(self._debouncer.submit, event)

    def apply_auth_event(self, event: AuthEvent) -> None:
        """Apply one debounced auth event to the session state."""
        if not self._active:
            return

        logger.info(f"Processing auth state change: {event.kind}")

        if event.user_id == self._state.user_id:
            logger.debug("User unchanged, skipping update")
            return

        if event.user is not None and event.has_session:
            self._cache_user(event.user)
            self._update(
                user=event.user,
                error=None,
                connection_status=ConnectionStatus.CONNECTED,
                phase=SessionPhase.VALID,
            )
        elif event.kind == SIGNED_OUT:
            self._clear_cached_user()
            self._update(
                user=None,
                error=None,
                connection_status=ConnectionStatus.DISCONNECTED,
                phase=SessionPhase.INVALID,
            )
        else:
            self._update(user=event.user, error=None)

        if self._auth_handler is not None:
            self._auth_handler(event.kind, self._state.user)

    def teardown(self) -> None:
        """Stop reacting to events; in-flight calls finish but no longer mutate state."""
        logger.info("Cleaning up SessionManager")
        self._active = False
        if self._debouncer is not None:
            self._debouncer.cancel()
        if self._unsubscribe is not None:
            try:
                self._unsubscribe()
            except Exception as e:
                logger.warning(f"Auth unsubscribe failed: {e}")
            self._unsubscribe = None
        if self.context is not None:
            self.context.release_session_manager(self)

    # =========================================================================
    # IDENTITY OPERATIONS
    # =========================================================================

    def _fail(self, error: Exception, operation: str) -> AuthResult:
        message = classify_error(error, operation=operation).message or "An unexpected error occurred"
        logger.error(f"{operation} error: {message}")
        if self._active:
            self._update(
                error=message,
                connection_status=ConnectionStatus.DISCONNECTED,
                loading=False,
            )
        return AuthResult.fail(message)

    def _signed_in(self, user: UserIdentity) -> None:
        self._cache_user(user)
        self._update(
            user=user,
            error=None,
            connection_status=ConnectionStatus.CONNECTED,
            phase=SessionPhase.VALID,
            loading=False,
        )

    async def sign_in(self, email: str, password: str) -> AuthResult:
        logger.info(f"Sign in attempt for: {email}")
        self._update(loading=True, error=None)

        try:
            payload = await run_with_timeout(
                self.remote.sign_in(email.strip(), password), self.timeouts.auth, "Sign in"
            )
        except Exception as e:
            return self._fail(e, "Sign in")

        if payload.user is None:
            return self._fail_with("Login failed")
        if not payload.has_session:
            return self._fail_with("Email not confirmed")

        logger.info("Sign in successful")
        if self._active:
            self._signed_in(payload.user)
        return AuthResult.ok()

    def _fail_with(self, message: str) -> AuthResult:
        logger.error(message)
        if self._active:
            self._update(
                error=message,
                connection_status=ConnectionStatus.DISCONNECTED,
                loading=False,
            )
        return AuthResult.fail(message)

    async def sign_up(
        self,
        email: str,
        password: str,
        name: str,
        avatar: str = DEFAULT_AVATAR,
    ) -> AuthResult:
        logger.info(f"Sign up attempt for: {email} with avatar: {avatar}")
        self._update(loading=True, error=None)

        try:
            payload = await run_with_timeout(
                self.remote.sign_up(
                    email.strip(),
                    password,
                    metadata={"name": name.strip(), "avatar": avatar},
                ),
                self.timeouts.auth,
                "Sign up",
            )
        except Exception as e:
            return self._fail(e, "Sign up")

        if payload.user is None:
            return self._fail_with("Registration failed")

        if not payload.has_session:
            logger.info("Sign up successful, email verification pending")
            if self._active:
                self._update(loading=False)
            return AuthResult.advise(VERIFY_EMAIL_ADVISORY)

        logger.info("Sign up successful")
        if self._active:
            self._signed_in(payload.user)
        return AuthResult.ok()

    async def reset_password(self, email: str) -> AuthResult:
        logger.info(f"Password reset attempt for: {email}")
        self._update(loading=True, error=None)

        try:
            await run_with_timeout(
                self.remote.reset_password(email.strip(), self.redirect_url),
                self.timeouts.auth,
                "Reset password",
            )
        except Exception as e:
            return self._fail(e, "Reset password")

        logger.info("Password reset email sent")
        if self._active:
            self._update(loading=False)
        return AuthResult.ok()

    async def sign_out(self) -> AuthResult:
        """Sign out remotely; local state is only cleared if the provider succeeds."""
        logger.info("Sign out attempt")
        try:
            await self.remote.sign_out()
        except Exception as e:
            message = classify_error(e, operation="Sign out").message
            logger.error(f"Sign out error: {message}")
            self._update(error=message)
            return AuthResult.fail(message)

        logger.info("Sign out successful")
        self._clear_cached_user()
        self._update(user=None, error=None, phase=SessionPhase.INVALID)
        return AuthResult.ok()

    async def update_profile(self, name: str, avatar: str) -> AuthResult:
        """Update display name and avatar in the provider's user metadata."""
        if not name.strip():
            return AuthResult.fail("Name is required")

        try:
            user = await run_with_timeout(
                self.remote.update_user({"name": name.strip(), "avatar": avatar}),
                self.timeouts.auth,
                "Update profile",
            )
        except Exception as e:
            message = classify_error(e, operation="Update profile").message
            logger.error(f"Update profile error: {message}")
            self._update(error=message)
            return AuthResult.fail(message)

        if user is None:
            return AuthResult.fail("Profile update failed")

        self._cache_user(user)
        self._update(user=user, error=None)
        return AuthResult.ok()

    def clear_error(self) -> None:
        if self._state.error is not None:
            self._update(error=None)
