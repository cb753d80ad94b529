# =============================================================================
# savvi_core/data/supabase_client.py
# Supabase Client for savviFinance
# Single shared connection for identity and data operations
# =============================================================================

from __future__ import annotations
import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from savvi_core.config import AppConfig
from savvi_core.data.models import UserIdentity
from savvi_core.errors import ConfigurationError
from savvi_core.logging import get_logger

logger = get_logger(__name__)

TABLES = ("money_buckets", "transactions", "goals", "debts")
PROBE_TABLE = "money_buckets"

CLIENT_INFO_HEADER = {"X-Client-Info": "savvi-finance-app"}


@dataclass
class AuthPayload:
    """What an identity call returned: a user, a session, both or neither."""
    user: Optional[UserIdentity] = None
    session: Optional[Any] = None

    @property
    def has_session(self) -> bool:
        return self.session is not None


@dataclass
class AuthEvent:
    """One push notification from the identity provider."""
    kind: str
    user: Optional[UserIdentity] = None
    has_session: bool = False

    @property
    def user_id(self) -> Optional[str]:
        return self.user.id if self.user else None


def _event_name(event: Any) -> str:
    # AuthChangeEvent is a Literal[str] in current SDKs, an Enum in older ones
    return getattr(event, "value", None) or str(event)


class RemoteDataClient:
    """
    Thin accessor around the async Supabase client.

    The underlying client is created lazily, exactly once, and reused for the
    lifetime of the application so only one auth listener ever exists. If
    creation fails (bad URL, placeholder credentials rejected by the SDK),
    every operation raises ConfigurationError and callers handle it through
    their normal error path.
    """

    def __init__(self, config: AppConfig):
        self.config = config
        self._client = None
        self._init_error: Optional[str] = None
        self._lock = asyncio.Lock()

    @property
    def is_configured(self) -> bool:
        return self.config.has_credentials

    async def get_client(self):
        """Return the shared async client, creating it on first use."""
        if self._client is not None:
            return self._client
        if self._init_error is not None:
            raise ConfigurationError(self._init_error, config_key="supabase")

        async with self._lock:
            if self._client is None and self._init_error is None:
                self._client = await self._create_client()

        if self._client is None:
            raise ConfigurationError(self._init_error or "Supabase client unavailable", config_key="supabase")
        return self._client

    async def _create_client(self):
        try:
            from supabase import acreate_client

            client = await acreate_client(self.config.resolved_url, self.config.resolved_key)
            try:
                client.options.headers.update(CLIENT_INFO_HEADER)
            except AttributeError:
                pass
            logger.info("Supabase client created")
            return client
        except Exception as e:
            self._init_error = (
                f"Supabase client initialization failed. Please check your configuration. ({e})"
            )
            logger.error(self._init_error)
            return None

    # =========================================================================
    # IDENTITY OPERATIONS
    # =========================================================================

    async def get_session(self) -> AuthPayload:
        client = await self.get_client()
        session = await client.auth.get_session()
        user = getattr(session, "user", None) if session else None
        return AuthPayload(user=UserIdentity.from_user(user), session=session)

    async def sign_in(self, email: str, password: str) -> AuthPayload:
        client = await self.get_client()
        response = await client.auth.sign_in_with_password(
            {"email": email, "password": password}
        )
        return AuthPayload(
            user=UserIdentity.from_user(response.user),
            session=response.session,
        )

    async def sign_up(
        self,
        email: str,
        password: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuthPayload:
        client = await self.get_client()
        response = await client.auth.sign_up(
            {
                "email": email,
                "password": password,
                "options": {"data": metadata or {}},
            }
        )
        return AuthPayload(
            user=UserIdentity.from_user(response.user),
            session=response.session,
        )

    async def sign_out(self) -> None:
        client = await self.get_client()
        await client.auth.sign_out()

    async def reset_password(self, email: str, redirect_url: str) -> None:
        client = await self.get_client()
        await client.auth.reset_password_for_email(email, {"redirect_to": redirect_url})

    async def update_user(self, metadata: Dict[str, Any]) -> Optional[UserIdentity]:
        client = await self.get_client()
        response = await client.auth.update_user({"data": metadata})
        return UserIdentity.from_user(getattr(response, "user", None))

    async def on_auth_state_change(
        self,
        callback: Callable[[AuthEvent], None],
    ) -> Callable[[], None]:
        """
        Subscribe to provider auth events.

        Returns:
            A zero-argument unsubscribe function
        """
        client = await self.get_client()

        def _listener(event: Any, session: Any) -> None:
            user = getattr(session, "user", None) if session else None
            callback(
                AuthEvent(
                    kind=_event_name(event),
                    user=UserIdentity.from_user(user),
                    has_session=session is not None,
                )
            )

        subscription = client.auth.on_auth_state_change(_listener)
        return subscription.unsubscribe

    # =========================================================================
    # DATA OPERATIONS
    # =========================================================================

    @staticmethod
    def _check_table(table: str) -> None:
        if table not in TABLES:
            raise ValueError(f"Unknown collection: {table}")

    async def probe(self) -> List[Dict[str, Any]]:
        """Lightweight existence query against the primary collection."""
        client = await self.get_client()
        response = await client.table(PROBE_TABLE).select("id").limit(1).execute()
        return response.data or []

    async def select_all_by_owner(self, table: str, user_id: str) -> List[Dict[str, Any]]:
        self._check_table(table)
        client = await self.get_client()
        response = await (
            client.table(table)
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .execute()
        )
        return response.data or []

    async def insert(self, table: str, data: Dict[str, Any]) -> List[Dict[str, Any]]:
        self._check_table(table)
        client = await self.get_client()
        response = await client.table(table).insert(data).execute()
        return response.data or []

    async def update_by_id(
        self,
        table: str,
        record_id: str,
        data: Dict[str, Any],
    ) -> List[Dict[str, Any]]:
        self._check_table(table)
        client = await self.get_client()
        response = await client.table(table).update(data).eq("id", record_id).execute()
        return response.data or []

    async def delete_by_id(self, table: str, record_id: str) -> List[Dict[str, Any]]:
        self._check_table(table)
        client = await self.get_client()
        response = await client.table(table).delete().eq("id", record_id).execute()
        return response.data or []
