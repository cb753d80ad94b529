# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import asyncio
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import MagicMock

import httpx
import pytest

from savvi_core.config import AppConfig, Timeouts
from savvi_core.data.models import UserIdentity
from savvi_core.data.supabase_client import TABLES, AuthEvent, AuthPayload
from savvi_core.offline.local_storage import LocalStorage


# =============================================================================
# PROVIDER ERRORS (shaped like the Supabase SDK's)
# =============================================================================

class AuthApiError(Exception):
    """Same class name prefix and `message` attribute as supabase_auth's error."""

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.message = message
        self.status = status


class APIError(Exception):
    """Shaped like postgrest.exceptions.APIError."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code


def make_error(kind: str, message: str, code: Optional[str] = None) -> Exception:
    if kind == "auth":
        return AuthApiError(message)
    if kind == "network":
        return httpx.ConnectError(message)
    if kind == "api":
        return APIError(message, code)
    raise ValueError(kind)


# =============================================================================
# FAKE REMOTE
# =============================================================================

class FakeRemote:
    """
    In-memory stand-in for RemoteDataClient.

    Every operation records its name in `calls`, sleeps for `delays[op]`
    if set, then raises `errors[op]` if set.
    """

    def __init__(self):
        self.session_user: Optional[UserIdentity] = None
        self.sign_in_user: Optional[UserIdentity] = None
        self.sign_in_session = True
        self.sign_up_user: Optional[UserIdentity] = None
        self.sign_up_session = True
        self.updated_user: Optional[UserIdentity] = None
        self.tables: Dict[str, List[Dict[str, Any]]] = {t: [] for t in TABLES}
        self.errors: Dict[str, Exception] = {}
        self.delays: Dict[str, float] = {}
        self.calls: List[str] = []
        self.writes: List[tuple] = []
        self.auth_listener: Optional[Callable[[AuthEvent], None]] = None
        self.unsubscribed = False

    def fail(self, op: str, message: str, kind: str = "api", code: Optional[str] = None) -> None:
        self.errors[op] = make_error(kind, message, code)

    def hang(self, op: str, seconds: float = 5.0) -> None:
        self.delays[op] = seconds

    async def _call(self, op: str) -> None:
        self.calls.append(op)
        delay = self.delays.get(op)
        if delay:
            await asyncio.sleep(delay)
        if op in self.errors:
            raise self.errors[op]

    def count(self, op: str) -> int:
        return self.calls.count(op)

    # identity --------------------------------------------------------------

    async def get_session(self) -> AuthPayload:
        await self._call("get_session")
        user = self.session_user
        return AuthPayload(user=user, session=object() if user else None)

    async def sign_in(self, email: str, password: str) -> AuthPayload:
        await self._call("sign_in")
        session = object() if self.sign_in_user and self.sign_in_session else None
        return AuthPayload(user=self.sign_in_user, session=session)

    async def sign_up(self, email: str, password: str, metadata=None) -> AuthPayload:
        await self._call("sign_up")
        self.sign_up_metadata = metadata
        session = object() if self.sign_up_user and self.sign_up_session else None
        return AuthPayload(user=self.sign_up_user, session=session)

    async def sign_out(self) -> None:
        await self._call("sign_out")

    async def reset_password(self, email: str, redirect_url: str) -> None:
        await self._call("reset_password")

    async def update_user(self, metadata: Dict[str, Any]) -> Optional[UserIdentity]:
        await self._call("update_user")
        return self.updated_user

    async def on_auth_state_change(self, callback):
        await self._call("subscribe")
        self.auth_listener = callback

        def _unsubscribe():
            self.unsubscribed = True

        return _unsubscribe

    def emit(self, kind: str, user: Optional[UserIdentity], has_session: bool = True) -> None:
        self.auth_listener(AuthEvent(kind=kind, user=user, has_session=has_session and user is not None))

    # data ------------------------------------------------------------------

    async def probe(self):
        await self._call("probe")
        return self.tables["money_buckets"][:1]

    async def select_all_by_owner(self, table: str, user_id: str):
        await self._call(f"select:{table}")
        rows = [dict(r) for r in self.tables[table] if r.get("user_id") == user_id]
        return sorted(rows, key=lambda r: r.get("created_at") or "", reverse=True)

    async def insert(self, table: str, data: Dict[str, Any]):
        await self._call(f"insert:{table}")
        self.writes.append(("insert", table, None, dict(data)))
        return [dict(data)]

    async def update_by_id(self, table: str, record_id: str, data: Dict[str, Any]):
        await self._call(f"update:{table}")
        self.writes.append(("update", table, record_id, dict(data)))
        return [dict(data, id=record_id)]

    async def delete_by_id(self, table: str, record_id: str):
        await self._call(f"delete:{table}")
        self.writes.append(("delete", table, record_id, None))
        return []


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def fast_timeouts():
    """Short budgets so timeout paths run in milliseconds"""
    return Timeouts(
        session=0.2,
        auth=0.2,
        probe=0.2,
        collection=0.2,
        debounce=0.02,
        dedupe=1.0,
    )


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(tmp_path / "local_data")


@pytest.fixture
def config(tmp_path, fast_timeouts):
    return AppConfig(
        supabase_url="https://example.supabase.co",
        supabase_key="anon-key",
        storage_dir=tmp_path / "local_data",
        timeouts=fast_timeouts,
    )


@pytest.fixture
def fake_remote():
    return FakeRemote()


@pytest.fixture
def make_user():
    def _make(user_id: str = "user-1", email: str = "user@example.com", name: str = "Ana"):
        return UserIdentity(
            id=user_id,
            email=email,
            name=name,
            avatar="🥕",
            metadata={"name": name, "avatar": "🥕"},
        )

    return _make


@pytest.fixture
def sample_rows():
    """One user's rows across the four collections"""
    return {
        "money_buckets": [
            {"id": "b1", "name": "Wallet", "balance": 150.0, "user_id": "user-1",
             "created_at": "2024-03-01T10:00:00Z", "updated_at": "2024-03-01T10:00:00Z"},
            {"id": "b2", "name": "Savings", "balance": 1000.0, "user_id": "user-1",
             "created_at": "2024-03-02T10:00:00Z", "updated_at": "2024-03-02T10:00:00Z"},
        ],
        "transactions": [
            {"id": "t1", "amount": 50.0, "type": "expense", "category": "Food",
             "description": None, "date": "2024-03-05", "bucket_id": "b1",
             "goal_id": None, "goal_allocation": None, "user_id": "user-1",
             "created_at": "2024-03-05T09:00:00Z", "updated_at": "2024-03-05T09:00:00Z"},
            {"id": "t2", "amount": 200.0, "type": "income", "category": "Salary",
             "description": "March", "date": "2024-03-01", "bucket_id": "b1",
             "goal_id": "g1", "goal_allocation": 20.0, "user_id": "user-1",
             "created_at": "2024-03-01T09:00:00Z", "updated_at": "2024-03-01T09:00:00Z"},
        ],
        "goals": [
            {"id": "g1", "title": "Bike", "target_amount": 500.0, "current_amount": 20.0,
             "completed": False, "user_id": "user-1",
             "created_at": "2024-02-01T09:00:00Z", "updated_at": "2024-02-01T09:00:00Z"},
        ],
        "debts": [
            {"id": "d1", "amount": 30.0, "person_name": "Budi", "due_date": None,
             "type": "owed_to_me", "paid": False, "user_id": "user-1",
             "created_at": "2024-03-03T09:00:00Z", "updated_at": "2024-03-03T09:00:00Z"},
        ],
    }


@pytest.fixture
def seeded_remote(fake_remote, sample_rows):
    for table, rows in sample_rows.items():
        fake_remote.tables[table] = [dict(r) for r in rows]
    return fake_remote


@pytest.fixture
def mock_streamlit():
    """Mock Streamlit for testing"""
    import sys

    mock_st = MagicMock()
    mock_st.session_state = {}
    mock_st.secrets = {}
    mock_st.cache_data = lambda f: f
    mock_st.cache_resource = lambda f: f

    original_st = sys.modules.get('streamlit')
    sys.modules['streamlit'] = mock_st

    yield mock_st

    if original_st:
        sys.modules['streamlit'] = original_st
    else:
        del sys.modules['streamlit']
