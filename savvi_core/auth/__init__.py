"""
Authentication for savviFinance: the Supabase-backed SessionManager and the
auth event debouncer it owns.
"""

from savvi_core.auth.session_manager import (
    SessionManager,
    SessionState,
    SessionPhase,
    ConnectionStatus,
    AuthResult,
    USER_CACHE_KEY,
)
from savvi_core.auth.debounce import AuthEventDebouncer

__all__ = [
    "SessionManager",
    "SessionState",
    "SessionPhase",
    "ConnectionStatus",
    "AuthResult",
    "USER_CACHE_KEY",
    "AuthEventDebouncer",
]
