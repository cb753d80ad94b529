"""
Map raw exceptions raised by the Supabase SDK (and the transport below it)
onto the savviFinance error taxonomy.
"""

from __future__ import annotations
import asyncio
from typing import Optional

import httpx

from .exceptions import (
    SavviError,
    NetworkError,
    OperationTimeoutError,
    SchemaMissingError,
    RemoteError,
    CredentialError,
)

NETWORK_MARKERS = (
    "failed to fetch",
    "networkerror",
    "network error",
    "connection refused",
    "connection reset",
    "name or service not known",
    "nodename nor servname",
    "temporary failure in name resolution",
    "all connection attempts failed",
)

TIMEOUT_MARKERS = ("timeout", "timed out")

# 42P01 is Postgres' undefined_table; PGRST205 is PostgREST's missing table
SCHEMA_MISSING_CODES = {"42P01", "PGRST205"}
SCHEMA_MISSING_MARKERS = ("does not exist", "relation", "schema cache")


def error_message(error: BaseException) -> str:
    """Best-effort human readable message for any exception."""
    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(error) or error.__class__.__name__


def error_code(error: BaseException) -> Optional[str]:
    code = getattr(error, "code", None)
    if code is None:
        return None
    return str(code)


def is_schema_missing(error: BaseException) -> bool:
    """True when a query failed because the expected table does not exist."""
    if isinstance(error, SchemaMissingError):
        return True
    if error_code(error) in SCHEMA_MISSING_CODES:
        return True
    message = error_message(error).lower()
    return any(marker in message for marker in SCHEMA_MISSING_MARKERS)


def is_network_class(error: BaseException) -> bool:
    """True for transport failures and timeouts, which share one recovery path."""
    return isinstance(classify_error(error), (NetworkError, OperationTimeoutError))


def classify_error(error: BaseException, operation: Optional[str] = None) -> SavviError:
    """
    Convert any exception into a SavviError subclass.

    Order matters: TimeoutError is an OSError subclass, and httpx timeouts are
    transport errors, so timeouts are checked first.
    """
    if isinstance(error, SavviError):
        return error

    message = error_message(error)
    lowered = message.lower()

    if isinstance(error, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException)):
        return OperationTimeoutError(message, operation=operation)

    if isinstance(error, (httpx.TransportError, ConnectionError, OSError)):
        return NetworkError(message, operation=operation)

    if is_schema_missing(error):
        return SchemaMissingError(message, details={"provider_code": error_code(error)})

    if any(marker in lowered for marker in NETWORK_MARKERS):
        return NetworkError(message, operation=operation)

    if error.__class__.__name__.startswith("Auth"):
        return CredentialError(message)

    if any(marker in lowered for marker in TIMEOUT_MARKERS):
        return OperationTimeoutError(message, operation=operation)

    return RemoteError(message, provider_code=error_code(error))
