# =============================================================================
# savvi_core/auth/debounce.py
# Deduplication and debouncing of provider auth events
# =============================================================================
"""
AuthEventDebouncer - absorbs bursts of auth notifications.

Rules:
- An event with the same (kind, user id) as the last applied event, arriving
  within `dedupe_window` seconds of it, is discarded.
- Any other event replaces the pending one and is applied after `delay`
  seconds, so only the latest event of a burst is applied.
"""

from __future__ import annotations
import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Optional

from savvi_core.data.supabase_client import AuthEvent
from savvi_core.logging import get_logger
from savvi_core.utils.async_utils import DelayedTask

logger = get_logger(__name__)


@dataclass
class AppliedEvent:
    """The last event handed to the apply callback."""
    kind: str
    user_id: Optional[str]
    timestamp: float

    def matches(self, event: AuthEvent) -> bool:
        return self.kind == event.kind and self.user_id == event.user_id


class AuthEventDebouncer:
    """
    Usage:
        debouncer = AuthEventDebouncer(session_manager.apply_auth_event)
        debouncer.submit(AuthEvent("SIGNED_IN", user, has_session=True))
        ...
        debouncer.cancel()   # on teardown
    """

    def __init__(
        self,
        apply: Callable[[AuthEvent], None],
        delay: float = 0.1,
        dedupe_window: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self._apply = apply
        self.delay = delay
        self.dedupe_window = dedupe_window
        self._clock = clock
        self._loop = loop
        self.last_event: Optional[AppliedEvent] = None
        self._pending: Optional[DelayedTask] = None

    @property
    def has_pending(self) -> bool:
        return self._pending is not None and self._pending.pending

    def is_duplicate(self, event: AuthEvent, now: float) -> bool:
        last = self.last_event
        return (
            last is not None
            and last.matches(event)
            and now - last.timestamp < self.dedupe_window
        )

    def submit(self, event: AuthEvent) -> bool:
        """
        Queue `event` for application.

        Returns:
            False if the event was discarded as a duplicate
        """
        now = self._clock()

        if self.is_duplicate(event, now):
            logger.debug(f"Skipping duplicate auth event: {event.kind} {event.user_id}")
            return False

        self.cancel()
        self._pending = DelayedTask(self.delay, self._fire, event, now, loop=self._loop).start()
        return True

    def _fire(self, event: AuthEvent, received_at: float) -> None:
        self._pending = None
        self.last_event = AppliedEvent(event.kind, event.user_id, received_at)
        try:
            self._apply(event)
        except Exception as e:
            logger.error(f"Auth state change error: {e}", exc_info=True)

    def cancel(self) -> None:
        """Drop the pending event, if any."""
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
