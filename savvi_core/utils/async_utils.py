# =============================================================================
# savvi_core/utils/async_utils.py
# Timeout races, delayed tasks and the background event loop
# =============================================================================
"""
Async helpers shared by the session manager and the app state machine.

Every remote call is raced against a timer. Losing the race does NOT cancel
the remote call: it keeps running and its late result is discarded.
"""

from __future__ import annotations
import asyncio
import threading
from typing import Any, Awaitable, Callable, Optional, TypeVar

from savvi_core.errors import OperationTimeoutError
from savvi_core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def _discard_late_result(operation: str) -> Callable[[asyncio.Future], None]:
    def _callback(future: asyncio.Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()  # marks the exception as retrieved
        if exc is not None:
            logger.debug(f"{operation} finished after timeout with error: {exc}")
        else:
            logger.debug(f"{operation} finished after timeout; result discarded")

    return _callback


async def run_with_timeout(
    awaitable: Awaitable[T],
    timeout: float,
    operation: str,
) -> T:
    """
    Await `awaitable` for at most `timeout` seconds.

    Args:
        awaitable: The remote call
        timeout: Budget in seconds
        operation: Label used in the timeout message ("Sign in" -> "Sign in timeout")

    Returns:
        The awaitable's result

    Raises:
        OperationTimeoutError: if the timer wins; the call itself keeps running
    """
    task = asyncio.ensure_future(awaitable)
    done, _ = await asyncio.wait({task}, timeout=timeout)

    if task in done:
        return task.result()

    task.add_done_callback(_discard_late_result(operation))
    raise OperationTimeoutError(
        f"{operation} timeout",
        operation=operation,
        timeout=timeout,
    )


class DelayedTask:
    """
    A cancellable callback scheduled on the event loop.

    Usage:
        task = DelayedTask(0.1, apply_event, event)
        task.start()
        ...
        task.cancel()  # before it fires: callback never runs
    """

    def __init__(
        self,
        delay: float,
        callback: Callable[..., Any],
        *args: Any,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.delay = delay
        self._callback = callback
        self._args = args
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None
        self._fired = False

    @property
    def pending(self) -> bool:
        """True while scheduled and neither fired nor cancelled."""
        return self._handle is not None and not self._handle.cancelled() and not self._fired

    def start(self) -> DelayedTask:
        loop = self._loop or asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay, self._run)
        return self

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()

    def _run(self) -> None:
        self._fired = True
        self._callback(*self._args)


class LoopRunner:
    """
    Runs one asyncio event loop in a daemon thread.

    Streamlit reruns the script on a fresh thread for every interaction, while
    the session manager needs a loop that outlives a rerun (debounce timers,
    auth subscriptions, late results). All core state lives on this loop;
    the script thread only submits coroutines and reads snapshots.
    """

    def __init__(self, name: str = "SavviEventLoop"):
        self._loop = asyncio.new_event_loop()
        self._ready = threading.Event()
        self._thread = threading.Thread(
            target=self._run_loop,
            daemon=True,
            name=name,
        )

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    @property
    def is_running(self) -> bool:
        return self._thread.is_alive()

    def start(self) -> LoopRunner:
        if not self._thread.is_alive():
            self._thread.start()
            self._ready.wait(timeout=5)
            logger.debug("Background event loop started")
        return self

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.call_soon(self._ready.set)
        self._loop.run_forever()

    def run(self, coro: Awaitable[T], timeout: Optional[float] = None) -> T:
        """Submit a coroutine from another thread and block for its result."""
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result(timeout)

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> None:
        self._loop.call_soon_threadsafe(callback, *args)

    def stop(self) -> None:
        if self._thread.is_alive():
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(timeout=5)
            logger.debug("Background event loop stopped")
