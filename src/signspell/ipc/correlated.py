"""Correlated asynchronous calls with timeout.

A request goes out over one channel and its reply arrives later, out of
band, on a listener. PendingCall pairs the two through a correlation id;
CallSlot holds at most one pending call and guarantees it resolves
exactly once, whether by reply, error, timeout fallback or shutdown.

Example:
    >>> slot = CallSlot()
    >>> call = slot.open()
    >>> await channel.send({"type": "detect", "id": call.call_id, ...})
    >>> # listener task: slot.resolve(message["id"], outcome)
    >>> outcome = await slot.wait(call, timeout_sec=15.0, fallback=NO_HAND)
"""

import asyncio
import itertools
import logging
import time
from typing import Callable, Generic, Optional, Type, TypeVar

from signspell.errors import CallInFlightError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PendingCall(Generic[T]):
    """One outstanding correlated call.

    Attributes:
        call_id: Correlation id carried by the request and its reply.
        future: Resolves with the call's value, exactly once.
        created_at: Clock reading when the call was opened.
    """

    def __init__(self, call_id: str, future: "asyncio.Future[T]", created_at: float):
        self.call_id = call_id
        self.future = future
        self.created_at = created_at

    def resolve(self, value: T) -> bool:
        """Set the result. Returns False if already resolved."""
        if self.future.done():
            return False
        self.future.set_result(value)
        return True

    def reject(self, exc: BaseException) -> bool:
        """Set an exception. Returns False if already resolved."""
        if self.future.done():
            return False
        self.future.set_exception(exc)
        return True

    @property
    def done(self) -> bool:
        return self.future.done()

    def age(self, now: float) -> float:
        return now - self.created_at

    def __repr__(self) -> str:
        state = "done" if self.done else "pending"
        return f"PendingCall(id={self.call_id!r}, {state})"


class CallSlot(Generic[T]):
    """Single-slot registry for correlated calls.

    Args:
        prefix: Prefix for generated correlation ids.
        busy_error: Exception raised by ``open()`` while a call is pending.
        clock: Clock for ``created_at`` (default: time.monotonic).
    """

    def __init__(
        self,
        prefix: str = "call",
        busy_error: Type[CallInFlightError] = CallInFlightError,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._prefix = prefix
        self._busy_error = busy_error
        self._clock = clock
        self._counter = itertools.count(1)
        self._pending: Optional[PendingCall[T]] = None

    @property
    def pending(self) -> Optional[PendingCall[T]]:
        return self._pending

    @property
    def is_busy(self) -> bool:
        return self._pending is not None

    def open(self) -> PendingCall[T]:
        """Register a new pending call.

        Must be called from a running event loop.

        Raises:
            CallInFlightError: If another call is still pending.
        """
        if self._pending is not None:
            raise self._busy_error(
                f"Call {self._pending.call_id} is still pending"
            )
        loop = asyncio.get_running_loop()
        call_id = f"{self._prefix}-{next(self._counter)}"
        self._pending = PendingCall(call_id, loop.create_future(), self._clock())
        return self._pending

    def resolve(self, call_id: Optional[str], value: T) -> bool:
        """Resolve the pending call if ``call_id`` matches it.

        Stale or unknown ids are ignored.

        Returns:
            True if this call resolved the pending call.
        """
        call = self._pending
        if call is None or call.call_id != call_id:
            logger.debug(f"Ignoring reply for stale call id {call_id!r}")
            return False
        resolved = call.resolve(value)
        if not resolved:
            logger.debug(f"Ignoring late reply for call {call_id}")
        return resolved

    def resolve_pending(self, value: T) -> bool:
        """Resolve whatever call is pending, regardless of id."""
        call = self._pending
        if call is None:
            return False
        return call.resolve(value)

    async def wait(self, call: PendingCall[T], timeout_sec: float, fallback: T) -> T:
        """Wait for ``call`` to resolve, substituting ``fallback`` on timeout.

        The slot is released on every exit path. If the waiting task is
        cancelled the call's future is cancelled too.
        """
        try:
            return await asyncio.wait_for(asyncio.shield(call.future), timeout_sec)
        except asyncio.TimeoutError:
            if call.resolve(fallback):
                logger.debug(
                    f"Call {call.call_id} timed out after {timeout_sec}s"
                )
            # A reply may have won the race at the deadline
            return call.future.result()
        except asyncio.CancelledError:
            call.future.cancel()
            raise
        finally:
            if self._pending is call:
                self._pending = None


__all__ = ["PendingCall", "CallSlot"]
