"""Latest-value-wins async debouncer used for auto-save."""

import asyncio
from typing import Awaitable, Callable, Generic, Optional, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")


class Debouncer(Generic[T]):
    """Coalesce rapid submissions into one delayed callback call.

    Each ``submit`` replaces the pending value and restarts the delay, so the
    callback only ever sees the latest value. Calls never overlap. If the
    callback fails, the value stays pending (unless a newer one arrived) and
    is retried by the next ``submit`` or ``flush``.

    Example:
        >>> saver = Debouncer(save_document, delay=1.0)
        >>> saver.submit(document)      # schedules a save in 1s
        >>> saver.submit(newer_document)  # replaces it, timer restarts
        >>> await saver.flush()         # saves newer_document now
    """

    def __init__(
        self,
        callback: Callable[[T], Awaitable[None]],
        delay: float,
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        """
        Initialize the debouncer.

        Args:
            callback: Coroutine function receiving the latest value
            delay: Quiet period in seconds before the callback runs
            on_error: Called with the exception when a timer-triggered call fails
        """
        if delay < 0:
            raise ValueError(f"delay must be >= 0, got {delay}")
        self.callback = callback
        self.delay = delay
        self.on_error = on_error
        self.last_error: Optional[Exception] = None
        self._value: Optional[T] = None
        self._has_value = False
        self._timer: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()

    @property
    def pending(self) -> bool:
        """Whether a value is waiting to be delivered."""
        return self._has_value

    def submit(self, value: T) -> None:
        """Replace the pending value and restart the delay (needs a running event loop)."""
        self._value = value
        self._has_value = True
        self._cancel_timer()
        self._timer = asyncio.get_running_loop().create_task(self._fire_later())

    async def flush(self) -> None:
        """
        Deliver the pending value now (no-op when nothing is pending).

        Raises:
            Exception: Whatever the callback raised; the value stays pending
        """
        self._cancel_timer()
        await self._fire(raise_errors=True)

    def cancel(self) -> None:
        """Drop the pending value without delivering it."""
        self._cancel_timer()
        self._value = None
        self._has_value = False

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def _fire_later(self) -> None:
        await asyncio.sleep(self.delay)
        # From here on the call is no longer cancellable by submit/flush
        self._timer = None
        await self._fire(raise_errors=False)

    async def _fire(self, raise_errors: bool) -> None:
        async with self._lock:
            if not self._has_value:
                return
            value = self._value
            self._value = None
            self._has_value = False
            try:
                await self.callback(value)
            except Exception as e:
                self.last_error = e
                if not self._has_value:
                    self._value = value
                    self._has_value = True
                logger.error("debounced_call_failed", error=str(e), error_type=type(e).__name__)
                if raise_errors:
                    raise
                if self.on_error is not None:
                    self.on_error(e)
            else:
                self.last_error = None
