"""Scroll notifications published to the consumer."""

import asyncio
from collections.abc import Callable

from airchat.utils.logging import get_logger

logger = get_logger(__name__)

ScrollCallback = Callable[[], None]

DEFAULT_COALESCE_WINDOW = 0.03


class ScrollSignalBus:
    """Two fan-out channels: immediate, and normal (coalesced).

    Immediate signals are delivered synchronously on every emit. Normal
    signals emitted within ``window`` seconds of each other collapse into a
    single delivery after the window closes.
    """

    def __init__(self, window: float = DEFAULT_COALESCE_WINDOW):
        self.window = window
        self._immediate: list[ScrollCallback] = []
        self._normal: list[ScrollCallback] = []
        self._pending_normal: asyncio.TimerHandle | None = None

    def subscribe_immediate(self, callback: ScrollCallback) -> Callable[[], None]:
        """Subscribe to the immediate channel; returns an unsubscribe function."""
        self._immediate.append(callback)
        return lambda: self._remove(self._immediate, callback)

    def subscribe_normal(self, callback: ScrollCallback) -> Callable[[], None]:
        """Subscribe to the coalesced channel; returns an unsubscribe function."""
        self._normal.append(callback)
        return lambda: self._remove(self._normal, callback)

    def emit_immediate(self) -> None:
        self._deliver(self._immediate)

    def emit_normal(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._deliver(self._normal)
            return

        if self._pending_normal is not None:
            self._pending_normal.cancel()
        self._pending_normal = loop.call_later(self.window, self._fire_normal)

    def close(self) -> None:
        """Drop a pending coalesced signal."""
        if self._pending_normal is not None:
            self._pending_normal.cancel()
            self._pending_normal = None

    def _fire_normal(self) -> None:
        self._pending_normal = None
        self._deliver(self._normal)

    @staticmethod
    def _deliver(callbacks: list[ScrollCallback]) -> None:
        for callback in list(callbacks):
            try:
                callback()
            except Exception as e:
                logger.error(f"Scroll subscriber failed: {e}", exc_info=True)

    @staticmethod
    def _remove(callbacks: list[ScrollCallback], callback: ScrollCallback) -> None:
        if callback in callbacks:
            callbacks.remove(callback)
