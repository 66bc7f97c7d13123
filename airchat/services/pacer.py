"""Typewriter pacing of streamed assistant text."""

import asyncio
from collections import deque

from airchat.models.messages import Message
from airchat.services.scroll import ScrollSignalBus
from airchat.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_INTERVAL = 0.02


class RenderPacer:
    """Buffers incoming text and reveals it one character per tick.

    Pacing changes when text becomes visible, never what text is delivered:
    the target's visible text followed by ``pending_text`` always equals
    everything enqueued since the target was attached.
    """

    def __init__(self, bus: ScrollSignalBus, interval: float = DEFAULT_INTERVAL):
        """Initialize pacer.

        Args:
            bus: Receives one immediate scroll signal per revealed character
            interval: Seconds between revealed characters
        """
        self.bus = bus
        self.interval = interval
        self.target: Message | None = None
        self._pending: deque[str] = deque()
        self._task: asyncio.Task | None = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def pending_text(self) -> str:
        return "".join(self._pending)

    def attach(self, message: Message) -> None:
        """Point the pacer at a new message, flushing into the previous one first."""
        if self.target is not None and self.target is not message:
            self.flush()
        self.target = message

    def enqueue(self, text: str) -> None:
        """Queue text and start the drain cycle if it is not running.

        Raises:
            RuntimeError: If no target message is attached
        """
        if not text:
            return
        if self.target is None:
            raise RuntimeError("RenderPacer has no target message")

        self._pending.extend(text)
        if not self.active:
            self._task = asyncio.get_running_loop().create_task(self._drain())

    def flush(self) -> str:
        """Synchronously reveal everything still pending and stop the cycle.

        Returns:
            The text that was moved; empty when nothing was pending
        """
        self.stop()
        if not self._pending or self.target is None:
            return ""

        text = "".join(self._pending)
        self._pending.clear()
        self.target.append_text(text)
        logger.debug(f"Flushed {len(text)} pending characters")
        return text

    def stop(self) -> None:
        """Cancel the drain cycle without moving pending text."""
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _drain(self) -> None:
        while self._pending:
            await asyncio.sleep(self.interval)
            if not self._pending or self.target is None:
                break
            self.target.append_text(self._pending.popleft())
            self.bus.emit_immediate()
