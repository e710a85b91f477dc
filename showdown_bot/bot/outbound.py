"""Rate-limited outbound delivery and keepalive."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

from ..common.constants import KEEPALIVE_INTERVAL, OUTBOUND_QUEUE_SIZE, SEND_INTERVAL
from ..common.protocol import format_outbound

logger = logging.getLogger(__name__)

SendCallable = Callable[[str], Awaitable[None]]
PingCallable = Callable[[], Awaitable[Any]]


class OutboundQueue:
    """Bounded FIFO of wire lines, drained one line per send interval.

    The server kicks clients that flood its chat queue, so lines are never
    batched. ``enqueue`` blocks once ``maxsize`` lines are pending.

    Both timers (delivery and keepalive) belong to this object and run only
    between ``start()`` and ``stop()``.
    """

    def __init__(
        self,
        maxsize: int = OUTBOUND_QUEUE_SIZE,
        interval: float = SEND_INTERVAL,
        keepalive_interval: float = KEEPALIVE_INTERVAL,
    ) -> None:
        self.maxsize = maxsize
        self.interval = interval
        self.keepalive_interval = keepalive_interval
        self.last_sent: float = 0.0  # time.monotonic() of the last transmission
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=maxsize)
        self._send: SendCallable | None = None
        self._ping: PingCallable | None = None
        self.delivery_task: asyncio.Task[None] | None = None
        self.keepalive_task: asyncio.Task[None] | None = None

    # Producer side

    async def enqueue(self, text: str, room: str) -> None:
        """Queue ``text`` for ``room``; PM rooms become a /pm to the user."""
        await self.enqueue_line(format_outbound(text, room))

    async def enqueue_line(self, line: str) -> None:
        """Queue an already formatted wire line."""
        await self._queue.put(line)

    # Consumer side

    def get_nowait(self) -> str:
        """Pop the next pending line without sending it.

        Raises:
            asyncio.QueueEmpty: If nothing is pending.
        """
        line = self._queue.get_nowait()
        self._queue.task_done()
        return line

    def qsize(self) -> int:
        return self._queue.qsize()

    def full(self) -> bool:
        return self._queue.full()

    def empty(self) -> bool:
        return self._queue.empty()

    # Lifecycle

    @property
    def running(self) -> bool:
        return self.delivery_task is not None and not self.delivery_task.done()

    def start(self, send: SendCallable, ping: PingCallable | None = None) -> None:
        """Start the delivery loop and, if ``ping`` is given, the keepalive."""
        if self.running:
            raise RuntimeError("Outbound queue already started")
        self._send = send
        self._ping = ping
        self.delivery_task = asyncio.create_task(self._deliver())
        if ping is not None:
            self.keepalive_task = asyncio.create_task(self._keepalive())

    async def stop(self) -> None:
        """Stop both timers. Pending lines stay queued."""
        for task in (self.delivery_task, self.keepalive_task):
            if task is None or task.done():
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.keepalive_task = None

    async def _deliver(self) -> None:
        """Send one line per interval, in enqueue order.

        Send failures propagate and end the task.
        """
        assert self._send is not None
        while True:
            line = await self._queue.get()
            try:
                await self._send(line)
            finally:
                self._queue.task_done()
            self.last_sent = time.monotonic()
            logger.debug(f"Sent: {line}")
            await asyncio.sleep(self.interval)

    async def _keepalive(self) -> None:
        """Ping the transport periodically. Failures are only logged."""
        assert self._ping is not None
        while True:
            await asyncio.sleep(self.keepalive_interval)
            try:
                await self._ping()
                logger.debug("Keepalive ping sent")
            except Exception as e:
                logger.warning(f"Keepalive ping failed: {e}")
