"""Room join bookkeeping and the backlog staleness filter."""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterator

from ..common.protocol import format_join

logger = logging.getLogger(__name__)


class RoomRegistry:
    """Tracks when the bot asked to join each room.

    The server replays recent room history right after a join. Timestamped
    chat lines older than the join request are stale and must not trigger
    commands a second time.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._joined: dict[str, int] = {}  # room -> unix seconds of join request

    def record_join(self, room: str) -> str:
        """Record a join request for ``room`` and return the join line to send.

        Re-joining a known room refreshes its timestamp.
        """
        self._joined[room] = int(self._clock())
        logger.debug(f"Recorded join for {room!r} at {self._joined[room]}")
        return format_join(room)

    def joined_at(self, room: str) -> int | None:
        return self._joined.get(room)

    def is_stale(self, room: str, timestamp: int) -> bool:
        """True if ``timestamp`` predates our join request for ``room``.

        Rooms without a recorded join never filter anything.
        """
        joined = self._joined.get(room)
        if joined is None:
            return False
        return timestamp < joined

    def rooms(self) -> list[str]:
        return list(self._joined)

    def __contains__(self, room: object) -> bool:
        return room in self._joined

    def __iter__(self) -> Iterator[str]:
        return iter(self._joined)

    def __len__(self) -> int:
        return len(self._joined)
