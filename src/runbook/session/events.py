"""Session events — decouples session processes from whoever renders them.

Every session publishes a closed set of events (raw output, state changes,
exit, errors) on an :class:`EventChannel`. By default each session owns its
own channel; passing a shared channel to several sessions yields a single
stream of events tagged with ``session_id``.
"""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from typing import Any


class SessionEventType(enum.Enum):
    DATA = "data"
    STATE_CHANGE = "state_change"
    EXIT = "exit"
    ERROR = "error"


@dataclass
class SessionEvent:
    """An event on a session channel."""

    type: SessionEventType
    session_id: str
    data: dict[str, Any] = field(default_factory=dict)


class EventChannel:
    """Async message bus: session -> subscribers.

    Single-producer, multi-consumer broadcast. Subscribers are plain
    ``asyncio.Queue`` objects, so delivery order is the order in which
    events were sent.
    """

    def __init__(self) -> None:
        self._subscribers: list[asyncio.Queue[SessionEvent | None]] = []
        self._closed: bool = False

    def send(self, event: SessionEvent) -> None:
        """Send an event to all subscribers.

        Silently drops events after ``close()`` has been called.
        """
        if self._closed:
            return
        for q in list(self._subscribers):
            q.put_nowait(event)

    def send_data(self, session_id: str, text: str) -> None:
        self.send(SessionEvent(SessionEventType.DATA, session_id, {"text": text}))

    def send_state(self, session_id: str, state: Any) -> None:
        self.send(
            SessionEvent(SessionEventType.STATE_CHANGE, session_id, {"state": state})
        )

    def send_exit(self, session_id: str, exit_code: int | None) -> None:
        self.send(
            SessionEvent(SessionEventType.EXIT, session_id, {"exit_code": exit_code})
        )

    def send_error(self, session_id: str, error: str) -> None:
        self.send(SessionEvent(SessionEventType.ERROR, session_id, {"error": error}))

    def subscribe(self) -> asyncio.Queue[SessionEvent | None]:
        """Subscribe to events. Returns a queue to read from."""
        q: asyncio.Queue[SessionEvent | None] = asyncio.Queue()
        self._subscribers.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        """Unsubscribe from events."""
        if q in self._subscribers:
            self._subscribers.remove(q)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Signal all subscribers that the channel is closing."""
        if self._closed:
            return
        self._closed = True
        for q in self._subscribers:
            q.put_nowait(None)
