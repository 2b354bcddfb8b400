"""Session multiplexer — one live session per (document, language) key.

Also home to :class:`TerminalTabs`, a small tab registry of shell sessions
for interactive front-ends.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from runbook.session.base import Session, SessionOptions
from runbook.session.events import EventChannel
from runbook.shell.session import ShellSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionKey:
    """Identifies a shared session.

    ``language=None`` means the document's shell or terminal session.
    """

    document: str
    language: str | None = None

    def __str__(self) -> str:
        return f"{self.document}:{self.language or 'shell'}"


SessionFactory = Callable[[SessionKey], Session]


class SessionMultiplexer:
    """Maps session keys to live sessions, creating them on demand.

    Args:
        factory: Builds an *unspawned* session for a key.
        is_attached: Optional predicate telling whether a session is still
            attached to a visible terminal. Detached sessions are replaced.
        max_sessions: Cap on shared sessions; the oldest is evicted first.
    """

    def __init__(
        self,
        factory: SessionFactory,
        is_attached: Callable[[Session], bool] | None = None,
        max_sessions: int | None = None,
    ) -> None:
        self._factory = factory
        self._is_attached = is_attached
        self._max_sessions = max_sessions
        self._sessions: dict[SessionKey, Session] = {}  # Insertion order = age
        self._isolated: list[Session] = []
        self._counter = 0

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, key: object) -> bool:
        return key in self._sessions

    def keys(self) -> list[SessionKey]:
        return list(self._sessions.keys())

    def next_title(self, prefix: str = "Session") -> str:
        self._counter += 1
        return f"{prefix} {self._counter}"

    def _usable(self, session: Session) -> bool:
        if not session.alive:
            return False
        if self._is_attached is not None and not self._is_attached(session):
            return False
        return True

    def get(self, key: SessionKey) -> Session | None:
        """The live session for ``key``, or None. Stale entries are removed."""
        session = self._sessions.get(key)
        if session is None:
            return None
        if self._usable(session):
            return session
        logger.debug("Dropping stale session %s for %s", session.id, key)
        self.cleanup(key)
        return None

    def get_or_create(self, key: SessionKey) -> Session:
        """The live session for ``key``, spawning a fresh one if needed."""
        session = self.get(key)
        if session is not None:
            return session

        if self._max_sessions and len(self._sessions) >= self._max_sessions:
            oldest = next(iter(self._sessions))
            logger.info("Session limit reached, evicting %s", oldest)
            self.cleanup(oldest)

        session = self._factory(key)
        session.spawn()
        self._sessions[key] = session
        logger.info("Created %s session %s for %s", session.kind.value, session.id, key)
        return session

    def create_isolated(self, key: SessionKey) -> Session:
        """A fresh session that is never shared or stored under ``key``."""
        session = self._factory(key)
        session.spawn()
        self._isolated.append(session)
        return session

    def release_isolated(self, session: Session) -> None:
        """Kill an isolated session and stop tracking it."""
        session.kill()
        if session in self._isolated:
            self._isolated.remove(session)

    def cleanup(self, key: SessionKey, kill: bool = True) -> None:
        """Forget ``key``, killing its session unless ``kill`` is False."""
        session = self._sessions.pop(key, None)
        if session is not None and kill:
            session.kill()

    def cleanup_document(self, document: str) -> None:
        for key in [k for k in self._sessions if k.document == document]:
            self.cleanup(key)

    def cleanup_all(self) -> None:
        for key in list(self._sessions):
            self.cleanup(key)
        for session in self._isolated:
            session.kill()
        self._isolated.clear()


# ---------------------------------------------------------------------------
# Terminal tabs
# ---------------------------------------------------------------------------


@dataclass
class TerminalTab:
    """One shell tab and its command history."""

    id: str
    name: str
    session: ShellSession
    history: list[str] = field(default_factory=list)
    history_index: int = -1  # -1 = not navigating
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def record(self, command: str) -> None:
        """Add to history, skipping consecutive duplicates."""
        if not self.history or self.history[-1] != command:
            self.history.append(command)
        self.history_index = -1


class TerminalTabs:
    """Named shell tabs with an active tab and per-tab history."""

    def __init__(
        self,
        options: SessionOptions | None = None,
        channel: EventChannel | None = None,
        shell: str | None = None,
    ) -> None:
        self._options = options
        self._channel = channel or EventChannel()
        self._shell = shell
        self._tabs: dict[str, TerminalTab] = {}
        self._active_id: str | None = None
        self._counter = 0

    @property
    def channel(self) -> EventChannel:
        return self._channel

    @property
    def count(self) -> int:
        return len(self._tabs)

    @property
    def active(self) -> TerminalTab | None:
        return self._tabs.get(self._active_id) if self._active_id else None

    def tabs(self) -> list[TerminalTab]:
        return list(self._tabs.values())

    def get(self, tab_id: str) -> TerminalTab | None:
        return self._tabs.get(tab_id)

    def create(self, name: str | None = None) -> TerminalTab:
        """Open a new tab with a freshly spawned shell."""
        self._counter += 1
        tab_id = f"terminal-{self._counter}"
        session = ShellSession(
            shell=self._shell,
            options=self._options,
            channel=self._channel,
            title=name or f"Terminal {self._counter}",
        )
        session.spawn()
        tab = TerminalTab(id=tab_id, name=session.title, session=session)
        self._tabs[tab_id] = tab
        if self._active_id is None:
            self._active_id = tab_id
        logger.debug("Opened tab %s (session %s)", tab_id, session.id)
        return tab

    def set_active(self, tab_id: str) -> bool:
        if tab_id not in self._tabs:
            return False
        self._active_id = tab_id
        return True

    def remove(self, tab_id: str) -> bool:
        tab = self._tabs.pop(tab_id, None)
        if tab is None:
            return False
        tab.session.kill()
        if self._active_id == tab_id:
            self._active_id = next(iter(self._tabs), None)
        return True

    async def execute_in(
        self, tab_id: str, command: str, timeout: float = 30.0
    ) -> str:
        """Run ``command`` in a tab. Calls on the same tab run one at a time."""
        tab = self._tabs.get(tab_id)
        if tab is None:
            raise KeyError(f"No such terminal tab: {tab_id}")
        tab.record(command)
        async with tab.lock:
            return await tab.session.execute(command, timeout=timeout)

    async def execute_in_active(self, command: str, timeout: float = 30.0) -> str:
        tab = self.active
        if tab is None:
            tab = self.create()
        return await self.execute_in(tab.id, command, timeout=timeout)

    def history_previous(self, tab_id: str) -> str | None:
        """Step back through a tab's history (shell up-arrow)."""
        tab = self._tabs.get(tab_id)
        if tab is None or not tab.history:
            return None
        if tab.history_index == -1:
            tab.history_index = len(tab.history) - 1
        elif tab.history_index > 0:
            tab.history_index -= 1
        return tab.history[tab.history_index]

    def history_next(self, tab_id: str) -> str | None:
        """Step forward; returns "" once past the newest entry."""
        tab = self._tabs.get(tab_id)
        if tab is None or tab.history_index == -1:
            return None
        if tab.history_index < len(tab.history) - 1:
            tab.history_index += 1
            return tab.history[tab.history_index]
        tab.history_index = -1
        return ""

    def destroy(self) -> None:
        for tab in self._tabs.values():
            tab.session.kill()
        self._tabs.clear()
        self._active_id = None
