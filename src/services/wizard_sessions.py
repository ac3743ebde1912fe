"""
In-memory store of open wizard sessions.

A session lives for one browser-side wizard run: it is opened on the first
step, dropped after a successful submission, and discarded when the user
navigates away.  Nothing in it is persisted.

Sessions idle for longer than ``ttl_seconds`` are evicted.  Expired
sessions are swept whenever a new one is opened, and an expired session
looked up by id is treated as unknown.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Optional

from src.services.autocomplete import AutocompleteSession
from src.services.wizard import WizardController

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600.0


class SessionNotFound(LookupError):
    pass


@dataclass
class WizardSession:
    id: str
    controller: WizardController
    lookups: AutocompleteSession
    last_access: float = field(default=0.0)


class WizardSessionStore:
    def __init__(
        self,
        ttl_seconds: Optional[float] = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._sessions: dict[str, WizardSession] = {}
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def open(self, controller: WizardController, lookups: AutocompleteSession) -> WizardSession:
        self.sweep()
        session = WizardSession(uuid.uuid4().hex, controller, lookups, self._clock())
        self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> WizardSession:
        session = self._sessions.get(session_id)
        if session is not None and self._expired(session, self._clock()):
            self._evict(session_id)
            session = None
        if session is None:
            raise SessionNotFound(f"Wizard session {session_id} not found")
        session.last_access = self._clock()
        return session

    def close(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            session.lookups.close()

    def sweep(self) -> int:
        """Evict every idle session; returns how many were dropped."""
        now = self._clock()
        expired = [sid for sid, s in self._sessions.items() if self._expired(s, now)]
        for session_id in expired:
            self._evict(session_id)
        return len(expired)

    def _expired(self, session: WizardSession, now: float) -> bool:
        return self.ttl_seconds is not None and now - session.last_access > self.ttl_seconds

    def _evict(self, session_id: str) -> None:
        logger.info("Wizard session %s expired", session_id)
        self.close(session_id)

    def __len__(self) -> int:
        return len(self._sessions)
