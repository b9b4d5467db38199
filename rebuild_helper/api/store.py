"""In-memory registry of operator sessions."""

from __future__ import annotations

import threading
import uuid
from typing import Callable

from ..pipelines import ReconciliationSession


class SessionStore:
    """Keeps one :class:`ReconciliationSession` per session id in memory."""

    def __init__(self, factory: Callable[[], ReconciliationSession] = ReconciliationSession.default):
        self._factory = factory
        self._sessions: dict[str, ReconciliationSession] = {}
        self._lock = threading.Lock()

    def create(self) -> tuple[str, ReconciliationSession]:
        session_id = str(uuid.uuid4())
        session = self._factory()
        with self._lock:
            self._sessions[session_id] = session
        return session_id, session

    def get(self, session_id: str) -> ReconciliationSession | None:
        with self._lock:
            return self._sessions.get(session_id)

    def discard(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._sessions)
