"""In-memory reader session store with TTL cleanup.

WHY: The HTTP API mirrors the reader's event stream (open a text, release
a selection, tick playback), so each client needs a ReaderSession that
lives across requests. An in-memory store is enough for a single-process
service with no persistence requirements.

HOW: Two components work together:
  SessionRecord — dataclass holding the ReaderSession and its timestamps
  SessionStore  — lock-protected dict with create/get/list/delete and
                  idle-time expiry

RULES:
- All store mutations are protected by threading.Lock
- Session ids are UUID4 hex strings generated at creation time
- get_session() refreshes last_used_at; expiry is measured from it
- create_session() raises ValueError once max_sessions is reached
- Default TTL comes from SESSION_TTL_S (1 hour)
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional

from guided_reader.config import SESSION_TTL_S
from guided_reader.core.session import ReaderSession

logger = logging.getLogger(__name__)


@dataclass
class SessionRecord:
    """A stored reader session plus bookkeeping."""

    id: str
    session: ReaderSession
    created_at: float
    last_used_at: float


class SessionStore:
    """Thread-safe in-memory store for reader sessions."""

    def __init__(
        self,
        ttl_seconds: int = SESSION_TTL_S,
        max_sessions: int = 1000,
    ) -> None:
        self._sessions: Dict[str, SessionRecord] = {}
        self._lock = threading.Lock()
        self._ttl_seconds = ttl_seconds
        self.max_sessions = max_sessions

    def create_session(self, session: Optional[ReaderSession] = None) -> SessionRecord:
        """Store a session under a fresh id."""
        with self._lock:
            if len(self._sessions) >= self.max_sessions:
                raise ValueError(
                    "Maximum number of sessions ({}) reached".format(self.max_sessions)
                )
            now = time.time()
            record = SessionRecord(
                id=uuid.uuid4().hex,
                session=session or ReaderSession(),
                created_at=now,
                last_used_at=now,
            )
            self._sessions[record.id] = record

        logger.info("Created session %s", record.id)
        return record

    def get_session(self, session_id: str) -> Optional[SessionRecord]:
        """Return the live record for session_id, or None if unknown."""
        with self._lock:
            record = self._sessions.get(session_id)
            if record is not None:
                record.last_used_at = time.time()
            return record

    def list_sessions(self) -> List[SessionRecord]:
        with self._lock:
            return sorted(self._sessions.values(), key=lambda r: r.created_at)

    def delete_session(self, session_id: str) -> bool:
        with self._lock:
            record = self._sessions.pop(session_id, None)
        if record is None:
            return False
        logger.info("Deleted session %s", session_id)
        return True

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def cleanup_expired(self) -> int:
        """Remove sessions idle for longer than the TTL.

        Returns:
            The number of sessions removed.
        """
        now = time.time()
        with self._lock:
            expired = [
                session_id
                for session_id, record in self._sessions.items()
                if now - record.last_used_at > self._ttl_seconds
            ]
            for session_id in expired:
                del self._sessions[session_id]

        for session_id in expired:
            logger.info("Expired session %s", session_id)
        return len(expired)
