"""In-memory conversation sessions for multi-turn Gemini chats.

A session is created by the first ``gemini`` call and continued by
``gemini-reply``. Nothing is persisted: sessions live until the process
exits or until they sit idle longer than the retention window, at which
point the next sweep drops them.
"""

from __future__ import annotations

import logging
import secrets
import string
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_SECONDS = 60 * 60

ROLE_USER = "user"
ROLE_MODEL = "model"

_ID_ALPHABET = string.ascii_lowercase + string.digits
_ID_SUFFIX_LENGTH = 7


@dataclass(frozen=True)
class Turn:
    """One message in a conversation."""
    role: str  # "user" or "model"
    text: str

    def to_content(self) -> dict:
        """Render as a Gemini ``Content`` object."""
        return {"role": self.role, "parts": [{"text": self.text}]}


@dataclass
class ConversationSession:
    """Server-held conversation state keyed by an opaque id."""
    id: str
    history: list[Turn] = field(default_factory=list)
    created_at: float = 0.0
    last_used: float = 0.0
    cwd: str | None = None

    @property
    def turn_count(self) -> int:
        return len(self.history) // 2


def generate_session_id(now: float) -> str:
    """Build ``gemini-<epoch ms>-<random suffix>``.

    There is no collision check; the millisecond timestamp plus a
    36^7 random suffix keeps the odds negligible for one process.
    """
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(_ID_SUFFIX_LENGTH))
    return f"gemini-{int(now * 1000)}-{suffix}"


class SessionStore:
    """Registry of live conversation sessions.

    The clock is injectable so eviction can be tested without real time
    passing.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
    ):
        self._clock = clock
        self.retention_seconds = retention_seconds
        self._sessions: dict[str, ConversationSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def create(self, initial_history: Iterable[Turn], cwd: str | None = None) -> str:
        """Insert a new session and return its id."""
        now = self._clock()
        session_id = generate_session_id(now)
        self._sessions[session_id] = ConversationSession(
            id=session_id,
            history=list(initial_history),
            created_at=now,
            last_used=now,
            cwd=cwd,
        )
        logger.debug(f"Created session {session_id} ({len(self._sessions)} live)")
        return session_id

    def get(self, session_id: str) -> ConversationSession | None:
        """Look up a session. Returns None if it never existed or was swept."""
        return self._sessions.get(session_id)

    def append_turn(self, session_id: str, user_text: str, model_text: str) -> ConversationSession:
        """Append one user/model pair and mark the session as used.

        Raises KeyError for an unknown id; callers resolve the session with
        ``get`` first.
        """
        session = self._sessions[session_id]
        # Build the new list before swapping it in so the pair lands together
        session.history = [
            *session.history,
            Turn(ROLE_USER, user_text),
            Turn(ROLE_MODEL, model_text),
        ]
        session.last_used = self._clock()
        return session

    def sweep(self, now: float | None = None, retention_seconds: float | None = None) -> int:
        """Drop every session idle for longer than the retention window.

        Returns the number of sessions removed.
        """
        if now is None:
            now = self._clock()
        if retention_seconds is None:
            retention_seconds = self.retention_seconds
        cutoff = now - retention_seconds

        expired = [sid for sid, s in self._sessions.items() if s.last_used < cutoff]
        for sid in expired:
            del self._sessions[sid]

        if expired:
            logger.info(f"Evicted {len(expired)} idle session(s), {len(self._sessions)} remaining")
        return len(expired)

    def get_stats(self) -> dict:
        return {
            "live_sessions": len(self._sessions),
            "retention_seconds": self.retention_seconds,
        }
