"""
In-memory registry of adaptive quiz sessions.

Each session id maps to one engine, its owner and a lock that serializes
commands against that engine. Results are not persisted; sessions nobody has
touched for longer than the idle TTL are dropped.
"""
import asyncio
import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from fastapi import HTTPException

from adaptive_bloom_tutor.adaptive_engine import AdaptiveQuizEngine

from .logger import get_logger

logger = get_logger("backend.quiz_sessions")

DEFAULT_SESSION_TTL_MINUTES = 120


@dataclass
class QuizSessionEntry:
    session_id: str
    owner_id: str
    engine: AdaptiveQuizEngine
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    created_at: datetime = field(default_factory=datetime.now)
    last_seen: datetime = field(default_factory=datetime.now)


class QuizSessionRegistry:
    """Holds live quiz sessions keyed by session id."""

    def __init__(self, engine_factory: Callable[[], AdaptiveQuizEngine],
                 ttl: Optional[timedelta] = None):
        self.engine_factory = engine_factory
        if ttl is None:
            ttl = timedelta(minutes=float(os.getenv("QUIZ_SESSION_TTL_MINUTES", DEFAULT_SESSION_TTL_MINUTES)))
        self.ttl = ttl
        self._sessions: Dict[str, QuizSessionEntry] = {}

    def _is_expired(self, entry: QuizSessionEntry, now: datetime) -> bool:
        # a command holding the lock keeps its session alive
        return not entry.lock.locked() and now - entry.last_seen > self.ttl

    def evict_idle(self) -> int:
        """Drop sessions idle past the TTL; returns how many were removed."""
        now = datetime.now()
        expired = [sid for sid, entry in self._sessions.items() if self._is_expired(entry, now)]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.info(f"Evicted {len(expired)} idle quiz session(s)", data={"live": len(self._sessions)})
        return len(expired)

    def create(self, owner_id: str) -> QuizSessionEntry:
        self.evict_idle()
        entry = QuizSessionEntry(
            session_id=f"quiz_{uuid.uuid4().hex}",
            owner_id=owner_id,
            engine=self.engine_factory(),
        )
        self._sessions[entry.session_id] = entry
        return entry

    def get(self, session_id: str, owner_id: str) -> QuizSessionEntry:
        """Return the caller's session; other users' and expired sessions look missing."""
        entry = self._sessions.get(session_id)
        now = datetime.now()
        if entry is not None and self._is_expired(entry, now):
            del self._sessions[session_id]
            entry = None
        if entry is None or entry.owner_id != owner_id:
            raise HTTPException(status_code=404, detail="Quiz session not found")
        entry.last_seen = now
        return entry

    def remove(self, session_id: str, owner_id: str) -> None:
        self.get(session_id, owner_id)
        del self._sessions[session_id]

    def all(self) -> List[QuizSessionEntry]:
        self.evict_idle()
        return list(self._sessions.values())

    def __len__(self) -> int:
        return len(self._sessions)
