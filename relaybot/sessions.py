"""
Per-user conversation sessions for AI turns.

Owns the active-user set and the conversation history. Sessions expire after
a period of inactivity, history is capped per user, and the least recently
active sessions are evicted once the user cap is reached.
"""

import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ConversationTurn:
    role: str  # "user" or "model"
    text: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "text": self.text}


@dataclass
class Session:
    user_id: str
    turns: List[ConversationTurn] = field(default_factory=list)
    last_active: float = field(default_factory=time.monotonic)

    def is_expired(self, ttl_seconds: float, now: float) -> bool:
        return now - self.last_active > ttl_seconds


class SessionStore:
    """TTL and size bounded store of conversation sessions."""

    def __init__(self, ttl_seconds: float = 1800, max_turns: int = 20, max_users: int = 500):
        self.ttl_seconds = ttl_seconds
        self.max_turns = max_turns
        self.max_users = max_users
        self._sessions: "OrderedDict[str, Session]" = OrderedDict()

    def _get_live(self, user_id: str) -> Optional[Session]:
        session = self._sessions.get(user_id)
        if session is None:
            return None
        if session.is_expired(self.ttl_seconds, time.monotonic()):
            del self._sessions[user_id]
            logger.debug(f"Session for {user_id} expired", extra={"subsys": "sessions", "user_id": user_id})
            return None
        return session

    def is_active(self, user_id: str) -> bool:
        return self._get_live(user_id) is not None

    def history(self, user_id: str) -> List[Dict[str, str]]:
        session = self._get_live(user_id)
        if session is None:
            return []
        return [turn.to_dict() for turn in session.turns]

    def record_turn(self, user_id: str, user_text: str, reply_text: str) -> None:
        session = self._get_live(user_id)
        if session is None:
            session = Session(user_id)
            self._sessions[user_id] = session
        session.turns.append(ConversationTurn("user", user_text))
        session.turns.append(ConversationTurn("model", reply_text))
        # Each turn is a user/model pair
        overflow = len(session.turns) - self.max_turns * 2
        if overflow > 0:
            del session.turns[:overflow]
        session.last_active = time.monotonic()
        self._sessions.move_to_end(user_id)

        while len(self._sessions) > self.max_users:
            evicted, _ = self._sessions.popitem(last=False)
            logger.debug(f"Evicted session for {evicted}", extra={"subsys": "sessions", "user_id": evicted})

    def end(self, user_id: str) -> None:
        self._sessions.pop(user_id, None)

    def prune(self) -> int:
        """Drop every expired session; returns how many were removed."""
        now = time.monotonic()
        expired = [uid for uid, s in self._sessions.items() if s.is_expired(self.ttl_seconds, now)]
        for uid in expired:
            del self._sessions[uid]
        return len(expired)

    def __len__(self) -> int:
        return len(self._sessions)
