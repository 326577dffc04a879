"""
callguard/storage/base.py
Abstract record store. The orchestrator and the API only talk to this
interface, so the in-memory store and the SQLite store are interchangeable.

SINGLE-ACTIVE-SESSION POLICY:
  create_session() ends any session that is still active, inside the same
  critical section that creates the new one. The newest session wins and at
  most one session is ever active, even under concurrent start requests.
"""

import math
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from callguard.models.record import Conversation, Detection, Session, SessionStats

Clock = Callable[[], datetime]

DEFAULT_RECENT_LIMIT = 10


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def protection_rate(total: int, scams: int) -> float:
    """
    Percent of conversations not flagged, rounded half-up to one decimal.
    100.0 when there is nothing to measure.
    """
    if total <= 0:
        return 100.0
    rate = (total - scams) / total * 100
    return math.floor(rate * 10 + 0.5) / 10


class RecordStore(ABC):
    """Create/read operations over sessions, conversations and detections."""

    # ── SESSIONS ─────────────────────────────────────────────
    @abstractmethod
    def create_session(self) -> Session:
        ...

    @abstractmethod
    def get_session(self, session_id: str) -> Optional[Session]:
        ...

    @abstractmethod
    def end_session(self, session_id: str) -> None:
        """Mark inactive and stamp end time. Unknown id is a no-op."""
        ...

    @abstractmethod
    def get_active_session(self) -> Optional[Session]:
        ...

    # ── CONVERSATIONS ────────────────────────────────────────
    @abstractmethod
    def create_conversation(
        self,
        session_id:    str,
        speaker:       str,
        transcription: str,
        is_scam:       bool                = False,
        confidence:    int                 = 0,
        scam_patterns: Optional[List[str]] = None,
    ) -> Conversation:
        """Raises UnknownSessionError if session_id is not stored."""
        ...

    @abstractmethod
    def get_conversations_by_session(self, session_id: str) -> List[Conversation]:
        """Oldest first."""
        ...

    # ── DETECTIONS ───────────────────────────────────────────
    @abstractmethod
    def create_detection(
        self,
        conversation_id: Optional[str],
        scam_type:       str,
        patterns:        List[str],
        confidence:      int,
        analysis:        str,
    ) -> Detection:
        """
        Raises UnknownConversationError for an unknown non-None conversation_id.
        Bumps the owning session's total_scams_detected.
        """
        ...

    @abstractmethod
    def create_conversation_with_detection(
        self,
        session_id:    str,
        speaker:       str,
        transcription: str,
        confidence:    int,
        patterns:      List[str],
        scam_type:     str,
        analysis:      str,
    ) -> Tuple[Conversation, Detection]:
        """
        Store a scam conversation and its linked detection atomically:
        either both records exist afterwards or neither does.
        Raises UnknownSessionError if session_id is not stored.
        """
        ...

    @abstractmethod
    def get_recent_detections(self, limit: int = DEFAULT_RECENT_LIMIT) -> List[Detection]:
        """Newest first, at most `limit` records."""
        ...

    # ── STATS ────────────────────────────────────────────────
    def get_session_stats(self, session_id: str) -> SessionStats:
        conversations = self.get_conversations_by_session(session_id)
        total = len(conversations)
        scams = sum(1 for c in conversations if c.is_scam)
        return SessionStats(
            total_conversations = total,
            total_scams         = scams,
            protection_rate     = protection_rate(total, scams),
        )
