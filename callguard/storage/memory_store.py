"""
callguard/storage/memory_store.py
Process-local store. Three dicts behind one lock; nothing survives a restart.
Use SqliteStore when records must outlive the process.
"""

import logging
import threading
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from callguard.errors import UnknownConversationError, UnknownSessionError
from callguard.models.record import Conversation, Detection, Session
from callguard.storage.base import (
    DEFAULT_RECENT_LIMIT,
    Clock,
    RecordStore,
    new_id,
    utcnow,
)

logger = logging.getLogger(__name__)


class MemoryStore(RecordStore):

    def __init__(self, clock: Clock = utcnow):
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions:      Dict[str, Session]      = {}
        self._conversations: Dict[str, Conversation] = {}
        self._detections:    Dict[str, Detection]    = {}
        # Insertion sequence, breaks timestamp ties in listings
        self._seq: Dict[str, int] = {}
        self._counter = 0

    def _next_seq(self, record_id: str) -> None:
        self._counter += 1
        self._seq[record_id] = self._counter

    # ── SESSIONS ─────────────────────────────────────────────
    def create_session(self) -> Session:
        with self._lock:
            now = self._clock()
            for session in self._sessions.values():
                if session.is_active:
                    logger.info(f"Ending session {session.id} — superseded by a new session")
                    session.is_active = False
                    session.ended_at = now
            session = Session(id=new_id(), started_at=now)
            self._sessions[session.id] = session
            self._next_seq(session.id)
            return replace(session)

    def get_session(self, session_id: str) -> Optional[Session]:
        with self._lock:
            session = self._sessions.get(session_id)
            return replace(session) if session else None

    def end_session(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                logger.debug(f"end_session: unknown id {session_id} — ignored")
                return
            session.is_active = False
            session.ended_at = self._clock()

    def get_active_session(self) -> Optional[Session]:
        with self._lock:
            for session in self._sessions.values():
                if session.is_active:
                    return replace(session)
        return None

    # ── CONVERSATIONS ────────────────────────────────────────
    def _new_conversation(
        self,
        session_id:    str,
        speaker:       str,
        transcription: str,
        is_scam:       bool,
        confidence:    int,
        scam_patterns: Optional[List[str]],
    ) -> Conversation:
        if session_id not in self._sessions:
            raise UnknownSessionError(session_id)
        return Conversation(
            id            = new_id(),
            session_id    = session_id,
            speaker       = speaker,
            transcription = transcription,
            timestamp     = self._clock(),
            is_scam       = is_scam,
            confidence    = confidence,
            scam_patterns = list(scam_patterns) if scam_patterns is not None else None,
        )

    def _store_conversation(self, conversation: Conversation) -> None:
        self._conversations[conversation.id] = conversation
        self._next_seq(conversation.id)

    def create_conversation(
        self,
        session_id:    str,
        speaker:       str,
        transcription: str,
        is_scam:       bool                = False,
        confidence:    int                 = 0,
        scam_patterns: Optional[List[str]] = None,
    ) -> Conversation:
        with self._lock:
            conversation = self._new_conversation(
                session_id, speaker, transcription, is_scam, confidence, scam_patterns
            )
            self._store_conversation(conversation)
            return _copy_conversation(conversation)

    def get_conversations_by_session(self, session_id: str) -> List[Conversation]:
        with self._lock:
            found = [c for c in self._conversations.values() if c.session_id == session_id]
            found.sort(key=lambda c: (c.timestamp, self._seq[c.id]))
            return [_copy_conversation(c) for c in found]

    # ── DETECTIONS ───────────────────────────────────────────
    def _new_detection(
        self,
        conversation_id: Optional[str],
        scam_type:       str,
        patterns:        List[str],
        confidence:      int,
        analysis:        str,
    ) -> Detection:
        return Detection(
            id              = new_id(),
            conversation_id = conversation_id,
            detected_at     = self._clock(),
            scam_type       = scam_type,
            patterns        = list(patterns),
            confidence      = confidence,
            analysis        = analysis,
        )

    def _store_detection(self, detection: Detection, session_id: Optional[str]) -> None:
        self._detections[detection.id] = detection
        self._next_seq(detection.id)
        session = self._sessions.get(session_id) if session_id is not None else None
        if session is not None:
            session.total_scams_detected += 1

    def create_detection(
        self,
        conversation_id: Optional[str],
        scam_type:       str,
        patterns:        List[str],
        confidence:      int,
        analysis:        str,
    ) -> Detection:
        with self._lock:
            session_id = None
            if conversation_id is not None:
                conversation = self._conversations.get(conversation_id)
                if conversation is None:
                    raise UnknownConversationError(conversation_id)
                session_id = conversation.session_id
            detection = self._new_detection(conversation_id, scam_type, patterns, confidence, analysis)
            self._store_detection(detection, session_id)
            return _copy_detection(detection)

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
        with self._lock:
            # Build both records before storing either
            conversation = self._new_conversation(
                session_id, speaker, transcription, True, confidence, patterns
            )
            detection = self._new_detection(conversation.id, scam_type, patterns, confidence, analysis)
            self._store_conversation(conversation)
            self._store_detection(detection, session_id)
            return _copy_conversation(conversation), _copy_detection(detection)

    def get_recent_detections(self, limit: int = DEFAULT_RECENT_LIMIT) -> List[Detection]:
        if limit <= 0:
            return []
        with self._lock:
            found = sorted(
                self._detections.values(),
                key=lambda d: (d.detected_at, self._seq[d.id]),
                reverse=True,
            )
            return [_copy_detection(d) for d in found[:limit]]


def _copy_conversation(conversation: Conversation) -> Conversation:
    patterns = conversation.scam_patterns
    return replace(conversation, scam_patterns=list(patterns) if patterns is not None else None)


def _copy_detection(detection: Detection) -> Detection:
    return replace(detection, patterns=list(detection.patterns))
