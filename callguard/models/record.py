"""
callguard/models/record.py
Shared dataclass schema. The store, the orchestrator, the adapters and the
HTTP layer all use these types. Do not add logic here — data and wire
serialization only.

Wire format keys are camelCase to match the browser client.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


def _iso(ts: Optional[datetime]) -> Optional[str]:
    return ts.isoformat() if ts is not None else None


@dataclass
class Session:
    """One monitoring interval."""
    id:                   str
    started_at:           datetime
    ended_at:             Optional[datetime] = None
    is_active:            bool               = True
    total_scams_detected: int                = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id':                 self.id,
            'startedAt':          _iso(self.started_at),
            'endedAt':            _iso(self.ended_at),
            'totalScamsDetected': self.total_scams_detected,
            'isActive':           self.is_active,
        }


@dataclass
class Conversation:
    """One analyzed chunk of transcribed speech."""
    id:            str
    session_id:    str
    speaker:       str          # Caller / You
    transcription: str
    timestamp:     datetime
    is_scam:       bool                = False
    confidence:    int                 = 0       # 0-100
    scam_patterns: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id':            self.id,
            'transcription': self.transcription,
            'speaker':       self.speaker,
            'timestamp':     _iso(self.timestamp),
            'isScam':        self.is_scam,
            'confidence':    self.confidence,
            'scamPatterns':  self.scam_patterns,
            'sessionId':     self.session_id,
        }


@dataclass
class Detection:
    """Created only for conversations flagged as fraudulent."""
    id:              str
    conversation_id: Optional[str]
    detected_at:     datetime
    scam_type:       str
    patterns:        List[str]
    confidence:      int        # 0-100
    analysis:        str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id':             self.id,
            'conversationId': self.conversation_id,
            'detectedAt':     _iso(self.detected_at),
            'scamType':       self.scam_type,
            'patterns':       list(self.patterns),
            'confidence':     self.confidence,
            'analysis':       self.analysis,
        }


@dataclass
class ScamAnalysis:
    """Classifier verdict for one text fragment."""
    is_scam:      bool
    confidence:   int
    scam_type:    str
    patterns:     List[str] = field(default_factory=list)
    analysis:     str       = ''
    model_used:   str       = ''
    raw_response: str       = ''      # For debugging — never sent over the wire

    def to_dict(self) -> Dict[str, Any]:
        return {
            'isScam':     self.is_scam,
            'confidence': self.confidence,
            'scamType':   self.scam_type,
            'patterns':   list(self.patterns),
            'analysis':   self.analysis,
        }


@dataclass
class SessionStats:
    total_conversations: int
    total_scams:         int
    protection_rate:     float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'totalConversations': self.total_conversations,
            'totalScams':         self.total_scams,
            'protectionRate':     self.protection_rate,
        }


@dataclass
class AnalysisOutcome:
    """What the orchestrator hands back for one accepted fragment."""
    conversation: Conversation
    analysis:     ScamAnalysis
    detection:    Optional[Detection] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'conversation': self.conversation.to_dict(),
            'analysis':     self.analysis.to_dict(),
        }
