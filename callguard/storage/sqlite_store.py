"""
callguard/storage/sqlite_store.py
Durable store on a SQLite file. Same contract as MemoryStore.

SCHEMA DESIGN NOTES:
- sessions / conversations / scam_detections mirror the three record kinds
- conversations.session_id → sessions.id and
  scam_detections.conversation_id → conversations.id are real foreign keys
- A partial unique index allows at most one row with is_active = 1
- Timestamps stored as ISO-8601 UTC TEXT with fixed microsecond precision,
  so lexical order equals time order; rowid breaks ties
- JSON arrays (patterns) stored as TEXT
- One connection per operation; a process lock serializes writers
"""

import json
import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

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

SCHEMA_VERSION = '1.0'


def _ts(value: datetime) -> str:
    return value.isoformat(timespec='microseconds')


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _load_list(value: Optional[str]) -> Optional[List[str]]:
    if value is None:
        return None
    try:
        data = json.loads(value)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Malformed JSON list in store — returning empty list")
        return []
    return data if isinstance(data, list) else []


class SqliteStore(RecordStore):

    def __init__(self, db_path: Path = Path('callguard.db'), clock: Clock = utcnow):
        self.db_path = Path(db_path)
        self._clock = clock
        self._lock = threading.Lock()
        self._init_schema()

    # ── INTERNAL ──────────────────────────────────────────────
    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def _init_schema(self) -> None:
        conn = self._connect()
        try:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS callguard_meta (
                    key             TEXT PRIMARY KEY,
                    value           TEXT
                );

                CREATE TABLE IF NOT EXISTS sessions (
                    id                   TEXT PRIMARY KEY,
                    started_at           TEXT    NOT NULL,
                    ended_at             TEXT,
                    total_scams_detected INTEGER DEFAULT 0,
                    is_active            INTEGER DEFAULT 1
                );

                CREATE TABLE IF NOT EXISTS conversations (
                    id              TEXT PRIMARY KEY,
                    session_id      TEXT    NOT NULL REFERENCES sessions(id),
                    speaker         TEXT    NOT NULL,
                    transcription   TEXT    NOT NULL,
                    timestamp       TEXT    NOT NULL,
                    is_scam         INTEGER DEFAULT 0,
                    confidence      INTEGER DEFAULT 0,
                    scam_patterns   TEXT             -- JSON array or NULL
                );

                CREATE TABLE IF NOT EXISTS scam_detections (
                    id              TEXT PRIMARY KEY,
                    conversation_id TEXT    REFERENCES conversations(id),
                    detected_at     TEXT    NOT NULL,
                    scam_type       TEXT    NOT NULL,
                    patterns        TEXT    NOT NULL, -- JSON array
                    confidence      INTEGER NOT NULL,
                    analysis        TEXT    NOT NULL
                );

                CREATE UNIQUE INDEX IF NOT EXISTS idx_one_active_session
                    ON sessions(is_active) WHERE is_active = 1;
                CREATE INDEX IF NOT EXISTS idx_conv_session  ON conversations(session_id, timestamp);
                CREATE INDEX IF NOT EXISTS idx_detection_ts  ON scam_detections(detected_at);
            """)
            conn.execute(
                "INSERT OR REPLACE INTO callguard_meta (key, value) VALUES ('schema_version', ?)",
                (SCHEMA_VERSION,),
            )
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> Session:
        return Session(
            id                   = row['id'],
            started_at           = _parse_ts(row['started_at']),
            ended_at             = _parse_ts(row['ended_at']),
            is_active            = bool(row['is_active']),
            total_scams_detected = row['total_scams_detected'] or 0,
        )

    @staticmethod
    def _row_to_conversation(row: sqlite3.Row) -> Conversation:
        return Conversation(
            id            = row['id'],
            session_id    = row['session_id'],
            speaker       = row['speaker'],
            transcription = row['transcription'],
            timestamp     = _parse_ts(row['timestamp']),
            is_scam       = bool(row['is_scam']),
            confidence    = row['confidence'] or 0,
            scam_patterns = _load_list(row['scam_patterns']),
        )

    @staticmethod
    def _row_to_detection(row: sqlite3.Row) -> Detection:
        return Detection(
            id              = row['id'],
            conversation_id = row['conversation_id'],
            detected_at     = _parse_ts(row['detected_at']),
            scam_type       = row['scam_type'],
            patterns        = _load_list(row['patterns']) or [],
            confidence      = row['confidence'],
            analysis        = row['analysis'],
        )

    def _write(self, fn):
        """Run fn(conn) in one transaction under the process lock."""
        with self._lock:
            conn = self._connect()
            try:
                result = fn(conn)
                conn.commit()
                return result
            except Exception:
                conn.rollback()
                raise
            finally:
                conn.close()

    def _read(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        conn = self._connect()
        try:
            return conn.execute(sql, params).fetchall()
        finally:
            conn.close()

    # ── SESSIONS ─────────────────────────────────────────────
    def create_session(self) -> Session:
        def _create(conn: sqlite3.Connection) -> Session:
            now = self._clock()
            ended = conn.execute(
                "UPDATE sessions SET is_active = 0, ended_at = ? WHERE is_active = 1",
                (_ts(now),),
            ).rowcount
            if ended:
                logger.info(f"Ended {ended} active session(s) — superseded by a new session")
            session = Session(id=new_id(), started_at=now)
            conn.execute(
                "INSERT INTO sessions (id, started_at, ended_at, total_scams_detected, is_active) "
                "VALUES (?, ?, NULL, 0, 1)",
                (session.id, _ts(now)),
            )
            return session
        return self._write(_create)

    def get_session(self, session_id: str) -> Optional[Session]:
        rows = self._read("SELECT * FROM sessions WHERE id = ?", (session_id,))
        return self._row_to_session(rows[0]) if rows else None

    def end_session(self, session_id: str) -> None:
        def _end(conn: sqlite3.Connection) -> None:
            updated = conn.execute(
                "UPDATE sessions SET is_active = 0, ended_at = ? WHERE id = ?",
                (_ts(self._clock()), session_id),
            ).rowcount
            if not updated:
                logger.debug(f"end_session: unknown id {session_id} — ignored")
        self._write(_end)

    def get_active_session(self) -> Optional[Session]:
        rows = self._read(
            "SELECT * FROM sessions WHERE is_active = 1 ORDER BY started_at DESC LIMIT 1"
        )
        return self._row_to_session(rows[0]) if rows else None

    # ── CONVERSATIONS ────────────────────────────────────────
    def _insert_conversation(
        self,
        conn:          sqlite3.Connection,
        session_id:    str,
        speaker:       str,
        transcription: str,
        is_scam:       bool,
        confidence:    int,
        scam_patterns: Optional[List[str]],
    ) -> Conversation:
        if conn.execute("SELECT 1 FROM sessions WHERE id = ?", (session_id,)).fetchone() is None:
            raise UnknownSessionError(session_id)
        conversation = Conversation(
            id            = new_id(),
            session_id    = session_id,
            speaker       = speaker,
            transcription = transcription,
            timestamp     = self._clock(),
            is_scam       = is_scam,
            confidence    = confidence,
            scam_patterns = list(scam_patterns) if scam_patterns is not None else None,
        )
        conn.execute(
            "INSERT INTO conversations "
            "(id, session_id, speaker, transcription, timestamp, is_scam, confidence, scam_patterns) "
            "VALUES (?,?,?,?,?,?,?,?)",
            (
                conversation.id, session_id, speaker, transcription,
                _ts(conversation.timestamp), int(is_scam), confidence,
                json.dumps(conversation.scam_patterns)
                if conversation.scam_patterns is not None else None,
            ),
        )
        return conversation

    def create_conversation(
        self,
        session_id:    str,
        speaker:       str,
        transcription: str,
        is_scam:       bool                = False,
        confidence:    int                 = 0,
        scam_patterns: Optional[List[str]] = None,
    ) -> Conversation:
        return self._write(lambda conn: self._insert_conversation(
            conn, session_id, speaker, transcription, is_scam, confidence, scam_patterns
        ))

    def get_conversations_by_session(self, session_id: str) -> List[Conversation]:
        rows = self._read(
            "SELECT * FROM conversations WHERE session_id = ? ORDER BY timestamp ASC, rowid ASC",
            (session_id,),
        )
        return [self._row_to_conversation(r) for r in rows]

    # ── DETECTIONS ───────────────────────────────────────────
    def _insert_detection(
        self,
        conn:            sqlite3.Connection,
        conversation_id: Optional[str],
        scam_type:       str,
        patterns:        List[str],
        confidence:      int,
        analysis:        str,
    ) -> Detection:
        session_id = None
        if conversation_id is not None:
            row = conn.execute(
                "SELECT session_id FROM conversations WHERE id = ?", (conversation_id,)
            ).fetchone()
            if row is None:
                raise UnknownConversationError(conversation_id)
            session_id = row['session_id']
        detection = Detection(
            id              = new_id(),
            conversation_id = conversation_id,
            detected_at     = self._clock(),
            scam_type       = scam_type,
            patterns        = list(patterns),
            confidence      = confidence,
            analysis        = analysis,
        )
        conn.execute(
            "INSERT INTO scam_detections "
            "(id, conversation_id, detected_at, scam_type, patterns, confidence, analysis) "
            "VALUES (?,?,?,?,?,?,?)",
            (
                detection.id, conversation_id, _ts(detection.detected_at),
                scam_type, json.dumps(detection.patterns), confidence, analysis,
            ),
        )
        if session_id is not None:
            conn.execute(
                "UPDATE sessions SET total_scams_detected = total_scams_detected + 1 "
                "WHERE id = ?",
                (session_id,),
            )
        return detection

    def create_detection(
        self,
        conversation_id: Optional[str],
        scam_type:       str,
        patterns:        List[str],
        confidence:      int,
        analysis:        str,
    ) -> Detection:
        return self._write(lambda conn: self._insert_detection(
            conn, conversation_id, scam_type, patterns, confidence, analysis
        ))

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
        def _create(conn: sqlite3.Connection) -> Tuple[Conversation, Detection]:
            conversation = self._insert_conversation(
                conn, session_id, speaker, transcription, True, confidence, patterns
            )
            detection = self._insert_detection(
                conn, conversation.id, scam_type, patterns, confidence, analysis
            )
            return conversation, detection
        return self._write(_create)

    def get_recent_detections(self, limit: int = DEFAULT_RECENT_LIMIT) -> List[Detection]:
        if limit <= 0:
            return []
        rows = self._read(
            "SELECT * FROM scam_detections ORDER BY detected_at DESC, rowid DESC LIMIT ?",
            (int(limit),),
        )
        return [self._row_to_detection(r) for r in rows]
