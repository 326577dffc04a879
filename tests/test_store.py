"""
tests/test_store.py
Record store contract — run against both MemoryStore and SqliteStore.

Coverage:
  - Sessions: create / active lookup / end / unknown-id no-op
  - Single active session: a new session supersedes the old one, also
    under 20 parallel starts
  - Conversations: ordering, unknown-session rejection, returned copies
  - Scam conversation + detection written together or not at all
  - Detections: recent ordering + limit, unknown-conversation rejection,
    session scam counter
  - Stats: empty session, mixed verdicts, half-up rounding
  - SqliteStore: records survive reopening the file
"""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from callguard.errors import UnknownConversationError, UnknownSessionError
from callguard.storage import MemoryStore, SqliteStore, protection_rate


# ── HELPERS ──────────────────────────────────────────────────────────────────

class FakeClock:
    """Advances one second per call so every record has a distinct time."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


class FailingClock(FakeClock):
    def __init__(self, fail_on_call: int):
        super().__init__()
        self.calls = 0
        self.fail_on_call = fail_on_call

    def __call__(self) -> datetime:
        self.calls += 1
        if self.calls == self.fail_on_call:
            raise RuntimeError("clock failure")
        return super().__call__()


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    clock = FakeClock()
    if request.param == "memory":
        return MemoryStore(clock=clock)
    return SqliteStore(db_path=tmp_path / "callguard.db", clock=clock)


def _conversation(store, session_id, is_scam=False, confidence=0, text="Hello there, friend"):
    return store.create_conversation(
        session_id    = session_id,
        speaker       = "Caller",
        transcription = text,
        is_scam       = is_scam,
        confidence    = confidence,
        scam_patterns = ["OTP request"] if is_scam else [],
    )


# ── TESTS: SESSIONS ──────────────────────────────────────────────────────────

class TestSessions:
    def test_new_session_is_active_with_zero_scams(self, store):
        session = store.create_session()
        assert session.is_active is True
        assert session.ended_at is None
        assert session.total_scams_detected == 0

    def test_active_session_is_the_one_just_created(self, store):
        session = store.create_session()
        active = store.get_active_session()
        assert active is not None
        assert active.id == session.id

    def test_no_active_session_initially(self, store):
        assert store.get_active_session() is None

    def test_end_session_marks_inactive_and_stamps_end(self, store):
        session = store.create_session()
        store.end_session(session.id)
        ended = store.get_session(session.id)
        assert ended.is_active is False
        assert ended.ended_at is not None
        assert ended.ended_at > ended.started_at
        assert store.get_active_session() is None

    def test_end_unknown_session_is_noop(self, store):
        session = store.create_session()
        store.end_session("does-not-exist")
        unchanged = store.get_session(session.id)
        assert unchanged.is_active is True
        assert unchanged.ended_at is None

    def test_ids_are_unique(self, store):
        ids = {store.create_session().id for _ in range(5)}
        assert len(ids) == 5

    def test_new_session_supersedes_active_one(self, store):
        first = store.create_session()
        second = store.create_session()
        assert store.get_active_session().id == second.id
        old = store.get_session(first.id)
        assert old.is_active is False
        assert old.ended_at is not None

    def test_get_unknown_session_returns_none(self, store):
        assert store.get_session("nope") is None


class TestConcurrentSessionStart:
    def test_parallel_starts_leave_one_active(self, store):
        created = []
        threads = [
            threading.Thread(target=lambda: created.append(store.create_session()))
            for _ in range(20)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(created) == 20
        active = [s.id for s in created if store.get_session(s.id).is_active]
        assert len(active) == 1
        assert store.get_active_session().id == active[0]


# ── TESTS: CONVERSATIONS ─────────────────────────────────────────────────────

class TestConversations:
    def test_create_assigns_id_and_timestamp(self, store):
        session = store.create_session()
        conv = _conversation(store, session.id)
        assert conv.id
        assert conv.timestamp is not None
        assert conv.session_id == session.id

    def test_unknown_session_rejected(self, store):
        with pytest.raises(UnknownSessionError):
            _conversation(store, "ghost-session")

    def test_listed_oldest_first(self, store):
        session = store.create_session()
        created = [_conversation(store, session.id, text=f"message number {i}") for i in range(4)]
        listed = store.get_conversations_by_session(session.id)
        assert [c.id for c in listed] == [c.id for c in created]
        times = [c.timestamp for c in listed]
        assert times == sorted(times)

    def test_only_requested_session_listed(self, store):
        s1 = store.create_session()
        _conversation(store, s1.id)
        s2 = store.create_session()
        _conversation(store, s2.id)
        _conversation(store, s2.id)
        assert len(store.get_conversations_by_session(s1.id)) == 1
        assert len(store.get_conversations_by_session(s2.id)) == 2

    def test_fields_stored_verbatim(self, store):
        session = store.create_session()
        conv = _conversation(store, session.id, is_scam=True, confidence=85, text="OTP batayein jaldi")
        listed = store.get_conversations_by_session(session.id)[0]
        assert listed.transcription == "OTP batayein jaldi"
        assert listed.is_scam is True
        assert listed.confidence == 85
        assert listed.scam_patterns == ["OTP request"]
        assert listed.id == conv.id

    def test_returned_records_are_copies(self, store):
        session = store.create_session()
        conv = _conversation(store, session.id, is_scam=True, confidence=60)
        conv.is_scam = False
        conv.scam_patterns.append("tampered")
        listed = store.get_conversations_by_session(session.id)
        listed[0].confidence = 0
        stored = store.get_conversations_by_session(session.id)[0]
        assert stored.is_scam is True
        assert stored.confidence == 60
        assert stored.scam_patterns == ["OTP request"]
        assert store.get_session_stats(session.id).total_scams == 1

    def test_none_patterns_preserved(self, store):
        session = store.create_session()
        store.create_conversation(session.id, "You", "just a normal chat here")
        assert store.get_conversations_by_session(session.id)[0].scam_patterns is None


# ── TESTS: DETECTIONS ────────────────────────────────────────────────────────

class TestDetections:
    def test_detection_links_conversation(self, store):
        session = store.create_session()
        conv = _conversation(store, session.id, is_scam=True, confidence=85)
        det = store.create_detection(conv.id, "Bank impersonation", ["OTP request"], 85, "asks for OTP")
        assert det.conversation_id == conv.id
        assert det.detected_at is not None
        assert store.get_recent_detections()[0].id == det.id

    def test_detection_bumps_session_counter(self, store):
        session = store.create_session()
        for _ in range(3):
            conv = _conversation(store, session.id, is_scam=True, confidence=90)
            store.create_detection(conv.id, "Lottery scam", [], 90, "prize fee")
        assert store.get_session(session.id).total_scams_detected == 3

    def test_unknown_conversation_rejected(self, store):
        with pytest.raises(UnknownConversationError):
            store.create_detection("ghost", "x", [], 50, "y")

    def test_detection_without_conversation_allowed(self, store):
        det = store.create_detection(None, "Tech support scam", ["remote access"], 70, "manual")
        assert det.conversation_id is None
        assert store.get_recent_detections()[0].patterns == ["remote access"]

    def test_returned_detections_are_copies(self, store):
        det = store.create_detection(None, "Lottery scam", ["prize fee"], 80, "a")
        det.confidence = 1
        det.patterns.append("tampered")
        store.get_recent_detections()[0].scam_type = "none"
        stored = store.get_recent_detections()[0]
        assert stored.confidence == 80
        assert stored.patterns == ["prize fee"]
        assert stored.scam_type == "Lottery scam"

    def test_recent_newest_first(self, store):
        for i in range(5):
            store.create_detection(None, f"type-{i}", [], 50, "a")
        recent = store.get_recent_detections()
        times = [d.detected_at for d in recent]
        assert all(a > b for a, b in zip(times, times[1:]))
        assert recent[0].scam_type == "type-4"

    def test_recent_default_limit_10(self, store):
        for i in range(15):
            store.create_detection(None, "x", [], 50, "a")
        assert len(store.get_recent_detections()) == 10

    def test_recent_limit_respected(self, store):
        for i in range(6):
            store.create_detection(None, "x", [], 50, "a")
        assert len(store.get_recent_detections(limit=3)) == 3
        assert store.get_recent_detections(limit=0) == []


class TestConversationWithDetection:
    def test_writes_both_records(self, store):
        session = store.create_session()
        conv, det = store.create_conversation_with_detection(
            session.id, "Caller", "KBC lottery jeeta hai, fee bhejo", 90,
            ["lottery win"], "Lottery scam", "prize fee demanded",
        )
        assert conv.is_scam is True
        assert conv.scam_patterns == ["lottery win"]
        assert det.conversation_id == conv.id
        assert store.get_recent_detections()[0].id == det.id
        assert store.get_session(session.id).total_scams_detected == 1

    def test_unknown_session_writes_nothing(self, store):
        with pytest.raises(UnknownSessionError):
            store.create_conversation_with_detection("ghost", "Caller", "x" * 20, 90, [], "x", "y")
        assert store.get_recent_detections() == []

    @pytest.mark.parametrize("backend", ["memory", "sqlite"])
    def test_failure_mid_write_leaves_no_conversation(self, backend, tmp_path):
        # Clock calls: session start, conversation timestamp, detection time
        clock = FailingClock(fail_on_call=3)
        if backend == "memory":
            store = MemoryStore(clock=clock)
        else:
            store = SqliteStore(db_path=tmp_path / "callguard.db", clock=clock)
        session = store.create_session()
        with pytest.raises(RuntimeError):
            store.create_conversation_with_detection(
                session.id, "Caller", "CVV number bataiye", 85, ["CVV request"], "Card fraud", "z",
            )
        assert store.get_conversations_by_session(session.id) == []
        assert store.get_recent_detections() == []
        assert store.get_session(session.id).total_scams_detected == 0


# ── TESTS: STATS ─────────────────────────────────────────────────────────────

class TestSessionStats:
    def test_empty_session_is_fully_protected(self, store):
        session = store.create_session()
        stats = store.get_session_stats(session.id)
        assert stats.total_conversations == 0
        assert stats.total_scams == 0
        assert stats.protection_rate == 100.0

    def test_unknown_session_is_fully_protected(self, store):
        assert store.get_session_stats("unknown").protection_rate == 100.0

    def test_mixed_verdicts(self, store):
        session = store.create_session()
        _conversation(store, session.id, is_scam=True, confidence=80)
        _conversation(store, session.id)
        _conversation(store, session.id)
        stats = store.get_session_stats(session.id)
        assert stats.total_conversations == 3
        assert stats.total_scams == 1
        assert stats.protection_rate == 66.7

    def test_rate_stays_in_bounds(self, store):
        session = store.create_session()
        for _ in range(4):
            _conversation(store, session.id, is_scam=True, confidence=99)
        stats = store.get_session_stats(session.id)
        assert 0.0 <= stats.protection_rate <= 100.0
        assert stats.protection_rate == 0.0


class TestProtectionRate:
    def test_rounds_half_up(self):
        # 6.25 → 6.3; round() would give 6.2
        assert protection_rate(16, 1) == 93.8
        assert protection_rate(16, 15) == 6.3

    def test_zero_total(self):
        assert protection_rate(0, 0) == 100.0


# ── TESTS: SQLITE DURABILITY ─────────────────────────────────────────────────

class TestSqliteDurability:
    def test_records_survive_reopen(self, tmp_path):
        db = tmp_path / "durable.db"
        first = SqliteStore(db_path=db, clock=FakeClock())
        session = first.create_session()
        conv = _conversation(first, session.id, is_scam=True, confidence=77)
        first.create_detection(conv.id, "KYC scam", ["KYC update"], 77, "fake KYC")

        reopened = SqliteStore(db_path=db)
        assert reopened.get_active_session().id == session.id
        assert [c.id for c in reopened.get_conversations_by_session(session.id)] == [conv.id]
        recent = reopened.get_recent_detections()
        assert recent[0].patterns == ["KYC update"]
        assert reopened.get_session(session.id).total_scams_detected == 1
