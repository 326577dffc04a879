"""
callguard/api.py
─────────────────────────────────────────────────────────────────────────────
CallGuard — service facade and HTTP layer

TWO USAGE MODES:
  1. Importable class:
         from callguard.api import CallGuardAPI
         api = CallGuardAPI(store=MemoryStore(), classifier=OllamaAdapter())
         session = api.start_session()
         result  = await api.analyze("SBI se bol raha hoon, OTP bataiye", session["id"])

  2. FastAPI HTTP server (browser dashboard via fetch()):
         callguard serve                          # default: 127.0.0.1:8765
         uvicorn callguard.api:app --port 8765

ENDPOINTS (under api_prefix, default /api):
  POST /sessions/start            — start a session (ends any active one)
  POST /sessions/end              — {sessionId} → {success: true}
  GET  /sessions/active           — active session or null
  GET  /sessions/{id}/stats       — {totalConversations, totalScams, protectionRate}
  POST /conversations/analyze     — {transcription, speaker, sessionId} → {conversation, analysis}
  GET  /conversations/{sessionId} — conversations, oldest first
  GET  /scam-detections/recent    — detections, newest first (?limit=N, default 10)
  GET  /health                    — (unprefixed) status + classifier availability

ERRORS:
  Every error body is {"error": "<message>"}. 400 for malformed bodies,
  too-short transcriptions and unknown sessions; 500 for everything else.

CORS: configured origins only (localhost by default).
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from callguard import __version__
from callguard.detectors.scam_detector import (
    DEFAULT_MIN_LENGTH,
    DEFAULT_SPEAKER,
    analyze_transcription,
)
from callguard.errors import UnknownSessionError
from callguard.llm.base import ClassifierAdapter
from callguard.storage.base import DEFAULT_RECENT_LIMIT, RecordStore

logger = logging.getLogger(__name__)


class TranscriptionTooShort(ValueError):
    pass


# ═══════════════════════════════════════════════════════════════════════════
# IMPORTABLE CLASS
# ═══════════════════════════════════════════════════════════════════════════

class CallGuardAPI:
    """
    Pure-Python facade over a RecordStore and a ClassifierAdapter.
    No HTTP layer required — import and call directly.
    All return values are wire-format dicts.
    """

    def __init__(
        self,
        store:      RecordStore,
        classifier: ClassifierAdapter,
        min_length: int = DEFAULT_MIN_LENGTH,
    ):
        self.store      = store
        self.classifier = classifier
        self.min_length = min_length

    # ── SESSIONS ──────────────────────────────────────────────────────────

    def start_session(self) -> Dict[str, Any]:
        session = self.store.create_session()
        logger.info(f"Session started: {session.id}")
        return session.to_dict()

    def end_session(self, session_id: str) -> Dict[str, Any]:
        self.store.end_session(session_id)
        logger.info(f"Session end requested: {session_id}")
        return {"success": True}

    def get_active_session(self) -> Optional[Dict[str, Any]]:
        session = self.store.get_active_session()
        return session.to_dict() if session else None

    def get_session_stats(self, session_id: str) -> Dict[str, Any]:
        return self.store.get_session_stats(session_id).to_dict()

    # ── CONVERSATIONS ─────────────────────────────────────────────────────

    async def analyze(
        self,
        transcription: str,
        session_id:    str,
        speaker:       str = DEFAULT_SPEAKER,
    ) -> Dict[str, Any]:
        """
        Classify and store one fragment.
        Raises TranscriptionTooShort or UnknownSessionError on bad input.
        """
        outcome = await analyze_transcription(
            text       = transcription,
            session_id = session_id,
            store      = self.store,
            classifier = self.classifier,
            speaker    = speaker,
            min_length = self.min_length,
        )
        if outcome is None:
            raise TranscriptionTooShort(
                f"Transcription must be at least {self.min_length} non-blank characters"
            )
        return outcome.to_dict()

    def get_conversations(self, session_id: str) -> List[Dict[str, Any]]:
        return [c.to_dict() for c in self.store.get_conversations_by_session(session_id)]

    # ── DETECTIONS ────────────────────────────────────────────────────────

    def get_recent_detections(self, limit: int = DEFAULT_RECENT_LIMIT) -> List[Dict[str, Any]]:
        return [d.to_dict() for d in self.store.get_recent_detections(limit)]

    # ── HEALTH ────────────────────────────────────────────────────────────

    def health(self) -> Dict[str, Any]:
        return {
            "status":              "ok",
            "storage":             type(self.store).__name__,
            "classifier":          type(self.classifier).__name__,
            "model":               getattr(self.classifier, "model", ""),
            "classifierAvailable": self.classifier.is_available(),
            "version":             __version__,
        }


# ═══════════════════════════════════════════════════════════════════════════
# FASTAPI HTTP APP
# ═══════════════════════════════════════════════════════════════════════════

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def _parse_limit(raw: Optional[str]) -> int:
    """Leading integer of the query value ("25", "25abc"); else the default."""
    match = _LEADING_INT.match(raw or "")
    limit = int(match.group(1)) if match else 0
    return limit if limit > 0 else DEFAULT_RECENT_LIMIT


class EndSessionRequest(BaseModel):
    sessionId: str


class AnalyzeRequest(BaseModel):
    transcription: str
    speaker:       str = DEFAULT_SPEAKER
    sessionId:     str


def _build_app(
    api:             CallGuardAPI,
    api_prefix:      str                 = "/api",
    allowed_origins: Optional[List[str]] = None,
) -> FastAPI:
    """Build the FastAPI application around an existing CallGuardAPI."""

    _app = FastAPI(
        title       = "CallGuard API",
        description = "Live call scam detection — session tracking and AI fraud classification",
        version     = __version__,
        docs_url    = "/docs",
        redoc_url   = None,
    )

    _app.add_middleware(
        CORSMiddleware,
        allow_origins     = allowed_origins or [],
        allow_methods     = ["GET", "POST", "OPTIONS"],
        allow_headers     = ["Content-Type"],
        allow_credentials = False,
    )

    # ── ERROR BODIES: {"error": "..."} ───────────────────────────────────

    @_app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @_app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.debug(f"Rejected malformed request to {request.url.path}: {exc.errors()}")
        return JSONResponse(status_code=400, content={"error": "Invalid request"})

    router = APIRouter()

    # ── SESSIONS ─────────────────────────────────────────────────────────

    @router.post("/sessions/start", summary="Start a monitoring session")
    def start_session():
        try:
            return api.start_session()
        except Exception as exc:
            logger.error(f"Start session failed: {exc}", exc_info=True)
            raise HTTPException(status_code=500, detail="Failed to start session")

    @router.post("/sessions/end", summary="End a monitoring session")
    def end_session(req: EndSessionRequest):
        """Unknown session ids are ignored."""
        try:
            return api.end_session(req.sessionId)
        except Exception as exc:
            logger.error(f"End session failed: {exc}", exc_info=True)
            raise HTTPException(status_code=500, detail="Failed to end session")

    @router.get("/sessions/active", summary="Get the active session")
    def get_active_session():
        try:
            return api.get_active_session()
        except Exception as exc:
            logger.error(f"Get active session failed: {exc}", exc_info=True)
            raise HTTPException(status_code=500, detail="Failed to get active session")

    @router.get("/sessions/{session_id}/stats", summary="Session statistics")
    def get_session_stats(session_id: str):
        try:
            return api.get_session_stats(session_id)
        except Exception as exc:
            logger.error(f"Session stats failed: {exc}", exc_info=True)
            raise HTTPException(status_code=500, detail="Failed to get session stats")

    # ── CONVERSATIONS ────────────────────────────────────────────────────

    @router.post("/conversations/analyze", summary="Analyze a transcription fragment")
    async def analyze_conversation(req: AnalyzeRequest):
        """
        Classifier outages do not fail this endpoint: the verdict falls back
        to isScam=false, confidence=0, scamType="none".
        """
        try:
            return await api.analyze(
                transcription = req.transcription,
                session_id    = req.sessionId,
                speaker       = req.speaker,
            )
        except (TranscriptionTooShort, UnknownSessionError) as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except Exception as exc:
            logger.error(f"Analysis error: {exc}", exc_info=True)
            raise HTTPException(status_code=500, detail="Failed to analyze conversation")

    @router.get("/conversations/{session_id}", summary="Conversations for a session")
    def get_conversations(session_id: str):
        try:
            return api.get_conversations(session_id)
        except Exception as exc:
            logger.error(f"Get conversations failed: {exc}", exc_info=True)
            raise HTTPException(status_code=500, detail="Failed to get conversations")

    # ── DETECTIONS ───────────────────────────────────────────────────────

    @router.get("/scam-detections/recent", summary="Most recent scam detections")
    def get_recent_detections(limit: Optional[str] = Query(None)):
        """Unparseable or non-positive limits fall back to the default of 10."""
        try:
            return api.get_recent_detections(_parse_limit(limit))
        except Exception as exc:
            logger.error(f"Get recent detections failed: {exc}", exc_info=True)
            raise HTTPException(status_code=500, detail="Failed to get recent detections")

    _app.include_router(router, prefix=api_prefix.rstrip("/"))

    @_app.get("/health", summary="Health check")
    def health():
        return api.health()

    return _app


def create_app(
    config:       Optional[Dict[str, Any]] = None,
    project_root: Optional[Path]           = None,
    store:        Optional[RecordStore]    = None,
    classifier:   Optional[ClassifierAdapter] = None,
) -> FastAPI:
    """
    Build the app from config (callguard_config.json + env when omitted).
    store / classifier override the configured ones.
    """
    from callguard.config import build_classifier, build_store, load_config, validate_config

    cfg = validate_config(config if config is not None else load_config(project_root))
    api = CallGuardAPI(
        store      = store if store is not None else build_store(cfg, project_root),
        classifier = classifier if classifier is not None else build_classifier(cfg),
        min_length = int(cfg["min_transcription_length"]),
    )
    return _build_app(
        api,
        api_prefix      = cfg.get("api_prefix", "/api"),
        allowed_origins = cfg.get("allowed_origins"),
    )


_default_app: Optional[FastAPI] = None


def __getattr__(name: str):
    # `uvicorn callguard.api:app` builds the configured app on first access;
    # importing the module reads no config and opens no store.
    global _default_app
    if name == "app":
        if _default_app is None:
            _default_app = create_app()
        return _default_app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
