"""
callguard/detectors/scam_detector.py
Analysis orchestrator. Takes one transcribed fragment, asks the classifier
for a verdict, stores the conversation and (for scams) a detection.

Classifier failure never reaches the caller: a None result or any exception
from the adapter becomes the safe negative verdict.

Privacy: transcription text is never logged. Ids, lengths and verdicts only.
"""

import logging
from typing import Optional

from callguard.errors import UnknownSessionError
from callguard.llm.base import ClassifierAdapter, clamp_confidence
from callguard.models.record import AnalysisOutcome, ScamAnalysis
from callguard.storage.base import RecordStore

logger = logging.getLogger(__name__)

DEFAULT_MIN_LENGTH = 10
DEFAULT_SPEAKER = 'Caller'

FALLBACK_ANALYSIS = "Unable to analyze due to service error"


def safe_verdict(reason: str = FALLBACK_ANALYSIS) -> ScamAnalysis:
    """Negative verdict used whenever the classifier cannot answer."""
    return ScamAnalysis(
        is_scam    = False,
        confidence = 0,
        scam_type  = 'none',
        patterns   = [],
        analysis   = reason,
        model_used = 'fallback',
    )


def is_analyzable(text: Optional[str], min_length: int = DEFAULT_MIN_LENGTH) -> bool:
    """Blank fragments and fragments under min_length characters are skipped."""
    if not text or not text.strip():
        return False
    return len(text) >= min_length


async def classify(classifier: ClassifierAdapter, text: str) -> ScamAnalysis:
    """Await the classifier; never raises."""
    try:
        verdict = await classifier.analyze(text)
    except Exception as e:
        logger.error(f"Classifier raised {type(e).__name__}: {e} — using safe verdict")
        return safe_verdict()

    if verdict is None:
        logger.warning("Classifier returned None — using safe verdict")
        return safe_verdict()

    verdict.confidence = clamp_confidence(verdict.confidence)
    return verdict


async def analyze_transcription(
    text:       str,
    session_id: str,
    store:      RecordStore,
    classifier: ClassifierAdapter,
    speaker:    str = DEFAULT_SPEAKER,
    min_length: int = DEFAULT_MIN_LENGTH,
) -> Optional[AnalysisOutcome]:
    """
    Analyze one fragment and persist the result.

    Returns None (no classifier call, no writes) for fragments that are too
    short. Raises UnknownSessionError before any classifier call when the
    session does not exist.
    """
    if not is_analyzable(text, min_length):
        logger.debug(f"Skipping fragment of {len(text or '')} chars (min {min_length})")
        return None

    if store.get_session(session_id) is None:
        raise UnknownSessionError(session_id)

    analysis = await classify(classifier, text)

    detection = None
    if analysis.is_scam:
        conversation, detection = store.create_conversation_with_detection(
            session_id    = session_id,
            speaker       = speaker or DEFAULT_SPEAKER,
            transcription = text,
            confidence    = analysis.confidence,
            patterns      = analysis.patterns,
            scam_type     = analysis.scam_type,
            analysis      = analysis.analysis,
        )
    else:
        conversation = store.create_conversation(
            session_id    = session_id,
            speaker       = speaker or DEFAULT_SPEAKER,
            transcription = text,
            is_scam       = False,
            confidence    = analysis.confidence,
            scam_patterns = analysis.patterns,
        )

    logger.info(
        f"Analyzed conversation {conversation.id} | session={session_id} "
        f"chars={len(text)} is_scam={analysis.is_scam} confidence={analysis.confidence}"
        + (f" detection={detection.id}" if detection else "")
    )
    return AnalysisOutcome(conversation=conversation, analysis=analysis, detection=detection)
