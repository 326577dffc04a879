"""
callguard/alerts.py
Display policy for verdicts. Presentation only — nothing here changes what
the orchestrator stores.

Tiers:
  BLOCK  scam verdict, confidence above block_threshold
  WARN   scam verdict, confidence in [warn_threshold, block_threshold]
  NONE   everything else
"""

from callguard.models.record import ScamAnalysis

ALERT_BLOCK = 'BLOCK'
ALERT_WARN  = 'WARN'
ALERT_NONE  = 'NONE'

DEFAULT_BLOCK_THRESHOLD = 60
DEFAULT_WARN_THRESHOLD  = 30


def alert_level(
    analysis:        ScamAnalysis,
    block_threshold: int = DEFAULT_BLOCK_THRESHOLD,
    warn_threshold:  int = DEFAULT_WARN_THRESHOLD,
) -> str:
    if not analysis.is_scam:
        return ALERT_NONE
    if analysis.confidence > block_threshold:
        return ALERT_BLOCK
    if analysis.confidence >= warn_threshold:
        return ALERT_WARN
    return ALERT_NONE


def badge_color(confidence: int) -> str:
    """Color for a detection in the recent-alerts list."""
    if confidence >= 80:
        return 'red'
    if confidence >= 50:
        return 'yellow'
    return 'blue'
