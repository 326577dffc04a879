"""
callguard/llm/base.py
Abstract base class for all classifier adapters.
To add a new backend: subclass ClassifierAdapter and implement analyze().
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from callguard.models.record import ScamAnalysis

logger = logging.getLogger(__name__)

MAX_PROMPT_CHARS = 4000

SYSTEM_PROMPT = """You are an advanced multilingual fraud and scam detection system. Analyze conversations in Hindi, English, and other Indian languages to detect scams and fraudulent activity.

FRAUD PATTERNS TO DETECT:

1. BANKING & FINANCIAL FRAUD:
- Bank impersonation (SBI, HDFC, ICICI, etc.)
- Credit/Debit card details theft
- CVV, PIN, OTP requests
- Fake security deposits
- Account blocking threats

2. IDENTITY & DATA THEFT:
- Aadhaar number requests
- PAN card details
- Personal information phishing
- KYC verification scams

3. LOTTERY & PRIZE SCAMS:
- KBC (Kaun Banega Crorepati) fake winners
- Lucky draw scams
- Lottery winning claims
- Prize money requests with fees

4. TECH SUPPORT SCAMS:
- Microsoft/Google impersonation
- Computer virus claims
- Software download requests
- Remote access demands

5. GOVERNMENT IMPERSONATION:
- Tax department calls
- Legal action threats
- Customs/police impersonation
- Subsidy/benefit scams

6. EMERGENCY SCAMS:
- Family member in trouble
- Medical emergency money requests
- Accident/hospital scams

HINDI EXAMPLES:
- "SBI बैंक से बोल रहा हूँ" = Bank impersonation
- "₹5000 डिपॉज़िट चाहिए" = Money demand
- "तुरंत पेमेंट करें" = Urgency pressure
- "लकी ड्रॉ में जीता है" = Lottery scam
- "OTP बताएं" = OTP theft
- "CVV नंबर दें" = Card fraud

Detect scam patterns in Hindi, English, Bengali, Tamil, Telugu, Marathi, Gujarati, and other Indian languages.

Respond ONLY with a valid JSON object. No markdown, no explanation.

{
  "isScam": true or false,
  "confidence": integer 0-100,
  "scamType": "type of scam, or \\"none\\" if not a scam",
  "patterns": ["suspicious phrases or patterns detected"],
  "analysis": "explanation of why this is or isn't a scam"
}"""


class ClassifierAdapter(ABC):
    """
    All classifier backends implement this interface.
    The orchestrator awaits analyze() and gets back a ScamAnalysis.
    The caller never knows which backend is running.
    """

    model: str = ''

    @abstractmethod
    def is_available(self) -> bool:
        """
        Returns True if the backend is reachable and ready.
        Used by the health endpoint; analysis does not depend on it.
        """
        ...

    @abstractmethod
    async def analyze(self, text: str) -> Optional[ScamAnalysis]:
        """
        Classify one transcription fragment.
        Returns None on API failure — caller falls back to the safe verdict.
        Never raises — catch internally and return None.
        """
        ...

    def build_prompt(self, text: str) -> str:
        """User turn shared by all adapters. SYSTEM_PROMPT carries the taxonomy."""
        return (
            "Analyze this conversation for scam or fraud patterns. "
            "Detect patterns in Hindi, English, and other Indian languages:\n\n"
            f"{text[:MAX_PROMPT_CHARS]}"
        )

    def parse_response(self, text: str) -> Optional[ScamAnalysis]:
        """
        Parse the model's JSON reply into a ScamAnalysis.
        Handles models that add markdown fences despite JSON mode.
        """
        try:
            clean = (text or '').strip()
            if clean.startswith('```'):
                clean = clean.split('```')[1]
                if clean.startswith('json'):
                    clean = clean[4:]
            clean = clean.strip()

            data = json.loads(clean)
            if not isinstance(data, dict):
                raise TypeError(f"expected JSON object, got {type(data).__name__}")

            patterns = data.get('patterns') or []
            if not isinstance(patterns, list):
                patterns = []

            return ScamAnalysis(
                is_scam      = _as_bool(data.get('isScam', False)),
                confidence   = clamp_confidence(data.get('confidence', 0)),
                scam_type    = str(data.get('scamType') or 'none')[:200],
                patterns     = [p for p in patterns if isinstance(p, str)][:20],
                analysis     = str(data.get('analysis', ''))[:2000],
                model_used   = self.model,
                raw_response = text[:500],
            )
        except (json.JSONDecodeError, KeyError, TypeError, IndexError) as e:
            logger.warning(f"Could not parse classifier response: {e}")
            return None


def clamp_confidence(value: Any) -> int:
    """
    Coerce a model-reported confidence to an int in [0, 100].
    Fractions in (0, 1) are read as probabilities.
    """
    try:
        num = float(value)
    except (TypeError, ValueError):
        return 0
    if num != num:  # NaN
        return 0
    if 0 < num < 1:
        num *= 100
    return int(round(min(max(num, 0.0), 100.0)))


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('true', 'yes', '1')
    return bool(value)
