"""
callguard/llm — classifier adapters (text in, ScamAnalysis out).
"""

from callguard.llm.base import ClassifierAdapter, clamp_confidence
from callguard.llm.ollama_adapter import OllamaAdapter
from callguard.llm.openai_adapter import OpenAIAdapter

__all__ = [
    "ClassifierAdapter",
    "OllamaAdapter",
    "OpenAIAdapter",
    "clamp_confidence",
]
