"""
callguard/llm/ollama_adapter.py
Ollama backend adapter. Runs the classifier against a local Ollama server,
so transcriptions never leave the machine.
Supports any model pulled via `ollama pull <model>`.

RECOMMENDED MODELS (by VRAM/RAM):
  <4GB RAM:  phi3:mini, qwen2:1.5b
  4-8GB RAM: mistral:7b, llama3.1:8b
  8GB+ RAM:  llama3.1:8b-instruct (best multilingual results)
"""

import asyncio
import json
import logging
import urllib.error
import urllib.request
from typing import List, Optional

from callguard.llm.base import SYSTEM_PROMPT, ClassifierAdapter
from callguard.models.record import ScamAnalysis

logger = logging.getLogger(__name__)


class OllamaAdapter(ClassifierAdapter):

    def __init__(
        self,
        model:       str   = 'llama3.1:8b',
        host:        str   = 'http://localhost:11434',
        timeout_sec: int   = 60,
        temperature: float = 0.1,
    ):
        self.model       = model
        self.host        = host.rstrip('/')
        self.timeout_sec = timeout_sec
        self.temperature = temperature

    # ── AVAILABILITY CHECK ───────────────────────────────────
    def is_available(self) -> bool:
        """Ping Ollama and confirm the configured model is pulled."""
        try:
            models = self._fetch_tags()
        except urllib.error.URLError:
            logger.warning(
                "Ollama not reachable at " + self.host +
                ". Start Ollama or check if it's running."
            )
            return False
        except Exception as e:
            logger.warning(f"Ollama availability check failed: {e}")
            return False

        # Exact match or family match ("llama3.1" matches "llama3.1:8b")
        available = any(
            m == self.model or m.startswith(self.model.split(':')[0])
            for m in models
        )
        if not available:
            logger.warning(
                f"Model '{self.model}' not found in Ollama. "
                f"Available: {models}. "
                f"Run: ollama pull {self.model}"
            )
        return available

    # ── ANALYSIS ─────────────────────────────────────────────
    async def analyze(self, text: str) -> Optional[ScamAnalysis]:
        # urllib blocks; keep it off the event loop
        return await asyncio.to_thread(self._analyze_blocking, text)

    def _analyze_blocking(self, text: str) -> Optional[ScamAnalysis]:
        payload = json.dumps({
            'model':  self.model,
            'system': SYSTEM_PROMPT,
            'prompt': self.build_prompt(text),
            'stream': False,
            'options': {
                'temperature': self.temperature,
                'num_predict': 500,
            },
            'format': 'json',   # Ollama JSON mode — forces valid JSON output
        }).encode('utf-8')

        try:
            req = urllib.request.Request(
                f"{self.host}/api/generate",
                data    = payload,
                headers = {'Content-Type': 'application/json'},
                method  = 'POST',
            )
            with urllib.request.urlopen(req, timeout=self.timeout_sec) as resp:
                data = json.loads(resp.read().decode('utf-8'))

            response_text = data.get('response', '').strip()
            return self.parse_response(response_text)

        except urllib.error.URLError as e:
            logger.error(f"Ollama request failed: {e}")
            return None
        except json.JSONDecodeError as e:
            logger.error(f"JSON decode failed in Ollama response: {e}")
            return None
        except Exception as e:
            logger.error(f"Ollama analyze error: {e}")
            return None

    # ── MODEL MANAGEMENT HELPERS ─────────────────────────────
    def list_available_models(self) -> List[str]:
        """Return list of locally available Ollama model names."""
        try:
            return self._fetch_tags()
        except Exception as e:
            logger.debug(f"Could not list Ollama models: {e}")
            return []

    def _fetch_tags(self) -> List[str]:
        req = urllib.request.Request(f"{self.host}/api/tags", method='GET')
        with urllib.request.urlopen(req, timeout=5) as resp:
            data = json.loads(resp.read().decode())
        return [m['name'] for m in data.get('models', [])]
