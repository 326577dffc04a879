"""
callguard/llm/openai_adapter.py
Hosted backend adapter using the OpenAI SDK (chat completions, JSON mode).
Also works with any OpenAI-compatible endpoint via openai_base_url.

The API key is read from OPENAI_API_KEY unless passed explicitly.
"""

import logging
import os
from typing import Optional

from openai import AsyncOpenAI, OpenAIError

from callguard.llm.base import SYSTEM_PROMPT, ClassifierAdapter
from callguard.models.record import ScamAnalysis

logger = logging.getLogger(__name__)


class OpenAIAdapter(ClassifierAdapter):

    def __init__(
        self,
        model:       str           = 'gpt-4o-mini',
        api_key:     Optional[str] = None,
        base_url:    Optional[str] = None,
        timeout_sec: int           = 60,
        temperature: float         = 0.1,
        client:      Optional[AsyncOpenAI] = None,
    ):
        self.model       = model
        self.api_key     = api_key or os.getenv('OPENAI_API_KEY', '')
        self.base_url    = base_url
        self.timeout_sec = timeout_sec
        self.temperature = temperature
        self._client     = client

    def is_available(self) -> bool:
        """No network ping — a configured key is the only local precondition."""
        if self._client is not None:
            return True
        if not self.api_key:
            logger.warning("OPENAI_API_KEY is not set — hosted classifier unavailable.")
            return False
        return True

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key  = self.api_key,
                base_url = self.base_url,
                timeout  = self.timeout_sec,
            )
        return self._client

    async def analyze(self, text: str) -> Optional[ScamAnalysis]:
        try:
            response = await self._get_client().chat.completions.create(
                model       = self.model,
                messages    = [
                    {'role': 'system', 'content': SYSTEM_PROMPT},
                    {'role': 'user',   'content': self.build_prompt(text)},
                ],
                temperature     = self.temperature,
                response_format = {'type': 'json_object'},
            )
        except OpenAIError as e:
            logger.error(f"OpenAI request failed: {e}")
            return None
        except Exception as e:
            logger.error(f"OpenAI analyze error: {e}")
            return None

        if not response.choices:
            logger.error("OpenAI returned no choices")
            return None
        content = response.choices[0].message.content
        if not content:
            logger.error("Empty response from model")
            return None
        return self.parse_response(content)
