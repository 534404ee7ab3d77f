"""
Custom endpoint provider.

Talks to a user-supplied translation service instead of a chat model:

    POST <endpoint>
    {"text": ..., "source_lang": "en", "target_lang": "zh", "expected_count": 3}

    200 {"translated_text": ...}
"""

from typing import Dict, Optional

import httpx

from epub_translator.config import REQUEST_TIMEOUT, SINGLE_FRAGMENT_TIMEOUT, BATCH_MAX_TOKENS
from ..base import LLMProvider, LLMResponse, estimate_tokens
from ..exceptions import MalformedResponseError


class CustomEndpointProvider(LLMProvider):
    """Provider for an arbitrary translation endpoint with a fixed JSON contract"""

    name = "custom"

    def __init__(self, endpoint: str, api_key: Optional[str] = None,
                 client: Optional[httpx.AsyncClient] = None):
        super().__init__(model=None, client=client)
        if not endpoint:
            raise ValueError("Custom provider requires an endpoint URL")
        self.endpoint = endpoint
        self.api_key = api_key

    def _build_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _request(self, text: str, source_lang: str, target_lang: str,
                       expected_count: int, timeout: float) -> LLMResponse:
        payload = {
            "text": text,
            "source_lang": source_lang,
            "target_lang": target_lang,
            "expected_count": expected_count,
        }
        data = await self._post_json(self.endpoint, payload, self._build_headers(), timeout)
        translated = data.get("translated_text")
        if not isinstance(translated, str) or not translated.strip():
            raise MalformedResponseError(
                "custom: response has no 'translated_text'", {'provider': self.name}
            )
        translated = translated.strip()
        return LLMResponse(
            content=translated,
            prompt_tokens=estimate_tokens(text),
            completion_tokens=estimate_tokens(translated),
            estimated=True,
        )

    async def generate(self, prompt: str, timeout: float = REQUEST_TIMEOUT,
                       system_prompt: Optional[str] = None,
                       max_tokens: int = BATCH_MAX_TOKENS) -> LLMResponse:
        # The endpoint is not a chat model; a free-form prompt is sent as one text
        return await self._request(prompt, "", "", 1, timeout)

    async def translate_batch(self, batch_text: str, source_lang: str, target_lang: str,
                              expected_count: int, timeout: float = REQUEST_TIMEOUT) -> LLMResponse:
        return await self._request(batch_text, source_lang, target_lang, expected_count, timeout)

    async def translate_single(self, text: str, source_lang: str, target_lang: str,
                               timeout: float = SINGLE_FRAGMENT_TIMEOUT) -> LLMResponse:
        return await self._request(text, source_lang, target_lang, 1, timeout)
