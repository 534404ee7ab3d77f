"""
OpenRouter provider implementation.

OpenRouter is an aggregator with an OpenAI-style API; it asks callers to
identify themselves with ``HTTP-Referer`` and ``X-Title`` headers.
"""

from typing import Dict, Optional

import httpx

from epub_translator.config import OPENROUTER_API_ENDPOINT, OPENROUTER_MODEL, LLM_TEMPERATURE
from ..base import ChatCompletionsProvider


class OpenRouterProvider(ChatCompletionsProvider):
    """
    Provider for OpenRouter API.

    Configuration:
        endpoint: https://openrouter.ai/api/v1/chat/completions
        model: Model identifier (default: deepseek/deepseek-chat)
        api_key: OpenRouter API key
    """

    name = "openrouter"

    REFERER = "https://github.com/epub-translator/epub-translator"
    TITLE = "EPUB Translator"

    def __init__(self, api_key: str, model: Optional[str] = None, api_url: Optional[str] = None,
                 client: Optional[httpx.AsyncClient] = None):
        super().__init__(
            api_key=api_key,
            model=model or OPENROUTER_MODEL,
            api_url=api_url or OPENROUTER_API_ENDPOINT,
            temperature=LLM_TEMPERATURE,
            client=client,
        )

    def _build_headers(self) -> Dict[str, str]:
        headers = super()._build_headers()
        headers["HTTP-Referer"] = self.REFERER
        headers["X-Title"] = self.TITLE
        return headers
