"""
Zhipu GLM provider implementation.

Zhipu exposes an OpenAI-style ``chat/completions`` endpoint under a
configurable base URL.
"""

from typing import Optional

import httpx

from epub_translator.config import ZHIPU_API_ENDPOINT, ZHIPU_MODEL, LLM_TEMPERATURE
from ..base import ChatCompletionsProvider


class ZhipuProvider(ChatCompletionsProvider):
    """
    Provider for the Zhipu GLM API.

    Configuration:
        base_url: https://open.bigmodel.cn/api/paas/v4/ ("chat/completions" is appended)
        model: Model identifier (default: glm-4-flash)
        api_key: Zhipu API key
    """

    name = "zhipu"

    def __init__(self, api_key: str, model: Optional[str] = None, base_url: Optional[str] = None,
                 client: Optional[httpx.AsyncClient] = None):
        base_url = base_url or ZHIPU_API_ENDPOINT
        if not base_url.endswith('/'):
            base_url += '/'
        super().__init__(
            api_key=api_key,
            model=model or ZHIPU_MODEL,
            api_url=f"{base_url}chat/completions",
            temperature=LLM_TEMPERATURE,
            client=client,
        )
