"""
Base classes and data structures for LLM providers.

This module defines the abstract base class that all backend adapters
implement, as well as common data structures like LLMResponse. Transport
failures are converted here into the typed errors of
``epub_translator.core.llm.exceptions``.
"""

import math
import re
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from epub_translator.config import (
    REQUEST_TIMEOUT, SINGLE_FRAGMENT_TIMEOUT, BATCH_MAX_TOKENS, SINGLE_MAX_TOKENS,
)
from epub_translator.core.llm.exceptions import (
    LLMAuthenticationError, LLMRateLimitOrServerError, LLMTimeoutError,
    LLMConnectionError, MalformedResponseError,
)
from epub_translator.core.llm.prompts import BATCH_SYSTEM_PROMPT, build_batch_prompt, build_single_prompt
from epub_translator.utils.llm_logger import log_llm_interaction

logger = logging.getLogger(__name__)

_CJK_RE = re.compile(r'[一-龥]')


def estimate_tokens(text: str) -> int:
    """Rough token count: about 1.5 chars per token for Chinese, 4 for everything else."""
    if not text:
        return 0
    cjk = len(_CJK_RE.findall(text))
    return math.ceil(cjk / 1.5 + (len(text) - cjk) / 4)


@dataclass
class LLMResponse:
    """Response from a backend with token usage information"""
    content: str
    prompt_tokens: int = 0  # Number of tokens in the prompt
    completion_tokens: int = 0  # Number of tokens in the response
    estimated: bool = False  # True when the backend reported no usage


class LLMProvider(ABC):
    """Abstract base class for backend adapters"""

    name = "base"

    def __init__(self, model: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        """
        Initialize the provider.

        Args:
            model: Model name/identifier, when the backend has one
            client: Pre-built HTTP client (tests inject one with a MockTransport)
        """
        self.model = model
        self._client = client
        self._owns_client = client is None
        self.request_count = 0

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create a persistent HTTP client with connection pooling"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=20),
                timeout=httpx.Timeout(REQUEST_TIMEOUT),
            )
        return self._client

    async def close(self):
        """Close the HTTP client"""
        if self._client and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def _post_json(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Dict[str, str],
        timeout: float,
    ) -> Dict[str, Any]:
        """POST a JSON payload and return the decoded JSON body.

        Raises:
            LLMAuthenticationError: HTTP 401
            LLMRateLimitOrServerError: any other non-success status
            LLMTimeoutError: the request exceeded ``timeout``
            LLMConnectionError: the backend could not be reached
            MalformedResponseError: the body is not a JSON object
        """
        client = await self._get_client()
        self.request_count += 1
        context = {'provider': self.name}
        try:
            response = await client.post(url, headers=headers, json=payload, timeout=timeout)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise LLMTimeoutError(f"Request timed out after {timeout}s", context) from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            detail = _error_detail(e.response)
            if status == 401:
                raise LLMAuthenticationError(
                    f"{self.name}: API key is invalid or expired, check your credentials", context
                ) from e
            raise LLMRateLimitOrServerError(
                f"{self.name} API call failed: {status} - {detail}", status, context
            ) from e
        except httpx.RequestError as e:
            raise LLMConnectionError(f"{self.name}: connection failed: {e}", context) from e

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError(
                f"{self.name}: response is not valid JSON: {response.text[:200]}", context
            ) from e
        if not isinstance(data, dict):
            raise MalformedResponseError(f"{self.name}: unexpected response shape: {type(data).__name__}", context)
        return data

    @abstractmethod
    async def generate(self, prompt: str, timeout: float = REQUEST_TIMEOUT,
                       system_prompt: Optional[str] = None,
                       max_tokens: int = BATCH_MAX_TOKENS) -> LLMResponse:
        """
        Generate text from prompt.

        Args:
            prompt: The user prompt (content to process)
            timeout: Request timeout in seconds
            system_prompt: Optional system prompt (role/instructions)
            max_tokens: Completion size cap

        Returns:
            LLMResponse with non-empty content

        Raises:
            LLMError subclasses on any failure
        """

    async def translate_batch(self, batch_text: str, source_lang: str, target_lang: str,
                              expected_count: int, timeout: float = REQUEST_TIMEOUT) -> LLMResponse:
        """Translate ``expected_count`` paragraphs joined by blank lines."""
        prompt = build_batch_prompt(batch_text, source_lang, target_lang, expected_count)
        response = await self.generate(prompt, timeout=timeout, system_prompt=BATCH_SYSTEM_PROMPT,
                                       max_tokens=BATCH_MAX_TOKENS)
        log_llm_interaction(BATCH_SYSTEM_PROMPT, prompt, response.content, interaction_type="batch")
        return response

    async def translate_single(self, text: str, source_lang: str, target_lang: str,
                               timeout: float = SINGLE_FRAGMENT_TIMEOUT) -> LLMResponse:
        """Translate one fragment on its own (used for the unresolved-fragment pass)."""
        prompt = build_single_prompt(text, source_lang, target_lang)
        response = await self.generate(prompt, timeout=timeout, max_tokens=SINGLE_MAX_TOKENS)
        log_llm_interaction(None, prompt, response.content, interaction_type="single fragment")
        return response


class ChatCompletionsProvider(LLMProvider):
    """Shared logic for OpenAI-style ``chat/completions`` gateways"""

    api_url = ""

    def __init__(self, api_key: str, model: str, api_url: Optional[str] = None,
                 temperature: float = 0.3, client: Optional[httpx.AsyncClient] = None):
        super().__init__(model, client)
        self.api_key = api_key
        if api_url:
            self.api_url = api_url
        self.temperature = temperature

    def _build_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def generate(self, prompt: str, timeout: float = REQUEST_TIMEOUT,
                       system_prompt: Optional[str] = None,
                       max_tokens: int = BATCH_MAX_TOKENS) -> LLMResponse:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": max_tokens,
            "stream": False,
        }
        data = await self._post_json(self.api_url, payload, self._build_headers(), timeout)

        choices = data.get("choices") or []
        if not choices:
            raise MalformedResponseError(f"{self.name}: response has no choices", {'provider': self.name})
        content = ((choices[0] or {}).get("message") or {}).get("content") or ""
        content = content.strip()
        if not content:
            raise MalformedResponseError(f"{self.name}: empty completion", {'provider': self.name})

        usage = data.get("usage") or {}
        prompt_tokens = usage.get("prompt_tokens")
        completion_tokens = usage.get("completion_tokens")
        if prompt_tokens is None or completion_tokens is None:
            return LLMResponse(
                content=content,
                prompt_tokens=estimate_tokens(prompt),
                completion_tokens=estimate_tokens(content),
                estimated=True,
            )
        return LLMResponse(content=content, prompt_tokens=prompt_tokens, completion_tokens=completion_tokens)


def _error_detail(response: httpx.Response) -> str:
    """Best-effort error message from an error response body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
        if body.get("message"):
            return str(body["message"])
    return response.reason_phrase
