"""
Offline demo provider.

Never touches the network: each paragraph of the batch is tagged with a
``[Source→Target]`` marker, which makes a full pipeline run observable
without credentials.
"""

import re
from typing import Optional

from epub_translator.config import REQUEST_TIMEOUT, SINGLE_FRAGMENT_TIMEOUT, BATCH_MAX_TOKENS, language_name
from ..base import LLMProvider, LLMResponse, estimate_tokens

_PARAGRAPH_SPLIT = re.compile(r'\n\n+')


class DemoProvider(LLMProvider):
    """Deterministic stand-in backend for tests and demos"""

    name = "demo"

    def __init__(self):
        super().__init__(model="demo")

    @staticmethod
    def tag(text: str, source_lang: str, target_lang: str) -> str:
        marker = f"[{language_name(source_lang)}→{language_name(target_lang)}]"
        segments = [s.strip() for s in _PARAGRAPH_SPLIT.split(text) if s.strip()]
        return "\n\n".join(f"{marker} {segment}" for segment in segments)

    async def _get_client(self):
        raise RuntimeError("The demo provider never opens a network connection")

    async def generate(self, prompt: str, timeout: float = REQUEST_TIMEOUT,
                       system_prompt: Optional[str] = None,
                       max_tokens: int = BATCH_MAX_TOKENS) -> LLMResponse:
        # Free-form prompts carry no language pair, so they are echoed back
        self.request_count += 1
        return LLMResponse(content=prompt.strip(), prompt_tokens=estimate_tokens(prompt),
                           completion_tokens=estimate_tokens(prompt), estimated=True)

    async def translate_batch(self, batch_text: str, source_lang: str, target_lang: str,
                              expected_count: int, timeout: float = REQUEST_TIMEOUT) -> LLMResponse:
        self.request_count += 1
        content = self.tag(batch_text, source_lang, target_lang)
        return LLMResponse(content=content, prompt_tokens=estimate_tokens(batch_text),
                           completion_tokens=estimate_tokens(content), estimated=True)

    async def translate_single(self, text: str, source_lang: str, target_lang: str,
                               timeout: float = SINGLE_FRAGMENT_TIMEOUT) -> LLMResponse:
        return await self.translate_batch(text, source_lang, target_lang, 1, timeout)
