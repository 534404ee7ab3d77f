"""
Pytest configuration and fixtures for all tests.

This file is automatically loaded by pytest and provides common fixtures
and configuration for all test modules.
"""

import asyncio
import sys
import zipfile
from pathlib import Path
from typing import Callable, List, Optional

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Import pytest for fixtures
import pytest

from epub_translator.core.llm.base import LLMProvider, LLMResponse
from epub_translator.core.epub.pipeline import PipelineContext


def prefix_segments(text: str, prefix: str = "ZH:") -> str:
    """Fake translation: prefix every blank-line separated paragraph."""
    segments = [s.strip() for s in text.split("\n\n") if s.strip()]
    return "\n\n".join(f"{prefix}{segment}" for segment in segments)


class ScriptedProvider(LLMProvider):
    """In-memory backend whose answers are produced by plain functions.

    A handler returns the completion text or raises an ``LLMError``; the
    provider records every call and the peak number of overlapping calls.
    """

    name = "scripted"

    def __init__(self,
                 batch_handler: Optional[Callable[[str, int], str]] = None,
                 single_handler: Optional[Callable[[str], str]] = None,
                 delay: float = 0.0):
        super().__init__(model="scripted")
        self.batch_handler = batch_handler or (lambda text, count: prefix_segments(text))
        self.single_handler = single_handler or (lambda text: prefix_segments(text))
        self.delay = delay
        self.batch_calls: List[str] = []
        self.single_calls: List[str] = []
        self.in_flight = 0
        self.peak_in_flight = 0

    async def _get_client(self):
        raise RuntimeError("ScriptedProvider never opens a connection")

    async def generate(self, prompt, timeout=120, system_prompt=None, max_tokens=8000):
        return LLMResponse(content=prompt)

    async def _call(self, handler, *args) -> LLMResponse:
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            return LLMResponse(content=handler(*args), prompt_tokens=2, completion_tokens=3)
        finally:
            self.in_flight -= 1

    async def translate_batch(self, batch_text, source_lang, target_lang, expected_count, timeout=120):
        self.batch_calls.append(batch_text)
        return await self._call(self.batch_handler, batch_text, expected_count)

    async def translate_single(self, text, source_lang, target_lang, timeout=60):
        self.single_calls.append(text)
        return await self._call(self.single_handler, text)


async def no_sleep(delay: float) -> None:
    """Backoff sleep replacement that returns immediately."""
    return None


@pytest.fixture
def scripted_provider():
    """Provider prefixing every paragraph with 'ZH:'."""
    return ScriptedProvider()


@pytest.fixture
def provider_factory():
    """Factory for ScriptedProvider with custom handlers."""
    return ScriptedProvider


@pytest.fixture
def make_context():
    """Factory for a PipelineContext with instant retries."""
    def factory(provider: LLMProvider, **kwargs) -> PipelineContext:
        kwargs.setdefault("sleep", no_sleep)
        return PipelineContext(source_lang="en", target_lang="zh", provider=provider, **kwargs)
    return factory


XHTML_CHAPTER = """<?xml version="1.0" encoding="utf-8"?>
<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml">
<head><title>Chapter One</title><style>p { margin: 0; }</style></head>
<body>
<h1>Chapter One</h1>
<p>It was a bright cold day in April.</p>
<p>The clocks were <em>striking</em> thirteen.</p>
</body>
</html>"""


@pytest.fixture
def xhtml_chapter():
    """Small XHTML chapter with a title, a heading and two paragraphs."""
    return XHTML_CHAPTER


CONTAINER_XML = """<?xml version="1.0" encoding="UTF-8"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="OEBPS/content.opf" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>"""

CONTENT_OPF = """<?xml version="1.0" encoding="UTF-8"?>
<package xmlns="http://www.idpf.org/2007/opf" version="3.0" unique-identifier="uid">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/">
    <dc:identifier id="uid">test-book</dc:identifier>
    <dc:title>Test Book</dc:title>
    <dc:language>en</dc:language>
  </metadata>
  <manifest>
    <item id="ch1" href="ch1.xhtml" media-type="application/xhtml+xml"/>
    <item id="css" href="style.css" media-type="text/css"/>
  </manifest>
  <spine page-progression-direction="rtl">
    <itemref idref="ch1"/>
  </spine>
</package>"""

STYLE_CSS = "body { writing-mode: vertical-rl; -epub-writing-mode: vertical-rl; }\n"

IMAGE_BYTES = b"\x89PNG\r\n\x1a\n" + bytes(range(64))


@pytest.fixture
def make_epub(tmp_path):
    """Factory writing a minimal EPUB; ``extra`` maps archive paths to contents."""
    def factory(name: str = "book.epub", chapter: str = XHTML_CHAPTER, extra: Optional[dict] = None) -> Path:
        path = tmp_path / name
        with zipfile.ZipFile(path, "w", zipfile.ZIP_DEFLATED) as epub_zip:
            epub_zip.writestr("mimetype", "application/epub+zip", compress_type=zipfile.ZIP_STORED)
            epub_zip.writestr("META-INF/container.xml", CONTAINER_XML)
            epub_zip.writestr("OEBPS/content.opf", CONTENT_OPF)
            epub_zip.writestr("OEBPS/ch1.xhtml", chapter)
            epub_zip.writestr("OEBPS/style.css", STYLE_CSS)
            epub_zip.writestr("OEBPS/images/cover.png", IMAGE_BYTES)
            for entry_name, content in (extra or {}).items():
                epub_zip.writestr(entry_name, content)
        return path
    return factory
