"""
Bounded translation cache with insertion-order (FIFO) eviction.
"""

import logging
from typing import Dict, Optional, Tuple

from epub_translator.config import CACHE_MAX_ENTRIES

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str, str]


class TranslationCache:
    """Maps (source language, target language, full batch text) to a cleaned translation.

    Shared by every document of one run, never persisted. Keys use the whole
    text so two different batches can never alias each other.
    """

    def __init__(self, max_entries: int = CACHE_MAX_ENTRIES):
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self._entries: Dict[CacheKey, str] = {}
        self.hits = 0
        self.misses = 0

    @staticmethod
    def make_key(text: str, source_lang: str, target_lang: str) -> CacheKey:
        return (source_lang, target_lang, text)

    def get(self, text: str, source_lang: str, target_lang: str) -> Optional[str]:
        """Return the stored translation, or None when absent."""
        value = self._entries.get(self.make_key(text, source_lang, target_lang))
        if value is None:
            self.misses += 1
        else:
            self.hits += 1
        return value

    def put(self, text: str, source_lang: str, target_lang: str, translation: str) -> None:
        """Store a translation, evicting the oldest entry when the table is full."""
        key = self.make_key(text, source_lang, target_lang)
        if key in self._entries:
            # Overwrite keeps the original insertion slot
            self._entries[key] = translation
            return

        while len(self._entries) >= self.max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            logger.debug(f"Cache full ({self.max_entries}), evicted oldest entry ({len(oldest[2])} chars)")

        self._entries[key] = translation

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries

    def clear(self) -> None:
        self._entries.clear()
