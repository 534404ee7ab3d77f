"""
Source language detection.

A book's source language is guessed from the scripts its body text uses.
Characters of each script are counted over every markup document of the
archive and the script with the strictly largest count wins.
"""

import logging
import re
from typing import Dict, Optional

from .container import EpubArchive
from .exceptions import DocumentError
from .markup import find_body, parse_document, text_content

logger = logging.getLogger(__name__)

# Ideographs plus CJK punctuation count for Chinese; Japanese text also uses
# ideographs, so it wins only when kana outnumber them
SCRIPT_PATTERNS: Dict[str, 're.Pattern'] = {
    'ja': re.compile(r'[\u3040-\u309f\u30a0-\u30ff]'),
    'zh': re.compile(r'[\u4e00-\u9fa5\u3000-\u303f]'),
    'en': re.compile(r'[a-zA-Z]'),
}


def count_script_characters(text: str) -> Dict[str, int]:
    return {language: len(pattern.findall(text)) for language, pattern in SCRIPT_PATTERNS.items()}


def dominant_language(counts: Dict[str, int]) -> Optional[str]:
    """Language whose count is strictly larger than every other; None on a tie or no text."""
    best = max(counts, key=counts.get)
    if counts[best] == 0:
        return None
    if any(count == counts[best] for language, count in counts.items() if language != best):
        return None
    return best


def detect_source_language(archive: EpubArchive) -> Optional[str]:
    """Guess the language of the archive's body text.

    Documents that cannot be parsed are left out of the count.

    Returns:
        'ja', 'zh' or 'en', or None when no script clearly dominates
    """
    totals = {language: 0 for language in SCRIPT_PATTERNS}
    for name in archive.markup_documents():
        try:
            doc = parse_document(archive.read_text(name), name=name)
        except DocumentError as e:
            logger.debug(f"{name}: skipped by language detection: {e}")
            continue
        body = find_body(doc.root)
        counts = count_script_characters(text_content(body if body is not None else doc.root))
        for language, count in counts.items():
            totals[language] += count

    detected = dominant_language(totals)
    logger.debug(f"Script character counts: {totals}, detected: {detected}")
    return detected
