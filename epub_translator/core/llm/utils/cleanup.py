"""
Response cleanup for raw model completions.

Models often wrap a translation in conversational filler ("Here is the
translation:"), reasoning blocks or boilerplate copied from the source.
Cleanup is an ordered list of (pattern -> replacement) rules applied in
sequence; extra rules can be appended or loaded from a JSON file without
touching this module.

Example:
    >>> cleaner = ResponseCleaner()
    >>> cleaner.clean("Translation: 你好")
    '你好'
"""

import json
import re
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

logger = logging.getLogger(__name__)

_FLAG_NAMES = {
    'IGNORECASE': re.IGNORECASE,
    'MULTILINE': re.MULTILINE,
    'DOTALL': re.DOTALL,
}


@dataclass(frozen=True)
class CleanupRule:
    """One ordered substitution applied to a raw completion."""
    name: str
    pattern: str
    replacement: str = ''
    flags: int = 0

    def apply(self, text: str) -> str:
        return re.sub(self.pattern, self.replacement, text, flags=self.flags)


_I = re.IGNORECASE
_IM = re.IGNORECASE | re.MULTILINE

DEFAULT_CLEANUP_RULES: List[CleanupRule] = [
    # Reasoning blocks, complete or with the opening tag truncated away
    CleanupRule('think_block', r'<think>.*?</think>', '', re.DOTALL | _I),
    CleanupRule('orphan_think_close', r'^.*?</think>\s*', '', re.DOTALL | _I),

    # Conversational prefixes
    CleanupRule('prefix_zh_result', r'^\s*以下是翻译结果[：:]\s*', '', _I),
    CleanupRule('prefix_zh_as_follows', r'^\s*翻译如下[：:]\s*', '', _I),
    CleanupRule('prefix_zh_as_requested', r'^\s*根据要求翻译[：:]\s*', '', _I),
    CleanupRule('prefix_zh_ok_here', r'^\s*好的，以下是翻译[：:]\s*', '', _I),
    CleanupRule('prefix_zh_ok_i_will', r'^\s*好的[，,]?我来翻译[：:]\s*', '', _I),
    CleanupRule('prefix_zh_sure', r'^\s*当然[，,]?以下是翻译[：:]\s*', '', _I),
    CleanupRule('prefix_zh_bracket', r'^\s*\[翻译\]\s*', '', _I),
    CleanupRule('prefix_en_translation', r'^\s*Translation[：:]\s*', '', _I),
    CleanupRule('prefix_en_here_is', r'^\s*Here is the translation[：:]\s*', '', _I),
    CleanupRule('prefix_zh_compliance_note', r'^\s*（根据用户要求，严格遵循.*?）\s*', '', _I),
    CleanupRule('prefix_zh_strict_note', r'^\s*（译文严格遵守所有要求.*?）\s*', '', _I),

    # Conversational suffixes
    CleanupRule('suffix_zh_notice', r'\s*请注意：以上是翻译结果\s*\Z', '', _I),
    CleanupRule('suffix_zh_hope_helps', r'\s*希望这个翻译对您有帮助\s*\Z', '', _I),
    CleanupRule('suffix_zh_adjust', r'\s*如有需要可以进一步调整\s*\Z', '', _I),

    # Trailing explanations appended after the last paragraph
    CleanupRule('trailing_zh_explanation', r'\n\n翻译说明[：:][^\n]*\Z', '', _I),
    CleanupRule('trailing_note', r'\n\nNote[：:][^\n]*\Z', '', _I),

    # Boilerplate copied from store excerpts
    CleanupRule(
        'excerpt_block',
        r'Excerpt From\s*[\s\S]*?This material may be protected by copyright[\s\S]*?$',
        '', _IM,
    ),
    CleanupRule('excerpt_line', r'^Excerpt From.*$', '', _IM),
    CleanupRule('copyright_line', r'^This material may be protected by copyright.*$', '', _IM),

    # Leftover language-pair markers on a line of their own
    CleanupRule('language_marker_line_cjk', r'^\s*\[.*?[日中韩英法德俄葡西語语][\s\-→]*.*?\]\s*$', '', _IM),
    CleanupRule('language_marker_line', r'^\s*\[[A-Za-z]+\s*(?:→|->)\s*[A-Za-z]+\]\s*$', '', _IM),
    CleanupRule('compliance_note_line', r'^\s*（(?:根据用户要求|译文严格遵守).*?）\s*$', '', _IM),

    # Segment index markers the model may echo back
    CleanupRule('segment_index_marker', r'\[P\d+\]\s*', ''),

    CleanupRule('collapse_blank_lines', r'\n{3,}', '\n\n'),
]


def load_cleanup_rules(path: Union[str, Path]) -> List[CleanupRule]:
    """Load extra rules from a JSON list of {name, pattern, replacement, flags} objects.

    ``flags`` is a list of flag names ("IGNORECASE", "MULTILINE", "DOTALL").
    """
    with open(path, 'r', encoding='utf-8') as f:
        raw_rules = json.load(f)

    rules = []
    for index, raw in enumerate(raw_rules):
        flags = 0
        for flag_name in raw.get('flags', []):
            try:
                flags |= _FLAG_NAMES[flag_name.upper()]
            except KeyError:
                raise ValueError(f"Unknown regex flag {flag_name!r} in cleanup rule #{index}")
        pattern = raw['pattern']
        re.compile(pattern, flags)  # fail early on a broken pattern
        rules.append(CleanupRule(
            name=raw.get('name', f'custom_{index}'),
            pattern=pattern,
            replacement=raw.get('replacement', ''),
            flags=flags,
        ))
    return rules


class ResponseCleaner:
    """Pure function of raw completion text -> cleaned text, driven by ordered rules."""

    def __init__(
        self,
        rules: Optional[Sequence[CleanupRule]] = None,
        extra_rules: Iterable[CleanupRule] = (),
    ):
        base = list(DEFAULT_CLEANUP_RULES if rules is None else rules)
        # Extra rules run before blank-line collapsing so their leftovers are tidied too
        extra = list(extra_rules)
        if extra and base and base[-1].name == 'collapse_blank_lines':
            self.rules = base[:-1] + extra + base[-1:]
        else:
            self.rules = base + extra

    def clean(self, raw_text: str) -> str:
        """Strip artifacts; fall back to the trimmed raw text if nothing would remain."""
        if raw_text is None:
            return ''
        cleaned = raw_text
        for rule in self.rules:
            cleaned = rule.apply(cleaned)
        cleaned = cleaned.strip()
        if not cleaned:
            logger.debug("Cleanup removed everything, keeping raw completion")
            return raw_text.strip()
        return cleaned
