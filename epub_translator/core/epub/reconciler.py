"""
Response reconciliation

Splits one cleaned model response back into exactly ``expected_count``
segments, positionally aligned with the batch's fragments:

1. split on blank lines; use it if the count matches
2. otherwise split on single newlines; use it if the count matches
3. otherwise take whichever split is closer (blank lines win ties)
4. too many segments: adjacent lines are joined, spread evenly over the slots
   too few segments: the first N fragments get them, the rest stay unresolved

An unresolved slot is ``None``; text is never invented for it.
"""
import re
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from epub_translator.core.llm.utils.cleanup import ResponseCleaner

logger = logging.getLogger(__name__)

_BLANK_LINE_SPLIT = re.compile(r'\n\s*\n+')

DOUBLE_NEWLINE = 'double_newline'
SINGLE_NEWLINE = 'single_newline'


@dataclass
class ReconciliationResult:
    """Per-fragment segments for one batch response.

    Attributes:
        segments: One entry per expected fragment, None where unresolved
        strategy: Which split was used
        returned_count: Number of segments the chosen split produced
    """
    segments: List[Optional[str]]
    strategy: str
    returned_count: int

    @property
    def expected_count(self) -> int:
        return len(self.segments)

    @property
    def shortfall(self) -> int:
        return max(0, self.expected_count - self.returned_count)

    @property
    def merged(self) -> bool:
        return self.returned_count > self.expected_count


def split_segments(text: str, expected_count: int) -> Tuple[List[str], str]:
    """Choose the split of ``text`` that best matches ``expected_count``."""
    by_blank_line = [s.strip() for s in _BLANK_LINE_SPLIT.split(text) if s.strip()]
    if len(by_blank_line) == expected_count:
        return by_blank_line, DOUBLE_NEWLINE

    by_line = [s.strip() for s in text.split('\n') if s.strip()]
    if len(by_line) == expected_count:
        return by_line, SINGLE_NEWLINE

    if abs(len(by_line) - expected_count) < abs(len(by_blank_line) - expected_count):
        return by_line, SINGLE_NEWLINE
    return by_blank_line, DOUBLE_NEWLINE


def distribute(segments: List[str], expected_count: int, joiner: str = ' ') -> List[Optional[str]]:
    """Fit ``segments`` onto ``expected_count`` slots, keeping their order."""
    count = len(segments)
    if count == expected_count:
        return list(segments)

    if count < expected_count:
        return list(segments) + [None] * (expected_count - count)

    # More lines than slots: the first (count % expected) slots take one extra line
    base, extra = divmod(count, expected_count)
    result: List[Optional[str]] = []
    position = 0
    for slot in range(expected_count):
        size = base + (1 if slot < extra else 0)
        result.append(joiner.join(segments[position:position + size]))
        position += size
    return result


class ResponseReconciler:
    """Cleans a raw completion and aligns it with a batch's fragments"""

    def __init__(self, cleaner: Optional[ResponseCleaner] = None, joiner: str = ' '):
        self.cleaner = cleaner or ResponseCleaner()
        self.joiner = joiner

    def clean(self, raw_text: str) -> str:
        return self.cleaner.clean(raw_text)

    def reconcile(self, text: str, expected_count: int, already_clean: bool = False) -> ReconciliationResult:
        """Produce exactly ``expected_count`` segments (None for unresolved ones).

        Args:
            text: Raw completion, or cleaned text when ``already_clean``
            expected_count: Number of fragments in the batch
            already_clean: Skip cleanup (cached translations are stored cleaned)
        """
        if expected_count <= 0:
            raise ValueError("expected_count must be positive")

        cleaned = text if already_clean else self.clean(text)
        segments, strategy = split_segments(cleaned, expected_count)
        result = ReconciliationResult(
            segments=distribute(segments, expected_count, self.joiner),
            strategy=strategy,
            returned_count=len(segments),
        )

        if result.shortfall:
            logger.debug(f"Reconciliation shortfall: {result.returned_count}/{expected_count} segments ({strategy})")
        elif result.merged:
            logger.debug(f"Merged {result.returned_count} segments into {expected_count} ({strategy})")
        return result
