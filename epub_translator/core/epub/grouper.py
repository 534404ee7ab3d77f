"""
Batch grouping

Greedily merges adjacent fragments into batches whose combined text stays
within a character window: a batch is closed once it reaches the soft
minimum or the fragment cap, and a fragment is never added if that would
push the batch past the hard maximum. A fragment longer than the hard
maximum always travels alone. Lengths are counted in Unicode code points.
"""
import logging
from typing import List

from epub_translator.config import BATCH_MIN_CHARS, BATCH_MAX_CHARS, BATCH_MAX_FRAGMENTS
from .models import Batch, Fragment, BATCH_SEPARATOR

logger = logging.getLogger(__name__)


def group_fragments(
    fragments: List[Fragment],
    min_chars: int = BATCH_MIN_CHARS,
    max_chars: int = BATCH_MAX_CHARS,
    max_fragments: int = BATCH_MAX_FRAGMENTS,
) -> List[Batch]:
    """Split ``fragments`` into ordered batches.

    Args:
        fragments: Fragments in extraction order
        min_chars: Soft minimum; a batch reaching it is closed
        max_chars: Hard maximum for any multi-fragment batch
        max_fragments: Maximum number of fragments per batch

    Returns:
        Batches in order; concatenating their fragments gives back ``fragments``
    """
    if min_chars > max_chars:
        raise ValueError(f"min_chars ({min_chars}) cannot exceed max_chars ({max_chars})")
    if max_fragments <= 0:
        raise ValueError("max_fragments must be positive")

    batches: List[Batch] = []
    current: List[Fragment] = []
    current_length = 0

    def flush():
        nonlocal current, current_length
        if current:
            batches.append(Batch(index=len(batches), fragments=current))
        current = []
        current_length = 0

    for fragment in fragments:
        length = len(fragment.original_text)

        if length > max_chars:
            flush()
            batches.append(Batch(index=len(batches), fragments=[fragment]))
            continue

        joined_length = current_length + len(BATCH_SEPARATOR) + length if current else length
        if current and joined_length > max_chars:
            flush()
            joined_length = length

        current.append(fragment)
        current_length = joined_length

        if current_length >= min_chars or len(current) >= max_fragments:
            flush()

    flush()

    if batches:
        logger.debug(f"Grouped {len(fragments)} fragments into {len(batches)} batches")
    return batches
