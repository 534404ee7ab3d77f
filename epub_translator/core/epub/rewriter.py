"""
Document rewriting

Writes translated text back into the parsed tree. Fragments are grouped by
anchor and each anchor is written once: a fragment's translation goes into
the first text node it covers and its other text nodes are emptied, so
elements inside the block (links, images, <br> markers between lines) stay
where they were. Fragments without a translation are not touched.
"""
import re
import logging
from typing import Dict, List, Tuple

from .markup import ParsedDocument, serialize_document
from .models import Anchor, Fragment, TextSlot

logger = logging.getLogger(__name__)

_LEADING_WS = re.compile(r'^\s*')
_TRAILING_WS = re.compile(r'\s*$')


def _leading_ws(text: str) -> str:
    return _LEADING_WS.match(text).group(0)


def _trailing_ws(text: str) -> str:
    return _TRAILING_WS.search(text).group(0)


def write_into_slots(slots: List[TextSlot], text: str) -> None:
    """Put ``text`` in the first slot and empty the others, keeping outer whitespace."""
    if not slots:
        return
    first, last = slots[0], slots[-1]
    last_trailing = _trailing_ws(last.get())
    if first is last:
        first.set(_leading_ws(first.get()) + text + last_trailing)
        return
    first.set(_leading_ws(first.get()) + text)
    for slot in slots[1:-1]:
        slot.set('')
    last.set(last_trailing)


def group_by_anchor(fragments: List[Fragment]) -> List[Tuple[Anchor, List[Fragment]]]:
    """Fragments grouped by anchor, in order of first appearance."""
    groups: Dict[int, Tuple[Anchor, List[Fragment]]] = {}
    for fragment in fragments:
        key = id(fragment.anchor)
        if key not in groups:
            groups[key] = (fragment.anchor, [])
        groups[key][1].append(fragment)
    return list(groups.values())


def apply_translations(fragments: List[Fragment]) -> int:
    """Mutate the tree in place; returns the number of anchors written."""
    written = 0
    for anchor, members in group_by_anchor(fragments):
        translated = [f for f in members if f.translated_text is not None and f.translated_text.strip()]
        if not translated:
            continue
        for fragment in translated:
            write_into_slots(fragment.slots, fragment.translated_text)
        written += 1
    return written


def rewrite_document(doc: ParsedDocument, fragments: List[Fragment]) -> str:
    """Apply translations and serialize in the document's own dialect.

    Raises:
        SerializationError: the rewritten tree cannot be serialized
    """
    written = apply_translations(fragments)
    logger.debug(f"{doc.name}: wrote {written} anchors")
    return serialize_document(doc)
