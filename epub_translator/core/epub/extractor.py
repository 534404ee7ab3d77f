"""
Fragment extraction for markup documents

Walks a document's text nodes in order and turns them into fragments, the
units the rest of the pipeline translates. Each fragment is anchored to the
smallest enclosing block element, so that its translation can be written
back in place:

- A leaf block (one with no nested block elements) becomes one fragment,
  or one fragment per line when its direct children are separated by <br>.
- Text with no leaf block around it (loose text under the root, or text
  sitting directly in a block that also contains nested blocks) becomes an
  inline fragment anchored to its first text node. Adjacent loose text
  nodes, such as the ones around a <b> or <a>, form one such fragment; a
  nested block or a <br> between them starts a new one.

Every non-whitespace text node outside script/style ends up in exactly one
fragment.
"""
import re
import logging
from typing import Callable, Dict, Iterator, List, Optional, AbstractSet

from lxml import etree

from epub_translator.config import BLOCK_TAGS
from .markup import ParsedDocument, iter_text_slots, local_name, is_ignored, nearest_ancestor_matching
from .models import Fragment, TextSlot

logger = logging.getLogger(__name__)

_LINE_BREAK_WHITESPACE = re.compile(r'\s*\n\s*')
_BLANK_LINES = re.compile(r'\n\s*\n')

# Whitespace inside these blocks is content, not formatting
_PRESERVE_WHITESPACE_TAGS = frozenset({'pre'})

# Loose text on either side of these is not read as one sentence
_RUN_BREAK_TAGS = frozenset({'br', 'hr', 'title', 'head', 'body', 'table', 'ul', 'ol'})


def normalize_text(text: str, preserve_newlines: bool = False) -> str:
    """Trim, and fold source line wrapping into single spaces unless preserving newlines."""
    if preserve_newlines:
        # Blank lines separate fragments inside a batch
        return _BLANK_LINES.sub('\n', text.strip())
    return _LINE_BREAK_WHITESPACE.sub(' ', text).strip()


class FragmentExtractor:
    """Turns one parsed document into an ordered list of fragments"""

    def __init__(self, block_tags: AbstractSet[str] = BLOCK_TAGS,
                 log_callback: Optional[Callable[[str, str], None]] = None):
        self.block_tags = block_tags
        self.log_callback = log_callback

    def extract(self, doc: ParsedDocument) -> List[Fragment]:
        """Ordered fragment list for ``doc``; ordering is text-node traversal order."""
        fragments: List[Fragment] = []
        visited = set()
        container_cache: Dict[etree._Element, bool] = {}
        run: List[TextSlot] = []
        run_block = None

        def close_run():
            if run and any(s.get().strip() for s in run):
                slots = [s for s in run if s.get().strip()]
                # No safe block to rewrite: anchor to the first text node of the run
                fragments.append(Fragment(
                    id=len(fragments),
                    anchor=slots[0],
                    original_text=normalize_text(''.join(s.get() for s in run)),
                    slots=slots,
                    is_inline=True,
                ))
            run.clear()

        for slot in self._iter_slots_and_boundaries(doc.root):
            if slot is None:
                close_run()
                continue

            block = nearest_ancestor_matching(slot.owner, self.block_tags)
            if block is not None and not self._is_container(block, container_cache):
                if not slot.get().strip() or block in visited:
                    continue
                close_run()
                visited.add(block)
                fragments.extend(self._block_fragments(block, len(fragments)))
                continue

            # Adjacent loose text nodes of one container read as one sentence
            if run and block is not run_block:
                close_run()
            if run or slot.get().strip():
                run.append(slot)
                run_block = block
        close_run()

        inline_count = sum(1 for f in fragments if f.is_inline)
        logger.debug(f"{doc.name}: extracted {len(fragments)} fragments ({inline_count} inline)")
        if self.log_callback and fragments:
            self.log_callback("extract_summary",
                              f"{doc.name}: found {len(fragments)} fragments")
        return fragments

    def _iter_slots_and_boundaries(self, element: etree._Element) -> Iterator[Optional[TextSlot]]:
        """Text slots in :func:`iter_text_slots` order, with None at every run boundary.

        Boundaries are where a block element or one of ``_RUN_BREAK_TAGS`` opens
        or closes, and where a script/style element sits.
        """
        name = local_name(element)
        boundary = name in self.block_tags or name in _RUN_BREAK_TAGS
        if boundary:
            yield None
        if element.text:
            yield TextSlot(element, 'text')
        for child in element:
            if is_ignored(child):
                yield None
            elif local_name(child) is not None:
                yield from self._iter_slots_and_boundaries(child)
            if child.tail:
                yield TextSlot(child, 'tail')
        if boundary:
            yield None

    def _is_container(self, block: etree._Element, cache: Dict[etree._Element, bool]) -> bool:
        """True when ``block`` has nested block elements (its own text is then handled inline)."""
        if block not in cache:
            cache[block] = any(
                local_name(d) in self.block_tags for d in block.iterdescendants()
            )
        return cache[block]

    def _block_fragments(self, block: etree._Element, first_id: int) -> List[Fragment]:
        preserve = local_name(block) in _PRESERVE_WHITESPACE_TAGS
        has_line_breaks = any(local_name(child) == 'br' for child in block)

        if not has_line_breaks:
            slots = [s for s in iter_text_slots(block) if s.get().strip()]
            text = normalize_text(''.join(s.get() for s in iter_text_slots(block)), preserve)
            if not text:
                return []
            return [Fragment(id=first_id, anchor=block, original_text=text, slots=slots)]

        fragments = []
        for run in self._split_at_line_breaks(block):
            text = normalize_text(''.join(s.get() for s in run), preserve)
            if not text:
                continue
            fragments.append(Fragment(
                id=first_id + len(fragments),
                anchor=block,
                original_text=text,
                slots=[s for s in run if s.get().strip()],
                line_break_split=True,
            ))
        if len(fragments) > 1:
            logger.debug(f"<{local_name(block)}> split at <br> into {len(fragments)} fragments")
        return fragments

    @staticmethod
    def _split_at_line_breaks(block: etree._Element) -> List[List[TextSlot]]:
        """Text slots of ``block`` grouped into runs separated by direct <br> children."""
        runs: List[List[TextSlot]] = []
        current: List[TextSlot] = []
        if block.text:
            current.append(TextSlot(block, 'text'))

        for child in block:
            if local_name(child) == 'br':
                runs.append(current)
                current = []
            elif local_name(child) is not None and not is_ignored(child):
                current.extend(iter_text_slots(child))
            if child.tail:
                current.append(TextSlot(child, 'tail'))

        runs.append(current)
        return runs


def extract_fragments(doc: ParsedDocument, block_tags: AbstractSet[str] = BLOCK_TAGS) -> List[Fragment]:
    """Convenience wrapper around :class:`FragmentExtractor`."""
    return FragmentExtractor(block_tags).extract(doc)
