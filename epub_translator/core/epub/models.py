"""
Data model shared by the pipeline stages: text slots, fragments and batches.
"""

import unicodedata
from dataclasses import dataclass, field
from typing import List, Optional, Union

from lxml import etree

BATCH_SEPARATOR = "\n\n"


@dataclass(eq=False)
class TextSlot:
    """One text node of an lxml tree.

    lxml has no text node objects: text lives either in ``element.text``
    (before the first child) or in ``element.tail`` (after the element,
    inside its parent). A slot names one of those two places.
    """
    element: etree._Element
    attr: str  # 'text' or 'tail'

    @property
    def owner(self) -> Optional[etree._Element]:
        """The element whose content this text is part of."""
        if self.attr == 'text':
            return self.element
        return self.element.getparent()

    def get(self) -> str:
        return getattr(self.element, self.attr) or ''

    def set(self, value: str) -> None:
        setattr(self.element, self.attr, value)


Anchor = Union[etree._Element, TextSlot]


@dataclass(eq=False)
class Fragment:
    """A unit of translatable text anchored to its place in the document.

    Attributes:
        id: Ordinal position in extraction order
        anchor: Block element the translation is written back into, or the
            text slot itself for inline fragments
        original_text: Normalized text at extraction time
        slots: Non-whitespace text slots this fragment covers, in order
        is_inline: True when anchored to a text slot rather than an element
        line_break_split: True when the anchor block was split at <br> markers
        translated_text: Set once translation succeeds
        skip_reason: Diagnostic only; control flow always tests translated_text
    """
    id: int
    anchor: Anchor
    original_text: str
    slots: List[TextSlot] = field(default_factory=list)
    is_inline: bool = False
    line_break_split: bool = False
    translated_text: Optional[str] = None
    skip_reason: Optional[str] = None

    @property
    def needs_translation(self) -> bool:
        """Not translated yet: no text, or text identical to the source."""
        return self.translated_text is None or self.translated_text == self.original_text

    def __repr__(self) -> str:
        preview = self.original_text[:30].replace('\n', ' ')
        return f"Fragment(id={self.id}, inline={self.is_inline}, text={preview!r})"


@dataclass(eq=False)
class Batch:
    """Ordered fragments sent together in one backend request."""
    index: int
    fragments: List[Fragment] = field(default_factory=list)

    @property
    def combined_text(self) -> str:
        return BATCH_SEPARATOR.join(f.original_text for f in self.fragments)

    @property
    def expected_count(self) -> int:
        return len(self.fragments)

    def __len__(self) -> int:
        return len(self.combined_text)


def is_translatable_text(text: str) -> bool:
    """False for empty text and text made only of digits, punctuation, symbols and spaces."""
    if not text or not text.strip():
        return False
    for char in text:
        if char.isspace():
            continue
        category = unicodedata.category(char)
        if category[0] not in ('P', 'S', 'N'):
            return True
    return False
