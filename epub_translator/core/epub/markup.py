"""
Markup parsing, traversal and serialization helpers

Documents are parsed with lxml in one of two dialects: strict XML (XHTML,
the usual EPUB content) or permissive HTML. The dialect chosen at parse time
is the one used to serialize the document back, and a leading doctype
declaration is re-attached verbatim.
"""
import html as html_lib
import re
from dataclasses import dataclass
from html.entities import name2codepoint
from typing import Iterator, Optional, AbstractSet

import lxml.html
from lxml import etree

from epub_translator.config import BLOCK_TAGS, IGNORED_TAGS
from .exceptions import ExtractionError, SerializationError
from .models import TextSlot

XHTML = 'xhtml'
HTML = 'html'

_XML_DECLARATION_RE = re.compile(r'^\s*<\?xml[^>]*\?>\s*', re.IGNORECASE)
_DOCTYPE_RE = re.compile(r'<!DOCTYPE[^>\[]*(?:\[[^\]]*\])?\s*>', re.IGNORECASE)
_NAMED_ENTITY_RE = re.compile(r'&([A-Za-z][A-Za-z0-9]*);')
_XML_ENTITIES = frozenset({'amp', 'lt', 'gt', 'quot', 'apos'})


@dataclass
class ParsedDocument:
    """A parsed markup document plus what is needed to serialize it back.

    Attributes:
        root: Root element of the tree
        dialect: XHTML (strict XML serialization) or HTML (permissive)
        doctype: Leading doctype declaration of the source, if any
        has_xml_declaration: Whether the source started with <?xml ...?>
        fragment_only: HTML source without an <html> element (a body fragment)
        name: Document name used in diagnostics
    """
    root: etree._Element
    dialect: str
    doctype: Optional[str] = None
    has_xml_declaration: bool = False
    fragment_only: bool = False
    name: str = "document"


def detect_dialect(markup: str) -> str:
    """XHTML when the source looks like XML, permissive HTML otherwise."""
    head = markup[:2048]
    lowered = head.lower()
    if (lowered.lstrip().startswith('<?xml') or 'xhtml' in lowered
            or '<!doctype html public' in lowered or 'xmlns=' in head):
        return XHTML
    return HTML


def _numeric_entities(markup: str) -> str:
    """Replace HTML named entities (&nbsp; ...) that a plain XML parser cannot resolve."""
    def replace(match):
        name = match.group(1)
        if name in _XML_ENTITIES or name not in name2codepoint:
            return match.group(0)
        return f'&#{name2codepoint[name]};'
    return _NAMED_ENTITY_RE.sub(replace, markup)


def _preview(markup: str) -> str:
    return markup[:200]


def parse_document(markup: str, name: str = "document", dialect: Optional[str] = None) -> ParsedDocument:
    """Parse markup text into a traversable tree.

    Raises:
        ExtractionError: the text cannot be turned into a document
    """
    if markup is None or not markup.strip():
        raise ExtractionError("Document is empty", document=name, content_preview='')

    dialect = dialect or detect_dialect(markup)
    has_declaration = bool(_XML_DECLARATION_RE.match(markup))
    doctype_match = _DOCTYPE_RE.search(markup[:4096])
    doctype = doctype_match.group(0) if doctype_match else None
    # lxml refuses str input that carries an encoding declaration
    body = _XML_DECLARATION_RE.sub('', markup, count=1)

    try:
        if dialect == XHTML:
            parser = etree.XMLParser(recover=True, remove_blank_text=False,
                                     resolve_entities=False, huge_tree=True)
            root = etree.fromstring(_numeric_entities(body), parser)
            fragment_only = False
        else:
            root = lxml.html.document_fromstring(body)
            fragment_only = re.search(r'<html[\s>]', body, re.IGNORECASE) is None
    except (etree.ParseError, etree.ParserError, ValueError) as e:
        raise ExtractionError(f"Failed to parse {name}: {e}", document=name,
                              original_error=e, content_preview=_preview(markup)) from e

    if root is None:
        raise ExtractionError(f"Failed to parse {name}: no root element", document=name,
                              content_preview=_preview(markup))

    return ParsedDocument(root=root, dialect=dialect, doctype=doctype,
                          has_xml_declaration=has_declaration,
                          fragment_only=fragment_only, name=name)


def serialize_document(doc: ParsedDocument) -> str:
    """Serialize a (possibly rewritten) document in its original dialect.

    Raises:
        SerializationError: lxml could not serialize the tree
    """
    try:
        if doc.dialect == XHTML:
            return _serialize_xhtml(doc)
        return _serialize_html(doc)
    except (etree.SerialisationError, ValueError, TypeError) as e:
        raise SerializationError(f"Failed to serialize {doc.name}: {e}", document=doc.name,
                                 original_error=e) from e


def _serialize_xhtml(doc: ParsedDocument) -> str:
    parts = []
    if doc.has_xml_declaration:
        parts.append('<?xml version="1.0" encoding="utf-8"?>\n')
    if doc.doctype:
        parts.append(doc.doctype + '\n')
    # Comments and processing instructions around the root element
    for sibling in reversed(list(doc.root.itersiblings(preceding=True))):
        parts.append(etree.tostring(sibling, encoding='unicode', with_tail=False) + '\n')
    parts.append(etree.tostring(doc.root, encoding='unicode', method='xml', with_tail=False))
    for sibling in doc.root.itersiblings():
        parts.append('\n' + etree.tostring(sibling, encoding='unicode', with_tail=False))
    return ''.join(parts)


def _serialize_html(doc: ParsedDocument) -> str:
    if doc.fragment_only:
        return _serialize_html_fragment(doc.root)
    html = lxml.html.tostring(doc.root, encoding='unicode', method='html')
    if doc.doctype:
        return doc.doctype + '\n' + html
    return html


def _serialize_html_fragment(root: etree._Element) -> str:
    """Source without an <html> element: write back what the parser wrapped.

    lxml moves <title>, <meta>, <link> and <style> of such input into a
    generated <head>; they are written ahead of the body content.
    """
    containers = [c for c in (root.find('head'), root.find('body')) if c is not None] or [root]
    parts = []
    for container in containers:
        if container.text:
            parts.append(html_lib.escape(container.text, quote=False))
        parts.extend(lxml.html.tostring(child, encoding='unicode', method='html') for child in container)
    return ''.join(parts)


def local_name(element) -> Optional[str]:
    """Lowercase tag name without namespace; None for comments and processing instructions."""
    tag = element.tag
    if not isinstance(tag, str):
        return None
    return etree.QName(tag).localname.lower()


def is_ignored(element) -> bool:
    """script/style containers hold no translatable text."""
    return local_name(element) in IGNORED_TAGS


def iter_text_slots(element: etree._Element, include_self: bool = True) -> Iterator[TextSlot]:
    """Yield every text slot under ``element`` in document order.

    The element's own tail is not part of its content and is never yielded.
    Text inside script/style is skipped, though the tail after such an
    element still is yielded.
    """
    if include_self:
        if local_name(element) is None or is_ignored(element):
            return
        if element.text:
            yield TextSlot(element, 'text')
    for child in element:
        if local_name(child) is not None and not is_ignored(child):
            yield from iter_text_slots(child)
        if child.tail:
            yield TextSlot(child, 'tail')


def nearest_ancestor_matching(
    element: Optional[etree._Element],
    tags: AbstractSet[str] = BLOCK_TAGS,
    stop: Optional[etree._Element] = None
) -> Optional[etree._Element]:
    """Closest element (starting at ``element`` itself) whose local name is in ``tags``.

    The walk stops before ``stop`` and at the tree root.
    """
    current = element
    while current is not None and current is not stop:
        if local_name(current) in tags:
            return current
        current = current.getparent()
    return None


def find_body(root: etree._Element) -> Optional[etree._Element]:
    """The <body> element of a document, namespaced or not."""
    if local_name(root) == 'body':
        return root
    for element in root.iter():
        if local_name(element) == 'body':
            return element
    return None


def text_content(element: etree._Element) -> str:
    """Concatenated text of ``element`` without script/style content."""
    return ''.join(slot.get() for slot in iter_text_slots(element))
