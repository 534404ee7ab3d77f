"""
Vertical to horizontal layout conversion.

Japanese and traditional Chinese EPUBs are often typeset top-to-bottom,
right-to-left. Once translated into a horizontal script that layout no
longer reads well, so the CSS properties and OPF/NCX attributes that
request it are rewritten to their left-to-right equivalents.

The rules work on raw text, which lets the same pass handle stylesheets,
inline ``style`` attributes, the OPF spine and NCX files.

``detect_vertical`` scans the same entries for declarations that only
vertically typeset books carry, so the conversion can be turned on when
needed.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Tuple, Union

from .container import EpubArchive

logger = logging.getLogger(__name__)

# Extensions of archive entries the conversion applies to
LAYOUT_EXTENSIONS = ('.css', '.opf', '.ncx', '.html', '.htm', '.xhtml')

_I = re.IGNORECASE


@dataclass(frozen=True)
class LayoutRule:
    name: str
    pattern: 're.Pattern'
    replacement: Union[str, Callable[['re.Match'], str]]

    def apply(self, text: str) -> Tuple[str, int]:
        return self.pattern.subn(self.replacement, text)


def _quoted(value: str) -> Callable[['re.Match'], str]:
    """Keep whichever quote style (or none) the attribute used."""
    def replace(match: 're.Match') -> str:
        quote = match.group('quote')
        return f"{match.group('attr')}={quote}{value}{quote}"
    return replace


LAYOUT_RULES: List[LayoutRule] = [
    # The prefixed property goes first, the unprefixed rule would otherwise rewrite it
    LayoutRule('epub_writing_mode',
               re.compile(r'-epub-writing-mode\s*:\s*vertical-(?:rl|lr)\s*;?', _I), ''),
    LayoutRule('writing_mode',
               re.compile(r'(?<![\w-])writing-mode\s*:\s*vertical-(?:rl|lr)\s*;?', _I),
               'writing-mode: horizontal-tb;'),
    LayoutRule('direction',
               re.compile(r'(?<![\w-])direction\s*:\s*rtl\s*;?', _I), 'direction: ltr;'),
    LayoutRule('text_align',
               re.compile(r'text-align\s*:\s*right\s*;?', _I), 'text-align: left;'),
    LayoutRule('text_orientation',
               re.compile(r'(?:-epub-|-webkit-)?text-orientation\s*:\s*[\w-]+\s*;?', _I), ''),
    LayoutRule('text_combine_upright',
               re.compile(r'(?:-epub-|-webkit-)?text-combine(?:-upright)?\s*:\s*[\w-]+\s*;?', _I), ''),
    LayoutRule('layout_grid',
               re.compile(r'layout-grid[\w-]*\s*:[^;}"\']+;?', _I), ''),
    LayoutRule('page_progression_css',
               re.compile(r'page-progression-direction\s*:\s*rtl\s*;?', _I),
               'page-progression-direction: ltr;'),
    LayoutRule('page_spread_css',
               re.compile(r'page-spread-direction\s*:\s*rtl\s*;?', _I),
               'page-spread-direction: ltr;'),
    LayoutRule('page_progression_attr',
               re.compile(r'(?P<attr>page-progression-direction)\s*=\s*(?P<quote>[\'"]?)rtl(?P=quote)(?!\w)', _I),
               _quoted('ltr')),
    LayoutRule('page_spread_attr',
               re.compile(r'(?P<attr>page-spread-direction)\s*=\s*(?P<quote>[\'"]?)rtl(?P=quote)(?!\w)', _I),
               _quoted('ltr')),
    LayoutRule('rendition_orientation',
               re.compile(r'(?P<attr>rendition:orientation)\s*=\s*(?P<quote>[\'"]?)vertical(?P=quote)', _I),
               _quoted('auto')),
    # <meta property="rendition:orientation">vertical</meta> in EPUB 3 packages
    LayoutRule('rendition_orientation_meta',
               re.compile(r'(property\s*=\s*[\'"]rendition:orientation[\'"][^>]*>)\s*vertical\s*<', _I),
               r'\1auto<'),
    LayoutRule('rendition_spread',
               re.compile(r'(?P<attr>rendition:spread)\s*=\s*(?P<quote>[\'"])(?:right|left)(?P=quote)', _I),
               _quoted('auto')),
]


def convert_vertical_to_horizontal(text: str) -> Tuple[str, Dict[str, int]]:
    """Rewrite vertical writing-mode declarations to horizontal ones.

    Returns the converted text and the number of replacements per rule
    (rules that matched nothing are left out).
    """
    changes: Dict[str, int] = {}
    for rule in LAYOUT_RULES:
        text, count = rule.apply(text)
        if count:
            changes[rule.name] = count
    if changes:
        logger.debug(f"Layout conversion: {changes}")
    return text, changes


def applies_to(path: str) -> bool:
    return path.lower().endswith(LAYOUT_EXTENSIONS)


# Declarations that only appear in vertically typeset books. A right-to-left
# page progression alone is not one of them: Arabic and Hebrew books use it
# with horizontal text.
VERTICAL_MARKERS: Dict[str, 're.Pattern'] = {
    'writing_mode': re.compile(r'(?<![\w])(?:-epub-|-webkit-)?writing-mode\s*:\s*vertical', _I),
    'text_orientation': re.compile(r'(?:-epub-|-webkit-)?text-orientation\s*:\s*upright', _I),
    'text_combine_upright': re.compile(r'(?:-epub-|-webkit-)?text-combine-upright\s*:\s*all', _I),
    'rendition_orientation': re.compile(
        r'rendition:orientation\s*=\s*[\'"]vertical|rendition:orientation[\'"][^>]*>\s*vertical', _I),
}

# Reported with the markers above, never enough on their own
RIGHT_TO_LEFT_MARKERS: Dict[str, 're.Pattern'] = {
    'page_progression': re.compile(r'page-progression-direction\s*(?:=\s*[\'"]?|:\s*)rtl', _I),
    'page_spread': re.compile(r'page-spread-direction\s*(?:=\s*[\'"]?|:\s*)rtl', _I),
}


@dataclass
class VerticalLayoutReport:
    """Vertical typesetting declarations found in an archive.

    Attributes:
        markers: Number of matches per marker name, over all entries
        entries: Archive entries with at least one vertical marker
    """
    markers: Dict[str, int] = field(default_factory=dict)
    entries: List[str] = field(default_factory=list)

    @property
    def is_vertical(self) -> bool:
        return any(self.markers.get(name) for name in VERTICAL_MARKERS)


def detect_vertical(archive: EpubArchive) -> VerticalLayoutReport:
    """Scan stylesheets, the package document and markup for vertical layout."""
    report = VerticalLayoutReport()
    for name in archive.names():
        if not applies_to(name):
            continue
        text = archive.read_text(name)
        found_vertical = False
        for markers in (VERTICAL_MARKERS, RIGHT_TO_LEFT_MARKERS):
            for marker, pattern in markers.items():
                count = len(pattern.findall(text))
                if count:
                    report.markers[marker] = report.markers.get(marker, 0) + count
                    found_vertical = found_vertical or marker in VERTICAL_MARKERS
        if found_vertical:
            report.entries.append(name)
    if report.markers:
        logger.debug(f"Layout markers: {report.markers} in {report.entries}")
    return report
