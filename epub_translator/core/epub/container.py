"""
EPUB archive container.

An EPUB is a ZIP archive whose first entry must be an uncompressed
``mimetype`` file. The container keeps every entry as raw bytes in
archive order; the translator replaces the entries it rewrites and copies
everything else untouched.
"""

import io
import logging
import re
import zipfile
from collections import OrderedDict
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

import aiofiles
from lxml import etree

from epub_translator.config import MARKUP_EXTENSIONS
from .exceptions import ArchiveError

logger = logging.getLogger(__name__)

MIMETYPE_NAME = 'mimetype'
EPUB_MIMETYPE = b'application/epub+zip'
CONTAINER_XML = 'META-INF/container.xml'

_CONTAINER_NS = {'c': 'urn:oasis:names:tc:opendocument:xmlns:container'}
_ENCODING_DECLARATION_RE = re.compile(rb'^\s*<\?xml[^>]*encoding\s*=\s*["\']([\w.-]+)["\']', re.IGNORECASE)
_META_CHARSET_RE = re.compile(rb'<meta[^>]+charset\s*=\s*["\']?([\w.-]+)', re.IGNORECASE)


class EpubArchive:
    """Ordered path -> bytes store for the entries of one EPUB."""

    def __init__(self, entries: Optional[Dict[str, bytes]] = None):
        self._entries: "OrderedDict[str, bytes]" = OrderedDict(entries or {})
        self._encodings: Dict[str, str] = {}

    @classmethod
    def from_bytes(cls, data: bytes) -> 'EpubArchive':
        try:
            with zipfile.ZipFile(io.BytesIO(data), 'r') as zip_ref:
                entries = OrderedDict(
                    (info.filename, zip_ref.read(info))
                    for info in zip_ref.infolist()
                    if not info.is_dir()
                )
        except (zipfile.BadZipFile, zipfile.LargeZipFile) as e:
            raise ArchiveError(f"Not a readable EPUB archive: {e}") from e
        logger.debug(f"Loaded archive with {len(entries)} entries")
        return cls(entries)

    @classmethod
    async def load(cls, path: Union[str, Path]) -> 'EpubArchive':
        try:
            async with aiofiles.open(path, 'rb') as f:
                data = await f.read()
        except OSError as e:
            raise ArchiveError(f"Cannot read '{path}': {e}") from e
        return cls.from_bytes(data)

    # === Entry access ===

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def names(self) -> List[str]:
        return list(self._entries)

    def read_bytes(self, name: str) -> bytes:
        try:
            return self._entries[name]
        except KeyError:
            raise ArchiveError(f"No entry named '{name}' in archive") from None

    def read_text(self, name: str) -> str:
        """Decode an entry, remembering the encoding so it is written back the same way."""
        data = self.read_bytes(name)
        for encoding in self._candidate_encodings(data):
            try:
                text = data.decode(encoding)
            except (UnicodeDecodeError, LookupError):
                continue
            self._encodings[name] = 'utf-8' if encoding == 'utf-8-sig' else encoding
            return text
        # latin-1 always decodes, so this is unreachable in practice
        raise ArchiveError(f"Cannot decode '{name}'")

    @staticmethod
    def _candidate_encodings(data: bytes) -> List[str]:
        candidates = ['utf-8-sig']
        head = data[:1024]
        for pattern in (_ENCODING_DECLARATION_RE, _META_CHARSET_RE):
            match = pattern.search(head)
            if match:
                candidates.append(match.group(1).decode('ascii').lower())
        candidates.append('latin-1')
        return candidates

    def set_bytes(self, name: str, data: bytes) -> None:
        self._entries[name] = data

    def set_text(self, name: str, text: str, encoding: Optional[str] = None) -> None:
        """Encode with ``encoding``, or with whatever ``read_text`` found for this entry."""
        encoding = encoding or self._encodings.get(name, 'utf-8')
        try:
            self._entries[name] = text.encode(encoding)
        except UnicodeEncodeError:
            # Translated text may not fit a legacy charset
            logger.debug(f"{name}: re-encoding as utf-8 instead of {encoding}")
            self._entries[name] = text.encode('utf-8')

    # === EPUB structure ===

    def markup_documents(self) -> List[str]:
        return [name for name in self._entries if name.lower().endswith(MARKUP_EXTENSIONS)]

    def find_opf(self) -> Optional[str]:
        """Locate the package document through META-INF/container.xml."""
        if CONTAINER_XML in self._entries:
            try:
                root = etree.fromstring(self._entries[CONTAINER_XML])
                rootfile = root.find('.//c:rootfile', namespaces=_CONTAINER_NS)
                if rootfile is not None and rootfile.get('full-path') in self._entries:
                    return rootfile.get('full-path')
            except etree.XMLSyntaxError as e:
                logger.warning(f"Unreadable {CONTAINER_XML}: {e}")

        for name in self._entries:
            if name.lower().endswith('.opf'):
                return name
        return None

    # === Writing ===

    def to_bytes(self) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, 'w', zipfile.ZIP_DEFLATED) as epub_zip:
            # mimetype must be the first entry, stored uncompressed
            epub_zip.writestr(
                MIMETYPE_NAME,
                self._entries.get(MIMETYPE_NAME, EPUB_MIMETYPE),
                compress_type=zipfile.ZIP_STORED,
            )
            for name, data in self._entries.items():
                if name != MIMETYPE_NAME:
                    epub_zip.writestr(name, data)
        return buffer.getvalue()

    async def save(self, path: Union[str, Path]) -> None:
        data = self.to_bytes()
        try:
            async with aiofiles.open(path, 'wb') as f_out:
                await f_out.write(data)
        except OSError as e:
            raise ArchiveError(f"Cannot write '{path}': {e}") from e
        logger.debug(f"Saved archive with {len(self._entries)} entries to {path}")
