"""Navigation document parsing.

Turns the book's table of contents into an ordered list of
``NavigationEntry(label, anchor)``. The anchor is the fragment of the entry's
reference (an element id inside some content document) or ``WHOLE_DOCUMENT``
when the reference names a document without a fragment.

Lookup order for the navigation document:
1. manifest item with the reserved id ``ncx``
2. the spine's ``toc`` attribute
3. the first manifest item with the NCX media type
4. the EPUB 3 navigation document (``properties="nav"``)

A missing or unreadable navigation document is not fatal: the parser returns
an empty list and the splitter falls back to one chapter per document.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from urllib.parse import unquote
from xml.etree import ElementTree as ET

from epubsplit.logging import get_logger
from epubsplit.services.epub_archive import ENTRY_READ_ERRORS, EntryNotFoundError, EpubArchive
from epubsplit.services.epub_package import ManifestItem, PackageDocument

logger = get_logger(__name__)

NCX_MANIFEST_ID = "ncx"
NCX_MEDIA_TYPE = "application/x-dtbncx+xml"
_EPUB_TYPE_ATTR = "{http://www.idpf.org/2007/ops}type"


class WholeDocument(enum.Enum):
    """Sentinel type: the entry targets an entire content document."""

    TOKEN = "whole-document"

    def __repr__(self) -> str:
        return "WHOLE_DOCUMENT"


WHOLE_DOCUMENT = WholeDocument.TOKEN


@dataclass(frozen=True)
class NavigationEntry:
    label: str
    anchor: str | WholeDocument

    @property
    def is_whole_document(self) -> bool:
        return self.anchor is WHOLE_DOCUMENT


def anchor_from_reference(reference: str | None) -> str | WholeDocument:
    """Extract the anchor from a ``file#anchor`` or ``file`` reference."""
    if not reference or "#" not in reference:
        return WHOLE_DOCUMENT
    fragment = unquote(reference.split("#", 1)[1]).strip()
    return fragment or WHOLE_DOCUMENT


def find_navigation_item(package: PackageDocument) -> ManifestItem | None:
    """Locate the manifest item holding the table of contents."""
    item = package.resolve(NCX_MANIFEST_ID)
    if item is not None:
        return item

    if package.toc_id:
        item = package.resolve(package.toc_id)
        if item is not None:
            return item

    for item in package.manifest.values():
        if item.media_type == NCX_MEDIA_TYPE:
            return item

    for item in package.manifest.values():
        if "nav" in item.properties:
            return item

    return None


def parse_ncx(raw: bytes, *, include_nested: bool = False) -> list[NavigationEntry]:
    """Parse NCX XML into navigation entries.

    Raises:
        ET.ParseError: If the XML is malformed.
    """
    root = ET.fromstring(raw)
    nav_map = root.find(".//{*}navMap")
    if nav_map is None:
        return []

    entries: list[NavigationEntry] = []
    _walk_nav_points(nav_map, entries, include_nested)
    return entries


def _walk_nav_points(
    parent: ET.Element,
    entries: list[NavigationEntry],
    include_nested: bool,
) -> None:
    for point in parent.iterfind("{*}navPoint"):
        label_el = point.find("{*}navLabel/{*}text")
        label = _text_content(label_el).strip() if label_el is not None else ""
        content_el = point.find("{*}content")
        src = content_el.get("src") if content_el is not None else None

        entries.append(NavigationEntry(label=label, anchor=anchor_from_reference(src)))

        if include_nested:
            _walk_nav_points(point, entries, include_nested)


def parse_nav_document(raw: bytes, *, include_nested: bool = False) -> list[NavigationEntry]:
    """Parse an EPUB 3 XHTML navigation document.

    Raises:
        ET.ParseError: If the XML is malformed.
    """
    root = ET.fromstring(raw)

    toc_nav = None
    navs = list(root.iterfind(".//{*}nav"))
    for nav in navs:
        if "toc" in nav.get(_EPUB_TYPE_ATTR, "").split():
            toc_nav = nav
            break
    if toc_nav is None and navs:
        toc_nav = navs[0]
    if toc_nav is None:
        return []

    ol = toc_nav.find("{*}ol")
    if ol is None:
        return []

    entries: list[NavigationEntry] = []
    _walk_nav_list(ol, entries, include_nested)
    return entries


def _walk_nav_list(ol: ET.Element, entries: list[NavigationEntry], include_nested: bool) -> None:
    for li in ol.iterfind("{*}li"):
        link = li.find("{*}a")
        if link is None:
            link = li.find("{*}span")
        label = _text_content(link).strip() if link is not None else ""
        href = link.get("href") if link is not None else None

        entries.append(NavigationEntry(label=label, anchor=anchor_from_reference(href)))

        if include_nested:
            nested = li.find("{*}ol")
            if nested is not None:
                _walk_nav_list(nested, entries, include_nested)


def load_navigation(
    archive: EpubArchive,
    package: PackageDocument,
    *,
    include_nested: bool = False,
) -> list[NavigationEntry]:
    """Read the navigation document; return [] when it is absent or unreadable."""
    item = find_navigation_item(package)
    if item is None:
        logger.info("epub_navigation_absent", package=package.path)
        return []

    try:
        raw = archive.read(item.href)
    except EntryNotFoundError:
        logger.warning("epub_navigation_entry_missing", href=item.href)
        return []
    except ENTRY_READ_ERRORS as exc:
        logger.warning("epub_navigation_read_failed", href=item.href, error=str(exc))
        return []

    try:
        if item.media_type == NCX_MEDIA_TYPE or item.href.lower().endswith(".ncx"):
            entries = parse_ncx(raw, include_nested=include_nested)
        else:
            entries = parse_nav_document(raw, include_nested=include_nested)
    except ET.ParseError as exc:
        logger.warning("epub_navigation_malformed", href=item.href, error=str(exc))
        return []

    logger.info("epub_navigation_parsed", href=item.href, entries=len(entries))
    return entries


def _text_content(el: ET.Element) -> str:
    return "".join(el.itertext())
