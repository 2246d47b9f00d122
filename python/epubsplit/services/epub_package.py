"""Package document (OPF) parsing.

Produces the manifest (id -> item) and the spine (reading order). Manifest
hrefs are resolved against the package document's directory so they can be
used directly as archive entry names.
"""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass
from urllib.parse import unquote
from xml.etree import ElementTree as ET

from epubsplit.errors import ArchiveInvalidError, MetadataMalformedError, MetadataMissingError
from epubsplit.logging import get_logger
from epubsplit.services.epub_archive import ENTRY_READ_ERRORS, EntryNotFoundError, EpubArchive

logger = get_logger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class ManifestItem:
    id: str
    href: str
    media_type: str
    properties: tuple[str, ...] = ()


@dataclass(frozen=True)
class SpineEntry:
    idref: str


@dataclass(frozen=True)
class PackageDocument:
    path: str
    manifest: dict[str, ManifestItem]
    spine: tuple[SpineEntry, ...]
    toc_id: str | None = None
    title: str | None = None

    @property
    def base_dir(self) -> str:
        return posixpath.dirname(self.path)

    def resolve(self, idref: str) -> ManifestItem | None:
        return self.manifest.get(idref)


def resolve_href(base_dir: str, href: str) -> str:
    """Resolve a document-relative href to an archive entry name."""
    path = unquote(href.split("#", 1)[0])
    if base_dir:
        path = posixpath.join(base_dir, path)
    return posixpath.normpath(path)


def parse_package(raw: bytes, path: str) -> PackageDocument:
    """Parse package XML located at ``path`` inside the archive.

    Raises:
        MetadataMalformedError: If the XML cannot be parsed.
    """
    try:
        opf = ET.fromstring(raw)
    except ET.ParseError as exc:
        raise MetadataMalformedError(f"Error parsing EPUB content: {path}: {exc}") from exc

    base_dir = posixpath.dirname(path)

    manifest: dict[str, ManifestItem] = {}
    for item in opf.iterfind(".//{*}manifest/{*}item"):
        item_id = item.get("id", "")
        href = item.get("href", "")
        if not item_id or not href:
            logger.warning("epub_manifest_item_incomplete", id=item_id, href=href)
            continue
        if item_id in manifest:
            logger.warning("epub_manifest_item_duplicate", id=item_id)
            continue
        manifest[item_id] = ManifestItem(
            id=item_id,
            href=resolve_href(base_dir, href),
            media_type=item.get("media-type", ""),
            properties=tuple(item.get("properties", "").split()),
        )

    spine: list[SpineEntry] = []
    toc_id = None
    spine_el = opf.find(".//{*}spine")
    if spine_el is not None:
        toc_id = spine_el.get("toc") or None
        for itemref in spine_el.iterfind("{*}itemref"):
            idref = itemref.get("idref", "")
            if idref:
                spine.append(SpineEntry(idref=idref))

    return PackageDocument(
        path=path,
        manifest=manifest,
        spine=tuple(spine),
        toc_id=toc_id,
        title=_find_title(opf),
    )


def load_package(archive: EpubArchive, path: str) -> PackageDocument:
    """Read and parse the package document from the archive.

    Raises:
        MetadataMissingError: If the package document entry does not exist.
        MetadataMalformedError: If it cannot be parsed.
        ArchiveInvalidError: If the entry is corrupt.
    """
    try:
        raw = archive.read(path)
    except EntryNotFoundError as exc:
        raise MetadataMissingError(f"EPUB root file not found: {path}") from exc
    except ENTRY_READ_ERRORS as exc:
        raise ArchiveInvalidError(f"Corrupt archive entry {path}: {exc}") from exc

    package = parse_package(raw, path)
    logger.info(
        "epub_package_parsed",
        path=path,
        manifest_items=len(package.manifest),
        spine_entries=len(package.spine),
    )
    return package


def _find_title(opf: ET.Element) -> str | None:
    title_el = opf.find(".//{*}metadata/{*}title")
    if title_el is None or not title_el.text:
        return None
    title = _WHITESPACE_RE.sub(" ", title_el.text).strip()
    return title or None
