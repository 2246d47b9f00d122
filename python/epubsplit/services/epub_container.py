"""Container descriptor resolution.

Reads ``META-INF/container.xml`` and returns the path of the package
document declared by its first ``rootfile``.
"""

from __future__ import annotations

from dataclasses import dataclass
from xml.etree import ElementTree as ET

from epubsplit.errors import ArchiveInvalidError, MetadataMalformedError, MetadataMissingError
from epubsplit.logging import get_logger
from epubsplit.services.epub_archive import ENTRY_READ_ERRORS, EntryNotFoundError, EpubArchive

logger = get_logger(__name__)

CONTAINER_PATH = "META-INF/container.xml"


@dataclass(frozen=True)
class RootFile:
    full_path: str
    media_type: str


@dataclass(frozen=True)
class ContainerDescriptor:
    root_files: tuple[RootFile, ...]


def parse_container(raw: bytes) -> ContainerDescriptor:
    """Parse container XML into its root-file references.

    Raises:
        MetadataMalformedError: If the XML cannot be parsed.
    """
    try:
        root = ET.fromstring(raw)
    except ET.ParseError as exc:
        raise MetadataMalformedError(f"Unreadable metadata: {CONTAINER_PATH}: {exc}") from exc

    root_files = tuple(
        RootFile(
            full_path=(el.get("full-path") or "").strip(),
            media_type=el.get("media-type", ""),
        )
        for el in root.iterfind(".//{*}rootfiles/{*}rootfile")
    )
    return ContainerDescriptor(root_files=root_files)


def resolve_package_path(archive: EpubArchive) -> str:
    """Return the archive path of the package document.

    Raises:
        MetadataMissingError: If the container or its root file is absent.
        MetadataMalformedError: If the container XML cannot be parsed.
        ArchiveInvalidError: If the container entry is corrupt.
    """
    try:
        raw = archive.read(CONTAINER_PATH)
    except EntryNotFoundError as exc:
        raise MetadataMissingError(
            f"No package document declared: {CONTAINER_PATH} not found"
        ) from exc
    except ENTRY_READ_ERRORS as exc:
        raise ArchiveInvalidError(f"Corrupt archive entry {CONTAINER_PATH}: {exc}") from exc

    descriptor = parse_container(raw)
    if not descriptor.root_files:
        raise MetadataMissingError("No root file found in EPUB")

    first = descriptor.root_files[0]
    if not first.full_path:
        raise MetadataMissingError("First root file has no full-path")

    if len(descriptor.root_files) > 1:
        logger.info(
            "epub_container_multiple_rootfiles",
            count=len(descriptor.root_files),
            using=first.full_path,
        )
    return first.full_path
