"""EPUB archive access.

Wraps a ZIP archive as a random-access collection of named entries. Entry
lookup is a linear scan over the archive's names; no directory index is
assumed. The archive is a scoped resource: use it as a context manager so it
is released on every exit path.

The safety gate inspects the central directory before any entry is parsed.
"""

from __future__ import annotations

import io
import zipfile
import zlib
from dataclasses import dataclass
from typing import IO

from epubsplit.config import Settings
from epubsplit.errors import ArchiveInvalidError, ArchiveUnsafeError
from epubsplit.logging import get_logger

logger = get_logger(__name__)


class EntryNotFoundError(KeyError):
    """Raised when an entry name does not exist in the archive."""


@dataclass(frozen=True)
class ArchiveSafetyConfig:
    max_entries: int
    max_total_uncompressed_bytes: int
    max_single_entry_uncompressed_bytes: int
    max_compression_ratio: int

    @classmethod
    def from_settings(cls, settings: Settings) -> ArchiveSafetyConfig:
        return cls(
            max_entries=settings.max_epub_archive_entries,
            max_total_uncompressed_bytes=settings.max_epub_archive_total_uncompressed_bytes,
            max_single_entry_uncompressed_bytes=(
                settings.max_epub_archive_single_entry_uncompressed_bytes
            ),
            max_compression_ratio=settings.max_epub_archive_compression_ratio,
        )


class EpubArchive:
    """Read-only view over the entries of one uploaded archive."""

    def __init__(self, zf: zipfile.ZipFile):
        self._zf = zf
        self._names = tuple(info.filename for info in zf.infolist())

    @classmethod
    def from_bytes(cls, data: bytes) -> EpubArchive:
        """Open an archive held in memory.

        Raises:
            ArchiveInvalidError: If the bytes are not a readable ZIP archive.
        """
        try:
            zf = zipfile.ZipFile(io.BytesIO(data))
        except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError, OSError) as exc:
            raise ArchiveInvalidError(f"Invalid EPUB file: {exc}") from exc
        return cls(zf)

    def __enter__(self) -> EpubArchive:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self._zf.close()

    def names(self) -> tuple[str, ...]:
        """All entry names in central-directory order."""
        return self._names

    def find(self, name: str) -> str | None:
        """Return the entry name equal to ``name``, or None."""
        for entry in self._names:
            if entry == name:
                return entry
        return None

    def __contains__(self, name: str) -> bool:
        return self.find(name) is not None

    def open(self, name: str) -> IO[bytes]:
        """Open an entry as a byte stream.

        Raises:
            EntryNotFoundError: If no entry has this name.
        """
        entry = self.find(name)
        if entry is None:
            raise EntryNotFoundError(name)
        return self._zf.open(entry)

    def read(self, name: str) -> bytes:
        """Read an entry fully.

        Raises:
            EntryNotFoundError: If no entry has this name.
            zipfile.BadZipFile, zlib.error: If the entry data is corrupt.
        """
        with self.open(name) as stream:
            return stream.read()


# Exceptions raised by zipfile/zlib when an individual entry is corrupt
ENTRY_READ_ERRORS = (zipfile.BadZipFile, zlib.error, EOFError, OSError)


def check_archive_safety(data: bytes, cfg: ArchiveSafetyConfig) -> None:
    """Validate the archive's central directory against safety limits.

    Raises:
        ArchiveInvalidError: If the bytes are not a readable ZIP archive.
        ArchiveUnsafeError: If any limit is exceeded or an entry path is unsafe.
    """
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            infos = zf.infolist()
    except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError, OSError) as exc:
        raise ArchiveInvalidError(f"Invalid EPUB file: {exc}") from exc

    if len(infos) > cfg.max_entries:
        raise ArchiveUnsafeError(f"Archive has {len(infos)} entries (limit {cfg.max_entries})")

    total_uncompressed = 0
    for info in infos:
        # path safety: reject absolute, traversal, drive-qualified
        name = info.filename
        if name.startswith("/") or name.startswith("\\"):
            raise ArchiveUnsafeError(f"Absolute path in archive: {name}")
        if ".." in name.replace("\\", "/").split("/"):
            raise ArchiveUnsafeError(f"Path traversal in archive: {name}")
        if len(name) > 1 and name[1] == ":":
            raise ArchiveUnsafeError(f"Drive-qualified path in archive: {name}")

        uncompressed = info.file_size
        compressed = info.compress_size

        if uncompressed > cfg.max_single_entry_uncompressed_bytes:
            raise ArchiveUnsafeError(
                f"Entry '{name}' uncompressed size {uncompressed} "
                f"exceeds limit {cfg.max_single_entry_uncompressed_bytes}"
            )

        total_uncompressed += uncompressed

        if compressed > 0 and uncompressed / compressed > cfg.max_compression_ratio:
            raise ArchiveUnsafeError(
                f"Entry '{name}' compression ratio {uncompressed / compressed:.1f} "
                f"exceeds limit {cfg.max_compression_ratio}"
            )

    if total_uncompressed > cfg.max_total_uncompressed_bytes:
        raise ArchiveUnsafeError(
            f"Total uncompressed {total_uncompressed} "
            f"exceeds limit {cfg.max_total_uncompressed_bytes}"
        )

    logger.debug("epub_archive_safety_passed", entries=len(infos), total=total_uncompressed)
