"""EPUB to chapters conversion pipeline.

Runs the stages for one archive, strictly in order:

    safety gate -> archive -> container -> package -> navigation -> splitter

Structural failures (unreadable archive, missing or malformed container or
package document) raise ApiError subclasses and produce no output. Item-level
problems are logged by the stage that meets them and skipped.

Post-processing renders each finalized chapter independently; the chapter
boundaries are fixed before any renderer runs.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from epubsplit.config import Settings, get_settings
from epubsplit.errors import ConversionFailedError
from epubsplit.logging import get_logger
from epubsplit.schemas.conversion import OutputFormat
from epubsplit.services.canonicalize import chapter_to_text
from epubsplit.services.chapter_splitter import Chapter, split_spine
from epubsplit.services.epub_archive import ArchiveSafetyConfig, EpubArchive, check_archive_safety
from epubsplit.services.epub_container import resolve_package_path
from epubsplit.services.epub_navigation import load_navigation
from epubsplit.services.epub_package import load_package
from epubsplit.services.markdown import chapter_to_markdown

logger = get_logger(__name__)


@dataclass(frozen=True)
class ConversionResult:
    title: str | None
    chapters: list[Chapter]
    toc: list[str] | None


RENDERERS: dict[OutputFormat, Callable[[str], str]] = {
    OutputFormat.HTML: lambda html: html,
    OutputFormat.TEXT: chapter_to_text,
    OutputFormat.MARKDOWN: chapter_to_markdown,
}


def convert_epub(data: bytes, *, settings: Settings | None = None) -> ConversionResult:
    """Split an EPUB archive into chapters aligned with its table of contents.

    Args:
        data: The raw archive bytes.
        settings: Settings to use (defaults to the cached application settings).

    Returns:
        ConversionResult with chapters in spine order and the navigation labels
        (None when no navigation document is usable).

    Raises:
        ArchiveInvalidError: If the bytes are not a readable archive.
        ArchiveUnsafeError: If the archive violates a safety limit.
        MetadataMissingError: If the container or package document is absent.
        MetadataMalformedError: If the container or package document is malformed.
    """
    if settings is None:
        settings = get_settings()

    t_start = time.monotonic()
    check_archive_safety(data, ArchiveSafetyConfig.from_settings(settings))

    with EpubArchive.from_bytes(data) as archive:
        package_path = resolve_package_path(archive)
        package = load_package(archive, package_path)
        navigation = load_navigation(
            archive, package, include_nested=settings.nav_include_nested
        )
        chapters = split_spine(archive, package, navigation)

    toc = [entry.label for entry in navigation] if navigation else None

    logger.info(
        "epub_conversion_completed",
        chapter_count=len(chapters),
        toc_count=len(toc) if toc is not None else 0,
        spine_count=len(package.spine),
        duration_ms=round((time.monotonic() - t_start) * 1000, 2),
    )
    return ConversionResult(title=package.title, chapters=chapters, toc=toc)


def render_chapters(chapters: list[Chapter], output_format: OutputFormat) -> list[str]:
    """Apply the output format's renderer to every chapter.

    Raises:
        ConversionFailedError: If the renderer fails on any chapter.
    """
    renderer = RENDERERS[output_format]
    rendered: list[str] = []
    for idx, chapter in enumerate(chapters):
        try:
            rendered.append(renderer(chapter.text))
        except Exception as exc:
            logger.warning(
                "chapter_render_failed",
                chapter_idx=idx,
                output_format=output_format.value,
                error=str(exc),
            )
            raise ConversionFailedError(
                f"Failed to render chapter {idx} as {output_format.value}"
            ) from exc
    return rendered
