"""EPUB conversion routes.

Routes are transport-only:
- Pull the uploaded file out of the multipart form
- Call exactly one service function
- Return the ConversionOut schema or raise ApiError

Conversion bodies are the bare ``{"title", "chapters", "toc"}`` object the
converter front end destructures; only errors use the envelope.

Routes are plain ``def`` so each conversion runs on its own worker thread.
"""

from typing import Annotated

from fastapi import APIRouter, File, Query, UploadFile

from epubsplit.schemas.conversion import ConversionOut, OutputFormat
from epubsplit.services import upload as upload_service

router = APIRouter()


@router.post(
    "/convertEpubToChapters",
    response_model=ConversionOut,
    response_model_exclude_none=True,
)
def convert_epub_to_chapters(
    file: Annotated[UploadFile, File()],
    format: Annotated[OutputFormat, Query()] = OutputFormat.HTML,
) -> ConversionOut:
    """Split an uploaded EPUB into chapters.

    Returns:
        - title: Book title from the package metadata (if any)
        - chapters: Chapter texts in reading order, rendered per ``format``
        - toc: Navigation labels (omitted when the book has no navigation)
    """
    return upload_service.convert_upload(file.filename, file.file, format, file.size)


@router.post(
    "/convertEpubToMd",
    response_model=ConversionOut,
    response_model_exclude_none=True,
)
def convert_epub_to_markdown(file: Annotated[UploadFile, File()]) -> ConversionOut:
    """Split an uploaded EPUB into chapters rendered as Markdown."""
    return upload_service.convert_upload(
        file.filename, file.file, OutputFormat.MARKDOWN, file.size
    )
