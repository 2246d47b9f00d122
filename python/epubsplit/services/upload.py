"""Upload handling for EPUB conversion.

Validates the uploaded file before the core runs:
- Filename must carry the .epub extension
- Payload must not exceed MAX_EPUB_BYTES (checked on the declared size and
  again while reading, so a lying client cannot bypass it)
- Payload must not be empty

The whole upload is held in memory; the limit bounds memory per request.
"""

from typing import BinaryIO

from epubsplit.config import get_settings
from epubsplit.errors import ApiErrorCode, InvalidRequestError
from epubsplit.logging import conversion_context, get_logger
from epubsplit.schemas.conversion import ConversionOut, OutputFormat
from epubsplit.services.epub_convert import convert_epub, render_chapters

logger = get_logger(__name__)

EPUB_EXTENSION = ".epub"
_READ_CHUNK = 64 * 1024


def validate_epub_filename(filename: str | None) -> None:
    """Raises InvalidRequestError unless filename ends with .epub."""
    if not filename or not filename.lower().endswith(EPUB_EXTENSION):
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_FILE_TYPE,
            "Invalid file type, only .epub files are allowed",
        )


def read_upload(stream: BinaryIO, max_bytes: int, declared_size: int | None = None) -> bytes:
    """Read an uploaded file, enforcing the size limit.

    Raises:
        InvalidRequestError: If the file is too large or empty.
    """
    if declared_size is not None and declared_size > max_bytes:
        raise InvalidRequestError(
            ApiErrorCode.E_FILE_TOO_LARGE,
            f"File size {declared_size} bytes exceeds maximum {max_bytes} bytes.",
        )

    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = stream.read(_READ_CHUNK)
        if not chunk:
            break
        total += len(chunk)
        if total > max_bytes:
            raise InvalidRequestError(
                ApiErrorCode.E_FILE_TOO_LARGE,
                f"File exceeds maximum {max_bytes} bytes.",
            )
        chunks.append(chunk)

    if total == 0:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "Uploaded file is empty")
    return b"".join(chunks)


def convert_upload(
    filename: str | None,
    stream: BinaryIO,
    output_format: OutputFormat,
    declared_size: int | None = None,
) -> ConversionOut:
    """Validate an uploaded EPUB, split it into chapters and render them.

    Args:
        filename: Client-supplied filename.
        stream: The uploaded file's byte stream.
        output_format: Rendering applied to each chapter.
        declared_size: Size reported by the upload layer, if known.

    Returns:
        ConversionOut with rendered chapters and navigation labels.

    Raises:
        InvalidRequestError: If the upload fails validation.
        ApiError: If the archive cannot be converted.
    """
    settings = get_settings()

    validate_epub_filename(filename)
    data = read_upload(stream, settings.max_epub_bytes, declared_size)

    with conversion_context(filename, len(data), output_format.value):
        logger.info("epub_upload_received")
        result = convert_epub(data, settings=settings)
        chapters = render_chapters(result.chapters, output_format)

    return ConversionOut(title=result.title, chapters=chapters, toc=result.toc)
