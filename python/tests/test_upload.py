"""Tests for upload validation and the upload conversion service."""

import io

import pytest

from epubsplit.config import clear_settings_cache
from epubsplit.errors import ApiErrorCode, InvalidRequestError
from epubsplit.schemas.conversion import OutputFormat
from epubsplit.services.upload import convert_upload, read_upload, validate_epub_filename
from tests.helpers import make_book


class TestValidateEpubFilename:
    """Tests for validate_epub_filename."""

    @pytest.mark.parametrize("filename", ["book.epub", "BOOK.EPUB", "my.book.Epub"])
    def test_epub_extension_accepted(self, filename: str):
        validate_epub_filename(filename)

    @pytest.mark.parametrize("filename", ["book.pdf", "book.epub.zip", "epub", "", None])
    def test_other_names_rejected(self, filename):
        with pytest.raises(InvalidRequestError) as exc_info:
            validate_epub_filename(filename)
        assert exc_info.value.code == ApiErrorCode.E_INVALID_FILE_TYPE
        assert exc_info.value.status_code == 400


class TestReadUpload:
    """Tests for read_upload size enforcement."""

    def test_reads_all_bytes(self):
        payload = b"x" * 200_000
        assert read_upload(io.BytesIO(payload), max_bytes=300_000) == payload

    def test_declared_size_over_limit_rejected_before_reading(self):
        stream = io.BytesIO(b"small")
        with pytest.raises(InvalidRequestError) as exc_info:
            read_upload(stream, max_bytes=10, declared_size=11)
        assert exc_info.value.code == ApiErrorCode.E_FILE_TOO_LARGE
        assert stream.tell() == 0

    def test_actual_size_over_limit_rejected(self):
        """A client that under-reports its size is still stopped."""
        with pytest.raises(InvalidRequestError) as exc_info:
            read_upload(io.BytesIO(b"x" * 11), max_bytes=10, declared_size=5)
        assert exc_info.value.code == ApiErrorCode.E_FILE_TOO_LARGE

    def test_exactly_at_limit_accepted(self):
        assert read_upload(io.BytesIO(b"x" * 10), max_bytes=10) == b"x" * 10

    def test_empty_rejected(self):
        with pytest.raises(InvalidRequestError) as exc_info:
            read_upload(io.BytesIO(b""), max_bytes=10)
        assert exc_info.value.code == ApiErrorCode.E_INVALID_REQUEST


class TestConvertUpload:
    """Tests for convert_upload."""

    def test_converts_and_renders(self):
        data = make_book(
            {"p1": '<h1 id="a">Start</h1><p>Once upon a time</p>'},
            toc=[("Start", "p1.html#a")],
            title="Fables",
        )

        out = convert_upload("fables.epub", io.BytesIO(data), OutputFormat.TEXT)

        assert out.title == "Fables"
        assert out.chapters == ["Start\nOnce upon a time"]
        assert out.toc == ["Start"]

    def test_limit_read_from_settings(self, monkeypatch: pytest.MonkeyPatch):
        data = make_book({"p1": "<p>One</p>"})
        monkeypatch.setenv("MAX_EPUB_BYTES", str(len(data) - 1))
        clear_settings_cache()

        with pytest.raises(InvalidRequestError) as exc_info:
            convert_upload("book.epub", io.BytesIO(data), OutputFormat.HTML)
        assert exc_info.value.code == ApiErrorCode.E_FILE_TOO_LARGE

    def test_filename_checked_before_reading(self):
        stream = io.BytesIO(b"irrelevant")
        with pytest.raises(InvalidRequestError):
            convert_upload("book.txt", stream, OutputFormat.HTML)
        assert stream.tell() == 0
