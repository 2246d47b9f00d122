"""Conversion request/response schemas."""

from enum import Enum

from pydantic import BaseModel, Field


class OutputFormat(str, Enum):
    """Rendering applied to each chapter after splitting."""

    HTML = "html"
    TEXT = "text"
    MARKDOWN = "markdown"


class ConversionOut(BaseModel):
    """Response schema for a converted EPUB.

    ``toc`` is omitted when the book has no usable navigation document.
    """

    title: str | None = None
    chapters: list[str] = Field(default_factory=list)
    toc: list[str] | None = None
