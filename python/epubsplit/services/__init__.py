"""EPUB conversion services.

This module contains service-layer functions that implement the conversion
pipeline. Services are called by route handlers; they never touch the HTTP
request directly.
"""

from epubsplit.services.epub_convert import ConversionResult, convert_epub, render_chapters
from epubsplit.services.upload import convert_upload

__all__ = [
    "ConversionResult",
    "convert_epub",
    "convert_upload",
    "render_chapters",
]
