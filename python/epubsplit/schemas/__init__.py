"""Pydantic schemas for request/response models.

All schemas are re-exported here for convenient imports.
"""

from epubsplit.schemas.conversion import ConversionOut, OutputFormat

__all__ = [
    "ConversionOut",
    "OutputFormat",
]
