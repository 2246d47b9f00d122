"""API error definitions.

All API errors are defined here with their corresponding HTTP status codes.
Structural EPUB failures (fatal to a conversion) are raised as the ApiError
subclasses at the bottom of this module.
"""

from enum import Enum


class ApiErrorCode(str, Enum):
    """Standardized error codes for the API.

    Format: E_CATEGORY_NAME
    """

    # Not found errors (404)
    E_NOT_FOUND = "E_NOT_FOUND"

    # Validation errors (400)
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_INVALID_FILE_TYPE = "E_INVALID_FILE_TYPE"
    E_FILE_TOO_LARGE = "E_FILE_TOO_LARGE"

    # EPUB structural errors (400)
    E_ARCHIVE_INVALID = "E_ARCHIVE_INVALID"
    E_ARCHIVE_UNSAFE = "E_ARCHIVE_UNSAFE"
    E_METADATA_MISSING = "E_METADATA_MISSING"
    E_METADATA_MALFORMED = "E_METADATA_MALFORMED"

    # Server errors
    E_INTERNAL = "E_INTERNAL"  # 500
    E_CONVERSION_FAILED = "E_CONVERSION_FAILED"  # 500


# Error code to HTTP status mapping
ERROR_CODE_TO_STATUS: dict[ApiErrorCode, int] = {
    ApiErrorCode.E_NOT_FOUND: 404,
    ApiErrorCode.E_INVALID_REQUEST: 400,
    ApiErrorCode.E_INVALID_FILE_TYPE: 400,
    ApiErrorCode.E_FILE_TOO_LARGE: 400,
    ApiErrorCode.E_ARCHIVE_INVALID: 400,
    ApiErrorCode.E_ARCHIVE_UNSAFE: 400,
    ApiErrorCode.E_METADATA_MISSING: 400,
    ApiErrorCode.E_METADATA_MALFORMED: 400,
    ApiErrorCode.E_INTERNAL: 500,
    ApiErrorCode.E_CONVERSION_FAILED: 500,
}


class ApiError(Exception):
    """Base exception for API errors.

    Attributes:
        code: The error code enum value
        message: Human-readable error message
        status_code: HTTP status code (derived from code)
    """

    def __init__(self, code: ApiErrorCode, message: str):
        self.code = code
        self.message = message
        self.status_code = ERROR_CODE_TO_STATUS.get(code, 500)
        super().__init__(message)


class InvalidRequestError(ApiError):
    """Invalid request error."""

    def __init__(
        self, code: ApiErrorCode = ApiErrorCode.E_INVALID_REQUEST, message: str = "Invalid request"
    ):
        super().__init__(code, message)


class ArchiveInvalidError(ApiError):
    """The upload is not a readable ZIP archive."""

    def __init__(self, message: str = "Invalid EPUB file"):
        super().__init__(ApiErrorCode.E_ARCHIVE_INVALID, message)


class ArchiveUnsafeError(ApiError):
    """The archive violates a configured safety limit."""

    def __init__(self, message: str):
        super().__init__(ApiErrorCode.E_ARCHIVE_UNSAFE, message)


class MetadataMissingError(ApiError):
    """A required metadata file or declaration is absent."""

    def __init__(self, message: str = "No package document declared"):
        super().__init__(ApiErrorCode.E_METADATA_MISSING, message)


class MetadataMalformedError(ApiError):
    """A required metadata file cannot be parsed."""

    def __init__(self, message: str = "Unreadable metadata"):
        super().__init__(ApiErrorCode.E_METADATA_MALFORMED, message)


class ConversionFailedError(ApiError):
    """A chapter post-processor failed."""

    def __init__(self, message: str = "Chapter conversion failed"):
        super().__init__(ApiErrorCode.E_CONVERSION_FAILED, message)
