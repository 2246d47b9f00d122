"""Application settings loaded from environment variables.

Environment Configuration:
    EPUBSPLIT_ENV: Deployment environment (local | test | prod)
    LOG_JSON: Render logs as JSON (true) or console-friendly text (false)

Upload / Archive Safety Configuration:
    MAX_EPUB_BYTES: Maximum accepted upload size in bytes
    MAX_EPUB_ARCHIVE_ENTRIES: Maximum number of entries in the archive
    MAX_EPUB_ARCHIVE_TOTAL_UNCOMPRESSED_BYTES: Maximum total uncompressed size
    MAX_EPUB_ARCHIVE_SINGLE_ENTRY_UNCOMPRESSED_BYTES: Maximum uncompressed size per entry
    MAX_EPUB_ARCHIVE_COMPRESSION_RATIO: Maximum uncompressed/compressed ratio per entry

Navigation Configuration:
    NAV_INCLUDE_NESTED: Flatten nested navigation points into the chapter list

Archive safety limits may be tightened through the environment but never
loosened beyond the built-in baseline.
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Environment(str, Enum):
    """Valid deployment environments."""

    LOCAL = "local"
    TEST = "test"
    PROD = "prod"


# Baseline archive safety limits (upper bounds for overrides)
ARCHIVE_SAFETY_BASELINE: dict[str, int] = {
    "max_epub_archive_entries": 10_000,
    "max_epub_archive_total_uncompressed_bytes": 512 * 1024 * 1024,
    "max_epub_archive_single_entry_uncompressed_bytes": 64 * 1024 * 1024,
    "max_epub_archive_compression_ratio": 100,
}


class Settings(BaseSettings):
    """Application configuration.

    Settings are loaded from environment variables.
    Validation rules:
    - Every size/count limit must be >= 1
    - Archive safety limits must not exceed ARCHIVE_SAFETY_BASELINE
    """

    epubsplit_env: Environment = Field(default=Environment.LOCAL, alias="EPUBSPLIT_ENV")
    log_json: bool = Field(default=True, alias="LOG_JSON")

    # Upload limit (checked before any parsing)
    max_epub_bytes: int = Field(default=10 * 1024 * 1024, alias="MAX_EPUB_BYTES")  # 10 MB

    # Archive safety gate
    max_epub_archive_entries: int = Field(
        default=ARCHIVE_SAFETY_BASELINE["max_epub_archive_entries"],
        alias="MAX_EPUB_ARCHIVE_ENTRIES",
    )
    max_epub_archive_total_uncompressed_bytes: int = Field(
        default=ARCHIVE_SAFETY_BASELINE["max_epub_archive_total_uncompressed_bytes"],
        alias="MAX_EPUB_ARCHIVE_TOTAL_UNCOMPRESSED_BYTES",
    )
    max_epub_archive_single_entry_uncompressed_bytes: int = Field(
        default=ARCHIVE_SAFETY_BASELINE["max_epub_archive_single_entry_uncompressed_bytes"],
        alias="MAX_EPUB_ARCHIVE_SINGLE_ENTRY_UNCOMPRESSED_BYTES",
    )
    max_epub_archive_compression_ratio: int = Field(
        default=ARCHIVE_SAFETY_BASELINE["max_epub_archive_compression_ratio"],
        alias="MAX_EPUB_ARCHIVE_COMPRESSION_RATIO",
    )

    # Navigation
    nav_include_nested: bool = Field(default=False, alias="NAV_INCLUDE_NESTED")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }

    @model_validator(mode="after")
    def validate_limits(self) -> "Settings":
        """Ensure limits are positive and safety limits are not loosened."""
        limits = {"max_epub_bytes": self.max_epub_bytes}
        limits.update({name: getattr(self, name) for name in ARCHIVE_SAFETY_BASELINE})

        for name, value in limits.items():
            if value < 1:
                raise ValueError(f"{name.upper()} must be >= 1 (got {value})")

        for name, ceiling in ARCHIVE_SAFETY_BASELINE.items():
            value = getattr(self, name)
            if value > ceiling:
                raise ValueError(
                    f"{name.upper()}={value} is weaker than the baseline limit {ceiling}"
                )

        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If settings are invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    get_settings.cache_clear()
