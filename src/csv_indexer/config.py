"""Centralized configuration for csv-indexer using Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from csv_indexer.search.analyzers import available_analyzers


class Settings(BaseSettings):
    """Strictly typed configuration loaded from ``CSV_INDEXER_*`` environment variables.

    Values are validated once at startup; the CLI flags ``--log-level`` and
    ``--json-logs`` override the logging entries for a single invocation.
    """

    model_config = SettingsConfigDict(
        env_prefix="CSV_INDEXER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    # Logging
    log_level: str = Field(default="warning", description="Root logging level")
    log_json: bool = Field(default=False, description="Emit structured JSON log lines instead of plain text")

    # Input parsing
    csv_delimiter: str = Field(default=",", min_length=1, max_length=1, description="Input CSV delimiter")
    csv_encoding: str = Field(default="utf-8-sig", description="Input file encoding (BOM tolerant UTF-8 by default)")
    unique_field: str = Field(default="id", min_length=1, description="Column holding the unique document key")

    # Output rendering
    output_delimiter: str = Field(default=",", min_length=1, max_length=1, description="Delimiter for find output")

    # Index engine
    analyzer: str = Field(default="standard", description="Analyzer applied to text columns of new indexes")
    fuzzy_max_edits: int = Field(default=2, ge=0, le=2, description="Edit distance used by 'term~' without a number")
    sqlite_busy_timeout_ms: int = Field(default=30000, ge=0, description="SQLite busy timeout in milliseconds")

    # Metrics
    metrics_textfile: Path | None = Field(
        default=None,
        description="Write Prometheus metrics to this file after each command (textfile collector format)",
    )

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level '{value}'")
        return normalized.lower()

    @field_validator("analyzer")
    @classmethod
    def _check_analyzer(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in available_analyzers():
            raise ValueError(f"Unknown analyzer '{value}'. Available: {sorted(available_analyzers())}")
        return normalized

    @model_validator(mode="after")
    def _check_delimiters(self) -> "Settings":
        if self.csv_delimiter in {'"', "\n", "\r"}:
            raise ValueError("CSV delimiter cannot be a quote or a line break")
        if self.output_delimiter in {'"', "\n", "\r"}:
            raise ValueError("Output delimiter cannot be a quote or a line break")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
