"""
Bookkeeper Settings

All configuration comes from the environment (and an optional .env file)
through pydantic-settings.

Each backend or external API owns one settings class with its own env
prefix. The root Settings object builds them on access, so a deployment
that stores data in Supabase never has to provide Google credentials and
a missing Gemini key only disables AI classification.
"""

import warnings
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SupabaseSettings(BaseSettings):
    """Supabase (hosted Postgres) record store."""

    model_config = SettingsConfigDict(env_prefix="SUPABASE_", extra="ignore")

    url: str = Field(..., description="Supabase project URL")
    key: str = Field(..., description="Supabase service or anon key")


class GoogleSheetsSettings(BaseSettings):
    """Spreadsheet-backed record store."""

    model_config = SettingsConfigDict(env_prefix="GOOGLE_SHEETS_", extra="ignore")

    credentials_path: str = Field(..., description="Service account key file (JSON)")
    spreadsheet_id: str = Field(..., description="Spreadsheet holding one worksheet per table")
    audit_sheet_name: str = Field(default="AuditLog", description="Worksheet that receives audit events")

    @field_validator("credentials_path")
    @classmethod
    def check_credentials_file(cls, v: str) -> str:
        # Only a warning: the key file is often mounted after the settings load.
        if not Path(v).exists():
            warnings.warn(f"Service account key file {v} does not exist yet.")
        return v


class MindeeSettings(BaseSettings):
    """Receipt OCR."""

    model_config = SettingsConfigDict(env_prefix="MINDEE_", extra="ignore")

    api_key: str = Field(..., description="Mindee API key")


class GeminiSettings(BaseSettings):
    """AI fallback for transactions no rule or known vendor matched."""

    model_config = SettingsConfigDict(env_prefix="GEMINI_", extra="ignore")

    api_key: str = Field(..., description="Gemini API key")
    model_name: str = Field(default="gemini-1.5-flash", description="Generative model name")
    max_tokens: int = Field(default=4096, ge=100, le=8192, description="Output token cap per request")
    temperature: float = Field(default=0.1, ge=0.0, le=1.0, description="Sampling temperature")
    # Free tier allows ~15 requests/minute
    batch_size: int = Field(default=200, ge=1, le=200, description="Transactions per request")
    batch_delay_seconds: float = Field(default=4.0, ge=0.0, description="Pause between requests")


class ApiSettings(BaseSettings):
    """Bookkeeping REST backend."""

    model_config = SettingsConfigDict(env_prefix="BOOKKEEPER_API_", extra="ignore")

    base_url: str = Field(default="http://localhost:5000/api", description="API root URL")
    timeout_seconds: float = Field(default=30.0, gt=0, description="Per-request timeout")
    poll_interval_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Delay between PDF processing status polls",
    )
    max_poll_attempts: int = Field(
        default=60,
        ge=1,
        description="Polls before a PDF job is reported as timed out",
    )


class AppSettings(BaseSettings):
    """Application behaviour: storage choice, upload limits and thresholds."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_environment: str = Field(default="development", description="development, staging or production")
    debug_mode: bool = Field(default=False, description="Show tracebacks in the UI")
    storage_backend: Literal["memory", "supabase", "google_sheets"] = Field(
        default="memory",
        description="Which record store to use",
    )

    # Uploads
    max_upload_size_mb: int = Field(default=10, ge=1, le=50, description="Largest accepted upload")
    supported_upload_extensions: str = Field(
        default=".pdf,.csv,.xls,.xlsx",
        description="Comma-separated list of accepted statement file extensions",
    )

    # Classification and reporting
    manual_review_threshold: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Classifications below this confidence need review",
    )
    form_1099_threshold: float = Field(
        default=600.0,
        ge=0,
        description="Yearly payment amount that triggers a 1099-NEC",
    )
    future_date_tolerance_days: int = Field(
        default=1,
        description="How many days in the future an imported date can be",
    )

    @property
    def supported_extensions_list(self) -> list[str]:
        return [ext.strip().lower() for ext in self.supported_upload_extensions.split(",")]

    @property
    def max_upload_size_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024


class Settings(BaseSettings):
    """
    Entry point for configuration.

    Each property constructs its settings class on access, so a missing
    variable only fails the feature that needs it.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def supabase(self) -> SupabaseSettings:
        return SupabaseSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def mindee(self) -> MindeeSettings:
        return MindeeSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def api(self) -> ApiSettings:
        return ApiSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """Process-wide Settings. get_settings.cache_clear() forces a reload."""
    return Settings()


def validate_all_settings() -> dict[str, bool | str]:
    """
    Try to build every settings group.

    Returns {group: True/False}, plus {group_error: message} for each group
    that failed. The Settings page shows this as a configuration checklist.
    """
    results: dict[str, bool | str] = {}
    settings = get_settings()

    for name in ("supabase", "google_sheets", "mindee", "gemini", "api", "app"):
        try:
            getattr(settings, name)
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)
        else:
            results[name] = True

    return results
