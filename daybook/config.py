"""
Daybook Backend: Application Configuration
===========================================

What:  Centralized configuration management using Pydantic Settings.
How:   Pydantic Settings reads from environment variables (or .env file),
       validates types/ranges, and provides a singleton `settings` object.
Who:   Imported by every module that needs configuration values.
When:  Loaded once at module import time; validated before the app starts.
"""

from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import List


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have defaults suitable for local development, except the
    hosted backend coordinates (BACKEND_URL, BACKEND_ANON_KEY), which
    every deployment must provide.
    """

    # ── Hosted Backend ────────────────────────────────────────────────────
    # What: Project URL of the hosted auth + row-store service
    # Format: https://<project>.example.co (no trailing slash needed)
    backend_url: str = Field(
        default="",
        description="Base URL of the hosted backend project",
    )

    # What: Public (anonymous) API key sent as `apikey` on every request
    # Row access is still limited to the signed-in user by the backend's
    # row-level policies; this key alone cannot read anyone's entries.
    backend_anon_key: str = Field(
        default="",
        description="Public anon key for the hosted backend",
    )

    # What: Name of the table holding journal entries
    entries_table: str = Field(default="journal_entries")

    # What: Seconds to wait for any single backend round trip
    request_timeout: float = Field(default=10.0, ge=1, le=120)

    # ── Redirects ─────────────────────────────────────────────────────────
    # What: Public URL of the journal front end
    # Used as the email-confirmation redirect and as the base of the
    # password-reset link (<app_url>/#/reset-password).
    app_url: str = Field(default="http://localhost:3000")
    reset_password_route: str = Field(default="/reset-password")

    @property
    def reset_password_redirect(self) -> str:
        """Full redirect target embedded in password-reset emails."""
        return f"{self.app_url.rstrip('/')}/#{self.reset_password_route}"

    # ── Session Persistence ───────────────────────────────────────────────
    # What: Where the signed-in session is kept between restarts
    # Empty string keeps the session in memory only (lost on restart).
    session_file: str = Field(default="./.daybook/session.json")

    # ── CORS ──────────────────────────────────────────────────────────────
    # Format: Comma-separated URLs (parsed by the property below)
    cors_origins: str = Field(default="http://localhost:3000")

    @property
    def cors_origins_list(self) -> List[str]:
        """Splits comma-separated CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    # ── Server ────────────────────────────────────────────────────────────
    backend_host: str = Field(default="127.0.0.1")
    backend_port: int = Field(default=8000, ge=1024, le=65535)

    # What: Controls verbosity of application logging
    # Valid: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    @field_validator("backend_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    # ── Pydantic Settings Config ──────────────────────────────────────────
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,  # BACKEND_URL and backend_url both work
    }

    def validate_required_for_production(self) -> None:
        """
        What:  Validates that the backend coordinates are configured.
        When:  Called during app startup (lifespan).
        How:   Collects every missing value and raises one ValueError.
        """
        errors = []
        if not self.backend_url:
            errors.append(
                "BACKEND_URL is not set. Use the project URL from the hosted backend dashboard."
            )
        if not self.backend_anon_key:
            errors.append(
                "BACKEND_ANON_KEY is not set. Use the project's public anon key."
            )
        if errors:
            raise ValueError(
                "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
            )


# Singleton instance, imported throughout the application
settings = Settings()
