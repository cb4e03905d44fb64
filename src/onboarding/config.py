"""
Onboarding - Configuration and settings.

OnboardingSettings holds every timing constant the wizard uses. Components
take these values as explicit arguments; only the orchestrator factory,
the API and the CLI read settings directly.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SCRAPE_PAGES = ["Home", "About Us", "Products", "Services", "Blog", "Contact"]


class OnboardingSettings(BaseSettings):
    """
    Settings for the onboarding wizard.

    All durations are in seconds. Any field can be overridden from the
    environment or .env (VERIFICATION_WINDOW_SECONDS=30).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    onboarding_env: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Metadata lookup
    lookup_debounce_seconds: float = Field(default=0.5, gt=0)
    lookup_timeout_seconds: float = Field(default=15.0, gt=0)

    # Verification codes
    verification_window_seconds: int = Field(default=60, ge=1)
    verification_code_length: int = Field(default=6, ge=4, le=12)

    # Website scraping ("training")
    scrape_pages: list[str] = Field(default_factory=lambda: list(DEFAULT_SCRAPE_PAGES), min_length=1)
    scrape_item_delay_seconds: float = Field(default=2.0, gt=0)

    # Chatbot integration
    integration_check_seconds: float = Field(default=2.0, ge=0)
    chatbot_script_url: str = "https://example.com/chatbot.js"

    # Session management
    session_expire_hours: float = Field(default=24, gt=0)  # Drop idle API sessions after this

    @field_validator("scrape_pages")
    @classmethod
    def validate_scrape_pages(cls, v: list[str]) -> list[str]:
        pages = [page.strip() for page in v]
        if any(not page for page in pages):
            raise ValueError("Scrape page names must not be blank")
        if len(set(pages)) != len(pages):
            raise ValueError("Scrape page names must be unique")
        return pages

    @property
    def is_development(self) -> bool:
        return self.onboarding_env == "development"

    @property
    def is_production(self) -> bool:
        return self.onboarding_env == "production"


@lru_cache
def get_settings() -> OnboardingSettings:
    """Get cached settings instance."""
    return OnboardingSettings()


class _SettingsProxy:
    """Lazy proxy for settings to avoid loading .env at import time."""

    _instance: OnboardingSettings | None = None

    def __getattr__(self, name: str):
        if self._instance is None:
            self._instance = get_settings()
        return getattr(self._instance, name)


settings = _SettingsProxy()
