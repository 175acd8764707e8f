from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    llm_provider: str = "gemini"  # "gemini", "openai" or "anthropic"

    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"
    gemini_api_url: str = "https://generativelanguage.googleapis.com/v1beta/models"

    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"

    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    anthropic_max_tokens: int = 1024

    llm_timeout_seconds: float = 30.0
    llm_retry_delays: list[float] = [1, 2, 4, 8, 16]

    quick_match_threshold: float = 0.8

    skills_dir: Path = Path(__file__).parent / "skills" / "bundled"

    notification_check_interval_seconds: float = 30.0
    notification_lead_minutes: dict[str, list[int]] = {
        "meeting": [60, 5],
        "trip": [240],
        "general": [30],
    }

    sentry_dsn: str = ""

    environment: str = "development"
    allowed_origins: str = ""

    @field_validator("llm_provider")
    @classmethod
    def normalize_provider(cls, value: str) -> str:
        return value.strip().lower()

    def api_key_for(self, provider: str) -> str:
        return {
            "gemini": self.gemini_api_key,
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
        }.get(provider, "")


settings = Settings()
