"""Application settings."""

from functools import lru_cache
import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "MediReportAI"
    app_env: str = "dev"
    app_debug: bool = False
    log_level: str = "INFO"
    log_json: bool = False
    database_url: str = ""

    llm_model: str = "gpt-4o-mini"
    llm_base_url: str = "https://api.openai.com/v1"
    llm_timeout_s: float = Field(default=30.0, ge=0.5)
    openai_api_key: str = ""
    reports_api_key: str = ""
    prescriptions_api_key: str = ""
    chat_api_key: str = ""

    retry_max_attempts: int = Field(default=3, ge=1)
    retry_base_delay_ms: int = Field(default=1000, ge=0)
    retry_backoff_multiplier: float = Field(default=2.0, ge=1.0)

    mappls_client_id: str = ""
    mappls_client_secret: str = ""
    mappls_token_url: str = "https://outpost.mappls.com/api/security/oauth/token"
    mappls_nearby_url: str = "https://atlas.mappls.com/api/places/nearby/json"
    places_timeout_s: float = Field(default=10.0, ge=0.5)

    model_config = SettingsConfigDict(
        env_prefix="MEDIREPORT_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def resolved_database_url(self) -> str:
        return self.database_url or os.getenv("DATABASE_URL", "")

    def resolved_openai_api_key(self) -> str:
        return self.openai_api_key or os.getenv("OPENAI_API_KEY", "")

    def resolved_reports_api_key(self) -> str:
        return self.reports_api_key or self.resolved_openai_api_key()

    def resolved_prescriptions_api_key(self) -> str:
        return self.prescriptions_api_key or self.resolved_openai_api_key()

    def resolved_chat_api_key(self) -> str:
        return self.chat_api_key or self.resolved_openai_api_key()

    def resolved_mappls_credentials(self) -> tuple[str, str]:
        client_id = self.mappls_client_id or os.getenv("MAPMYINDIA_CLIENT_ID", "")
        client_secret = self.mappls_client_secret or os.getenv("MAPMYINDIA_CLIENT_SECRET", "")
        return client_id, client_secret


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
