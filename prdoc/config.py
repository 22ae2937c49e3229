"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # App
    app_name: str = "PR Doc Generator"
    app_env: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    base_url: str = "http://localhost:8000"
    allowed_origins: str = "http://localhost:3000,http://localhost:8000"

    # Session (signed JWT stored in a cookie)
    session_secret: SecretStr = SecretStr("dev-session-secret-change-in-production")
    session_algorithm: str = "HS256"
    session_max_age_days: int = 30

    # Cookie sealing (libsodium key, base64 encoded)
    encryption_key: SecretStr = SecretStr("")

    # GitHub OAuth
    github_id: str = ""
    github_secret: SecretStr = SecretStr("")
    # Legacy static token, used only when the user has neither a PAT nor OAuth
    github_token: SecretStr = SecretStr("")

    # Google OAuth
    google_client_id: str = ""
    google_client_secret: SecretStr = SecretStr("")

    # Legacy Drive publishing through a service account
    google_service_account_file: str = ""
    google_shared_drive_id: str = ""

    # AI providers
    groq_api_key: SecretStr = SecretStr("")
    groq_model: str = "openai/gpt-oss-120b"
    groq_base_url: str = "https://api.groq.com/openai/v1"
    fallback_provider: Literal["nvidia", "anthropic"] = "nvidia"
    nvidia_api_key: SecretStr = SecretStr("")
    nvidia_model: str = "moonshotai/kimi-k2.5"
    nvidia_base_url: str = "https://integrate.api.nvidia.com/v1"
    anthropic_api_key: SecretStr = SecretStr("")
    anthropic_model: str = "claude-sonnet-4-5-20250929"

    # Prompt limits
    max_diff_files: int = 20
    max_patch_lines: int = 100
    max_prompt_tokens: int = 6000

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
