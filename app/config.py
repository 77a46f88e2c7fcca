from functools import lru_cache
from typing import List

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    app_name: str = Field(default="Review Board Service")
    cors_origins: List[str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]
    )
    supabase_url: AnyHttpUrl | None = Field(
        default=None
    )
    supabase_service_key: str | None = Field(
        default=None
    )
    supabase_table: str = Field(
        default="reviews"
    )
    store_timeout: float = Field(
        default=10.0
    )
    use_mock_data: bool = Field(
        default=True
    )
    duplicate_window_seconds: float = Field(
        default=7.0, gt=0
    )
    list_default_limit: int = Field(
        default=20, ge=1
    )
    list_max_limit: int = Field(
        default=50, ge=1
    )

    model_config = SettingsConfigDict(env_prefix="REVIEWBOARD_", case_sensitive=False)

    @field_validator("cors_origins", mode="before")
    def _split_origins(cls, value):
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @property
    def uses_memory_store(self) -> bool:
        return self.use_mock_data or self.supabase_url is None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()
