from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./riselocal.db"
    database_echo: bool = False
    otel_service_name: str = "riselocal-api"
    log_level: str = "INFO"

    # Vendor / operator API security
    vendor_api_key: str = ""

    # Redemption code issuance
    redemption_claim_window_minutes: int = Field(default=10, gt=0)
    redemption_code_max_attempts: int = Field(default=10, gt=0)

    @field_validator("vendor_api_key", mode="before")
    @classmethod
    def _strip_api_key(cls, value: object) -> str:
        if value is None:
            return ""
        return str(value).strip()


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
