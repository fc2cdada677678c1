from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class GatewaySettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="APP_", env_file=".env", case_sensitive=False, extra="ignore")

    name: str = "chartfiles-api"
    version: str = "0.1.0"
    log_level: str = "INFO"
    purge_invalid_on_startup: bool = True
