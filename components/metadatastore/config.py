from __future__ import annotations
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class MetadataSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    METADATA_ADAPTER: str = Field(default="memory")  # "memory" | "mongo"
    MONGO_URI: str = "mongodb://localhost:27017"
    MONGO_DATABASE: str = "chart-generator"
    MONGO_FILES_COLLECTION: str = "files"
