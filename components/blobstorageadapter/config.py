
from __future__ import annotations
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional

class BlobSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    BLOB_ADAPTER: str = Field(default="localfs")  # "memory" | "localfs" | "s3" | "gridfs"
    # Local FS
    BLOB_LOCAL_ROOT: str = Field(default="./var/blobdata")
    # S3
    AWS_REGION: Optional[str] = None
    S3_BUCKET_DEFAULT: Optional[str] = None
    S3_KEY_PREFIX: str = "uploads"
    S3_ENDPOINT_URL: Optional[str] = None
    S3_FORCE_PATH_STYLE: bool = False
    # GridFS
    GRIDFS_MONGO_URI: str = "mongodb://localhost:27017"
    GRIDFS_DATABASE: str = "chart-generator"
    GRIDFS_BUCKET: str = "uploads"
