from __future__ import annotations

from typing import FrozenSet

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

XML_CONTENT_TYPES = frozenset({"text/xml", "application/xml"})
# OOXML workbooks (.xlsx / .xlsm); these are the ones that can be read back into records
WORKBOOK_CONTENT_TYPES = frozenset({
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-excel.sheet.macroenabled.12",
})
SPREADSHEET_CONTENT_TYPES = WORKBOOK_CONTENT_TYPES | {"application/vnd.ms-excel"}


class IngestionSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="INGEST_", env_file=".env", case_sensitive=False, extra="ignore")

    max_upload_bytes: int = Field(default=10 * 1024 * 1024, gt=0)  # 10 MiB
    accepted_content_types: FrozenSet[str] = XML_CONTENT_TYPES | SPREADSHEET_CONTENT_TYPES
    accepted_extensions: FrozenSet[str] = frozenset({".xml", ".xlsx", ".xls", ".xlsm"})
