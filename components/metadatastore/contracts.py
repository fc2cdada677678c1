"""
MetadataStore Contracts & Ports

File descriptors: one record per uploaded artifact, pointing at exactly one blob.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, constr


# --------------------------
# Domain Models
# --------------------------

class NewFileDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    filename: constr(strip_whitespace=True, min_length=1)
    blob_ref: str
    size: int = Field(..., ge=0)
    content_type: constr(strip_whitespace=True, min_length=1) = "application/octet-stream"
    owner_id: constr(min_length=1)


class FileDescriptor(NewFileDescriptor):
    id: str
    created_at: datetime

    @property
    def extension(self) -> str:
        name = self.filename.rsplit("/", 1)[-1]
        if "." not in name.strip("."):
            return ""
        return "." + name.rsplit(".", 1)[-1].lower()


# --------------------------
# Ports (Protocols)
# --------------------------

@runtime_checkable
class MetadataStorePort(Protocol):
    async def open(self) -> None:
        ...
    async def close(self) -> None:
        ...
    async def insert(self, descriptor: NewFileDescriptor) -> FileDescriptor:
        ...
    async def find_by_id(self, file_id: str) -> Optional[FileDescriptor]:
        ...
    async def find_by_owner(self, owner_id: str) -> List[FileDescriptor]:
        ...
    async def find_all(self) -> List[FileDescriptor]:
        ...
    async def delete_by_id(self, file_id: str) -> bool:
        ...
