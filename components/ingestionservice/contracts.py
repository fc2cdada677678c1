from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Union

from pydantic import BaseModel, Field

from components.metadatastore.contracts import FileDescriptor

# Flattened record values: numbers become floats, everything else stays text.
Scalar = Union[float, str]
FieldMap = Dict[str, Scalar]


class FileOut(BaseModel):
    id: str
    filename: str
    size: int
    content_type: str
    owner_id: str
    blob_ref: str
    created_at: datetime

    @classmethod
    def from_descriptor(cls, d: FileDescriptor) -> "FileOut":
        return cls(
            id=d.id,
            filename=d.filename,
            size=d.size,
            content_type=d.content_type,
            owner_id=d.owner_id,
            blob_ref=d.blob_ref,
            created_at=d.created_at,
        )


class UploadResponse(BaseModel):
    file: FileOut
    message: str = "File uploaded successfully"


class FileListResponse(BaseModel):
    files: List[FileOut] = Field(default_factory=list)


class RecordsResponse(BaseModel):
    file_id: str
    fields: List[str] = Field(default_factory=list)
    records: List[FieldMap] = Field(default_factory=list)


class FileStats(BaseModel):
    total_files: int = 0
    total_bytes: int = 0
    owners: int = 0
    by_extension: Dict[str, int] = Field(default_factory=dict)
