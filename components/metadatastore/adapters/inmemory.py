from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from ..contracts import FileDescriptor, MetadataStorePort, NewFileDescriptor


class InMemoryMetadataStore(MetadataStorePort):
    """Dict-backed store; insertion order doubles as creation order."""

    def __init__(self):
        self._db: Dict[str, FileDescriptor] = {}

    async def open(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def insert(self, descriptor: NewFileDescriptor) -> FileDescriptor:
        record = FileDescriptor(
            id=uuid.uuid4().hex,
            created_at=datetime.now(timezone.utc),
            **descriptor.model_dump(),
        )
        self._db[record.id] = record
        return record

    async def find_by_id(self, file_id: str) -> Optional[FileDescriptor]:
        return self._db.get(file_id)

    async def find_by_owner(self, owner_id: str) -> List[FileDescriptor]:
        return [d for d in self._db.values() if d.owner_id == owner_id]

    async def find_all(self) -> List[FileDescriptor]:
        return list(self._db.values())

    async def delete_by_id(self, file_id: str) -> bool:
        return self._db.pop(file_id, None) is not None
