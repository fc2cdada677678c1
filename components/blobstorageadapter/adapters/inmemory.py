
from __future__ import annotations
import re
import uuid
from typing import AsyncIterator, Dict, Optional

from ..errors import BlobNotFound, BlobValidation
from ..ports import BlobStoragePort

REF_RE = re.compile(r"^[0-9a-f]{32}$")

class InMemoryBlobAdapter(BlobStoragePort):
    """Process-local blob store for tests and single-node dev runs."""

    def __init__(self, chunk_size: int = 64 * 1024):
        self._blobs: Dict[str, bytes] = {}
        self._content_types: Dict[str, Optional[str]] = {}
        self.chunk_size = chunk_size
        self.adapter = "memory"

    async def close(self) -> None:
        self._blobs.clear()
        self._content_types.clear()

    async def put(self, data: bytes, content_type: Optional[str] = None) -> str:
        if data is None:
            raise BlobValidation("data must be provided")
        ref = uuid.uuid4().hex
        self._blobs[ref] = bytes(data)
        self._content_types[ref] = content_type
        return ref

    async def exists(self, ref: str) -> bool:
        return ref in self._blobs

    async def get_stream(self, ref: str) -> AsyncIterator[bytes]:
        if ref not in self._blobs:
            raise BlobNotFound("blob not found")
        data = self._blobs[ref]
        for start in range(0, len(data), self.chunk_size):
            yield data[start:start + self.chunk_size]

    async def delete(self, ref: str) -> bool:
        self._content_types.pop(ref, None)
        return self._blobs.pop(ref, None) is not None

    def is_well_formed(self, ref: Optional[str]) -> bool:
        return isinstance(ref, str) and REF_RE.match(ref) is not None
