
from __future__ import annotations
from typing import AsyncIterator, Optional
from abc import ABC, abstractmethod


class BlobStoragePort(ABC):
    """
    Opaque byte payloads addressed by identifiers the store generates.
    Blobs carry no ownership; that lives on the descriptor pointing at them.
    """

    adapter: str = "abstract"

    async def open(self) -> None:
        return None

    async def close(self) -> None:
        return None

    @abstractmethod
    async def put(self, data: bytes, content_type: Optional[str] = None) -> str: ...

    @abstractmethod
    async def exists(self, ref: str) -> bool: ...

    @abstractmethod
    def get_stream(self, ref: str) -> AsyncIterator[bytes]: ...

    @abstractmethod
    async def delete(self, ref: str) -> bool:
        """Idempotent: returns False when nothing was stored under `ref`."""

    @abstractmethod
    def is_well_formed(self, ref: Optional[str]) -> bool: ...
