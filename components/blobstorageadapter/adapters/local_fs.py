
from __future__ import annotations
import asyncio
import os
import re
import uuid
from pathlib import Path
from typing import AsyncIterator, Optional

from ..errors import BlobNotFound, BlobUpstream, BlobValidation
from ..ports import BlobStoragePort

REF_RE = re.compile(r"^[0-9a-f]{32}$")

class LocalFSBlobAdapter(BlobStoragePort):
    """
    Stores each blob as a file under `root/<ref[:2]>/<ref>`.
    Refs are generated here, so no caller-provided path ever reaches the disk.
    """

    def __init__(self, root_dir: str, chunk_size: int = 64 * 1024):
        self.root = Path(root_dir).resolve()
        self.chunk_size = chunk_size
        self.adapter = "localfs"

    async def open(self) -> None:
        await asyncio.to_thread(self.root.mkdir, parents=True, exist_ok=True)

    def _path_for(self, ref: str) -> Path:
        if not self.is_well_formed(ref):
            raise BlobValidation("invalid blob ref")
        return self.root / ref[:2] / ref

    async def put(self, data: bytes, content_type: Optional[str] = None) -> str:
        if data is None:
            raise BlobValidation("data must be provided")
        ref = uuid.uuid4().hex
        path = self._path_for(ref)

        def write_sync():
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".part")
            with open(tmp, "wb") as f:
                f.write(data)
            os.replace(tmp, path)

        try:
            await asyncio.to_thread(write_sync)
        except OSError as e:
            raise BlobUpstream(f"write failed: {e}") from e
        return ref

    async def exists(self, ref: str) -> bool:
        if not self.is_well_formed(ref):
            return False
        return await asyncio.to_thread(self._path_for(ref).is_file)

    async def get_stream(self, ref: str) -> AsyncIterator[bytes]:
        path = self._path_for(ref)
        if not await asyncio.to_thread(path.is_file):
            raise BlobNotFound("blob not found")

        try:
            f = await asyncio.to_thread(open, path, "rb")
        except FileNotFoundError as e:
            raise BlobNotFound("blob not found") from e
        except OSError as e:
            raise BlobUpstream(f"read failed: {e}") from e
        try:
            while True:
                try:
                    data = await asyncio.to_thread(f.read, self.chunk_size)
                except OSError as e:
                    raise BlobUpstream(f"read failed: {e}") from e
                if not data:
                    break
                yield data
        finally:
            f.close()

    async def delete(self, ref: str) -> bool:
        if not self.is_well_formed(ref):
            return False
        path = self._path_for(ref)

        def rm() -> bool:
            try:
                os.remove(path)
            except FileNotFoundError:
                return False
            return True

        try:
            return await asyncio.to_thread(rm)
        except OSError as e:
            raise BlobUpstream(f"delete failed: {e}") from e

    def is_well_formed(self, ref: Optional[str]) -> bool:
        return isinstance(ref, str) and REF_RE.match(ref) is not None
