
from __future__ import annotations
import asyncio
import re
from typing import AsyncIterator, Optional

from bson import ObjectId
from gridfs import GridFSBucket
from gridfs.errors import NoFile
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from ..errors import BlobNotFound, BlobUpstream, BlobValidation
from ..ports import BlobStoragePort

REF_RE = re.compile(r"^[0-9a-fA-F]{24}$")

class GridFSBlobAdapter(BlobStoragePort):
    """
    GridFS-backed blobs. Refs are the hex form of the GridFS file ObjectId.
    Existence is checked against `<bucket>.files`, which is where GridFS
    commits a file once all of its chunks are written.
    """

    def __init__(self, mongo_uri: str, database: str, bucket_name: str = "uploads",
                 chunk_size: int = 64 * 1024):
        self.mongo_uri = mongo_uri
        self.database = database
        self.bucket_name = bucket_name
        self.chunk_size = chunk_size
        self.client: Optional[MongoClient] = None
        self.bucket: Optional[GridFSBucket] = None
        self.adapter = "gridfs"

    async def open(self) -> None:
        if self.client is not None:
            return

        def connect():
            client = MongoClient(self.mongo_uri)
            client.admin.command("ping")
            return client

        try:
            self.client = await asyncio.to_thread(connect)
        except PyMongoError as e:
            raise BlobUpstream(f"cannot connect to GridFS: {e}") from e
        self.bucket = GridFSBucket(self.client[self.database], bucket_name=self.bucket_name)

    async def close(self) -> None:
        if self.client is not None:
            self.client.close()
        self.client = None
        self.bucket = None

    def _bucket(self) -> GridFSBucket:
        if self.bucket is None:
            raise BlobUpstream("GridFS adapter is not open")
        return self.bucket

    def _oid(self, ref: str) -> ObjectId:
        if not self.is_well_formed(ref):
            raise BlobValidation("invalid blob ref")
        return ObjectId(ref)

    async def put(self, data: bytes, content_type: Optional[str] = None) -> str:
        if data is None:
            raise BlobValidation("data must be provided")
        bucket = self._bucket()
        oid = ObjectId()
        metadata = {"contentType": content_type} if content_type else None
        try:
            await asyncio.to_thread(
                bucket.upload_from_stream_with_id, oid, str(oid), data, metadata=metadata
            )
        except PyMongoError as e:
            raise BlobUpstream(str(e)) from e
        return str(oid)

    async def exists(self, ref: str) -> bool:
        if not self.is_well_formed(ref):
            return False
        self._bucket()
        files = self.client[self.database][f"{self.bucket_name}.files"]
        try:
            doc = await asyncio.to_thread(files.find_one, {"_id": self._oid(ref)}, {"_id": 1})
        except PyMongoError as e:
            raise BlobUpstream(str(e)) from e
        return doc is not None

    async def get_stream(self, ref: str) -> AsyncIterator[bytes]:
        bucket = self._bucket()
        try:
            grid_out = await asyncio.to_thread(bucket.open_download_stream, self._oid(ref))
        except NoFile as e:
            raise BlobNotFound("blob not found") from e
        except PyMongoError as e:
            raise BlobUpstream(str(e)) from e
        try:
            while True:
                try:
                    data = await asyncio.to_thread(grid_out.read, self.chunk_size)
                except PyMongoError as e:
                    raise BlobUpstream(str(e)) from e
                if not data:
                    break
                yield data
        finally:
            grid_out.close()

    async def delete(self, ref: str) -> bool:
        if not self.is_well_formed(ref):
            return False
        bucket = self._bucket()
        try:
            await asyncio.to_thread(bucket.delete, self._oid(ref))
        except NoFile:
            return False
        except PyMongoError as e:
            raise BlobUpstream(str(e)) from e
        return True

    def is_well_formed(self, ref: Optional[str]) -> bool:
        return isinstance(ref, str) and REF_RE.match(ref) is not None
