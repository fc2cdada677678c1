"""
MongoDB adapter for file descriptors.
Blocking pymongo calls run on worker threads so the event loop keeps serving other requests.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from ..contracts import FileDescriptor, MetadataStorePort, NewFileDescriptor
from ..errors import BackendUnavailable, MetadataStoreError

logger = logging.getLogger("metadatastore")


def _to_oid(file_id: str) -> Optional[ObjectId]:
    try:
        return ObjectId(file_id)
    except (InvalidId, TypeError):
        return None


def _from_doc(doc: Dict[str, Any]) -> FileDescriptor:
    created_at = doc["created_at"]
    # pymongo returns naive UTC datetimes unless tz_aware is set
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return FileDescriptor(
        id=str(doc["_id"]),
        filename=doc["filename"],
        blob_ref=str(doc.get("blob_ref") or ""),
        size=doc["size"],
        content_type=doc["content_type"],
        owner_id=doc["owner_id"],
        created_at=created_at,
    )


class MongoMetadataStore(MetadataStorePort):
    def __init__(self, connection_string: str, database: str, collection: str = "files"):
        self.connection_string = connection_string
        self.database = database
        self.collection_name = collection
        self.client: Optional[MongoClient] = None
        self._collection: Optional[Collection] = None

    async def open(self) -> None:
        if self.client is not None:
            return

        def connect() -> MongoClient:
            client = MongoClient(self.connection_string)
            client.admin.command("ping")
            coll = client[self.database][self.collection_name]
            coll.create_index([("owner_id", ASCENDING)])
            coll.create_index([("created_at", DESCENDING)])
            return client

        try:
            self.client = await asyncio.to_thread(connect)
        except PyMongoError as e:
            logger.error("mongo.connect err db=%s err=%s", self.database, e)
            raise BackendUnavailable(f"cannot connect to MongoDB: {e}") from e
        self._collection = self.client[self.database][self.collection_name]
        logger.info("mongo.connect ok db=%s collection=%s", self.database, self.collection_name)

    async def close(self) -> None:
        if self.client is not None:
            self.client.close()
        self.client = None
        self._collection = None

    def _coll(self) -> Collection:
        if self._collection is None:
            raise BackendUnavailable("Mongo metadata store is not open")
        return self._collection

    async def insert(self, descriptor: NewFileDescriptor) -> FileDescriptor:
        coll = self._coll()
        doc = descriptor.model_dump()
        doc["created_at"] = datetime.now(timezone.utc)
        try:
            res = await asyncio.to_thread(coll.insert_one, doc)
        except PyMongoError as e:
            raise MetadataStoreError(str(e)) from e
        return FileDescriptor(id=str(res.inserted_id), **{k: v for k, v in doc.items() if k != "_id"})

    async def find_by_id(self, file_id: str) -> Optional[FileDescriptor]:
        coll = self._coll()
        oid = _to_oid(file_id)
        if oid is None:
            return None
        try:
            doc = await asyncio.to_thread(coll.find_one, {"_id": oid})
        except PyMongoError as e:
            raise MetadataStoreError(str(e)) from e
        return _from_doc(doc) if doc else None

    async def _find(self, query: Dict[str, Any]) -> List[FileDescriptor]:
        coll = self._coll()
        try:
            docs = await asyncio.to_thread(lambda: list(coll.find(query).sort("created_at", ASCENDING)))
        except PyMongoError as e:
            raise MetadataStoreError(str(e)) from e
        return [_from_doc(d) for d in docs]

    async def find_by_owner(self, owner_id: str) -> List[FileDescriptor]:
        return await self._find({"owner_id": owner_id})

    async def find_all(self) -> List[FileDescriptor]:
        return await self._find({})

    async def delete_by_id(self, file_id: str) -> bool:
        coll = self._coll()
        oid = _to_oid(file_id)
        if oid is None:
            return False
        try:
            res = await asyncio.to_thread(coll.delete_one, {"_id": oid})
        except PyMongoError as e:
            raise MetadataStoreError(str(e)) from e
        return res.deleted_count > 0
