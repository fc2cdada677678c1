
from __future__ import annotations
import asyncio
import re
import uuid
from typing import AsyncIterator, Optional

import boto3
from botocore.client import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import BlobNotFound, BlobUpstream, BlobValidation
from ..ports import BlobStoragePort

REF_RE = re.compile(r"^[0-9a-f]{32}$")

def _status(e: ClientError) -> Optional[int]:
    return e.response.get("ResponseMetadata", {}).get("HTTPStatusCode")

class S3BlobAdapter(BlobStoragePort):
    def __init__(self, bucket: str, key_prefix: str = "uploads", region: Optional[str] = None,
                 endpoint_url: Optional[str] = None, force_path_style: bool = False,
                 chunk_size: int = 64 * 1024):
        self.bucket = bucket
        self.key_prefix = key_prefix.strip("/")
        self.region = region
        self.endpoint_url = endpoint_url
        self.force_path_style = force_path_style
        self.chunk_size = chunk_size
        self.s3 = None
        self.adapter = "s3"

    async def open(self) -> None:
        if self.s3 is not None:
            return
        self.s3 = boto3.client(
            "s3",
            region_name=self.region,
            endpoint_url=self.endpoint_url,
            config=BotoConfig(s3={"addressing_style": "path" if self.force_path_style else "auto"})
        )

    async def close(self) -> None:
        if self.s3 is not None:
            self.s3.close()
            self.s3 = None

    def _client(self):
        if self.s3 is None:
            raise BlobUpstream("S3 adapter is not open")
        return self.s3

    def _key(self, ref: str) -> str:
        if not self.is_well_formed(ref):
            raise BlobValidation("invalid blob ref")
        # logical prefix: key_prefix/ref
        return f"{self.key_prefix}/{ref}" if self.key_prefix else ref

    async def put(self, data: bytes, content_type: Optional[str] = None) -> str:
        if data is None:
            raise BlobValidation("data must be provided")
        s3 = self._client()
        ref = uuid.uuid4().hex
        kwargs = {"Bucket": self.bucket, "Key": self._key(ref), "Body": data}
        if content_type:
            kwargs["ContentType"] = content_type
        try:
            await asyncio.to_thread(lambda: s3.put_object(**kwargs))
        except (ClientError, BotoCoreError) as e:
            raise BlobUpstream(str(e)) from e
        return ref

    async def exists(self, ref: str) -> bool:
        if not self.is_well_formed(ref):
            return False
        s3 = self._client()
        try:
            await asyncio.to_thread(s3.head_object, Bucket=self.bucket, Key=self._key(ref))
        except ClientError as e:
            if _status(e) == 404:
                return False
            raise BlobUpstream(str(e)) from e
        except BotoCoreError as e:
            raise BlobUpstream(str(e)) from e
        return True

    async def get_stream(self, ref: str) -> AsyncIterator[bytes]:
        s3 = self._client()
        try:
            obj = await asyncio.to_thread(s3.get_object, Bucket=self.bucket, Key=self._key(ref))
        except ClientError as e:
            if _status(e) == 404:
                raise BlobNotFound("blob not found") from e
            raise BlobUpstream(str(e)) from e
        except BotoCoreError as e:
            raise BlobUpstream(str(e)) from e

        stream = obj["Body"]
        try:
            # yield in chunks from the streaming body
            while True:
                try:
                    data = await asyncio.to_thread(stream.read, self.chunk_size)
                except (ClientError, BotoCoreError) as e:
                    raise BlobUpstream(str(e)) from e
                if not data:
                    break
                yield data
        finally:
            stream.close()

    async def delete(self, ref: str) -> bool:
        if not self.is_well_formed(ref):
            return False
        s3 = self._client()
        if not await self.exists(ref):
            return False
        try:
            await asyncio.to_thread(s3.delete_object, Bucket=self.bucket, Key=self._key(ref))
        except ClientError as e:
            if _status(e) == 404:
                return False
            raise BlobUpstream(str(e)) from e
        except BotoCoreError as e:
            raise BlobUpstream(str(e)) from e
        return True

    def is_well_formed(self, ref: Optional[str]) -> bool:
        return isinstance(ref, str) and REF_RE.match(ref) is not None
