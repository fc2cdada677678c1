from __future__ import annotations

import logging
from collections import Counter
from typing import AsyncIterator, Callable, List, Optional, Tuple

from opentelemetry import trace

from components.blobstorageadapter.errors import BlobNotFound
from components.blobstorageadapter.ports import BlobStoragePort
from components.metadatastore.contracts import FileDescriptor, MetadataStorePort

from .config import WORKBOOK_CONTENT_TYPES, XML_CONTENT_TYPES
from .contracts import FieldMap, FileStats
from .errors import CorruptRecordError, MetadataError, NotFound, StorageError, ValidationError
from .records import parse_spreadsheet_records, parse_xml_records
from .service import discard_blob

log = logging.getLogger("files")
tracer = trace.get_tracer("files")


def _record_parser(descriptor: FileDescriptor) -> Optional[Callable[[bytes], List[FieldMap]]]:
    # the extension wins over the declared type; legacy .xls has no reader
    ext = descriptor.extension
    if ext == ".xml":
        return parse_xml_records
    if ext in (".xlsx", ".xlsm"):
        return parse_spreadsheet_records
    if ext == ".xls":
        return None
    if descriptor.content_type in XML_CONTENT_TYPES:
        return parse_xml_records
    if descriptor.content_type in WORKBOOK_CONTENT_TYPES:
        return parse_spreadsheet_records
    return None


class FileService:
    """
    Owner-scoped reads and deletes over (descriptor, blob) pairs.

    Descriptors whose blob reference is malformed are purged on the read path
    instead of being served. Owner mismatches look exactly like missing files.
    The `admin_*` operations drop the owner filter but still take an explicit
    target.
    """

    def __init__(self, blob: BlobStoragePort, meta: MetadataStorePort) -> None:
        self.blob = blob
        self.meta = meta

    # --------- helpers ----------
    async def _fetch(self, file_id: str) -> Optional[FileDescriptor]:
        try:
            return await self.meta.find_by_id(file_id)
        except Exception as e:
            log.exception("metadata.find err id=%s", file_id)
            raise MetadataError("Failed to fetch file details") from e

    async def _purge(self, descriptor: FileDescriptor, reason: str) -> bool:
        try:
            await self.meta.delete_by_id(descriptor.id)
        except Exception:
            log.exception("files.purge err id=%s reason=%s", descriptor.id, reason)
            return False
        log.warning("files.purge ok id=%s owner=%s filename=%s ref=%r reason=%s",
                    descriptor.id, descriptor.owner_id, descriptor.filename, descriptor.blob_ref, reason)
        return True

    def _is_valid(self, descriptor: FileDescriptor) -> bool:
        return self.blob.is_well_formed(descriptor.blob_ref)

    async def _resolve(self, file_id: str, owner_id: Optional[str]) -> FileDescriptor:
        """owner_id=None is the admin path: no owner filter."""
        descriptor = await self._fetch(file_id)
        if descriptor is None or (owner_id is not None and descriptor.owner_id != owner_id):
            log.info("files.resolve miss id=%s owner=%s", file_id, owner_id)
            raise NotFound("File not found")
        return descriptor

    async def _resolve_valid(self, file_id: str, owner_id: Optional[str]) -> FileDescriptor:
        descriptor = await self._resolve(file_id, owner_id)
        if not self._is_valid(descriptor):
            await self._purge(descriptor, "invalid_blob_ref")
            raise CorruptRecordError("File data is missing or invalid", {"file_id": file_id})
        return descriptor

    async def _list_valid(self, owner_id: str) -> List[FileDescriptor]:
        try:
            descriptors = await self.meta.find_by_owner(owner_id)
        except Exception as e:
            log.exception("metadata.find_by_owner err owner=%s", owner_id)
            raise MetadataError("Failed to fetch files") from e

        valid: List[FileDescriptor] = []
        for d in descriptors:
            if self._is_valid(d):
                valid.append(d)
            else:
                await self._purge(d, "invalid_blob_ref")
        log.info("files.list ok owner=%s count=%s skipped=%s", owner_id, len(valid), len(descriptors) - len(valid))
        return valid

    async def _open_stream(self, descriptor: FileDescriptor) -> AsyncIterator[bytes]:
        try:
            present = await self.blob.exists(descriptor.blob_ref)
        except Exception as e:
            log.exception("blob.exists err id=%s ref=%s", descriptor.id, descriptor.blob_ref)
            raise StorageError("Error retrieving file content") from e
        if not present:
            # the descriptor outlived its blob; it cannot be served again
            await self._purge(descriptor, "blob_missing")
            raise CorruptRecordError("File data is missing", {"file_id": descriptor.id})
        return self._stream(descriptor)

    async def _stream(self, descriptor: FileDescriptor) -> AsyncIterator[bytes]:
        try:
            async for chunk in self.blob.get_stream(descriptor.blob_ref):
                yield chunk
        except BlobNotFound as e:
            log.error("blob.stream missing id=%s ref=%s", descriptor.id, descriptor.blob_ref)
            raise StorageError("File data disappeared during download") from e
        except Exception as e:
            log.exception("blob.stream err id=%s ref=%s", descriptor.id, descriptor.blob_ref)
            raise StorageError("Error downloading file") from e

    async def _delete(self, descriptor: FileDescriptor) -> None:
        # blob first, best effort; the record goes regardless so the file leaves the user's view
        if self._is_valid(descriptor):
            await discard_blob(self.blob, descriptor.blob_ref, "file_deleted")
        try:
            await self.meta.delete_by_id(descriptor.id)
        except Exception as e:
            log.exception("metadata.delete err id=%s", descriptor.id)
            raise MetadataError("Failed to delete file") from e
        log.info("files.delete ok id=%s owner=%s ref=%s", descriptor.id, descriptor.owner_id, descriptor.blob_ref)

    # --------- owner-scoped operations ----------
    async def list_files(self, owner_id: str) -> List[FileDescriptor]:
        with tracer.start_as_current_span("files.list"):
            return await self._list_valid(owner_id)

    async def get_file(self, file_id: str, owner_id: str) -> FileDescriptor:
        with tracer.start_as_current_span("files.get"):
            return await self._resolve_valid(file_id, owner_id)

    async def open_download(self, file_id: str, owner_id: str) -> Tuple[FileDescriptor, AsyncIterator[bytes]]:
        with tracer.start_as_current_span("files.download"):
            descriptor = await self._resolve_valid(file_id, owner_id)
            return descriptor, await self._open_stream(descriptor)

    async def download_content(self, file_id: str, owner_id: str) -> AsyncIterator[bytes]:
        _, stream = await self.open_download(file_id, owner_id)
        return stream

    async def delete_file(self, file_id: str, owner_id: str) -> None:
        with tracer.start_as_current_span("files.delete"):
            descriptor = await self._resolve(file_id, owner_id)
            await self._delete(descriptor)

    async def load_records(self, file_id: str, owner_id: str) -> List[FieldMap]:
        with tracer.start_as_current_span("files.records"):
            descriptor = await self._resolve_valid(file_id, owner_id)
            return await self._parse(descriptor)

    async def _parse(self, descriptor: FileDescriptor) -> List[FieldMap]:
        parser = _record_parser(descriptor)
        if parser is None:
            raise ValidationError("Only XML and .xlsx/.xlsm content can be parsed into records",
                                  {"filename": descriptor.filename, "content_type": descriptor.content_type})
        stream = await self._open_stream(descriptor)
        raw = b"".join([chunk async for chunk in stream])
        records = parser(raw)
        log.info("files.records ok id=%s count=%s", descriptor.id, len(records))
        return records

    # --------- admin operations ----------
    async def admin_list_files(self, owner_id: str) -> List[FileDescriptor]:
        with tracer.start_as_current_span("files.admin.list"):
            return await self._list_valid(owner_id)

    async def admin_get_file(self, file_id: str) -> FileDescriptor:
        with tracer.start_as_current_span("files.admin.get"):
            return await self._resolve_valid(file_id, None)

    async def admin_download_content(self, file_id: str) -> Tuple[FileDescriptor, AsyncIterator[bytes]]:
        with tracer.start_as_current_span("files.admin.download"):
            descriptor = await self._resolve_valid(file_id, None)
            return descriptor, await self._open_stream(descriptor)

    async def admin_delete_file(self, file_id: str) -> None:
        with tracer.start_as_current_span("files.admin.delete"):
            descriptor = await self._resolve(file_id, None)
            await self._delete(descriptor)

    async def file_stats(self) -> FileStats:
        with tracer.start_as_current_span("files.admin.stats"):
            try:
                descriptors = await self.meta.find_all()
            except Exception as e:
                log.exception("metadata.find_all err")
                raise MetadataError("Failed to fetch stats") from e
            by_ext = Counter(d.extension for d in descriptors)
            return FileStats(
                total_files=len(descriptors),
                total_bytes=sum(d.size for d in descriptors),
                owners=len({d.owner_id for d in descriptors}),
                by_extension=dict(by_ext.most_common()),
            )

    async def purge_invalid(self) -> int:
        """Delete every descriptor whose blob reference is malformed. Returns how many were removed."""
        with tracer.start_as_current_span("files.purge_invalid"):
            try:
                descriptors = await self.meta.find_all()
            except Exception as e:
                log.exception("metadata.find_all err")
                raise MetadataError("Failed to scan file records") from e
            removed = 0
            for d in descriptors:
                if not self._is_valid(d) and await self._purge(d, "startup_cleanup"):
                    removed += 1
            log.info("files.purge_invalid ok scanned=%s removed=%s", len(descriptors), removed)
            return removed
