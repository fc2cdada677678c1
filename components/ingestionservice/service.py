from __future__ import annotations

import logging
import os
from typing import Optional

from opentelemetry import trace

from components.blobstorageadapter.ports import BlobStoragePort
from components.metadatastore.contracts import FileDescriptor, MetadataStorePort, NewFileDescriptor

from .config import IngestionSettings
from .errors import MetadataError, StorageError, ValidationError

log = logging.getLogger("ingestion")
tracer = trace.get_tracer("ingestion")

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def _extension(filename: str) -> str:
    _, ext = os.path.splitext(filename.rsplit("/", 1)[-1].rsplit("\\", 1)[-1])
    return ext.lower()


def _normalize_content_type(content_type: Optional[str]) -> str:
    if not content_type or not content_type.strip():
        return DEFAULT_CONTENT_TYPE
    # drop parameters such as "; charset=utf-8"
    return content_type.split(";", 1)[0].strip().lower()


async def discard_blob(blob: BlobStoragePort, ref: str, reason: str) -> bool:
    """
    Compensating delete for a blob that must not outlive the current operation.
    Returns whether the delete went through; failures are logged, never raised.
    """
    try:
        await blob.delete(ref)
    except Exception:
        log.exception("blob.cleanup err ref=%s reason=%s", ref, reason)
        return False
    log.info("blob.cleanup ok ref=%s reason=%s", ref, reason)
    return True


class IngestionService:
    """
    Orchestrates: validate -> write blob -> verify blob -> persist descriptor.
    Either a consistent (blob, descriptor) pair comes back or an error does;
    a blob written along the way is deleted before the error surfaces.
    """

    def __init__(
        self,
        blob: BlobStoragePort,
        meta: MetadataStorePort,
        settings: Optional[IngestionSettings] = None,
    ) -> None:
        self.blob = blob
        self.meta = meta
        self.settings = settings or IngestionSettings()

    def validate(self, payload: bytes, filename: str, content_type: str, owner_id: str) -> None:
        if not owner_id or not owner_id.strip():
            raise ValidationError("Missing owner identity")
        if owner_id != owner_id.strip():
            # owner ids are matched exactly on every later read
            raise ValidationError("Owner identity must not have surrounding whitespace")
        if payload is None:
            raise ValidationError("No file uploaded")
        if not filename or not filename.strip():
            raise ValidationError("Filename is required")

        ext = _extension(filename)
        if (content_type not in self.settings.accepted_content_types
                and ext not in self.settings.accepted_extensions):
            raise ValidationError(
                "Only XML or Excel files are allowed",
                {"filename": filename, "content_type": content_type},
            )

        size = len(payload)
        if size > self.settings.max_upload_bytes:
            raise ValidationError(
                "File too large",
                {"size": size, "max_bytes": self.settings.max_upload_bytes},
            )

    async def ingest(self, payload: bytes, filename: str, content_type: Optional[str], owner_id: str) -> FileDescriptor:
        content_type = _normalize_content_type(content_type)
        with tracer.start_as_current_span("files.ingest") as span:
            span.set_attribute("files.owner_id", owner_id or "")
            span.set_attribute("files.size", len(payload) if payload is not None else 0)

            # 1) validate; nothing has been written yet
            self.validate(payload, filename, content_type, owner_id)
            filename = filename.strip()

            # 2) write blob
            try:
                ref = await self.blob.put(payload, content_type=content_type)
            except Exception as e:
                log.exception("blob.put err owner=%s filename=%s", owner_id, filename)
                raise StorageError("Failed to upload file to storage") from e
            log.info("blob.put ok owner=%s filename=%s ref=%s size=%s", owner_id, filename, ref, len(payload))

            # 3) verify the store really kept it
            try:
                verified = await self.blob.exists(ref)
            except Exception:
                log.exception("blob.verify err ref=%s", ref)
                verified = False
            if not verified:
                log.error("blob.verify failed ref=%s owner=%s", ref, owner_id)
                await discard_blob(self.blob, ref, "verify_failed")
                raise StorageError("Failed to verify stored file", {"blob_ref": ref})

            # 4) persist descriptor
            try:
                descriptor = await self.meta.insert(NewFileDescriptor(
                    filename=filename,
                    blob_ref=ref,
                    size=len(payload),
                    content_type=content_type,
                    owner_id=owner_id,
                ))
            except Exception as e:
                log.exception("metadata.insert err ref=%s owner=%s", ref, owner_id)
                await discard_blob(self.blob, ref, "metadata_failed")
                raise MetadataError("Failed to save file metadata", {"blob_ref": ref}) from e

            span.set_attribute("files.id", descriptor.id)
            log.info("files.ingest ok id=%s owner=%s ref=%s", descriptor.id, owner_id, ref)
            return descriptor
