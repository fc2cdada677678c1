from __future__ import annotations

from typing import Any, Dict, Optional


class IngestionError(Exception):
    """Base error for the file pipeline. Every caller-visible failure is one of the subclasses."""

    code: str = "files.internal_error"
    status: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(IngestionError):
    """Bad input shape, type or size. No store was touched."""

    code = "files.validation"
    status = 400


class StorageError(IngestionError):
    """Blob store write, verification read or download stream failed."""

    code = "files.storage"
    status = 502


class MetadataError(IngestionError):
    """Descriptor write failed after a verified blob write; the blob has been cleaned up."""

    code = "files.metadata"
    status = 500


class NotFound(IngestionError):
    """No such file for this caller. Also raised for files owned by someone else."""

    code = "files.not_found"
    status = 404


class CorruptRecordError(IngestionError):
    """The descriptor exists and is owned, but its blob reference is unusable. It has been purged."""

    code = "files.corrupt_record"
    status = 410
