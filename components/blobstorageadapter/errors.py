
from __future__ import annotations

class BlobError(Exception):
    """Base class for blob adapter errors."""

class BlobNotFound(BlobError):
    pass

class BlobValidation(BlobError):
    pass

class BlobUpstream(BlobError):
    pass
