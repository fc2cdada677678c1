from __future__ import annotations


class MetadataStoreError(RuntimeError):
    """Base typed error for metadata store failures."""


class BackendUnavailable(MetadataStoreError):
    """Adapter backend unavailable or not opened."""
