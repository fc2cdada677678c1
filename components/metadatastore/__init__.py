# MetadataStore package init
from __future__ import annotations
from typing import Optional

from .adapters.inmemory import InMemoryMetadataStore
from .config import MetadataSettings
from .contracts import FileDescriptor, MetadataStorePort, NewFileDescriptor
from .errors import BackendUnavailable, MetadataStoreError


def make_store_from_env(cfg: Optional[MetadataSettings] = None):
    cfg = cfg or MetadataSettings()
    kind = cfg.METADATA_ADAPTER.lower()
    if kind == "memory":
        return InMemoryMetadataStore(), "memory"
    elif kind == "mongo":
        from .adapters.mongo import MongoMetadataStore
        return MongoMetadataStore(cfg.MONGO_URI, cfg.MONGO_DATABASE, cfg.MONGO_FILES_COLLECTION), "mongo"
    raise RuntimeError(f"Unknown METADATA_ADAPTER: {cfg.METADATA_ADAPTER}")


__all__ = [
    "FileDescriptor",
    "NewFileDescriptor",
    "MetadataStorePort",
    "MetadataStoreError",
    "BackendUnavailable",
    "InMemoryMetadataStore",
    "MetadataSettings",
    "make_store_from_env",
]
