from __future__ import annotations
from typing import Optional
from .errors import *
from .ports import BlobStoragePort
from .adapters.inmemory import InMemoryBlobAdapter
from .adapters.local_fs import LocalFSBlobAdapter
from .config import BlobSettings

def make_adapter_from_env(cfg: Optional[BlobSettings] = None):
    cfg = cfg or BlobSettings()
    kind = cfg.BLOB_ADAPTER.lower()
    if kind == "memory":
        return InMemoryBlobAdapter(), "memory"
    elif kind == "localfs":
        return LocalFSBlobAdapter(cfg.BLOB_LOCAL_ROOT), "localfs"
    elif kind == "s3":
        from .adapters.s3 import S3BlobAdapter
        if not cfg.S3_BUCKET_DEFAULT:
            raise RuntimeError("S3_BUCKET_DEFAULT is required for S3 adapter")
        return S3BlobAdapter(
            bucket=cfg.S3_BUCKET_DEFAULT,
            key_prefix=cfg.S3_KEY_PREFIX,
            region=cfg.AWS_REGION,
            endpoint_url=cfg.S3_ENDPOINT_URL,
            force_path_style=cfg.S3_FORCE_PATH_STYLE
        ), "s3"
    elif kind == "gridfs":
        from .adapters.gridfs_bucket import GridFSBlobAdapter
        return GridFSBlobAdapter(
            mongo_uri=cfg.GRIDFS_MONGO_URI,
            database=cfg.GRIDFS_DATABASE,
            bucket_name=cfg.GRIDFS_BUCKET,
        ), "gridfs"
    else:
        raise RuntimeError(f"Unknown BLOB_ADAPTER: {cfg.BLOB_ADAPTER}")

__all__ = [
    "BlobError",
    "BlobNotFound",
    "BlobValidation",
    "BlobUpstream",
    "BlobStoragePort",
    "InMemoryBlobAdapter",
    "LocalFSBlobAdapter",
    "BlobSettings",
    "make_adapter_from_env",
]
