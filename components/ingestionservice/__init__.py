from .errors import (
    CorruptRecordError,
    IngestionError,
    MetadataError,
    NotFound,
    StorageError,
    ValidationError,
)
from .config import IngestionSettings
from .retrieval import FileService
from .service import IngestionService

__all__ = [
    "IngestionError",
    "ValidationError",
    "StorageError",
    "MetadataError",
    "NotFound",
    "CorruptRecordError",
    "IngestionSettings",
    "IngestionService",
    "FileService",
]
