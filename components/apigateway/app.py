from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI

from components.blobstorageadapter import make_adapter_from_env
from components.blobstorageadapter.ports import BlobStoragePort
from components.ingestionservice.config import IngestionSettings
from components.ingestionservice.http import admin_router, bind_file_services, router as files_router
from components.metadatastore import make_store_from_env
from components.metadatastore.contracts import MetadataStorePort

from .observability import RequestContextMiddleware, configure_logging
from .settings import GatewaySettings

logger = logging.getLogger("apigateway")


def create_app(
    blob: Optional[BlobStoragePort] = None,
    meta: Optional[MetadataStorePort] = None,
    settings: Optional[GatewaySettings] = None,
    ingestion_settings: Optional[IngestionSettings] = None,
) -> FastAPI:
    """
    Stores default to the ones selected by BLOB_ADAPTER / METADATA_ADAPTER.
    Both are opened on startup and closed on shutdown.
    """
    settings = settings or GatewaySettings()
    configure_logging(settings.log_level)

    if blob is None:
        blob, blob_kind = make_adapter_from_env()
    else:
        blob_kind = getattr(blob, "adapter", type(blob).__name__)
    if meta is None:
        meta, meta_kind = make_store_from_env()
    else:
        meta_kind = type(meta).__name__

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with AsyncExitStack() as stack:
            stack.callback(logger.info, "app.stop")
            # each store is closed only if its open succeeded
            await blob.open()
            stack.push_async_callback(blob.close)
            await meta.open()
            stack.push_async_callback(meta.close)
            logger.info("app.start blob=%s metadata=%s", blob_kind, meta_kind)

            if settings.purge_invalid_on_startup:
                removed = await app.state.file_service.purge_invalid()
                logger.info("app.cleanup removed_invalid=%s", removed)
            yield

    app = FastAPI(title=settings.name, version=settings.version, lifespan=lifespan)
    app.add_middleware(RequestContextMiddleware)
    bind_file_services(app, blob=blob, meta=meta, settings=ingestion_settings)

    @app.get("/health")
    def health():
        return {"status": "ok", "version": settings.version, "time": datetime.now(timezone.utc).isoformat()}

    app.include_router(files_router, prefix="/api")
    app.include_router(admin_router, prefix="/api")
    return app


app = create_app()
