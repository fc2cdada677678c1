from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, FastAPI, HTTPException, Request, UploadFile, status
from fastapi.responses import StreamingResponse

from components.blobstorageadapter.ports import BlobStoragePort
from components.metadatastore.contracts import FileDescriptor, MetadataStorePort

from .config import IngestionSettings
from .contracts import FileListResponse, FileOut, FileStats, RecordsResponse, UploadResponse
from .errors import IngestionError
from .records import field_paths
from .retrieval import FileService
from .service import IngestionService

log = logging.getLogger("ingestion.http")


# ---- Auth context shim ----
# Session handling lives in front of this router; it forwards the principal as headers.
class AuthCtx:
    def __init__(self, user_id: str, role: str = "user") -> None:
        self.user_id = user_id
        self.role = role

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def get_auth_ctx(request: Request) -> AuthCtx:
    user_id = (request.headers.get("X-User-Id") or "").strip()
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated, please log in.")
    role = (request.headers.get("X-User-Role") or "user").strip().lower()
    return AuthCtx(user_id=user_id, role=role)


def require_admin(auth: AuthCtx = Depends(get_auth_ctx)) -> AuthCtx:
    if not auth.is_admin:
        log.warning("admin.denied user=%s role=%s", auth.user_id, auth.role)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied: Admins only")
    return auth


# ---- Service wiring ----
# Stores are injected per application (app.state), never held as module globals.
def bind_file_services(
    app: FastAPI,
    blob: BlobStoragePort,
    meta: MetadataStorePort,
    settings: Optional[IngestionSettings] = None,
) -> None:
    app.state.ingestion_service = IngestionService(blob=blob, meta=meta, settings=settings)
    app.state.file_service = FileService(blob=blob, meta=meta)


def get_ingestion_service(request: Request) -> IngestionService:
    return request.app.state.ingestion_service


def get_file_service(request: Request) -> FileService:
    return request.app.state.file_service


@contextmanager
def _translated_errors():
    try:
        yield
    except IngestionError as e:
        log.warning("request.failed code=%s status=%s msg=%s", e.code, e.status, e.message)
        raise HTTPException(status_code=e.status, detail=e.to_payload()) from e


def _attachment(filename: str) -> str:
    ascii_name = filename.encode("ascii", "replace").decode("ascii").replace('"', "_")
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename)}"


def _download_response(descriptor: FileDescriptor, stream) -> StreamingResponse:
    return StreamingResponse(
        stream,
        media_type=descriptor.content_type or "text/xml",
        headers={"Content-Disposition": _attachment(descriptor.filename)},
    )


# ---- Routers ----
router = APIRouter(prefix="/files", tags=["files"])
admin_router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/upload", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_file(
    file: UploadFile = File(...),
    auth: AuthCtx = Depends(get_auth_ctx),
    svc: IngestionService = Depends(get_ingestion_service),
):
    # read at most one byte past the limit; anything longer is rejected the same way
    raw = await file.read(svc.settings.max_upload_bytes + 1)
    await file.close()
    with _translated_errors():
        descriptor = await svc.ingest(raw, file.filename or "", file.content_type, auth.user_id)
    return UploadResponse(file=FileOut.from_descriptor(descriptor))


@router.get("", response_model=FileListResponse)
async def list_files(auth: AuthCtx = Depends(get_auth_ctx), svc: FileService = Depends(get_file_service)):
    with _translated_errors():
        files = await svc.list_files(auth.user_id)
    return FileListResponse(files=[FileOut.from_descriptor(d) for d in files])


@router.get("/{file_id}", response_model=FileOut)
async def get_file(file_id: str, auth: AuthCtx = Depends(get_auth_ctx), svc: FileService = Depends(get_file_service)):
    with _translated_errors():
        descriptor = await svc.get_file(file_id, auth.user_id)
    return FileOut.from_descriptor(descriptor)


@router.get("/{file_id}/download")
async def download_file(file_id: str, auth: AuthCtx = Depends(get_auth_ctx), svc: FileService = Depends(get_file_service)):
    with _translated_errors():
        descriptor, stream = await svc.open_download(file_id, auth.user_id)
    return _download_response(descriptor, stream)


@router.get("/{file_id}/records", response_model=RecordsResponse)
async def file_records(file_id: str, auth: AuthCtx = Depends(get_auth_ctx), svc: FileService = Depends(get_file_service)):
    with _translated_errors():
        records = await svc.load_records(file_id, auth.user_id)
    return RecordsResponse(file_id=file_id, fields=field_paths(records), records=records)


@router.delete("/{file_id}")
async def delete_file(file_id: str, auth: AuthCtx = Depends(get_auth_ctx), svc: FileService = Depends(get_file_service)):
    with _translated_errors():
        await svc.delete_file(file_id, auth.user_id)
    return {"message": "File deleted successfully"}


@admin_router.get("/users/{owner_id}/files", response_model=FileListResponse)
async def admin_list_files(owner_id: str, _: AuthCtx = Depends(require_admin), svc: FileService = Depends(get_file_service)):
    with _translated_errors():
        files = await svc.admin_list_files(owner_id)
    return FileListResponse(files=[FileOut.from_descriptor(d) for d in files])


@admin_router.get("/files/{file_id}", response_model=FileOut)
async def admin_get_file(file_id: str, _: AuthCtx = Depends(require_admin), svc: FileService = Depends(get_file_service)):
    with _translated_errors():
        descriptor = await svc.admin_get_file(file_id)
    return FileOut.from_descriptor(descriptor)


@admin_router.get("/files/{file_id}/download")
async def admin_download_file(file_id: str, _: AuthCtx = Depends(require_admin), svc: FileService = Depends(get_file_service)):
    with _translated_errors():
        descriptor, stream = await svc.admin_download_content(file_id)
    return _download_response(descriptor, stream)


@admin_router.delete("/files/{file_id}")
async def admin_delete_file(file_id: str, _: AuthCtx = Depends(require_admin), svc: FileService = Depends(get_file_service)):
    with _translated_errors():
        await svc.admin_delete_file(file_id)
    return {"message": "File deleted successfully"}


@admin_router.get("/stats", response_model=FileStats)
async def admin_stats(_: AuthCtx = Depends(require_admin), svc: FileService = Depends(get_file_service)):
    with _translated_errors():
        return await svc.file_stats()
