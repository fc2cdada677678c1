import asyncio
import io

import pytest
from openpyxl import Workbook
from fastapi.testclient import TestClient

from components.apigateway.app import create_app
from components.apigateway.settings import GatewaySettings
from components.blobstorageadapter.adapters.inmemory import InMemoryBlobAdapter
from components.ingestionservice.config import IngestionSettings
from components.metadatastore.adapters.inmemory import InMemoryMetadataStore
from components.metadatastore.contracts import NewFileDescriptor

XML = b"<sales><sale region='north'><amount>10</amount></sale><sale region='south'><amount>7.5</amount></sale></sales>"

USER = {"X-User-Id": "user-1"}
OTHER = {"X-User-Id": "user-2"}
ADMIN = {"X-User-Id": "root", "X-User-Role": "admin"}


def make_app(blob=None, meta=None, max_bytes: int = 4096):
    return create_app(
        blob=blob or InMemoryBlobAdapter(),
        meta=meta or InMemoryMetadataStore(),
        settings=GatewaySettings(),
        ingestion_settings=IngestionSettings(max_upload_bytes=max_bytes),
    )


def _upload(client, headers=USER, name="sales.xml", raw=XML, content_type="text/xml"):
    return client.post("/api/files/upload", files={"file": (name, raw, content_type)}, headers=headers)


def test_health():
    with TestClient(make_app()) as c:
        r = c.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "ok"
        assert "x-request-id" in r.headers


def test_upload_list_get_download_delete():
    with TestClient(make_app()) as c:
        r = _upload(c)
        assert r.status_code == 201, r.text
        file = r.json()["file"]
        assert file["filename"] == "sales.xml"
        assert file["size"] == len(XML)
        assert file["owner_id"] == "user-1"
        file_id = file["id"]

        r = c.get("/api/files", headers=USER)
        assert r.status_code == 200
        assert [f["id"] for f in r.json()["files"]] == [file_id]

        r = c.get(f"/api/files/{file_id}", headers=USER)
        assert r.status_code == 200
        assert r.json()["content_type"] == "text/xml"

        r = c.get(f"/api/files/{file_id}/download", headers=USER)
        assert r.status_code == 200
        assert r.content == XML
        assert "attachment" in r.headers["content-disposition"]
        assert "sales.xml" in r.headers["content-disposition"]

        r = c.delete(f"/api/files/{file_id}", headers=USER)
        assert r.status_code == 200

        r = c.get(f"/api/files/{file_id}", headers=USER)
        assert r.status_code == 404
        assert r.json()["detail"]["code"] == "files.not_found"
        r = c.delete(f"/api/files/{file_id}", headers=USER)
        assert r.status_code == 404


def test_records_endpoint():
    with TestClient(make_app()) as c:
        file_id = _upload(c).json()["file"]["id"]
        r = c.get(f"/api/files/{file_id}/records", headers=USER)
        assert r.status_code == 200, r.text
        body = r.json()
        assert body["file_id"] == file_id
        assert body["fields"] == ["region", "amount"]
        assert body["records"] == [
            {"region": "north", "amount": 10.0},
            {"region": "south", "amount": 7.5},
        ]


def test_records_endpoint_for_workbook():
    wb = Workbook()
    wb.active.append(["month", "total"])
    wb.active.append(["Jan", 4])
    buf = io.BytesIO()
    wb.save(buf)

    with TestClient(make_app(max_bytes=1024 * 1024)) as c:
        file_id = _upload(c, name="sales.xlsx", raw=buf.getvalue(),
                          content_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet").json()["file"]["id"]
        r = c.get(f"/api/files/{file_id}/records", headers=USER)
        assert r.status_code == 200, r.text
        assert r.json()["fields"] == ["month", "total"]
        assert r.json()["records"] == [{"month": "Jan", "total": 4.0}]


def test_records_on_unparseable_xml_is_400():
    with TestClient(make_app()) as c:
        file_id = _upload(c, raw=b"<broken>").json()["file"]["id"]
        r = c.get(f"/api/files/{file_id}/records", headers=USER)
        assert r.status_code == 400
        assert r.json()["detail"]["code"] == "files.validation"


def test_requests_without_identity_are_401():
    with TestClient(make_app()) as c:
        assert _upload(c, headers={}).status_code == 401
        assert c.get("/api/files").status_code == 401


def test_upload_rejects_unsupported_type():
    with TestClient(make_app()) as c:
        r = _upload(c, name="notes.txt", raw=b"hello", content_type="text/plain")
        assert r.status_code == 400
        assert r.json()["detail"]["code"] == "files.validation"
        assert c.get("/api/files", headers=USER).json()["files"] == []


def test_upload_rejects_oversized_payload():
    with TestClient(make_app(max_bytes=16)) as c:
        r = _upload(c, raw=b"<a>" + b"x" * 32 + b"</a>")
        assert r.status_code == 400
        assert r.json()["detail"]["details"]["max_bytes"] == 16


def test_other_owner_gets_404():
    with TestClient(make_app()) as c:
        file_id = _upload(c).json()["file"]["id"]
        assert c.get(f"/api/files/{file_id}", headers=OTHER).status_code == 404
        assert c.get(f"/api/files/{file_id}/download", headers=OTHER).status_code == 404
        assert c.delete(f"/api/files/{file_id}", headers=OTHER).status_code == 404
        assert c.get(f"/api/files/{file_id}", headers=USER).status_code == 200


def test_admin_routes_require_admin_role():
    with TestClient(make_app()) as c:
        assert c.get("/api/admin/stats", headers=USER).status_code == 403
        assert c.get("/api/admin/users/user-1/files", headers=USER).status_code == 403
        assert c.get("/api/admin/stats").status_code == 401


def test_admin_can_inspect_and_delete_any_file():
    with TestClient(make_app()) as c:
        file_id = _upload(c).json()["file"]["id"]
        _upload(c, headers=OTHER, name="book.xlsx", raw=b"PK\x03\x04",
                content_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet")

        r = c.get("/api/admin/stats", headers=ADMIN)
        assert r.status_code == 200
        stats = r.json()
        assert stats["total_files"] == 2
        assert stats["owners"] == 2
        assert stats["by_extension"] == {".xml": 1, ".xlsx": 1}

        r = c.get("/api/admin/users/user-1/files", headers=ADMIN)
        assert [f["id"] for f in r.json()["files"]] == [file_id]

        assert c.get(f"/api/admin/files/{file_id}", headers=ADMIN).json()["owner_id"] == "user-1"
        assert c.get(f"/api/admin/files/{file_id}/download", headers=ADMIN).content == XML

        assert c.delete(f"/api/admin/files/{file_id}", headers=ADMIN).status_code == 200
        assert c.get(f"/api/files/{file_id}", headers=USER).status_code == 404


def test_startup_purges_invalid_descriptors():
    meta = InMemoryMetadataStore()
    app = make_app(meta=meta)

    async def _seed():
        return await meta.insert(NewFileDescriptor(
            filename="ghost.xml", blob_ref="", size=0, content_type="text/xml", owner_id="user-1",
        ))

    ghost = asyncio.run(_seed())

    with TestClient(app) as c:
        assert c.get("/api/files", headers=USER).json()["files"] == []
        assert c.get(f"/api/files/{ghost.id}", headers=USER).status_code == 404


class TrackedBlob(InMemoryBlobAdapter):
    def __init__(self):
        super().__init__()
        self.calls = []

    async def open(self):
        self.calls.append("open")

    async def close(self):
        self.calls.append("close")
        await super().close()


class UnreachableMeta(InMemoryMetadataStore):
    async def open(self):
        raise RuntimeError("mongo unreachable")

    async def close(self):
        raise AssertionError("close must not run for a store that never opened")


def test_blob_store_is_closed_when_metadata_store_fails_to_open():
    blob = TrackedBlob()
    app = make_app(blob=blob, meta=UnreachableMeta())

    with pytest.raises(RuntimeError, match="mongo unreachable"):
        with TestClient(app):
            pass

    assert blob.calls == ["open", "close"]


def test_stores_are_closed_on_shutdown():
    blob = TrackedBlob()
    with TestClient(make_app(blob=blob)) as c:
        assert c.get("/health").status_code == 200
        assert blob.calls == ["open"]
    assert blob.calls == ["open", "close"]
