import tempfile

import pytest

from components.blobstorageadapter import make_adapter_from_env, BlobSettings
from components.blobstorageadapter.adapters.inmemory import InMemoryBlobAdapter
from components.blobstorageadapter.adapters.local_fs import LocalFSBlobAdapter
from components.blobstorageadapter.errors import BlobNotFound


async def _read_all(adapter, ref) -> bytes:
    got = b""
    async for chunk in adapter.get_stream(ref):
        got += chunk
    return got


@pytest.mark.asyncio
async def test_put_exists_get_delete_localfs():
    with tempfile.TemporaryDirectory() as tmp:
        adapter = LocalFSBlobAdapter(tmp, chunk_size=256)
        await adapter.open()

        data = b"<rows><row><x>1</x></row></rows>" * 100

        ref = await adapter.put(data, content_type="text/xml")
        assert adapter.is_well_formed(ref)
        assert await adapter.exists(ref) is True

        assert await _read_all(adapter, ref) == data

        assert await adapter.delete(ref) is True
        assert await adapter.exists(ref) is False

        # deleting again is not an error
        assert await adapter.delete(ref) is False

        with pytest.raises(BlobNotFound):
            await _read_all(adapter, ref)
        await adapter.close()


@pytest.mark.asyncio
async def test_localfs_refs_are_fresh_per_write():
    with tempfile.TemporaryDirectory() as tmp:
        adapter = LocalFSBlobAdapter(tmp)
        await adapter.open()
        a = await adapter.put(b"same")
        b = await adapter.put(b"same")
        assert a != b
        assert await adapter.exists(a) and await adapter.exists(b)


@pytest.mark.asyncio
async def test_localfs_malformed_refs_never_touch_disk():
    with tempfile.TemporaryDirectory() as tmp:
        adapter = LocalFSBlobAdapter(tmp)
        await adapter.open()
        for bad in ["", "../../etc/passwd", "ZZ" * 16, None]:
            assert adapter.is_well_formed(bad) is False
            assert await adapter.exists(bad) is False
            assert await adapter.delete(bad) is False


@pytest.mark.asyncio
async def test_inmemory_roundtrip_and_idempotent_delete():
    adapter = InMemoryBlobAdapter(chunk_size=4)
    ref = await adapter.put(b"0123456789")
    assert await _read_all(adapter, ref) == b"0123456789"
    assert await adapter.delete(ref) is True
    assert await adapter.delete(ref) is False
    assert await adapter.exists(ref) is False


def test_make_adapter_from_env_selects_adapter(monkeypatch):
    monkeypatch.setenv("BLOB_ADAPTER", "memory")
    adapter, name = make_adapter_from_env()
    assert name == "memory"
    assert isinstance(adapter, InMemoryBlobAdapter)

    adapter, name = make_adapter_from_env(BlobSettings(BLOB_ADAPTER="localfs", BLOB_LOCAL_ROOT="/tmp/blobs"))
    assert name == "localfs"
    assert isinstance(adapter, LocalFSBlobAdapter)

    with pytest.raises(RuntimeError):
        make_adapter_from_env(BlobSettings(BLOB_ADAPTER="s3", S3_BUCKET_DEFAULT=None))
    with pytest.raises(RuntimeError):
        make_adapter_from_env(BlobSettings(BLOB_ADAPTER="ftp"))
