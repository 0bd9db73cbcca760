import asyncio
import os

import pytest
from sqlalchemy import func, select

from app.core.errors import NotFound, StoreUnavailable, WriteTimeout
from app.models.blob import BlobChunk
from app.services.storage.blob_store import BlobStore


@pytest.fixture
async def store(session_maker):
    store = BlobStore(session_maker, chunk_size=1024, connect_backoff=0.01)
    assert await store.connect()
    return store


async def test_put_then_get_returns_same_bytes(store, session_maker):
    data = os.urandom(5000)
    blob_id = await store.put(data, "answer.pdf", {"examId": "exam-1"})

    assert await store.get(blob_id) == data

    async with session_maker() as session:
        rows = await session.scalar(select(func.count()).select_from(BlobChunk).where(BlobChunk.blob_id == blob_id))
    assert rows == 5


async def test_put_records_metadata_defaults(store):
    blob_id = await store.put(b"%PDF-1.4 tiny", "tiny.pdf", {"examId": "exam-1", "studentId": "alice"})

    info = await store.info(blob_id)
    assert info.filename == "tiny.pdf"
    assert info.length == len(b"%PDF-1.4 tiny")
    assert info.content_type == "application/pdf"
    assert info.metadata["examId"] == "exam-1"
    assert "uploadDate" in info.metadata


async def test_iter_chunks_streams_in_order(store):
    data = b"".join(bytes([i]) * 1024 for i in range(4))
    blob_id = await store.put(data, "ordered.bin")

    parts = [part async for part in store.iter_chunks(blob_id)]
    assert [part[0] for part in parts] == [0, 1, 2, 3]


async def test_unknown_blob_is_not_found(store):
    with pytest.raises(NotFound):
        await store.get("does-not-exist")


async def test_delete_is_best_effort(store):
    blob_id = await store.put(b"bye", "bye.txt", {"contentType": "text/plain"})

    assert await store.delete(blob_id) is True
    assert await store.delete(blob_id) is False
    with pytest.raises(NotFound):
        await store.info(blob_id)


async def test_list_by_metadata_matches_typed_values(store):
    await store.put(b"a", "chunk_a.bin", {"submissionId": "s1", "chunkIndex": 0, "isWhiteboardChunk": True})
    await store.put(b"b", "chunk_b.bin", {"submissionId": "s1", "chunkIndex": 1, "isWhiteboardChunk": True})
    await store.put(b"c", "other.bin", {"submissionId": "s2", "chunkIndex": 0})

    assert len(await store.list_by_metadata({"submissionId": "s1"})) == 2
    assert [b.filename for b in await store.list_by_metadata({"submissionId": "s1", "chunkIndex": 1})] == ["chunk_b.bin"]
    assert len(await store.list_by_metadata({"isWhiteboardChunk": True})) == 2


async def test_write_timeout_aborts_put(session_maker):
    store = BlobStore(session_maker, write_timeout=0.05, emergency_write_timeout=5)
    await store.connect()

    async def slow_write(data, filename, metadata):
        await asyncio.sleep(1)
        return "never"

    store._write = slow_write
    with pytest.raises(WriteTimeout) as exc:
        await store.put(b"data", "slow.pdf")
    assert exc.value.message == "Upload timed out after 0.05 seconds"


async def test_emergency_writes_use_shorter_timeout(session_maker):
    store = BlobStore(session_maker, write_timeout=5, emergency_write_timeout=0.05)
    await store.connect()
    assert store.timeout_for({"isEmergencySubmission": True}) == 0.05
    assert store.timeout_for({}) == 5

    async def slow_write(data, filename, metadata):
        await asyncio.sleep(1)

    store._write = slow_write
    with pytest.raises(WriteTimeout) as exc:
        await store.put(b"data", "emergency.txt", {"isEmergencySubmission": True})
    assert "(emergency submission)" in exc.value.message
    assert exc.value.status_code == 503


async def test_put_fails_fast_when_store_never_becomes_ready(session_maker):
    store = BlobStore(session_maker, connect_retries=2, connect_backoff=0.01)
    probes = []

    async def failing_probe():
        probes.append(1)
        raise ConnectionError("database down")

    store._probe = failing_probe

    assert await store.connect() is False
    assert store.ready is False
    with pytest.raises(StoreUnavailable):
        await store.put(b"data", "x.pdf")
    # two attempts from connect(), one lazy retry from put()
    assert len(probes) == 3


async def test_lazy_reconnect_on_first_put(session_maker):
    store = BlobStore(session_maker)
    assert store.ready is False

    blob_id = await store.put(b"late", "late.txt")

    assert store.ready is True
    assert await store.get(blob_id) == b"late"
