import io

import pytest
from unittest.mock import AsyncMock

from services.binary_store import BinaryStore, generate_stored_filename
from services.errors import BinaryObjectNotFound
from services.file_streaming import content_disposition, iter_stream


@pytest.fixture
def store(bucket):
    return BinaryStore(bucket, chunk_size_bytes=1024)


def stored_object(store, content=b"0123456789" * 1000):
    return store.store(io.BytesIO(content), "resume.txt", "text/plain", "user-1", "resume")


@pytest.mark.asyncio
async def test_complete_stream_runs_completion_hook_once(store):
    stored = stored_object(store)
    grid_out = store.open(stored.id)
    on_complete = AsyncMock()

    chunks = [chunk async for chunk in iter_stream(grid_out, on_complete=on_complete, chunk_size=4096)]

    assert b"".join(chunks) == b"0123456789" * 1000
    assert [len(c) for c in chunks] == [4096, 4096, 1808]
    on_complete.assert_awaited_once()
    assert grid_out.closed


@pytest.mark.asyncio
async def test_interrupted_stream_skips_completion_hook(store):
    stored = stored_object(store)
    grid_out = store.open(stored.id)
    on_complete = AsyncMock()

    stream = iter_stream(grid_out, on_complete=on_complete, chunk_size=4096)
    first = await stream.__anext__()
    await stream.aclose()

    assert len(first) == 4096
    on_complete.assert_not_awaited()
    assert grid_out.closed


@pytest.mark.asyncio
async def test_empty_object_still_completes(store):
    stored = stored_object(store, content=b"")
    on_complete = AsyncMock()

    chunks = [chunk async for chunk in iter_stream(store.open(stored.id), on_complete=on_complete)]

    assert chunks == []
    on_complete.assert_awaited_once()


def test_store_records_metadata_and_size(store, bucket):
    stored = stored_object(store, content=b"abc" * 1000)

    assert stored.size == 3000
    assert stored.filename.endswith(".txt")
    doc = bucket.files[stored.id]
    assert doc["length"] == 3000
    assert doc["metadata"]["originalName"] == "resume.txt"
    assert doc["metadata"]["uploadedBy"] == "user-1"
    assert len(bucket.chunks[stored.id]) == 3


def test_deleted_object_cannot_be_opened(store):
    stored = stored_object(store)
    store.delete(stored.id)

    with pytest.raises(BinaryObjectNotFound):
        store.open(stored.id)
    with pytest.raises(BinaryObjectNotFound):
        store.delete(stored.id)


def test_stored_filenames_do_not_collide():
    names = {generate_stored_filename("CV.PDF") for _ in range(1000)}

    assert len(names) == 1000
    assert all(name.endswith(".pdf") for name in names)


@pytest.mark.parametrize("filename, expected", [
    ("resume.pdf", 'attachment; filename="resume.pdf"'),
    ('my "best" cv.pdf', 'attachment; filename="my \\"best\\" cv.pdf"'),
    ("Résumé.pdf", 'attachment; filename="Résumé.pdf"'),
    ("履歴書.pdf", "attachment; filename*=utf-8''%E5%B1%A5%E6%AD%B4%E6%9B%B8.pdf"),
])
def test_content_disposition(filename, expected):
    assert content_disposition("attachment", filename) == expected
