import logging
from urllib.parse import quote

from fastapi.concurrency import run_in_threadpool
from starlette.responses import StreamingResponse

from services import file_records
from services.errors import BinaryObjectNotFound, UnsupportedPreview


logger = logging.getLogger(__name__)

PREVIEWABLE_TYPES = ("application/pdf", "text/plain", "text/rtf", "application/rtf")
STREAM_CHUNK_SIZE = 256 * 1024


async def open_download_stream(database, record):
    """Open the binary object behind ``record``.

    A record whose object is gone is flagged as orphaned so later reads treat
    it as missing, then ``BinaryObjectNotFound`` is raised.
    """
    try:
        return await run_in_threadpool(database.binary_store.open, record["gridfsId"])
    except BinaryObjectNotFound:
        await file_records.flag_orphaned(database.files, record["_id"])
        raise


def check_previewable(record):
    if record.get("mimetype") not in PREVIEWABLE_TYPES:
        raise UnsupportedPreview()


async def iter_stream(grid_out, on_complete=None, chunk_size=STREAM_CHUNK_SIZE):
    """Yield the object chunk by chunk, then run ``on_complete``.

    ``on_complete`` only runs once the last byte has been handed to the
    consumer; an aborted or failed transfer closes the read stream without it.
    """
    completed = False
    try:
        while True:
            chunk = await run_in_threadpool(grid_out.read, chunk_size)
            if not chunk:
                break
            yield chunk
        completed = True
    finally:
        grid_out.close()
        if not completed:
            logger.info(f"Stream of binary object {grid_out._id} closed before completion")

    if on_complete is not None:
        await on_complete()


async def read_fully(database, record) -> bytes:
    """Buffer a whole object in memory; only the analysis path needs this."""
    grid_out = await open_download_stream(database, record)
    try:
        return await run_in_threadpool(grid_out.read)
    finally:
        grid_out.close()


def content_disposition(disposition_type: str, filename: str) -> str:
    try:
        filename.encode("latin-1")
    except UnicodeEncodeError:
        return f"{disposition_type}; filename*=utf-8''{quote(filename)}"
    escaped = filename.replace("\\", "\\\\").replace('"', '\\"')
    return f'{disposition_type}; filename="{escaped}"'


class StoreStreamingResponse(StreamingResponse):
    """Streaming response that always closes its body iterator.

    When the client goes away mid-transfer the iterator is closed explicitly,
    which closes the GridFS read stream right away instead of at garbage
    collection.
    """

    async def __call__(self, scope, receive, send):
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.body_iterator.aclose()


def stream_response(grid_out, record, disposition_type, on_complete=None):
    headers = {
        "Content-Disposition": content_disposition(disposition_type, record["originalName"]),
        "Content-Length": str(grid_out.length),
    }
    media_type = (grid_out.metadata or {}).get("mimetype") or record.get("mimetype") or "application/octet-stream"
    return StoreStreamingResponse(
        iter_stream(grid_out, on_complete=on_complete),
        media_type=media_type,
        headers=headers,
    )
