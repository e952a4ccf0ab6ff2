import os
import secrets
import time
import logging
from datetime import datetime, timezone

from bson import ObjectId
from gridfs.errors import NoFile
from pymongo.errors import PyMongoError

from services.errors import BinaryObjectNotFound, StoreError


logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 255 * 1024


def generate_stored_filename(original_name: str) -> str:
    """``<epoch ms>-<32 hex chars><ext>``, unique enough to never collide in practice."""
    extension = os.path.splitext(original_name or "")[1].lower()
    return f"{int(time.time() * 1000)}-{secrets.token_hex(16)}{extension}"


class StoredObject:
    def __init__(self, id, filename, original_name, mimetype, size, upload_date):
        self.id = id
        self.filename = filename
        self.original_name = original_name
        self.mimetype = mimetype
        self.size = size
        self.upload_date = upload_date


class BinaryStore:
    """Chunked byte storage on top of a GridFS bucket.

    Objects are written once (a run of chunk documents finalised by a single
    files-collection entry) and afterwards can only be read or deleted. All
    methods block, call them through the threadpool from async code.
    """

    def __init__(self, bucket, chunk_size_bytes: int = DEFAULT_CHUNK_SIZE):
        self.bucket = bucket
        self.chunk_size_bytes = chunk_size_bytes

    def store(self, source, original_name: str, mimetype: str, user_id: str, category: str) -> StoredObject:
        """Stream ``source`` (a binary file object) into the bucket."""
        filename = generate_stored_filename(original_name)
        upload_date = datetime.now(timezone.utc)
        metadata = {
            "originalName": original_name,
            "uploadedBy": str(user_id),
            "uploadDate": upload_date,
            "mimetype": mimetype,
            "category": category,
        }
        source.seek(0)
        try:
            object_id = self.bucket.upload_from_stream(
                filename,
                source,
                chunk_size_bytes=self.chunk_size_bytes,
                metadata=metadata,
            )
        except PyMongoError as e:
            logger.error(f"GridFS upload failed for '{original_name}': {e}", exc_info=True)
            raise StoreError(f"Failed to store '{original_name}'", stage="binary")

        size = source.tell()
        logger.info(f"Stored '{original_name}' as {filename} ({object_id}, {size} bytes)")
        return StoredObject(object_id, filename, original_name, mimetype, size, upload_date)

    def open(self, object_id):
        """Open a read stream, raising ``BinaryObjectNotFound`` for missing objects."""
        try:
            return self.bucket.open_download_stream(ObjectId(object_id))
        except NoFile:
            raise BinaryObjectNotFound()
        except PyMongoError as e:
            logger.error(f"GridFS read failed for {object_id}: {e}", exc_info=True)
            raise StoreError(stage="binary")

    def delete(self, object_id):
        try:
            self.bucket.delete(ObjectId(object_id))
        except NoFile:
            raise BinaryObjectNotFound()
        except PyMongoError as e:
            logger.error(f"GridFS delete failed for {object_id}: {e}", exc_info=True)
            raise StoreError("Failed to delete stored file content", stage="binary")
        logger.info(f"Deleted binary object {object_id}")

