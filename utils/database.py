import logging

import gridfs
import pymongo
from fastapi import Request

from services.binary_store import BinaryStore, DEFAULT_CHUNK_SIZE


logger = logging.getLogger(__name__)


class MongoDatabase:
    """Owns the Mongo client, the collections and the GridFS-backed store.

    Built once at startup and handed to request handlers via ``get_database``.
    ``bucket`` may be supplied directly (tests pass an in-memory bucket).
    """

    def __init__(self, client, db_name, bucket_name="uploads", chunk_size_bytes=DEFAULT_CHUNK_SIZE, bucket=None):
        self.client = client
        self.db = client[db_name]
        self.users = self.db.users
        self.files = self.db.files
        if bucket is None:
            bucket = gridfs.GridFSBucket(self.db, bucket_name=bucket_name, chunk_size_bytes=chunk_size_bytes)
        self.binary_store = BinaryStore(bucket, chunk_size_bytes=chunk_size_bytes)

    @classmethod
    def from_uri(cls, uri, db_name, **kwargs):
        return cls(pymongo.MongoClient(uri), db_name, **kwargs)

    def ensure_indexes(self):
        self.users.create_index("email", unique=True)
        self.users.create_index("username", unique=True)
        self.files.create_index([("uploadedBy", pymongo.ASCENDING), ("uploadedAt", pymongo.DESCENDING)])
        self.files.create_index("gridfsId", unique=True)
        self.files.create_index("category")
        self.files.create_index("tags")
        self.files.create_index("sharedWith.userId")
        logger.info("MongoDB indexes ensured")

    def close(self):
        self.client.close()


def get_database(request: Request) -> MongoDatabase:
    return request.app.state.database
