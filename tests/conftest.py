import io
import sys
from datetime import datetime, timezone
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from typing import AsyncGenerator

import pytest
import pytest_asyncio
import httpx
import mongomock
from bson import ObjectId
from gridfs.errors import NoFile
from httpx import AsyncClient
from pymongo.errors import AutoReconnect

from main import app
from auth.utils import create_access_token, get_password_hash
from services.ai_analyzer import ResumeAnalyzer, get_analyzer
from utils.database import MongoDatabase, get_database


TEST_PASSWORD = "secret123"


class InMemoryGridOut:
    """Read side of a stored object, shaped like ``gridfs.GridOut``."""

    def __init__(self, doc, data):
        self._id = doc["_id"]
        self.filename = doc["filename"]
        self.length = doc["length"]
        self.metadata = doc["metadata"]
        self.upload_date = doc["uploadDate"]
        self._data = data
        self._position = 0
        self.closed = False

    def read(self, size=-1):
        if size is None or size < 0:
            chunk = self._data[self._position:]
        else:
            chunk = self._data[self._position:self._position + size]
        self._position += len(chunk)
        return chunk

    def close(self):
        self.closed = True


class InMemoryGridFSBucket:
    """The subset of ``gridfs.GridFSBucket`` the binary store uses.

    Objects are kept as lists of chunks and only become visible once the whole
    stream has been consumed. ``fail_uploads``/``fail_deletes`` simulate a
    store outage.
    """

    def __init__(self):
        self.files = {}
        self.chunks = {}
        self.opened = []
        self.fail_uploads = False
        self.fail_deletes = False

    def upload_from_stream(self, filename, source, chunk_size_bytes=None, metadata=None):
        if self.fail_uploads:
            raise AutoReconnect("connection to store lost")
        chunk_size = chunk_size_bytes or 255 * 1024
        chunks = []
        while True:
            data = source.read(chunk_size)
            if not data:
                break
            chunks.append(data)

        file_id = ObjectId()
        self.chunks[file_id] = chunks
        self.files[file_id] = {
            "_id": file_id,
            "filename": filename,
            "length": sum(len(c) for c in chunks),
            "chunkSize": chunk_size,
            "uploadDate": datetime.now(timezone.utc),
            "metadata": metadata,
        }
        return file_id

    def open_download_stream(self, file_id):
        if file_id not in self.files:
            raise NoFile(f"no file in gridfs collection with _id {file_id!r}")
        grid_out = InMemoryGridOut(self.files[file_id], b"".join(self.chunks[file_id]))
        self.opened.append(grid_out)
        return grid_out

    def delete(self, file_id):
        if self.fail_deletes:
            raise AutoReconnect("connection to store lost")
        if file_id not in self.files:
            raise NoFile(f"no file could be deleted because none matched {file_id!r}")
        del self.files[file_id]
        del self.chunks[file_id]

    def content(self, file_id) -> bytes:
        return b"".join(self.chunks[ObjectId(file_id)])


def make_user(database, username, role):
    user = {
        "username": username,
        "email": f"{username}@example.com",
        "password": get_password_hash(TEST_PASSWORD),
        "role": role,
        "isActive": True,
        "loginAttempts": 0,
    }
    if role == "Interviewee":
        user["intervieweeInfo"] = {"documents": []}
    user["_id"] = database.users.insert_one(user).inserted_id
    return user


def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture(scope="function")
def bucket():
    return InMemoryGridFSBucket()


@pytest.fixture(scope="function")
def database(bucket):
    database = MongoDatabase(mongomock.MongoClient(), "interview_platform_test", bucket=bucket, chunk_size_bytes=1024)
    database.ensure_indexes()
    return database


@pytest.fixture(scope="function")
def analyzer():
    # no client configured, analysis falls back to text pattern matching
    return ResumeAnalyzer(None, timeout=1.0)


@pytest_asyncio.fixture(scope="function")
async def async_client(database, analyzer) -> AsyncGenerator[AsyncClient, None]:
    app.dependency_overrides[get_database] = lambda: database
    app.dependency_overrides[get_analyzer] = lambda: analyzer

    transport = httpx.ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testapi") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def interviewee(database):
    return make_user(database, "alice", "Interviewee")


@pytest.fixture(scope="function")
def other_interviewee(database):
    return make_user(database, "bob", "Interviewee")


@pytest.fixture(scope="function")
def interviewer(database):
    return make_user(database, "ivan", "Interviewer")


@pytest.fixture(scope="function")
def upload(async_client):
    """POST one file to the upload endpoint as ``user``."""

    async def _upload(user, name="resume.txt", content=b"Jane Doe\nPython developer", mimetype="text/plain",
                      category="resume", **form):
        files = [("files", (name, io.BytesIO(content), mimetype))]
        return await async_client.post(
            "/api/files/upload",
            files=files,
            data={"category": category, **form},
            headers=auth_headers(user),
        )

    return _upload
