import os
import logging

from fastapi.concurrency import run_in_threadpool
from pymongo.errors import PyMongoError

from services import file_records
from services.errors import StoreError, UploadRejected, ValidationError, BinaryObjectNotFound
from services.user_documents import add_resume_document


logger = logging.getLogger(__name__)

# mimetype -> extensions that may carry it
ALLOWED_TYPES = {
    "application/pdf": (".pdf",),
    "application/msword": (".doc",),
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": (".docx",),
    "text/plain": (".txt",),
    "text/rtf": (".rtf",),
    "application/rtf": (".rtf",),
}


class IncomingFile:
    """One uploaded part: name and declared mimetype plus a seekable binary file object."""

    def __init__(self, filename, content_type, file, size=None):
        self.filename = filename or ""
        self.content_type = (content_type or "").split(";")[0].strip().lower()
        self.file = file
        self.size = size if size is not None else measure(file)


def measure(fileobj) -> int:
    position = fileobj.tell()
    fileobj.seek(0, os.SEEK_END)
    size = fileobj.tell()
    fileobj.seek(position)
    return size


def validate_file(incoming: IncomingFile, max_size: int):
    """Fail fast, in order: size, mimetype, extension."""
    if incoming.size > max_size:
        raise UploadRejected(
            f"File size exceeds maximum limit of {max_size / (1024 * 1024):g}MB",
            code="SizeExceeded",
        )

    allowed_extensions = ALLOWED_TYPES.get(incoming.content_type)
    if allowed_extensions is None:
        raise UploadRejected(
            "Invalid file type. Only PDF, DOC, DOCX, TXT, and RTF files are allowed.",
            code="UnsupportedType",
        )

    extension = os.path.splitext(incoming.filename)[1].lower()
    if extension not in allowed_extensions:
        raise UploadRejected(
            f"Invalid file extension '{extension}' for type {incoming.content_type}",
            code="UnsupportedExtension",
        )


def check_batch(incoming_files, max_files: int):
    if not incoming_files:
        raise ValidationError("No files uploaded", code="NoFiles")
    if len(incoming_files) > max_files:
        raise ValidationError(
            f"Too many files. Maximum {max_files} files allowed per request.",
            code="TooManyFiles",
        )


class UploadOutcome:
    def __init__(self, attempted: int):
        self.attempted = attempted
        self.created = []
        self.failures = []

    @property
    def succeeded(self) -> int:
        return len(self.created)

    def fail(self, incoming, error):
        self.failures.append({
            "originalName": incoming.filename,
            "code": error.code,
            "message": error.message,
        })

    @property
    def message(self) -> str:
        return f"Successfully uploaded {self.succeeded} of {self.attempted} file(s)"


async def upload_files(database, user, incoming_files, category="resume", description="", tags=None,
                       max_size=10 * 1024 * 1024) -> UploadOutcome:
    """Validate and store each file independently.

    Per file: bytes go to the binary store first and the file record is only
    written once that commit succeeded. If the record write fails, the stored
    object is deleted again so no binary is left without a record.
    """
    outcome = UploadOutcome(len(incoming_files))
    store = database.binary_store
    user_id = user["_id"]

    for incoming in incoming_files:
        try:
            validate_file(incoming, max_size)
        except UploadRejected as e:
            logger.info(f"Rejected '{incoming.filename}' ({incoming.content_type}, {incoming.size} bytes): {e.code}")
            outcome.fail(incoming, e)
            continue

        try:
            stored = await run_in_threadpool(
                store.store, incoming.file, incoming.filename, incoming.content_type, user_id, category
            )
        except StoreError as e:
            outcome.fail(incoming, e)
            continue

        record = file_records.build_record(stored, user_id, category, description, tags)
        try:
            record = await file_records.insert_record(database.files, record)
        except PyMongoError as e:
            logger.error(f"Saving file record for {stored.id} failed, removing stored object: {e}", exc_info=True)
            await _discard_binary(store, stored.id)
            outcome.fail(incoming, StoreError(f"Failed to save '{incoming.filename}'", code="RecordCreateFailed"))
            continue

        if category == "resume":
            try:
                await add_resume_document(database.users, user_id, stored)
            except PyMongoError as e:
                # the file itself is complete, only the profile summary is missing
                logger.error(f"Adding resume {stored.id} to profile of user {user_id} failed: {e}", exc_info=True)

        logger.info(f"Uploaded '{incoming.filename}' for user {user_id} as record {record['_id']}")
        outcome.created.append(record)

    return outcome


async def _discard_binary(store, object_id):
    try:
        await run_in_threadpool(store.delete, object_id)
    except BinaryObjectNotFound:
        pass
    except StoreError:
        logger.error(f"Compensating delete of binary object {object_id} failed, object is orphaned")
