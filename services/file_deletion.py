import logging

from fastapi.concurrency import run_in_threadpool
from pymongo.errors import PyMongoError

from services import file_records
from services.errors import BinaryObjectNotFound, ConsistencyError
from services.user_documents import remove_resume_document


logger = logging.getLogger(__name__)


async def delete_file(database, record):
    """Remove a file in three ordered steps: binary object, file record, profile entry.

    A failure deleting the binary object aborts before anything else is
    touched. A failure in a later step leaves the earlier steps done and is
    raised as ``ConsistencyError`` naming the step.
    """
    file_id = record["_id"]
    gridfs_id = record["gridfsId"]

    try:
        await run_in_threadpool(database.binary_store.delete, gridfs_id)
    except BinaryObjectNotFound:
        # already gone, the remaining steps still have to run
        logger.warning(f"Binary object {gridfs_id} of file {file_id} was already missing")

    try:
        await file_records.delete_record(database.files, file_id)
    except PyMongoError as e:
        logger.error(f"Binary object {gridfs_id} deleted but file record {file_id} was not: {e}", exc_info=True)
        raise ConsistencyError("File content deleted but its record could not be removed", stage="record")

    # unconditional: the category may have been edited since the upload added the entry
    try:
        await remove_resume_document(database.users, record["uploadedBy"], gridfs_id)
    except PyMongoError as e:
        logger.error(f"File {file_id} deleted but profile entry of user {record['uploadedBy']} remains: {e}",
                     exc_info=True)
        raise ConsistencyError("File deleted but profile document list could not be updated", stage="profile")

    logger.info(f"Deleted file {file_id} (binary object {gridfs_id})")
