from typing import List, Literal, Optional
import math
import logging

from bson import ObjectId
from fastapi import Body, Depends, File, Form, HTTPException, Query, UploadFile
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pymongo.errors import PyMongoError

from auth.utils import get_current_user, require_role
from config import MAX_FILE_SIZE, MAX_FILES_PER_UPLOAD
from services import file_records
from services.access_control import AccessMode, INTERVIEWEE_ROLE, INTERVIEWER_ROLE, require_access
from services.ai_analyzer import ResumeAnalyzer, get_analyzer
from services.errors import FileServiceError, StoreError, UploadRejected, ValidationError
from services.file_deletion import delete_file as delete_file_cascade
from services.file_streaming import check_previewable, open_download_stream, read_fully, stream_response
from services.parsers import extract_text_from_file
from services.upload_pipeline import IncomingFile, check_batch, upload_files as run_upload
from utils.database import MongoDatabase, get_database
from utils.pymango_wrappers import async_find_one, convert_objectids


logger = logging.getLogger(__name__)

Category = Literal["resume", "cover_letter", "portfolio", "certificate", "other"]


def normalize_tags(tags) -> List[str]:
    """Accept a list and/or comma separated strings; trim, lower-case, de-duplicate."""
    if tags is None:
        return []
    if isinstance(tags, str):
        tags = [tags]
    normalized = []
    for raw in tags:
        for tag in str(raw).split(","):
            tag = tag.strip().lower()
            if tag and tag not in normalized:
                normalized.append(tag)
    return normalized


class FileMetadataUpdate(BaseModel):
    category: Optional[Category] = None
    description: Optional[str] = Field(None, max_length=200)
    tags: Optional[List[str]] = None

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, value):
        if value is None:
            return None
        tags = normalize_tags(value)
        for tag in tags:
            if len(tag) > 20:
                raise ValueError("Each tag must be between 1 and 20 characters")
        return tags


class ShareRequest(BaseModel):
    userId: str
    permission: Literal["view", "download"] = "view"


def parse_file_id(file_id: str) -> ObjectId:
    file_id = file_id.strip()
    if not ObjectId.is_valid(file_id):
        raise ValidationError("Invalid file id", code="InvalidId")
    return ObjectId(file_id)


async def load_file(database, file_id, current_user, mode, include_orphaned=False):
    record = await file_records.find_record(database.files, parse_file_id(file_id), include_orphaned=include_orphaned)
    return require_access(current_user, record, mode)


async def upload_files(
    files: Optional[List[UploadFile]] = File(None),
    category: str = Form("resume"),
    description: str = Form(""),
    tags: List[str] = Form([]),
    current_user=Depends(require_role(INTERVIEWEE_ROLE)),
    database: MongoDatabase = Depends(get_database),
):
    try:
        fields = FileMetadataUpdate(category=category, description=description, tags=tags)
    except PydanticValidationError as e:
        raise ValidationError(details=[
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]} for err in e.errors()
        ])

    files = files or []
    check_batch(files, MAX_FILES_PER_UPLOAD)

    incoming = [IncomingFile(f.filename, f.content_type, f.file, f.size) for f in files]
    outcome = await run_upload(
        database,
        current_user,
        incoming,
        category=fields.category,
        description=fields.description,
        tags=fields.tags,
        max_size=MAX_FILE_SIZE,
    )

    if not outcome.created:
        rejections = [f for f in outcome.failures if f["code"] in ("SizeExceeded", "UnsupportedType", "UnsupportedExtension")]
        if rejections:
            raise UploadRejected(rejections[0]["message"], code=rejections[0]["code"], details=outcome.failures)
        raise StoreError("No files could be stored", details=outcome.failures)

    return {
        "success": True,
        "message": outcome.message,
        "attempted": outcome.attempted,
        "succeeded": outcome.succeeded,
        "files": [
            {
                "id": str(record["_id"]),
                "gridfsId": str(record["gridfsId"]),
                "originalName": record["originalName"],
                "filename": record["filename"],
                "size": record["size"],
                "category": record["category"],
                "downloadUrl": f"{file_records.FILES_URL_PREFIX}/download/{record['_id']}",
                "previewUrl": f"{file_records.FILES_URL_PREFIX}/preview/{record['_id']}",
            }
            for record in outcome.created
        ],
        "failed": outcome.failures,
    }


async def list_files(
    category: Optional[Category] = Query(None),
    tags: Optional[str] = Query(None, description="Comma separated, matches any"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    current_user=Depends(get_current_user),
    database: MongoDatabase = Depends(get_database),
):
    records, total = await file_records.list_owned(
        database.files, current_user["_id"], category=category, tags=normalize_tags(tags), page=page, limit=limit
    )
    return {
        "success": True,
        "files": [file_records.serialize_record(r) for r in records],
        "pagination": {
            "current": page,
            "total": math.ceil(total / limit),
            "count": len(records),
            "totalFiles": total,
        },
    }


async def list_shared_files(
    current_user=Depends(get_current_user),
    database: MongoDatabase = Depends(get_database),
):
    records = await file_records.list_shared_with(database.files, current_user["_id"])
    return {"success": True, "files": [file_records.serialize_record(r) for r in records]}


async def get_file(
    file_id: str,
    current_user=Depends(get_current_user),
    database: MongoDatabase = Depends(get_database),
):
    record = await load_file(database, file_id, current_user, AccessMode.READ)
    return {"success": True, "file": file_records.serialize_record(record)}


async def download_file(
    file_id: str,
    current_user=Depends(get_current_user),
    database: MongoDatabase = Depends(get_database),
):
    record = await load_file(database, file_id, current_user, AccessMode.READ)
    grid_out = await open_download_stream(database, record)

    async def count_download():
        await file_records.record_download(database.files, record["_id"])
        logger.info(f"File {record['_id']} downloaded by user {current_user['_id']}")

    return stream_response(grid_out, record, "attachment", on_complete=count_download)


async def preview_file(
    file_id: str,
    current_user=Depends(get_current_user),
    database: MongoDatabase = Depends(get_database),
):
    record = await load_file(database, file_id, current_user, AccessMode.READ)
    check_previewable(record)
    grid_out = await open_download_stream(database, record)
    return stream_response(grid_out, record, "inline")


async def update_file(
    file_id: str,
    request: FileMetadataUpdate = Body(...),
    current_user=Depends(get_current_user),
    database: MongoDatabase = Depends(get_database),
):
    record = await load_file(database, file_id, current_user, AccessMode.WRITE)

    updates = request.model_dump(exclude_none=True)
    if not updates:
        raise ValidationError("Nothing to update")

    updated = await file_records.update_metadata(database.files, record["_id"], updates)
    if updated is None:
        raise HTTPException(status_code=404, detail="File not found")
    return {"success": True, "message": "File updated successfully", "file": file_records.serialize_record(updated)}


async def delete_file(
    file_id: str,
    current_user=Depends(get_current_user),
    database: MongoDatabase = Depends(get_database),
):
    # orphaned records stay reachable here so their leftovers can still be cleaned up
    record = await load_file(database, file_id, current_user, AccessMode.DELETE, include_orphaned=True)
    await delete_file_cascade(database, record)
    return {"success": True, "message": "File deleted successfully"}


async def share_file(
    file_id: str,
    request: ShareRequest = Body(...),
    current_user=Depends(get_current_user),
    database: MongoDatabase = Depends(get_database),
):
    record = await load_file(database, file_id, current_user, AccessMode.SHARE)

    if not ObjectId.is_valid(request.userId):
        raise ValidationError("Invalid userId", code="InvalidId")
    target_id = ObjectId(request.userId)
    if target_id == current_user["_id"]:
        raise ValidationError("Cannot share a file with yourself")
    if not await async_find_one(database.users, {"_id": target_id}, {"_id": 1}):
        raise HTTPException(status_code=404, detail="User not found")

    await file_records.share_with(database.files, record["_id"], target_id, request.permission)
    updated = await file_records.find_record(database.files, record["_id"])
    return {"success": True, "message": "File shared successfully", "file": file_records.serialize_record(updated)}


async def unshare_file(
    file_id: str,
    user_id: str,
    current_user=Depends(get_current_user),
    database: MongoDatabase = Depends(get_database),
):
    record = await load_file(database, file_id, current_user, AccessMode.SHARE)
    if not ObjectId.is_valid(user_id):
        raise ValidationError("Invalid userId", code="InvalidId")

    await file_records.unshare_with(database.files, record["_id"], ObjectId(user_id))
    updated = await file_records.find_record(database.files, record["_id"])
    return {"success": True, "message": "File access revoked", "file": file_records.serialize_record(updated)}


async def analyze_file(
    file_id: str,
    current_user=Depends(get_current_user),
    database: MongoDatabase = Depends(get_database),
    analyzer: ResumeAnalyzer = Depends(get_analyzer),
):
    record = await load_file(database, file_id, current_user, AccessMode.ANALYZE)
    await file_records.set_processed_status(database.files, record["_id"], "processing")

    try:
        content = await read_fully(database, record)
    except FileServiceError:
        await file_records.set_processed_status(database.files, record["_id"], "failed")
        raise

    try:
        text = extract_text_from_file(content, record["mimetype"], record["originalName"])
        outcome = await analyzer.analyze_resume(text, {
            "fileName": record["originalName"],
            "fileType": record["mimetype"],
            "fileSize": record["size"],
        })
        if outcome.success:
            await file_records.store_analysis(database.files, record["_id"], outcome.data, text)
    except PyMongoError as e:
        logger.error(f"Saving analysis of file {record['_id']} failed: {e}", exc_info=True)
        await file_records.set_processed_status(database.files, record["_id"], "failed")
        raise StoreError("Failed to save the analysis", stage="record")
    except Exception:
        logger.error(f"Analysis of file {record['_id']} failed", exc_info=True)
        await file_records.set_processed_status(database.files, record["_id"], "failed")
        raise

    if not outcome.success:
        await file_records.set_processed_status(database.files, record["_id"], "failed")
        return {
            "success": False,
            "message": "AI analysis failed",
            "error": outcome.error,
            "data": outcome.data,
        }

    logger.info(f"File {record['_id']} analyzed for user {current_user['_id']}")
    response = {"success": True, "message": "File analyzed successfully", "data": convert_objectids(outcome.data)}
    if outcome.note:
        response["note"] = outcome.note
    return response


async def file_stats(
    scope: Literal["user", "global"] = Query("user"),
    current_user=Depends(get_current_user),
    database: MongoDatabase = Depends(get_database),
):
    if scope == "global" and current_user.get("role") != INTERVIEWER_ROLE:
        raise HTTPException(status_code=403, detail="Only interviewers can view global statistics")

    user_id = None if scope == "global" else current_user["_id"]
    stats = await file_records.file_stats(database.files, user_id)
    return {"success": True, "scope": scope, "stats": stats}
