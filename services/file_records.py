import logging
from datetime import datetime, timezone

import pymongo
from pymongo import ReturnDocument

from services.errors import StoreError
from utils.pymango_wrappers import (
    async_aggregate,
    async_count,
    async_delete_one,
    async_find,
    async_find_one,
    async_find_one_and_update,
    async_insert_one,
    async_update_one,
    convert_objectids,
    to_object_id,
)


logger = logging.getLogger(__name__)

PROCESSED_STATUSES = ("pending", "processing", "completed", "failed")

FILES_URL_PREFIX = "/api/files"

# extractedText can be as large as the document itself, list queries never return it
LIST_PROJECTION = {"extractedText": 0}

NOT_ORPHANED = {"orphaned": {"$ne": True}}


def utcnow():
    return datetime.now(timezone.utc)


def build_record(stored, user_id, category="resume", description="", tags=None) -> dict:
    now = utcnow()
    return {
        "gridfsId": stored.id,
        "uploadedBy": to_object_id(user_id),
        "originalName": stored.original_name,
        "filename": stored.filename,
        "mimetype": stored.mimetype,
        "size": stored.size,
        "category": category,
        "description": description or "",
        "processedStatus": "pending",
        "analysis": None,
        "isPublic": False,
        "sharedWith": [],
        "downloadCount": 0,
        "lastDownloaded": None,
        "tags": list(tags or []),
        "orphaned": False,
        "uploadedAt": now,
        "updatedAt": now,
    }


def serialize_record(record: dict) -> dict:
    """JSON-ready view of a record with its download/preview URLs."""
    data = convert_objectids({k: v for k, v in record.items() if k != "extractedText"})
    data["id"] = data.pop("_id")
    data["downloadUrl"] = f"{FILES_URL_PREFIX}/download/{data['id']}"
    data["previewUrl"] = f"{FILES_URL_PREFIX}/preview/{data['id']}"
    return data


async def insert_record(files, record: dict) -> dict:
    result = await async_insert_one(files, record)
    record["_id"] = result.inserted_id
    return record


async def find_record(files, file_id, include_orphaned=False):
    query = {"_id": to_object_id(file_id)}
    if not include_orphaned:
        query.update(NOT_ORPHANED)
    return await async_find_one(files, query, LIST_PROJECTION)


async def list_owned(files, user_id, category=None, tags=None, page=1, limit=50):
    query = {"uploadedBy": to_object_id(user_id), **NOT_ORPHANED}
    if category:
        query["category"] = category
    if tags:
        query["tags"] = {"$in": list(tags)}

    records = await async_find(
        files,
        query,
        LIST_PROJECTION,
        sort=[("uploadedAt", pymongo.DESCENDING)],
        skip=(page - 1) * limit,
        limit=limit,
    )
    total = await async_count(files, query)
    return records, total


async def list_shared_with(files, user_id):
    return await async_find(
        files,
        {"sharedWith.userId": to_object_id(user_id), **NOT_ORPHANED},
        LIST_PROJECTION,
        sort=[("uploadedAt", pymongo.DESCENDING)],
    )


async def update_metadata(files, file_id, updates: dict):
    return await async_find_one_and_update(
        files,
        {"_id": to_object_id(file_id), **NOT_ORPHANED},
        {"$set": {**updates, "updatedAt": utcnow()}},
        projection=LIST_PROJECTION,
        return_document=ReturnDocument.AFTER,
    )


async def record_download(files, file_id):
    # $inc is atomic on the server, concurrent downloads never lose a count
    await async_update_one(
        files,
        {"_id": to_object_id(file_id)},
        {"$inc": {"downloadCount": 1}, "$set": {"lastDownloaded": utcnow()}},
    )


async def share_with(files, file_id, user_id, permission="view"):
    """Add or refresh the share entry for ``user_id``.

    Each step is a single conditional update on the record, so the list never
    holds two entries for the same user even with concurrent callers.
    """
    file_oid = to_object_id(file_id)
    user_oid = to_object_id(user_id)
    now = utcnow()

    for _ in range(3):
        result = await async_update_one(
            files,
            {"_id": file_oid, "sharedWith.userId": user_oid},
            {"$set": {
                "sharedWith.$.permission": permission,
                "sharedWith.$.sharedAt": now,
                "updatedAt": now,
            }},
        )
        if result.matched_count:
            return

        result = await async_update_one(
            files,
            {"_id": file_oid, "sharedWith.userId": {"$ne": user_oid}},
            {
                "$push": {"sharedWith": {"userId": user_oid, "permission": permission, "sharedAt": now}},
                "$set": {"updatedAt": now},
            },
        )
        if result.matched_count:
            return
        # another writer added the entry between the two updates, refresh it instead
    logger.error(f"Could not settle share entry for file {file_id} and user {user_id}")
    raise StoreError("Failed to update the share list", stage="record")


async def unshare_with(files, file_id, user_id):
    await async_update_one(
        files,
        {"_id": to_object_id(file_id)},
        {"$pull": {"sharedWith": {"userId": to_object_id(user_id)}}, "$set": {"updatedAt": utcnow()}},
    )


async def set_processed_status(files, file_id, status):
    if status not in PROCESSED_STATUSES:
        raise ValueError(f"Unknown processing status '{status}'")
    await async_update_one(
        files,
        {"_id": to_object_id(file_id)},
        {"$set": {"processedStatus": status, "updatedAt": utcnow()}},
    )


async def store_analysis(files, file_id, analysis, extracted_text):
    await async_update_one(
        files,
        {"_id": to_object_id(file_id)},
        {"$set": {
            "analysis": analysis,
            "extractedText": extracted_text,
            "processedStatus": "completed",
            "updatedAt": utcnow(),
        }},
    )


async def flag_orphaned(files, file_id):
    logger.error(f"File record {file_id} points at a missing binary object, flagging as orphaned")
    await async_update_one(
        files,
        {"_id": to_object_id(file_id)},
        {"$set": {"orphaned": True, "updatedAt": utcnow()}},
    )


async def delete_record(files, file_id):
    result = await async_delete_one(files, {"_id": to_object_id(file_id)})
    return result.deleted_count


async def file_stats(files, user_id=None):
    match = {**NOT_ORPHANED}
    if user_id is not None:
        match["uploadedBy"] = to_object_id(user_id)

    by_category = await async_aggregate(files, [
        {"$match": match},
        {"$group": {
            "_id": "$category",
            "count": {"$sum": 1},
            "totalSize": {"$sum": "$size"},
            "avgSize": {"$avg": "$size"},
        }},
        {"$sort": {"_id": 1}},
    ])
    totals = await async_aggregate(files, [
        {"$match": match},
        {"$group": {
            "_id": None,
            "totalFiles": {"$sum": 1},
            "totalSize": {"$sum": "$size"},
            "totalDownloads": {"$sum": "$downloadCount"},
        }},
    ])

    total = {"totalFiles": 0, "totalSize": 0, "totalDownloads": 0}
    if totals:
        total.update({k: v for k, v in totals[0].items() if k != "_id"})

    return {
        "byCategory": [
            {"category": row["_id"], "count": row["count"], "totalSize": row["totalSize"], "avgSize": row["avgSize"]}
            for row in by_category
        ],
        "total": total,
    }
