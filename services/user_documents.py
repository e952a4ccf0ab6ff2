from utils.pymango_wrappers import async_update_one, to_object_id


async def add_resume_document(users, user_id, stored):
    """Append a resume summary to ``intervieweeInfo.documents`` on the user profile."""
    entry = {
        "name": stored.original_name,
        "fileId": stored.id,
        "uploadDate": stored.upload_date,
        "fileType": stored.mimetype,
        "fileSize": stored.size,
    }
    await async_update_one(
        users,
        {"_id": to_object_id(user_id)},
        {"$push": {"intervieweeInfo.documents": entry}},
    )
    return entry


async def remove_resume_document(users, user_id, binary_object_id):
    await async_update_one(
        users,
        {"_id": to_object_id(user_id)},
        {"$pull": {"intervieweeInfo.documents": {"fileId": to_object_id(binary_object_id)}}},
    )
