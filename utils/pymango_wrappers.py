from fastapi.concurrency import run_in_threadpool
from bson import ObjectId


# Async wrappers for PyMongo sync methods, run on the threadpool
async def async_insert_one(collection, document):
    return await run_in_threadpool(collection.insert_one, document)


async def async_find_one(collection, filter, projection=None):
    return await run_in_threadpool(collection.find_one, filter, projection)


async def async_find(collection, filter, projection=None, sort=None, skip=0, limit=0):
    def _query():
        cursor = collection.find(filter, projection)
        if sort:
            cursor = cursor.sort(sort)
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)

    return await run_in_threadpool(_query)


async def async_count(collection, filter):
    return await run_in_threadpool(collection.count_documents, filter)


async def async_update_one(collection, filter, update):
    return await run_in_threadpool(collection.update_one, filter, update)


async def async_find_one_and_update(collection, filter, update, **kwargs):
    return await run_in_threadpool(lambda: collection.find_one_and_update(filter, update, **kwargs))


async def async_delete_one(collection, filter):
    return await run_in_threadpool(collection.delete_one, filter)


async def async_aggregate(collection, pipeline):
    return await run_in_threadpool(lambda: list(collection.aggregate(pipeline)))


def to_object_id(value):
    if isinstance(value, ObjectId):
        return value
    return ObjectId(str(value).strip())


def convert_objectids(obj):
    if isinstance(obj, list):
        return [convert_objectids(item) for item in obj]
    elif isinstance(obj, dict):
        return {k: convert_objectids(v) for k, v in obj.items()}
    elif isinstance(obj, ObjectId):
        return str(obj)
    else:
        return obj
