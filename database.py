"""
MongoDB access helpers.

Collections: user, product, cart, order, review. Collection names are the
lowercase schema class names.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import pymongo
from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException
from pydantic import BaseModel

from config import settings

log = logging.getLogger("animalmart.database")

client = pymongo.MongoClient(settings.DATABASE_URL)
db = client[settings.DATABASE_NAME]


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: str) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail="Invalid id")


def serialize(doc: Optional[dict]) -> Optional[dict]:
    if doc is None:
        return None
    doc = dict(doc)
    if isinstance(doc.get("_id"), ObjectId):
        doc["_id"] = str(doc["_id"])
    return doc


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    if isinstance(data, BaseModel):
        data = data.model_dump()
    now = now_utc()
    doc = {**data, "created_at": now, "updated_at": now}
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    sort: Optional[Sequence[Tuple[str, int]]] = None,
) -> List[dict]:
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(list(sort))
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def ensure_indexes():
    db["user"].create_index("email", unique=True)
    db["cart"].create_index("user_id", unique=True)
    db["review"].create_index(
        [("user_id", pymongo.ASCENDING), ("order_id", pymongo.ASCENDING), ("product_id", pymongo.ASCENDING)],
        unique=True,
    )
    db["review"].create_index("product_id")
    db["order"].create_index("user_id")
    db["order"].create_index("status")
    db["product"].create_index("category")
    log.info("Indexes ensured on %s", settings.DATABASE_NAME)
