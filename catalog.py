"""
Product catalog.

Equality filters and the sort go to MongoDB; price range and free-text search
run in memory over that result set before paginating. Fine for a small
catalog only.
"""
import logging
import math
from typing import Optional, List, Dict, Any

from fastapi import HTTPException
from pymongo import ASCENDING, DESCENDING

from database import db, create_document, to_object_id, serialize, now_utc
from schemas import Product

log = logging.getLogger("animalmart.catalog")

SORT_FIELDS = ("name", "price", "rating", "reviews", "created_at")


def list_products(
    page: int = 1,
    limit: int = 12,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    category: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    search: Optional[str] = None,
    bestseller: Optional[bool] = None,
) -> Dict[str, Any]:
    if sort_by not in SORT_FIELDS:
        raise HTTPException(status_code=400, detail=f"Cannot sort by '{sort_by}'")
    query: Dict[str, Any] = {"is_active": True}
    if category:
        query["category"] = category
    if bestseller is not None:
        query["bestseller"] = bestseller
    direction = ASCENDING if sort_order == "asc" else DESCENDING
    products = list(db["product"].find(query).sort(sort_by, direction))

    if min_price is not None:
        products = [p for p in products if p.get("price", 0) >= min_price]
    if max_price is not None:
        products = [p for p in products if p.get("price", 0) <= max_price]
    if search:
        needle = search.lower()
        products = [
            p for p in products
            if needle in p.get("name", "").lower() or needle in p.get("category", "").lower()
        ]

    total = len(products)
    start = (page - 1) * limit
    return {
        "products": [serialize(p) for p in products[start:start + limit]],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit),
        },
    }


def find_product(product_id: str) -> Optional[dict]:
    return db["product"].find_one({"_id": to_object_id(product_id)})


def review_summary(product_id: str) -> Dict[str, Any]:
    ratings = [r["rating"] for r in db["review"].find({"product_id": product_id}, {"rating": 1})]
    if not ratings:
        return {"rating": 0, "reviews": 0}
    return {"rating": round(sum(ratings) / len(ratings), 1), "reviews": len(ratings)}


def get_product(product_id: str) -> dict:
    doc = find_product(product_id)
    if not doc:
        raise HTTPException(status_code=404, detail="Product not found")
    product = serialize(doc)
    product.update(review_summary(product_id))
    return product


def create_product(data: Dict[str, Any]) -> dict:
    product = Product(**data)
    product_id = create_document("product", product)
    log.info("Created product %s (%s)", product_id, product.name)
    return get_product(product_id)


def update_product(product_id: str, updates: Dict[str, Any]) -> dict:
    oid = to_object_id(product_id)
    updates = {k: v for k, v in updates.items() if v is not None}
    updates["updated_at"] = now_utc()
    res = db["product"].update_one({"_id": oid}, {"$set": updates})
    if res.matched_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    return get_product(product_id)


def delete_product(product_id: str):
    res = db["product"].update_one(
        {"_id": to_object_id(product_id)},
        {"$set": {"is_active": False, "updated_at": now_utc()}},
    )
    if res.matched_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    log.info("Soft-deleted product %s", product_id)


def get_categories() -> List[str]:
    return sorted(c for c in db["product"].distinct("category", {"is_active": True}) if c)


def get_bestsellers(limit: int = 6) -> List[dict]:
    cursor = db["product"].find({"is_active": True, "bestseller": True}).sort("reviews", DESCENDING).limit(limit)
    return [serialize(p) for p in cursor]


def refresh_product_rating(product_id: str):
    summary = review_summary(product_id)
    db["product"].update_one(
        {"_id": to_object_id(product_id)},
        {"$set": {**summary, "updated_at": now_utc()}},
    )
