import logging
from typing import Optional, List, Dict, Any

from bson import ObjectId
from fastapi import HTTPException
from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError

from catalog import refresh_product_rating
from database import db, create_document, to_object_id, serialize, now_utc
from orders import get_user_order
from schemas import Review

log = logging.getLogger("animalmart.reviews")


def _refresh_rating(product_id: str):
    if ObjectId.is_valid(product_id):
        refresh_product_rating(product_id)


def can_user_review_order(user_id: str, order_id: str, product_id: Optional[str] = None) -> bool:
    if not ObjectId.is_valid(order_id):
        return False
    order = get_user_order(user_id, order_id)
    if not order or order.get("status") != "delivered":
        return False
    query = {"user_id": user_id, "order_id": order_id}
    if product_id:
        query["product_id"] = product_id
    return db["review"].find_one(query) is None


def create_review(user: dict, product_id: str, order_id: str, rating: int, comment: str = "") -> dict:
    order = get_user_order(user["_id"], order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if product_id not in {i.get("product_id") for i in order.get("items", [])}:
        raise HTTPException(status_code=400, detail="Product is not part of this order")
    if not can_user_review_order(user["_id"], order_id, product_id):
        raise HTTPException(status_code=400, detail="This order cannot be reviewed for this product")

    review = Review(
        user_id=user["_id"],
        user_name=user.get("name", ""),
        product_id=product_id,
        order_id=order_id,
        rating=rating,
        comment=comment or "",
    )
    try:
        review_id = create_document("review", review)
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="You have already reviewed this product for this order")
    log.info("Review %s by %s on product %s", review_id, user["_id"], product_id)
    _refresh_rating(product_id)
    return serialize(db["review"].find_one({"_id": to_object_id(review_id)}))


def get_product_reviews(product_id: str, limit: int = 10, offset: int = 0) -> List[dict]:
    cursor = (
        db["review"].find({"product_id": product_id})
        .sort("created_at", DESCENDING)
        .skip(offset)
        .limit(limit)
    )
    return [
        {
            "_id": str(r["_id"]),
            "rating": r["rating"],
            "comment": r.get("comment", ""),
            "user_name": r.get("user_name"),
            "created_at": r.get("created_at"),
        }
        for r in cursor
    ]


def get_product_review_stats(product_id: str) -> Dict[str, Any]:
    ratings = [r["rating"] for r in db["review"].find({"product_id": product_id}, {"rating": 1})]
    distribution = {str(star): ratings.count(star) for star in range(5, 0, -1)}
    if not ratings:
        return {"average_rating": 0, "total_reviews": 0, "rating_distribution": distribution}
    return {
        "average_rating": round(sum(ratings) / len(ratings), 1),
        "total_reviews": len(ratings),
        "rating_distribution": distribution,
    }


def get_user_reviews(user_id: str) -> List[dict]:
    cursor = db["review"].find({"user_id": user_id}).sort("created_at", DESCENDING)
    return [serialize(r) for r in cursor]


def _owned_review(review_id: str, user_id: str) -> dict:
    doc = db["review"].find_one({"_id": to_object_id(review_id)})
    if not doc:
        raise HTTPException(status_code=404, detail="Review not found")
    if doc.get("user_id") != user_id:
        raise HTTPException(status_code=403, detail="Unauthorized to modify this review")
    return doc


def update_review(review_id: str, user_id: str, rating: Optional[int] = None, comment: Optional[str] = None) -> dict:
    doc = _owned_review(review_id, user_id)
    updates: Dict[str, Any] = {"updated_at": now_utc()}
    if rating is not None:
        updates["rating"] = rating
    if comment is not None:
        updates["comment"] = comment
    db["review"].update_one({"_id": doc["_id"]}, {"$set": updates})
    _refresh_rating(doc["product_id"])
    return serialize(db["review"].find_one({"_id": doc["_id"]}))


def delete_review(review_id: str, user_id: str):
    doc = _owned_review(review_id, user_id)
    db["review"].delete_one({"_id": doc["_id"]})
    _refresh_rating(doc["product_id"])
