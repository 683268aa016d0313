"""
Order lifecycle.

Every status change goes through transition_order(), which checks the
transition table, appends a timeline entry and keeps can_review in step with
the delivered status. The write is conditional on the status that was read,
so two racing updates cannot both apply.
"""
import logging
import math
from typing import Optional, List, Dict, Any

from fastapi import HTTPException
from pymongo import DESCENDING, ReturnDocument

from database import db, create_document, to_object_id, serialize, now_utc
from schemas import Order, OrderItem, CustomerInfo, TrackingInfo, TimelineEntry

log = logging.getLogger("animalmart.orders")

ORDER_STATUSES = ("pending", "confirmed", "processing", "shipped", "delivered", "cancelled")

ALLOWED_TRANSITIONS = {
    "pending": ("confirmed", "cancelled"),
    "confirmed": ("processing", "cancelled"),
    "processing": ("shipped", "cancelled"),
    "shipped": ("delivered", "cancelled"),
    "delivered": (),
    "cancelled": (),
}

STATUS_MESSAGES = {
    "pending": "Order has been placed and is awaiting confirmation",
    "confirmed": "Order has been confirmed by the seller",
    "processing": "Order is being prepared",
    "shipped": "Order has been handed to the courier",
    "delivered": "Order has been delivered",
    "cancelled": "Order has been cancelled",
}


def allowed_transitions(status: str) -> List[str]:
    return list(ALLOWED_TRANSITIONS.get(status, ()))


def can_transition(current: str, new: str) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, ())


def timeline_entry(status: str, description: Optional[str] = None) -> Dict[str, Any]:
    return TimelineEntry(
        status=status,
        description=description or STATUS_MESSAGES[status],
        timestamp=now_utc(),
    ).model_dump()


def order_to_client(doc: dict) -> dict:
    order = serialize(doc)
    order["next_statuses"] = allowed_transitions(order.get("status"))
    return order


def create_order(
    user: dict,
    items: List[OrderItem],
    customer_info: CustomerInfo,
    payment_method: str,
    notes: str = "",
) -> dict:
    if not items:
        raise HTTPException(status_code=400, detail="Order must contain at least one item")
    total = sum(i.price * i.quantity for i in items)
    order = Order(
        user_id=user["_id"],
        items=items,
        customer_info=customer_info,
        payment_method=payment_method,
        notes=notes or "",
        total_amount=total,
        status="pending",
        tracking_info=TrackingInfo(status="pending", timeline=[timeline_entry("pending")]),
        can_review=False,
    )
    order_id = create_document("order", order)
    log.info("Order %s created for user %s, total %.2f", order_id, user["_id"], total)
    return get_order(order_id)


def find_order(order_id: str) -> Optional[dict]:
    return db["order"].find_one({"_id": to_object_id(order_id)})


def get_order(order_id: str, user: Optional[dict] = None) -> dict:
    doc = find_order(order_id)
    if not doc:
        raise HTTPException(status_code=404, detail="Order not found")
    if user is not None and user.get("role") != "admin" and doc.get("user_id") != user["_id"]:
        raise HTTPException(status_code=403, detail="Not allowed to access this order")
    return order_to_client(doc)


def get_user_order(user_id: str, order_id: str) -> Optional[dict]:
    doc = find_order(order_id)
    if not doc or doc.get("user_id") != user_id:
        return None
    return doc


def transition_order(order_id: str, new_status: str, description: Optional[str] = None) -> dict:
    if new_status not in ORDER_STATUSES:
        raise HTTPException(status_code=400, detail=f"Unknown order status '{new_status}'")
    doc = find_order(order_id)
    if not doc:
        raise HTTPException(status_code=404, detail="Order not found")

    current = doc.get("status")
    if not can_transition(current, new_status):
        raise HTTPException(
            status_code=400,
            detail=f"Cannot change order status from '{current}' to '{new_status}'",
        )

    entry = timeline_entry(new_status, description)
    updated = db["order"].find_one_and_update(
        {"_id": doc["_id"], "status": current},
        {
            "$set": {
                "status": new_status,
                "tracking_info.status": new_status,
                "can_review": new_status == "delivered",
                "updated_at": entry["timestamp"],
            },
            "$push": {"tracking_info.timeline": entry},
        },
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise HTTPException(status_code=409, detail="Order status was changed by another request")
    log.info("Order %s: %s -> %s", order_id, current, new_status)
    return order_to_client(updated)


def cancel_order(order_id: str, user: dict) -> dict:
    """Customers may cancel their own pending orders; admins follow the transition table."""
    doc = find_order(order_id)
    if not doc:
        raise HTTPException(status_code=404, detail="Order not found")
    if user.get("role") != "admin":
        if doc.get("user_id") != user["_id"]:
            raise HTTPException(status_code=403, detail="Not allowed to cancel this order")
        if doc.get("status") != "pending":
            raise HTTPException(status_code=400, detail="Only pending orders can be cancelled")
    return transition_order(order_id, "cancelled", "Order cancelled by " + user.get("role", "customer"))


def get_user_orders(user_id: str) -> List[dict]:
    cursor = db["order"].find({"user_id": user_id}).sort("created_at", DESCENDING)
    return [order_to_client(o) for o in cursor]


def get_all_orders(page: int = 1, limit: int = 20) -> Dict[str, Any]:
    total = db["order"].count_documents({})
    cursor = db["order"].find({}).sort("created_at", DESCENDING).skip((page - 1) * limit).limit(limit)
    return {
        "orders": [order_to_client(o) for o in cursor],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit),
        },
    }


def get_orders_by_status(status: str) -> List[dict]:
    if status not in ORDER_STATUSES:
        raise HTTPException(status_code=400, detail=f"Unknown order status '{status}'")
    cursor = db["order"].find({"status": status}).sort("created_at", DESCENDING)
    return [order_to_client(o) for o in cursor]


def get_order_stats() -> Dict[str, Any]:
    orders = list(db["order"].find({}, {"status": 1, "total_amount": 1}))
    stats: Dict[str, Any] = {"total": len(orders)}
    for status in ORDER_STATUSES:
        stats[status] = sum(1 for o in orders if o.get("status") == status)
    stats["total_revenue"] = sum(o.get("total_amount", 0) for o in orders if o.get("status") != "cancelled")
    return stats
