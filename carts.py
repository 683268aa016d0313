import logging
from typing import Optional, List, Dict, Any

from fastapi import HTTPException
from pymongo.errors import DuplicateKeyError

from catalog import find_product
from database import db, create_document, serialize, now_utc
from schemas import Cart, CartItem

log = logging.getLogger("animalmart.carts")


def empty_cart(user_id: str) -> Dict[str, Any]:
    return Cart(user_id=user_id).model_dump()


def compute_totals(items: List[dict]) -> Dict[str, Any]:
    return {
        "total_amount": sum(i["price"] * i["quantity"] for i in items),
        "total_items": sum(i["quantity"] for i in items),
    }


def find_cart(user_id: str) -> Optional[dict]:
    return db["cart"].find_one({"user_id": user_id})


def get_cart(user_id: str) -> Dict[str, Any]:
    cart = find_cart(user_id)
    return serialize(cart) if cart else empty_cart(user_id)


def _save(cart: dict) -> Dict[str, Any]:
    if not cart["items"]:
        db["cart"].delete_one({"_id": cart["_id"]})
        return empty_cart(cart["user_id"])
    fields = {"items": cart["items"], **compute_totals(cart["items"]), "updated_at": now_utc()}
    db["cart"].update_one({"_id": cart["_id"]}, {"$set": fields})
    cart.update(fields)
    return serialize(cart)


def _active_product(product_id: str) -> dict:
    product = find_product(product_id)
    if not product or not product.get("is_active", True):
        raise HTTPException(status_code=404, detail=f"Product with ID {product_id} not found")
    return product


def add_to_cart(user_id: str, product_id: str, quantity: int) -> Dict[str, Any]:
    if quantity < 1:
        raise HTTPException(status_code=400, detail="Quantity must be at least 1")
    product = _active_product(product_id)
    cart = find_cart(user_id)
    if cart is None:
        try:
            create_document("cart", Cart(user_id=user_id))
        except DuplicateKeyError:
            log.debug("Cart for %s created concurrently", user_id)
        cart = find_cart(user_id)

    for item in cart["items"]:
        if item["product_id"] == product_id:
            item["quantity"] += quantity
            break
    else:
        cart["items"].append(CartItem(
            product_id=product_id,
            name=product["name"],
            price=product["price"],
            quantity=quantity,
            image=product.get("image"),
            category=product.get("category"),
        ).model_dump())
    return _save(cart)


def update_cart_item(user_id: str, product_id: str, quantity: int) -> Dict[str, Any]:
    if quantity < 1:
        raise HTTPException(status_code=400, detail="Quantity must be at least 1")
    cart = find_cart(user_id)
    if cart is None:
        raise HTTPException(status_code=404, detail="Cart not found")
    for item in cart["items"]:
        if item["product_id"] == product_id:
            item["quantity"] = quantity
            return _save(cart)
    raise HTTPException(status_code=404, detail="Item not found in cart")


def remove_from_cart(user_id: str, product_id: str) -> Dict[str, Any]:
    cart = find_cart(user_id)
    if cart is None:
        raise HTTPException(status_code=404, detail="Cart not found")
    cart["items"] = [i for i in cart["items"] if i["product_id"] != product_id]
    return _save(cart)


def clear_cart(user_id: str):
    db["cart"].delete_one({"user_id": user_id})


def get_cart_stats(user_id: str) -> Dict[str, Any]:
    cart = find_cart(user_id)
    if cart is None:
        return {"total_items": 0, "total_amount": 0, "item_count": 0}
    return {
        "total_items": cart["total_items"],
        "total_amount": cart["total_amount"],
        "item_count": len(cart["items"]),
    }
