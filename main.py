import logging
import os
from contextlib import asynccontextmanager
from typing import List, Optional, Literal, Any

from fastapi import FastAPI, HTTPException, Depends, Request, Query, File, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, EmailStr, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

import auth
import carts
import catalog
import orders
import payments
import reviews
import uploads
from auth import get_current_user, get_optional_user, require_admin, ensure_self_or_admin
from config import settings, setup_logging
from database import db, ensure_indexes, get_documents, now_utc
from schemas import OrderItem, CustomerInfo, OrderStatus, PaymentMethodTag

log = logging.getLogger("animalmart.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    ensure_indexes()
    uploads.ensure_upload_dir()
    yield


app = FastAPI(title="AnimalMart API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False), name="uploads")


def ok(data: Any = None, message: str = "OK", status_code: int = 200):
    body = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


# Error envelopes
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    body = {"success": False}
    if exc.status_code == 404 and exc.detail == "Not Found":
        body.update(message=f"Route {request.url.path} not found", error="ROUTE_NOT_FOUND")
    elif isinstance(exc.detail, dict):
        body.update(exc.detail)
    else:
        body["message"] = exc.detail
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    detail = f"{where}: {first.get('msg')}" if where else str(first.get("msg", "invalid input"))
    return JSONResponse(status_code=400, content={"success": False, "message": "Validation error", "error": detail})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    log.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "message": "Internal server error",
            "error": "INTERNAL_SERVER_ERROR" if settings.is_production else str(exc),
        },
    )


# Health checks
@app.get("/")
def root():
    return {"message": "AnimalMart API running"}


@app.get("/health")
def health():
    return {"status": "OK", "timestamp": now_utc().isoformat(), "environment": settings.ENVIRONMENT}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": settings.DATABASE_NAME,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        response["collections"] = db.list_collection_names()
        response["database"] = "✅ Available"
        response["connection_status"] = "Connected"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:100]}"
    return response


# Auth
class RegisterPayload(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=72)


class LoginPayload(BaseModel):
    email: EmailStr
    password: str


class ProfilePayload(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    password: Optional[str] = Field(None, min_length=6, max_length=72)


@app.post("/api/auth/register", status_code=201)
def register(payload: RegisterPayload):
    user = auth.create_user(payload.name, payload.email, payload.password)
    return ok({"token": auth.issue_token(user), "user": auth.public_user(user)}, "User registered successfully", 201)


@app.post("/api/auth/login")
def login(payload: LoginPayload, request: Request):
    # Rate limit per IP
    ip = request.client.host if request.client else "unknown"
    auth.check_rate_limit(ip)

    user = auth.authenticate(payload.email, payload.password)
    return ok({"token": auth.issue_token(user), "user": auth.public_user(user)}, "Login successful")


@app.post("/api/auth/create-admin", status_code=201)
def create_admin(payload: RegisterPayload, current: Optional[dict] = Depends(get_optional_user)):
    # The first admin may be created without a token; later ones need an admin.
    if db["user"].find_one({"role": "admin"}) and (current is None or current.get("role") != "admin"):
        raise HTTPException(status_code=403, detail="Admin only")
    user = auth.create_user(payload.name, payload.email, payload.password, role="admin")
    return ok({"user": auth.public_user(user)}, "Admin created successfully", 201)


@app.get("/api/auth/profile")
def get_profile(user: dict = Depends(get_current_user)):
    return ok(user, "Profile retrieved successfully")


@app.put("/api/auth/profile")
def update_profile(payload: ProfilePayload, user: dict = Depends(get_current_user)):
    updated = auth.update_user(user["_id"], name=payload.name, password=payload.password)
    return ok(auth.public_user(updated), "Profile updated successfully")


@app.get("/api/auth/validate")
def validate_token(user: dict = Depends(get_current_user)):
    return ok({"user": user}, "Token is valid")


# Users (admin)
@app.get("/api/auth/users", dependencies=[Depends(require_admin)])
def list_users():
    users = [auth.public_user(u) for u in get_documents("user")]
    return ok(users, "Users retrieved successfully")


# Products
class ProductPayload(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    category: str = Field(..., min_length=2, max_length=50)
    price: float = Field(..., gt=0)
    description: str = Field("", max_length=1000)
    stock: int = Field(0, ge=0)
    bestseller: bool = False
    image: str = ""
    image_public_id: Optional[str] = None


class ProductUpdatePayload(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    category: Optional[str] = Field(None, min_length=2, max_length=50)
    price: Optional[float] = Field(None, gt=0)
    description: Optional[str] = Field(None, max_length=1000)
    stock: Optional[int] = Field(None, ge=0)
    bestseller: Optional[bool] = None
    is_active: Optional[bool] = None
    image: Optional[str] = None
    image_public_id: Optional[str] = None


@app.get("/api/products")
def list_products(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=50),
    sort_by: Literal["name", "price", "rating", "reviews", "created_at"] = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    category: Optional[str] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    search: Optional[str] = Query(None, max_length=100),
    bestseller: Optional[bool] = None,
):
    result = catalog.list_products(
        page=page, limit=limit, sort_by=sort_by, sort_order=sort_order, category=category,
        min_price=min_price, max_price=max_price, search=search, bestseller=bestseller,
    )
    return ok(result, "Products retrieved successfully")


@app.get("/api/products/categories")
def get_categories():
    return ok(catalog.get_categories(), "Categories retrieved successfully")


@app.get("/api/products/bestsellers")
def get_bestsellers(limit: int = Query(6, ge=1, le=50)):
    return ok(catalog.get_bestsellers(limit), "Bestsellers retrieved successfully")


@app.get("/api/products/{product_id}")
def get_product(product_id: str):
    return ok(catalog.get_product(product_id), "Product retrieved successfully")


@app.post("/api/products", status_code=201, dependencies=[Depends(require_admin)])
def create_product(payload: ProductPayload):
    return ok(catalog.create_product(payload.model_dump()), "Product created successfully", 201)


@app.put("/api/products/{product_id}", dependencies=[Depends(require_admin)])
def update_product(product_id: str, payload: ProductUpdatePayload):
    return ok(catalog.update_product(product_id, payload.model_dump()), "Product updated successfully")


@app.delete("/api/products/{product_id}", dependencies=[Depends(require_admin)])
def delete_product(product_id: str):
    catalog.delete_product(product_id)
    return ok(message="Product deleted successfully")


# Cart
class CartPayload(BaseModel):
    user_id: Optional[str] = None
    product_id: str
    quantity: int = Field(1, ge=1)


class CartRemovePayload(BaseModel):
    user_id: Optional[str] = None
    product_id: str


def _cart_owner(user: dict, user_id: Optional[str]) -> str:
    user_id = user_id or user["_id"]
    ensure_self_or_admin(user, user_id)
    return user_id


@app.post("/api/cart/add")
def add_to_cart(payload: CartPayload, user: dict = Depends(get_current_user)):
    cart = carts.add_to_cart(_cart_owner(user, payload.user_id), payload.product_id, payload.quantity)
    return ok(cart, "Item added to cart successfully")


@app.get("/api/cart/stats/{user_id}")
def get_cart_stats(user_id: str, user: dict = Depends(get_current_user)):
    return ok(carts.get_cart_stats(_cart_owner(user, user_id)), "Cart stats retrieved successfully")


@app.get("/api/cart/{user_id}")
def get_cart(user_id: str, user: dict = Depends(get_current_user)):
    return ok(carts.get_cart(_cart_owner(user, user_id)), "Cart retrieved successfully")


@app.put("/api/cart/update")
def update_cart_item(payload: CartPayload, user: dict = Depends(get_current_user)):
    cart = carts.update_cart_item(_cart_owner(user, payload.user_id), payload.product_id, payload.quantity)
    return ok(cart, "Cart updated successfully")


@app.delete("/api/cart/remove")
def remove_from_cart(payload: CartRemovePayload, user: dict = Depends(get_current_user)):
    cart = carts.remove_from_cart(_cart_owner(user, payload.user_id), payload.product_id)
    return ok(cart, "Item removed from cart successfully")


@app.delete("/api/cart/clear/{user_id}")
def clear_cart(user_id: str, user: dict = Depends(get_current_user)):
    carts.clear_cart(_cart_owner(user, user_id))
    return ok(message="Cart cleared successfully")


# Orders
class CreateOrderPayload(BaseModel):
    items: List[OrderItem] = Field(..., min_length=1)
    customer_info: CustomerInfo
    payment_method: PaymentMethodTag
    notes: str = Field("", max_length=500)


class OrderStatusPayload(BaseModel):
    status: OrderStatus
    description: Optional[str] = Field(None, max_length=300)


@app.post("/api/orders", status_code=201)
def create_order(payload: CreateOrderPayload, user: dict = Depends(get_current_user)):
    order = orders.create_order(user, payload.items, payload.customer_info, payload.payment_method, payload.notes)
    return ok(order, "Order created successfully", 201)


@app.get("/api/orders/user")
def get_my_orders(user: dict = Depends(get_current_user)):
    return ok(orders.get_user_orders(user["_id"]), "Orders retrieved successfully")


@app.get("/api/orders", dependencies=[Depends(require_admin)])
def list_orders(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100)):
    return ok(orders.get_all_orders(page, limit), "Orders retrieved successfully")


@app.get("/api/orders/stats/overview", dependencies=[Depends(require_admin)])
def get_order_stats():
    return ok(orders.get_order_stats(), "Order statistics retrieved successfully")


@app.get("/api/orders/status/{status}", dependencies=[Depends(require_admin)])
def get_orders_by_status(status: str):
    return ok(orders.get_orders_by_status(status), f"Orders with status '{status}' retrieved successfully")


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, user: dict = Depends(get_current_user)):
    return ok(orders.get_order(order_id, user), "Order retrieved successfully")


@app.put("/api/orders/{order_id}/status", dependencies=[Depends(require_admin)])
def update_order_status(order_id: str, payload: OrderStatusPayload):
    order = orders.transition_order(order_id, payload.status, payload.description)
    return ok(order, "Order status updated successfully")


@app.delete("/api/orders/{order_id}")
def cancel_order(order_id: str, user: dict = Depends(get_current_user)):
    return ok(orders.cancel_order(order_id, user), "Order cancelled successfully")


# Reviews
class ReviewPayload(BaseModel):
    product_id: str
    order_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field("", max_length=1000)


class ReviewUpdatePayload(BaseModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=1000)


@app.post("/api/reviews", status_code=201)
def create_review(payload: ReviewPayload, user: dict = Depends(get_current_user)):
    review = reviews.create_review(user, payload.product_id, payload.order_id, payload.rating, payload.comment)
    return ok(review, "Review created successfully", 201)


@app.get("/api/reviews/product/{product_id}")
def get_product_reviews(product_id: str, limit: int = Query(10, ge=1, le=50), offset: int = Query(0, ge=0)):
    return ok(reviews.get_product_reviews(product_id, limit, offset), "Reviews retrieved successfully")


@app.get("/api/reviews/product/{product_id}/stats")
def get_product_review_stats(product_id: str):
    return ok(reviews.get_product_review_stats(product_id), "Review stats retrieved successfully")


@app.get("/api/reviews/user")
def get_user_reviews(user: dict = Depends(get_current_user)):
    return ok(reviews.get_user_reviews(user["_id"]), "User reviews retrieved successfully")


@app.get("/api/reviews/can-review/{order_id}")
def can_review_order(order_id: str, product_id: Optional[str] = None, user: dict = Depends(get_current_user)):
    can_review = reviews.can_user_review_order(user["_id"], order_id, product_id)
    message = "User can review this order" if can_review else "User cannot review this order"
    return ok({"can_review": can_review}, message)


@app.put("/api/reviews/{review_id}")
def update_review(review_id: str, payload: ReviewUpdatePayload, user: dict = Depends(get_current_user)):
    review = reviews.update_review(review_id, user["_id"], payload.rating, payload.comment)
    return ok(review, "Review updated successfully")


@app.delete("/api/reviews/{review_id}")
def delete_review(review_id: str, user: dict = Depends(get_current_user)):
    reviews.delete_review(review_id, user["_id"])
    return ok(message="Review deleted successfully")


# Payments (simulated)
class PaymentPayload(BaseModel):
    order_id: str
    payment_method_id: str
    amount: float = Field(..., gt=0)


@app.get("/api/payments/methods")
def get_payment_methods():
    return ok(payments.get_available_methods(), "Payment methods retrieved successfully")


@app.get("/api/payments/methods/{method_type}")
def get_payment_methods_by_type(method_type: str):
    return ok(payments.get_methods_by_type(method_type), f"Payment methods for {method_type} retrieved successfully")


@app.post("/api/payments/process")
def process_payment(payload: PaymentPayload):
    result = payments.process_payment(payload.order_id, payload.payment_method_id, payload.amount)
    return ok(result, result["message"])


# Uploads
@app.post("/api/upload/image", dependencies=[Depends(require_admin)])
async def upload_image(image: UploadFile = File(...)):
    return ok(await uploads.save_image(image), "Image uploaded successfully")


@app.post("/api/upload/images", dependencies=[Depends(require_admin)])
async def upload_images(images: List[UploadFile] = File(...)):
    return ok(await uploads.save_images(images), "Images uploaded successfully")


@app.delete("/api/upload/image/{public_id}", dependencies=[Depends(require_admin)])
def delete_image(public_id: str):
    uploads.delete_image(public_id)
    return ok(message="Image deleted successfully")


# Demo catalog
CATEGORIES = ["Dog Food", "Cat Food", "Toys", "Accessories", "Aquarium", "Bird Supplies"]


@app.post("/api/seed")
def seed_products(count: int = Query(12, ge=1, le=100)):
    if settings.is_production:
        raise HTTPException(status_code=403, detail="Seeding is disabled in production")
    if db["product"].count_documents({}) > 0:
        return ok({"seeded": False}, "Products already exist")

    from faker import Faker
    fake = Faker()
    created = 0
    for _ in range(count):
        category = fake.random_element(CATEGORIES)
        catalog.create_product({
            "name": f"{fake.color_name()} {category} {fake.word().title()}"[:100],
            "category": category,
            "price": float(fake.random_int(min=10, max=500) * 1000),
            "description": fake.sentence(nb_words=12),
            "stock": fake.random_int(min=0, max=200),
            "bestseller": fake.boolean(chance_of_getting_true=30),
            "image": fake.image_url(),
        })
        created += 1
    return ok({"seeded": True, "count": created}, "Demo products created")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
