"""
Database Schemas for AnimalMart

Each Pydantic model represents a MongoDB collection. Collection name is the lowercase of the class name.
"""
from typing import Optional, List, Literal
from pydantic import BaseModel, Field, EmailStr
from datetime import datetime

OrderStatus = Literal["pending", "confirmed", "processing", "shipped", "delivered", "cancelled"]
PaymentMethodTag = Literal["bank_transfer", "credit_card", "e_wallet", "cod"]

# Users collection
class User(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password_hash: str = Field(..., min_length=10)
    role: Literal["admin", "customer"] = "customer"
    is_active: bool = True

# Products collection
class Product(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    category: str = Field(..., min_length=2, max_length=50)
    price: float = Field(..., gt=0)
    description: str = ""
    stock: int = Field(default=0, ge=0)
    bestseller: bool = False
    image: str = ""
    image_public_id: Optional[str] = None
    rating: float = 0
    reviews: int = 0
    is_active: bool = True

# Carts collection, one per user. Lines are snapshots taken when added.
class CartItem(BaseModel):
    product_id: str
    name: str
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    image: Optional[str] = None
    category: Optional[str] = None

class Cart(BaseModel):
    user_id: str
    items: List[CartItem] = []
    total_amount: float = 0
    total_items: int = 0

# Orders collection
class OrderItem(BaseModel):
    product_id: str
    name: str = Field(..., min_length=1)
    price: float = Field(..., gt=0)
    quantity: int = Field(..., ge=1)
    image: Optional[str] = None

class Address(BaseModel):
    street: str = Field(..., min_length=5, max_length=200)
    city: str = Field(..., min_length=2, max_length=50)
    province: str = Field(..., min_length=2, max_length=50)
    postal_code: str = Field(..., min_length=5, max_length=10)

class CustomerInfo(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    phone: str = Field(..., min_length=10, max_length=20, pattern=r"^[0-9+\-\s]+$")
    address: Address

class TimelineEntry(BaseModel):
    status: OrderStatus
    description: str
    timestamp: datetime

class TrackingInfo(BaseModel):
    status: OrderStatus
    timeline: List[TimelineEntry] = []

class Order(BaseModel):
    user_id: str
    items: List[OrderItem]
    customer_info: CustomerInfo
    payment_method: PaymentMethodTag
    notes: str = ""
    total_amount: float = Field(..., ge=0)
    status: OrderStatus = "pending"
    tracking_info: TrackingInfo
    can_review: bool = False

# Reviews collection, unique per (user_id, order_id, product_id)
class Review(BaseModel):
    user_id: str
    user_name: str
    product_id: str
    order_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: str = ""
