"""
Database Schemas for the Fan Store

Each Pydantic model corresponds to a MongoDB collection. The collection name is the lowercase of the class name.

Example: class ProductReview -> collection "productreview"

Cart rows and orders belong to exactly one owner: ``user_id`` for signed in
shoppers or ``guest_id`` for anonymous ones. The other field is always None.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    SHIPPED = "SHIPPED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class OwnedDocument(BaseModel):
    user_id: Optional[str] = None
    guest_id: Optional[str] = None

    @model_validator(mode="after")
    def one_owner(self):
        if (self.user_id is None) == (self.guest_id is None):
            raise ValueError("exactly one of user_id or guest_id must be set")
        return self


class User(BaseModel):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    hashed_password: str
    is_active: bool = True
    is_admin: bool = False


class Product(BaseModel):
    name: str
    price: float = Field(..., ge=0)
    stock: int = Field(0, ge=0)
    category: List[str] = Field(default_factory=list)
    sku: Optional[str] = None
    color: Optional[str] = None
    size: Optional[str] = None
    rating: float = Field(0, ge=0, le=5)
    description: Optional[str] = None
    image: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    details: Dict[str, Any] = Field(default_factory=dict)


class CartItem(OwnedDocument):
    product_id: str
    quantity: int = Field(1, ge=1)
    size: Optional[str] = None
    color: Optional[str] = None


class OrderItem(BaseModel):
    id: str
    product_id: str
    name: Optional[str] = None
    image: Optional[str] = None
    quantity: int = Field(1, ge=1)
    price: float = Field(..., ge=0, description="Unit price frozen at order time")
    size: Optional[str] = None
    color: Optional[str] = None


class Order(OwnedDocument):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: str
    address: str
    phone_number: str
    items: List[OrderItem]
    total_amount: float = Field(..., ge=0)
    status: OrderStatus = OrderStatus.PENDING
    checkout_key: Optional[str] = None
    created_at: Optional[datetime] = None


class ProductReview(BaseModel):
    product_id: str
    user_id: str
    rating: int = Field(..., ge=1, le=5)
    review_title: Optional[str] = None
    review_dec: Optional[str] = None
