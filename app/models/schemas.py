from typing import Literal
from pydantic import BaseModel, Field


OrderStatus = Literal["pending", "confirmed", "preparing", "ready", "delivered", "cancelled"]


# --- Auth schemas ---

class TokenRequest(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


# --- Catalog schemas ---

class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = None
    is_active: bool = True


class CategoryUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = None
    is_active: bool | None = None


class Category(BaseModel):
    id: int
    name: str
    description: str | None = None
    is_active: bool
    created_at: str
    updated_at: str


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    price: float = Field(..., ge=0)
    category_id: int
    ingredients: list[str] = []
    is_available: bool = True


class ProductUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    price: float | None = Field(None, ge=0)
    category_id: int | None = None
    ingredients: list[str] | None = None
    is_available: bool | None = None


class Product(BaseModel):
    id: int
    name: str
    description: str | None = None
    price: float
    category_id: int
    ingredients: list[str]
    is_available: bool
    created_at: str
    updated_at: str


# --- Order schemas ---

class OrderItemIn(BaseModel):
    product_id: int
    quantity: int = Field(1, ge=1, le=100)


class OrderCreate(BaseModel):
    customer_phone: str = Field(..., min_length=3, max_length=32)
    customer_name: str | None = None
    notes: str | None = None
    items: list[OrderItemIn] = Field(..., min_length=1)


class OrderItem(BaseModel):
    id: int
    product_id: int
    product_name: str
    quantity: int
    unit_price: float
    line_total: float


class OrderSummary(BaseModel):
    id: int
    customer_phone: str
    customer_name: str | None = None
    status: OrderStatus
    notes: str | None = None
    total: float
    created_at: str
    updated_at: str


class Order(OrderSummary):
    items: list[OrderItem]


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


# --- Chat session schemas ---

class SessionInfo(BaseModel):
    phone: str
    state: str
    item_count: int
    created_at: str
    last_active: str


class CartLine(BaseModel):
    id: int
    product_id: int
    product_name: str
    quantity: int
    unit_price: float
    line_total: float


class SessionDetail(BaseModel):
    phone: str
    state: str
    context: dict
    created_at: str
    last_active: str
    items: list[CartLine]
    total: float
