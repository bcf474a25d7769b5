# storefront/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import Any, List, Literal, Optional
from decimal import Decimal
from datetime import datetime

from storefront.domain.status import OrderStatus, PaymentProvider, PaymentStatus


# --- users ---

class UserCreate(BaseModel):
    """Schema for creating a user."""

    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    name: str = Field(..., min_length=1, max_length=100)
    role: Literal["USER", "ADMIN"] = "USER"


class UserRead(BaseModel):
    id: int
    email: str
    name: str
    role: str

    model_config = ConfigDict(from_attributes=True)


# --- catalog ---

class ProductCreate(BaseModel):
    """Schema for adding a product to the catalog (admin)."""

    sku: str = Field(..., min_length=1, max_length=64)
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=100)
    price: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    discount_percentage: Decimal = Field(Decimal("0"), ge=0, le=100)
    stock: int = Field(0, ge=0)


class RestockIn(BaseModel):
    quantity: int = Field(..., gt=0, description="Units to add to stock")


class ProductOut(BaseModel):
    id: int
    sku: str
    title: str
    description: Optional[str] = None
    category: Optional[str] = None
    price: Decimal
    discount_percentage: Decimal
    stock: int
    availability_status: str

    model_config = ConfigDict(from_attributes=True)


class ProductPage(BaseModel):
    products: List[ProductOut]
    total: int
    limit: int
    offset: int


# --- cart ---

class ItemIn(BaseModel):
    """Schema for adding a product to the cart."""

    product_id: int = Field(..., gt=0)
    quantity: int = Field(1, gt=0, description="Quantity (must be > 0)")


class ItemQuantityIn(BaseModel):
    quantity: int = Field(..., gt=0, description="New quantity (must be > 0)")


class CartItemOut(BaseModel):
    product_id: int
    title: str
    quantity: int
    price: Decimal
    discount_percentage: Decimal
    final_price: Decimal
    stock: int


class CartOut(BaseModel):
    cart_id: Optional[int] = None
    user_id: int
    version: int = 0
    items: List[CartItemOut]
    total_items: int
    total_price: Decimal


# --- wishlist ---

class WishlistItemIn(BaseModel):
    product_id: int = Field(..., gt=0)


class WishlistItemOut(BaseModel):
    product_id: int
    added_at: datetime
    product: ProductOut

    model_config = ConfigDict(from_attributes=True)


class WishlistOut(BaseModel):
    wishlist_id: Optional[int] = None
    user_id: int
    items: List[WishlistItemOut]


# --- orders ---

class AddressIn(BaseModel):
    full_name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=10, max_length=32)
    line1: str = Field(..., min_length=1)
    line2: Optional[str] = None
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    postal_code: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)


class OrderCreate(BaseModel):
    """Schema for placing an order from the current cart."""

    address: AddressIn


class OrderStatusIn(BaseModel):
    status: OrderStatus


class AddressOut(AddressIn):
    model_config = ConfigDict(from_attributes=True)


class OrderItemOut(BaseModel):
    product_id: int
    quantity: int
    price: Decimal

    model_config = ConfigDict(from_attributes=True)


class PaymentOut(BaseModel):
    id: int
    order_id: int
    provider: str
    provider_order_id: Optional[str] = None
    provider_payment_id: Optional[str] = None
    amount: Decimal
    currency: str
    status: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    id: int
    user_id: int
    status: str
    total_amount: Decimal
    created_at: datetime
    items: List[OrderItemOut] = []
    address: Optional[AddressOut] = None
    payment: Optional[PaymentOut] = None

    model_config = ConfigDict(from_attributes=True)


class OrderPage(BaseModel):
    orders: List[OrderOut]
    total: int
    limit: int
    offset: int


# --- payments ---

class PaymentInitiateIn(BaseModel):
    order_id: int = Field(..., gt=0)
    provider: PaymentProvider


class PaymentVerifyIn(BaseModel):
    """Client-side confirmation; ids are the provider's, not ours."""

    payment_id: str = Field(..., min_length=1, alias="paymentId")
    order_id: str = Field(..., min_length=1, alias="orderId")
    signature: str = Field(..., min_length=1)
    provider: PaymentProvider

    model_config = ConfigDict(populate_by_name=True)


class PaymentStatusIn(BaseModel):
    status: PaymentStatus
    provider_payment_id: Optional[str] = Field(None, alias="providerPaymentId")

    model_config = ConfigDict(populate_by_name=True)


class MockPaymentIn(BaseModel):
    order_id: int = Field(..., gt=0)


class GatewayDetails(BaseModel):
    key: str
    order_id: str
    amount: int
    currency: str
    name: str
    description: str
    prefill: dict[str, Optional[str]]


class PaymentInitiateOut(BaseModel):
    payment: PaymentOut
    gateway_details: GatewayDetails


class PaymentResultOut(BaseModel):
    message: str
    payment: PaymentOut
    order_status: Optional[str] = None


class WebhookResultOut(BaseModel):
    status: Literal["processed", "ignored"]
    event: Optional[str] = None
    reason: Optional[str] = None


# --- chat ---

class ChatMessageIn(BaseModel):
    content: str = Field(..., min_length=1, max_length=2000)

    model_config = ConfigDict(str_strip_whitespace=True)


class ChatMessageOut(BaseModel):
    id: Optional[int] = None
    role: str
    content: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ChatExchangeOut(BaseModel):
    userMessage: ChatMessageOut
    assistantMessage: ChatMessageOut


class HealthOut(BaseModel):
    status: str
    details: dict[str, Any] = {}
