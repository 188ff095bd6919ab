"""
Database Schemas for the Clothing Rental Store

Each Pydantic model below corresponds to a MongoDB collection.
The collection name is the snake_case entity name (e.g., CartItem -> "cart_item").
Fields are snake_case in the database and camelCase on the wire.
"""
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Literal, get_args

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

BookingStatus = Literal["pending", "confirmed", "delivered", "returned", "cancelled"]
BOOKING_STATUSES = get_args(BookingStatus)
ACTIVE_BOOKING_STATUSES = ("confirmed", "delivered")

CENT = Decimal("0.01")


def money(value) -> Decimal:
    """Round to two decimal places, half up."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def not_null(value):
    """Partial updates may omit a required field but never clear it."""
    if value is None:
        raise ValueError("may not be null")
    return value


class Schema(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ===================== Users =====================
class User(Schema):
    id: str = Field(..., description="Identity supplied by the auth provider")
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    pincode: Optional[str] = None
    is_admin: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProfileUpdate(Schema):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    pincode: Optional[str] = None


# ===================== Categories =====================
class CategoryCreate(Schema):
    name: str = Field(..., max_length=100)
    slug: str = Field(..., max_length=100, description="Unique URL identifier")
    description: Optional[str] = None
    image_url: Optional[str] = None
    display_order: int = 0


class CategoryUpdate(Schema):
    name: Optional[str] = Field(None, max_length=100)
    slug: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    image_url: Optional[str] = None
    display_order: Optional[int] = None

    @field_validator("name", "slug", "display_order")
    @classmethod
    def _required(cls, v):
        return not_null(v)


class Category(CategoryCreate):
    id: int
    created_at: Optional[datetime] = None


# ===================== Products =====================
class ProductCreate(Schema):
    name: str = Field(..., max_length=255)
    slug: str = Field(..., max_length=255, description="Unique URL identifier")
    description: Optional[str] = None
    category_id: Optional[int] = Field(None, description="Reference to category id")
    base_price: Decimal = Field(..., ge=0, description="Rental price per day")
    deposit_amount: Decimal = Field(..., ge=0, description="Refundable deposit")
    min_rental_days: int = Field(3, ge=1)
    images: List[str] = []
    sizes: List[str] = []
    colors: List[str] = []
    occasions: List[str] = []
    fabric: Optional[str] = Field(None, max_length=100)
    care_instructions: Optional[str] = None
    is_active: bool = True
    is_featured: bool = False

    @field_validator("base_price", "deposit_amount")
    @classmethod
    def _two_places(cls, v):
        return money(v)


class ProductUpdate(Schema):
    name: Optional[str] = Field(None, max_length=255)
    slug: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    category_id: Optional[int] = None
    base_price: Optional[Decimal] = Field(None, ge=0)
    deposit_amount: Optional[Decimal] = Field(None, ge=0)
    min_rental_days: Optional[int] = Field(None, ge=1)
    images: Optional[List[str]] = None
    sizes: Optional[List[str]] = None
    colors: Optional[List[str]] = None
    occasions: Optional[List[str]] = None
    fabric: Optional[str] = Field(None, max_length=100)
    care_instructions: Optional[str] = None
    is_active: Optional[bool] = None
    is_featured: Optional[bool] = None

    @field_validator(
        "name", "slug", "base_price", "deposit_amount", "min_rental_days",
        "images", "sizes", "colors", "occasions", "is_active", "is_featured",
    )
    @classmethod
    def _required(cls, v):
        return not_null(v)

    @field_validator("base_price", "deposit_amount")
    @classmethod
    def _two_places(cls, v):
        return money(v) if v is not None else v


class Product(ProductCreate):
    id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class VariantCreate(Schema):
    size: str = Field(..., max_length=20)
    color: str = Field(..., max_length=50)
    quantity: int = Field(1, ge=0)
    sku: Optional[str] = Field(None, max_length=50)


class ProductVariant(VariantCreate):
    id: int
    product_id: int


class BlackoutDateCreate(Schema):
    blocked_date: date
    variant_id: Optional[int] = None
    reason: Optional[str] = Field(None, max_length=255)


class BlackoutDate(BlackoutDateCreate):
    id: int
    product_id: int


# ===================== Cart =====================
class CartItemCreate(Schema):
    product_id: int
    variant_id: Optional[int] = None
    size: Optional[str] = Field(None, max_length=20)
    color: Optional[str] = Field(None, max_length=50)
    start_date: date
    end_date: date


class CartItem(CartItemCreate):
    id: int
    user_id: str
    created_at: Optional[datetime] = None


class CartItemWithProduct(CartItem):
    product: Optional[Product] = None


# ===================== Bookings =====================
class Booking(Schema):
    id: int
    user_id: str
    product_id: int
    variant_id: Optional[int] = None
    start_date: date
    end_date: date
    total_days: int
    rental_amount: Decimal
    deposit_amount: Decimal
    total_amount: Decimal
    status: str = "pending"
    payment_status: str = "pending"
    payment_intent_id: Optional[str] = None
    size: Optional[str] = None
    color: Optional[str] = None
    delivery_address: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BookingWithProduct(Booking):
    product: Optional[Product] = None


class CheckoutRequest(Schema):
    phone: str
    address: str
    city: str
    pincode: str
    notes: Optional[str] = None


class CheckoutResponse(Schema):
    success: bool = True
    bookings: List[Booking]


class BookingStatusUpdate(Schema):
    status: BookingStatus


# ===================== Admin =====================
class AdminStats(Schema):
    total_products: int = 0
    total_bookings: int = 0
    pending_bookings: int = 0
    active_bookings: int = 0
    revenue: Decimal = Decimal("0.00")


# ===================== Auth =====================
class SignupRequest(Schema):
    email: EmailStr
    password: str = Field(..., min_length=8)
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class LoginRequest(Schema):
    email: EmailStr
    password: str


class SessionResponse(Schema):
    token: str
    expires_at: datetime
    user: User


class SuccessResponse(Schema):
    success: bool = True
