import logging
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

import auth
import config
import database
from auth import bearer_scheme, get_current_user, require_admin
from bookings import BookingError, add_to_cart, create_bookings_from_cart
from schemas import (
    AdminStats,
    BlackoutDate,
    BlackoutDateCreate,
    BookingStatusUpdate,
    BookingWithProduct,
    CartItem,
    CartItemCreate,
    CartItemWithProduct,
    Category,
    CategoryCreate,
    CategoryUpdate,
    CheckoutRequest,
    CheckoutResponse,
    LoginRequest,
    Product,
    ProductCreate,
    ProductUpdate,
    ProductVariant,
    ProfileUpdate,
    SessionResponse,
    SignupRequest,
    SuccessResponse,
    User,
    VariantCreate,
)
from storage import Storage, get_storage

config.setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Clothing Rental API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def open_database():
    database.connect()


@app.on_event("shutdown")
def close_database():
    database.close()


# ===================== Error responses =====================
@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail}, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"message": "Invalid request", "errors": jsonable_encoder(exc.errors())})


@app.exception_handler(BookingError)
async def booking_error(request: Request, exc: BookingError):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.exception_handler(DuplicateKeyError)
async def duplicate_key(request: Request, exc: DuplicateKeyError):
    return JSONResponse(status_code=400, content={"message": "Duplicate value"})


@app.exception_handler(Exception)
async def unexpected_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


# ---------- Helpers ----------
def with_products(storage: Storage, rows, model):
    """Attach the referenced product to each cart item or booking."""
    return [model(**row.model_dump(), product=storage.get_product_by_id(row.product_id)) for row in rows]


# ===================== Public Endpoints =====================
@app.get("/")
def root():
    return {"message": "Clothing Rental API running"}


@app.get("/test")
def test_database():
    if database.db is None:
        return {"database": "not connected", "collections": []}
    return {"database": "connected", "collections": sorted(database.db.list_collection_names())}


# ===================== Auth =====================
@app.post("/auth/signup", response_model=SessionResponse)
def signup(payload: SignupRequest, storage: Storage = Depends(get_storage)):
    return auth.signup(storage, payload)


@app.post("/auth/login", response_model=SessionResponse)
def login(payload: LoginRequest, storage: Storage = Depends(get_storage)):
    return auth.login(storage, payload)


@app.post("/auth/logout", response_model=SuccessResponse)
def logout(
    user: User = Depends(get_current_user),
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    storage: Storage = Depends(get_storage),
):
    storage.delete_session(credentials.credentials)
    return SuccessResponse()


@app.get("/auth/user", response_model=User)
def get_profile(user: User = Depends(get_current_user)):
    return user


@app.patch("/auth/user", response_model=User)
def update_profile(payload: ProfileUpdate, user: User = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    updated = storage.update_user(user.id, payload)
    if not updated:
        raise HTTPException(404, "User not found")
    return updated


# ===================== Catalog =====================
@app.get("/categories", response_model=List[Category])
def list_categories(storage: Storage = Depends(get_storage)):
    return storage.get_categories()


@app.get("/products", response_model=List[Product])
def list_products(category: Optional[str] = None, search: Optional[str] = None, storage: Storage = Depends(get_storage)):
    return storage.get_products(category_slug=category, search=search, is_active=True)


@app.get("/products/featured", response_model=List[Product])
def featured_products(storage: Storage = Depends(get_storage)):
    return storage.get_featured_products()


@app.get("/products/{slug}", response_model=Product)
def get_product(slug: str, storage: Storage = Depends(get_storage)):
    product = storage.get_product_by_slug(slug)
    if not product:
        raise HTTPException(404, "Product not found")
    return product


@app.get("/products/{product_id}/blackout-dates", response_model=List[BlackoutDate])
def list_blackout_dates(product_id: int, storage: Storage = Depends(get_storage)):
    return storage.get_blackout_dates(product_id)


@app.get("/products/{product_id}/variants", response_model=List[ProductVariant])
def list_variants(product_id: int, storage: Storage = Depends(get_storage)):
    return storage.get_variants(product_id)


# ===================== Cart =====================
@app.get("/cart", response_model=List[CartItemWithProduct])
def get_cart(user: User = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return with_products(storage, storage.get_cart_items(user.id), CartItemWithProduct)


@app.post("/cart", response_model=CartItem)
def add_cart_item(payload: CartItemCreate, user: User = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return add_to_cart(storage, user.id, payload)


@app.delete("/cart/{item_id}", response_model=SuccessResponse)
def remove_cart_item(item_id: int, user: User = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    storage.remove_from_cart(item_id, user_id=user.id)
    return SuccessResponse()


# ===================== Bookings =====================
@app.get("/bookings", response_model=List[BookingWithProduct])
def list_bookings(user: User = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return with_products(storage, storage.get_bookings(user.id), BookingWithProduct)


@app.get("/bookings/recent", response_model=List[BookingWithProduct])
def recent_bookings(user: User = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return with_products(storage, storage.get_recent_bookings(user.id, 5), BookingWithProduct)


@app.get("/bookings/{booking_id}", response_model=BookingWithProduct)
def get_booking(booking_id: int, user: User = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    booking = storage.get_booking_by_id(booking_id)
    if not booking or booking.user_id != user.id:
        raise HTTPException(404, "Booking not found")
    return with_products(storage, [booking], BookingWithProduct)[0]


@app.post("/bookings", response_model=CheckoutResponse)
def create_booking(payload: CheckoutRequest, user: User = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    # payment checkout is not wired up; bookings stay "pending" until an admin confirms
    bookings = create_bookings_from_cart(storage, user.id, payload)
    return CheckoutResponse(bookings=bookings)


# ===================== Admin =====================
@app.get("/admin/stats", response_model=AdminStats)
def admin_stats(admin: User = Depends(require_admin), storage: Storage = Depends(get_storage)):
    return storage.get_admin_stats()


@app.get("/admin/products", response_model=List[Product])
def admin_list_products(
    category: Optional[str] = None,
    search: Optional[str] = None,
    active: Optional[bool] = None,
    admin: User = Depends(require_admin),
    storage: Storage = Depends(get_storage),
):
    return storage.get_products(category_slug=category, search=search, is_active=active)


@app.get("/admin/products/{product_id}", response_model=Product)
def admin_get_product(product_id: int, admin: User = Depends(require_admin), storage: Storage = Depends(get_storage)):
    product = storage.get_product_by_id(product_id)
    if not product:
        raise HTTPException(404, "Product not found")
    return product


@app.post("/admin/products", response_model=Product)
def create_product(payload: ProductCreate, admin: User = Depends(require_admin), storage: Storage = Depends(get_storage)):
    return storage.create_product(payload)


@app.patch("/admin/products/{product_id}", response_model=Product)
def update_product(product_id: int, payload: ProductUpdate, admin: User = Depends(require_admin), storage: Storage = Depends(get_storage)):
    product = storage.update_product(product_id, payload)
    if not product:
        raise HTTPException(404, "Product not found")
    return product


@app.delete("/admin/products/{product_id}", response_model=SuccessResponse)
def delete_product(product_id: int, admin: User = Depends(require_admin), storage: Storage = Depends(get_storage)):
    storage.delete_product(product_id)
    return SuccessResponse()


@app.post("/admin/products/{product_id}/variants", response_model=ProductVariant)
def create_variant(product_id: int, payload: VariantCreate, admin: User = Depends(require_admin), storage: Storage = Depends(get_storage)):
    if not storage.get_product_by_id(product_id):
        raise HTTPException(404, "Product not found")
    return storage.create_variant(product_id, payload)


@app.delete("/admin/variants/{variant_id}", response_model=SuccessResponse)
def delete_variant(variant_id: int, admin: User = Depends(require_admin), storage: Storage = Depends(get_storage)):
    storage.delete_variant(variant_id)
    return SuccessResponse()


@app.post("/admin/products/{product_id}/blackout-dates", response_model=BlackoutDate)
def create_blackout_date(product_id: int, payload: BlackoutDateCreate, admin: User = Depends(require_admin), storage: Storage = Depends(get_storage)):
    if not storage.get_product_by_id(product_id):
        raise HTTPException(404, "Product not found")
    if payload.variant_id is not None and payload.variant_id not in {v.id for v in storage.get_variants(product_id)}:
        raise HTTPException(404, "Variant not found")
    return storage.create_blackout_date(product_id, payload)


@app.delete("/admin/blackout-dates/{blackout_id}", response_model=SuccessResponse)
def delete_blackout_date(blackout_id: int, admin: User = Depends(require_admin), storage: Storage = Depends(get_storage)):
    storage.delete_blackout_date(blackout_id)
    return SuccessResponse()


@app.get("/admin/bookings", response_model=List[BookingWithProduct])
def admin_list_bookings(admin: User = Depends(require_admin), storage: Storage = Depends(get_storage)):
    return with_products(storage, storage.get_bookings(), BookingWithProduct)


@app.get("/admin/bookings/recent", response_model=List[BookingWithProduct])
def admin_recent_bookings(admin: User = Depends(require_admin), storage: Storage = Depends(get_storage)):
    return with_products(storage, storage.get_bookings(limit=10), BookingWithProduct)


@app.get("/admin/bookings/upcoming-returns", response_model=List[BookingWithProduct])
def upcoming_returns(admin: User = Depends(require_admin), storage: Storage = Depends(get_storage)):
    return with_products(storage, storage.get_upcoming_returns(), BookingWithProduct)


@app.patch("/admin/bookings/{booking_id}/status", response_model=BookingWithProduct)
def update_booking_status(booking_id: int, payload: BookingStatusUpdate, admin: User = Depends(require_admin), storage: Storage = Depends(get_storage)):
    booking = storage.update_booking(booking_id, {"status": payload.status})
    if not booking:
        raise HTTPException(404, "Booking not found")
    logger.info("Booking %s set to %s by %s", booking_id, payload.status, admin.id)
    return with_products(storage, [booking], BookingWithProduct)[0]


@app.post("/admin/categories", response_model=Category)
def create_category(payload: CategoryCreate, admin: User = Depends(require_admin), storage: Storage = Depends(get_storage)):
    return storage.create_category(payload)


@app.patch("/admin/categories/{category_id}", response_model=Category)
def update_category(category_id: int, payload: CategoryUpdate, admin: User = Depends(require_admin), storage: Storage = Depends(get_storage)):
    category = storage.update_category(category_id, payload)
    if not category:
        raise HTTPException(404, "Category not found")
    return category


@app.delete("/admin/categories/{category_id}", response_model=SuccessResponse)
def delete_category(category_id: int, admin: User = Depends(require_admin), storage: Storage = Depends(get_storage)):
    storage.delete_category(category_id)
    return SuccessResponse()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
