"""
Persistence gateway

One method per entity/action pair over the MongoDB collections. Lookups
return None for a missing record instead of raising, deletes are
idempotent, and partial updates only touch the fields the caller set.
"""

import re
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Any, List, Optional, Union

from fastapi import Depends
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.database import Database

import config
from database import (
    create_document,
    delete_documents,
    get_db,
    get_document,
    get_documents,
    serialize_doc,
    update_document,
    to_document,
)
from schemas import (
    ACTIVE_BOOKING_STATUSES,
    AdminStats,
    BlackoutDate,
    BlackoutDateCreate,
    Booking,
    CartItem,
    CartItemCreate,
    Category,
    CategoryCreate,
    CategoryUpdate,
    Product,
    ProductCreate,
    ProductUpdate,
    ProductVariant,
    User,
    VariantCreate,
    money,
)

USERS = "user"
CATEGORIES = "category"
PRODUCTS = "product"
VARIANTS = "product_variant"
BLACKOUT_DATES = "blackout_date"
CART_ITEMS = "cart_item"
BOOKINGS = "booking"
SESSIONS = "session"

ALL_CATEGORIES = "all"
FEATURED_LIMIT = 8
UPCOMING_RETURNS_DAYS = 7
UPCOMING_RETURNS_LIMIT = 10

NEWEST_FIRST = [("created_at", DESCENDING), ("id", DESCENDING)]


def combine(conditions: List[dict]) -> dict:
    """AND together a list of filter conditions; no conditions means no constraint."""
    if not conditions:
        return {}
    if len(conditions) == 1:
        return conditions[0]
    return {"$and": conditions}


def _one(model, doc):
    return model.model_validate(doc) if doc else None


def _many(model, docs):
    return [model.model_validate(d) for d in docs]


class Storage:
    def __init__(self, database: Database):
        self.db = database

    # ============ Users ============
    def get_user(self, user_id: str) -> Optional[User]:
        return _one(User, get_document(self.db, USERS, {"id": user_id}))

    def get_user_record(self, email: str) -> Optional[dict]:
        """Raw user document, password hash included."""
        return get_document(self.db, USERS, {"email": email.lower()})

    def upsert_user(self, user_id: str, profile: Dict[str, Any]) -> User:
        now = datetime.now(timezone.utc)
        fields = to_document(profile)
        fields.pop("id", None)
        fields["updated_at"] = now
        on_insert = {"created_at": now}
        if "city" not in fields:
            on_insert["city"] = config.DEFAULT_CITY
        if "is_admin" not in fields:
            on_insert["is_admin"] = False
        doc = self.db[USERS].find_one_and_update(
            {"id": user_id},
            {"$set": fields, "$setOnInsert": on_insert},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return User.model_validate(serialize_doc(doc))

    def update_user(self, user_id: str, data: Union[Dict[str, Any], Any]) -> Optional[User]:
        return _one(User, update_document(self.db, USERS, {"id": user_id}, data))

    # ============ Categories ============
    def get_categories(self) -> List[Category]:
        docs = get_documents(self.db, CATEGORIES, sort=[("display_order", ASCENDING), ("id", ASCENDING)])
        return _many(Category, docs)

    def get_category_by_id(self, category_id: int) -> Optional[Category]:
        return _one(Category, get_document(self.db, CATEGORIES, {"id": category_id}))

    def get_category_by_slug(self, slug: str) -> Optional[Category]:
        return _one(Category, get_document(self.db, CATEGORIES, {"slug": slug}))

    def create_category(self, category: CategoryCreate) -> Category:
        return Category.model_validate(create_document(self.db, CATEGORIES, category, track_updates=False))

    def update_category(self, category_id: int, data: CategoryUpdate) -> Optional[Category]:
        doc = update_document(self.db, CATEGORIES, {"id": category_id}, data, track_updates=False)
        return _one(Category, doc)

    def delete_category(self, category_id: int):
        delete_documents(self.db, CATEGORIES, {"id": category_id})

    # ============ Products ============
    def get_products(self, category_slug: Optional[str] = None, search: Optional[str] = None, is_active: Optional[bool] = None) -> List[Product]:
        conditions = []
        if is_active is not None:
            conditions.append({"is_active": is_active})
        if category_slug and category_slug != ALL_CATEGORIES:
            category = self.get_category_by_slug(category_slug)
            if category:
                conditions.append({"category_id": category.id})
        if search:
            conditions.append({"name": {"$regex": re.escape(search), "$options": "i"}})
        docs = get_documents(self.db, PRODUCTS, combine(conditions), sort=[("is_featured", DESCENDING)] + NEWEST_FIRST)
        return _many(Product, docs)

    def get_featured_products(self) -> List[Product]:
        conditions = [{"is_active": True}, {"is_featured": True}]
        docs = get_documents(self.db, PRODUCTS, combine(conditions), limit=FEATURED_LIMIT, sort=NEWEST_FIRST)
        return _many(Product, docs)

    def get_product_by_id(self, product_id: int) -> Optional[Product]:
        return _one(Product, get_document(self.db, PRODUCTS, {"id": product_id}))

    def get_product_by_slug(self, slug: str) -> Optional[Product]:
        return _one(Product, get_document(self.db, PRODUCTS, {"slug": slug}))

    def create_product(self, product: ProductCreate) -> Product:
        return Product.model_validate(create_document(self.db, PRODUCTS, product))

    def update_product(self, product_id: int, data: ProductUpdate) -> Optional[Product]:
        return _one(Product, update_document(self.db, PRODUCTS, {"id": product_id}, data))

    def delete_product(self, product_id: int):
        # variants and blackout dates belong to the product; bookings and
        # cart rows keep their reference
        delete_documents(self.db, VARIANTS, {"product_id": product_id})
        delete_documents(self.db, BLACKOUT_DATES, {"product_id": product_id})
        delete_documents(self.db, PRODUCTS, {"id": product_id})

    # ============ Variants ============
    def get_variants(self, product_id: int) -> List[ProductVariant]:
        docs = get_documents(self.db, VARIANTS, {"product_id": product_id}, sort=[("id", ASCENDING)])
        return _many(ProductVariant, docs)

    def create_variant(self, product_id: int, variant: VariantCreate) -> ProductVariant:
        payload = {**variant.model_dump(), "product_id": product_id}
        return ProductVariant.model_validate(create_document(self.db, VARIANTS, payload, track_updates=False))

    def delete_variant(self, variant_id: int):
        delete_documents(self.db, VARIANTS, {"id": variant_id})

    # ============ Blackout dates ============
    def get_blackout_dates(self, product_id: int) -> List[BlackoutDate]:
        docs = get_documents(self.db, BLACKOUT_DATES, {"product_id": product_id}, sort=[("blocked_date", ASCENDING)])
        return _many(BlackoutDate, docs)

    def get_blackout_dates_between(self, product_id: int, start: date, end: date, variant_id: Optional[int] = None) -> List[BlackoutDate]:
        """Blackouts inside [start, end] that apply to the product or to the given variant."""
        applies_to = [{"variant_id": None}]
        if variant_id is not None:
            applies_to.append({"variant_id": variant_id})
        conditions = [
            {"product_id": product_id},
            {"blocked_date": {"$gte": start.isoformat(), "$lte": end.isoformat()}},
            {"$or": applies_to},
        ]
        docs = get_documents(self.db, BLACKOUT_DATES, combine(conditions), sort=[("blocked_date", ASCENDING)])
        return _many(BlackoutDate, docs)

    def create_blackout_date(self, product_id: int, blackout: BlackoutDateCreate) -> BlackoutDate:
        payload = {**blackout.model_dump(), "product_id": product_id}
        return BlackoutDate.model_validate(create_document(self.db, BLACKOUT_DATES, payload, track_updates=False))

    def delete_blackout_date(self, blackout_id: int):
        delete_documents(self.db, BLACKOUT_DATES, {"id": blackout_id})

    # ============ Bookings ============
    def get_bookings(self, user_id: Optional[str] = None, limit: Optional[int] = None) -> List[Booking]:
        filt = {"user_id": user_id} if user_id else {}
        return _many(Booking, get_documents(self.db, BOOKINGS, filt, limit=limit, sort=NEWEST_FIRST))

    def get_booking_by_id(self, booking_id: int) -> Optional[Booking]:
        return _one(Booking, get_document(self.db, BOOKINGS, {"id": booking_id}))

    def get_recent_bookings(self, user_id: str, limit: int = 5) -> List[Booking]:
        return self.get_bookings(user_id, limit=limit)

    def create_booking(self, booking: Dict[str, Any]) -> Booking:
        return Booking.model_validate(create_document(self.db, BOOKINGS, booking))

    def update_booking(self, booking_id: int, data: Dict[str, Any]) -> Optional[Booking]:
        return _one(Booking, update_document(self.db, BOOKINGS, {"id": booking_id}, data))

    # ============ Cart ============
    def get_cart_items(self, user_id: str) -> List[CartItem]:
        docs = get_documents(self.db, CART_ITEMS, {"user_id": user_id}, sort=[("id", ASCENDING)])
        return _many(CartItem, docs)

    def get_cart_item_by_id(self, item_id: int) -> Optional[CartItem]:
        return _one(CartItem, get_document(self.db, CART_ITEMS, {"id": item_id}))

    def add_to_cart(self, user_id: str, item: CartItemCreate) -> CartItem:
        payload = {**item.model_dump(), "user_id": user_id}
        return CartItem.model_validate(create_document(self.db, CART_ITEMS, payload, track_updates=False))

    def remove_from_cart(self, item_id: int, user_id: Optional[str] = None):
        filt = {"id": item_id}
        if user_id is not None:
            filt["user_id"] = user_id
        delete_documents(self.db, CART_ITEMS, filt)

    def clear_cart(self, user_id: str) -> int:
        return delete_documents(self.db, CART_ITEMS, {"user_id": user_id})

    # ============ Admin ============
    def get_admin_stats(self) -> AdminStats:
        stats = AdminStats(total_products=self.db[PRODUCTS].count_documents({"is_active": True}))
        totals = list(self.db[BOOKINGS].aggregate([
            {"$group": {
                "_id": None,
                "total": {"$sum": 1},
                "pending": {"$sum": {"$cond": [{"$eq": ["$status", "pending"]}, 1, 0]}},
                "active": {"$sum": {"$cond": [{"$in": ["$status", list(ACTIVE_BOOKING_STATUSES)]}, 1, 0]}},
                "revenue": {"$sum": "$rental_amount"},
            }},
        ]))
        if totals:
            row = serialize_doc(totals[0])
            stats.total_bookings = row["total"]
            stats.pending_bookings = row["pending"]
            stats.active_bookings = row["active"]
            stats.revenue = money(row["revenue"])
        return stats

    def get_upcoming_returns(self, today: Optional[date] = None) -> List[Booking]:
        today = today or date.today()
        until = today + timedelta(days=UPCOMING_RETURNS_DAYS)
        conditions = [
            {"status": {"$in": list(ACTIVE_BOOKING_STATUSES)}},
            {"end_date": {"$gte": today.isoformat(), "$lte": until.isoformat()}},
        ]
        docs = get_documents(
            self.db,
            BOOKINGS,
            combine(conditions),
            limit=UPCOMING_RETURNS_LIMIT,
            sort=[("end_date", ASCENDING), ("id", ASCENDING)],
        )
        return _many(Booking, docs)

    # ============ Sessions ============
    def create_session(self, sid: str, user_id: str, expire: datetime) -> dict:
        session = {"sid": sid, "user_id": user_id, "expire": expire}
        self.db[SESSIONS].insert_one(dict(session))
        return session

    def get_session(self, sid: str) -> Optional[dict]:
        return serialize_doc(self.db[SESSIONS].find_one({"sid": sid}))

    def delete_session(self, sid: str):
        delete_documents(self.db, SESSIONS, {"sid": sid})


def get_storage(database: Database = Depends(get_db)) -> Storage:
    return Storage(database)
