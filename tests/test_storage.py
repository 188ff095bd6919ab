from datetime import date, timedelta
from decimal import Decimal

from bson.decimal128 import Decimal128

from schemas import BlackoutDateCreate, CategoryUpdate, ProductUpdate, VariantCreate
from storage import combine


def _booking(storage, end_date, status="confirmed", rental="100.00", user_id="u1", product_id=1):
    return storage.create_booking({
        "user_id": user_id,
        "product_id": product_id,
        "start_date": end_date - timedelta(days=1),
        "end_date": end_date,
        "total_days": 2,
        "rental_amount": Decimal(rental),
        "deposit_amount": Decimal("0.00"),
        "total_amount": Decimal(rental),
        "status": status,
        "payment_status": "pending",
    })


def test_combine_conditions():
    assert combine([]) == {}
    assert combine([{"a": 1}]) == {"a": 1}
    assert combine([{"a": 1}, {"b": 2}]) == {"$and": [{"a": 1}, {"b": 2}]}


def test_product_filters_compose(storage, make_category, make_product):
    dresses = make_category("dresses")
    lehengas = make_category("lehengas")
    make_product("red-silk-saree", name="Red Silk Saree", category_id=dresses.id)
    make_product("blue-lehenga", name="Blue Lehenga", category_id=lehengas.id)
    make_product("red-gown", name="red gown", category_id=dresses.id, is_active=False)

    def slugs(**filters):
        return sorted(p.slug for p in storage.get_products(**filters))

    assert slugs(category_slug="all", is_active=True) == ["blue-lehenga", "red-silk-saree"]
    assert slugs(category_slug="dresses", is_active=True) == ["red-silk-saree"]
    assert slugs(search="RED", is_active=True) == ["red-silk-saree"]
    assert slugs(search="red") == ["red-gown", "red-silk-saree"]
    assert slugs(category_slug="dresses", search="blue", is_active=True) == []
    assert slugs() == ["blue-lehenga", "red-gown", "red-silk-saree"]


def test_unknown_category_slug_adds_no_constraint(storage, make_product):
    make_product("a")
    make_product("b")
    assert len(storage.get_products(category_slug="nope", is_active=True)) == 2


def test_search_is_literal_substring(storage, make_product):
    make_product("plus", name="Size 2+ Kurta")
    make_product("other", name="Size 22 Kurta")
    assert [p.slug for p in storage.get_products(search="2+")] == ["plus"]


def test_products_featured_first_then_newest(storage, make_product):
    make_product("old")
    make_product("featured", is_featured=True)
    make_product("new")
    assert [p.slug for p in storage.get_products()] == ["featured", "new", "old"]


def test_featured_products_capped_and_filtered(storage, make_product):
    for i in range(10):
        make_product(f"featured-{i}", is_featured=True)
    make_product("hidden", is_featured=True, is_active=False)
    make_product("plain")

    featured = storage.get_featured_products()
    assert len(featured) == 8
    assert all(p.is_active and p.is_featured for p in featured)
    assert featured[0].slug == "featured-9"


def test_lookups_return_none_when_missing(storage):
    assert storage.get_product_by_id(99) is None
    assert storage.get_product_by_slug("missing") is None
    assert storage.get_category_by_slug("missing") is None
    assert storage.get_booking_by_id(1) is None
    assert storage.get_user("nobody") is None


def test_create_product_assigns_id_and_timestamps(storage, make_product):
    first = make_product("first")
    second = make_product("second")
    assert (first.id, second.id) == (1, 2)
    assert first.created_at is not None
    assert first.base_price == Decimal("1000.00")
    assert first.min_rental_days == 3


def test_partial_update_only_touches_given_fields(storage, make_product):
    product = make_product("saree", fabric="Silk")
    updated = storage.update_product(product.id, ProductUpdate(name="Renamed"))
    assert updated.name == "Renamed"
    assert updated.fabric == "Silk"
    assert updated.base_price == Decimal("1000.00")
    assert updated.updated_at >= product.updated_at


def test_partial_update_missing_id(storage):
    assert storage.update_product(42, ProductUpdate(name="x")) is None
    assert storage.update_category(42, CategoryUpdate(name="x")) is None
    assert storage.update_booking(42, {"status": "confirmed"}) is None


def test_deletes_are_idempotent(storage, make_category, make_product):
    category = make_category("dresses")
    product = make_product("saree")
    storage.delete_category(category.id)
    storage.delete_category(category.id)
    storage.delete_product(product.id)
    storage.delete_product(product.id)
    storage.remove_from_cart(123)
    assert storage.get_categories() == []
    assert storage.get_product_by_id(product.id) is None


def test_delete_product_removes_variants_and_blackouts(storage, make_product):
    product = make_product("saree")
    storage.create_variant(product.id, VariantCreate(size="M", color="Red"))
    storage.create_blackout_date(product.id, BlackoutDateCreate(blocked_date=date(2024, 1, 5)))
    storage.delete_product(product.id)
    assert storage.get_variants(product.id) == []
    assert storage.get_blackout_dates(product.id) == []


def test_categories_ordered_by_display_order(make_category, storage):
    make_category("second", display_order=2)
    make_category("first", display_order=1)
    assert [c.slug for c in storage.get_categories()] == ["first", "second"]


def test_upsert_user_inserts_then_overwrites(storage):
    created = storage.upsert_user("u1", {"email": "a@example.com", "first_name": "Asha"})
    assert created.city == "Bengaluru"
    assert created.is_admin is False

    again = storage.upsert_user("u1", {"email": "a@example.com", "first_name": "Asha R"})
    assert again.first_name == "Asha R"
    assert again.created_at == created.created_at
    assert again.updated_at >= created.updated_at


def test_update_user_missing(storage):
    assert storage.update_user("ghost", {"phone": "1"}) is None


def test_blackout_dates_between(storage, make_product):
    product = make_product("saree")
    variant = storage.create_variant(product.id, VariantCreate(size="M", color="Red"))
    storage.create_blackout_date(product.id, BlackoutDateCreate(blocked_date=date(2024, 1, 2)))
    storage.create_blackout_date(product.id, BlackoutDateCreate(blocked_date=date(2024, 1, 3), variant_id=variant.id))
    storage.create_blackout_date(product.id, BlackoutDateCreate(blocked_date=date(2024, 2, 1)))

    start, end = date(2024, 1, 1), date(2024, 1, 5)
    assert [b.blocked_date for b in storage.get_blackout_dates_between(product.id, start, end)] == [date(2024, 1, 2)]
    assert [b.blocked_date for b in storage.get_blackout_dates_between(product.id, start, end, variant.id)] == [
        date(2024, 1, 2),
        date(2024, 1, 3),
    ]


def test_admin_stats_empty(storage):
    stats = storage.get_admin_stats()
    assert stats.total_products == 0
    assert stats.total_bookings == 0
    assert stats.revenue == Decimal("0.00")


def test_admin_stats_counts(storage, make_product):
    make_product("a")
    make_product("b", is_active=False)
    today = date(2024, 1, 10)
    _booking(storage, today, status="pending", rental="100.50")
    _booking(storage, today, status="confirmed", rental="200.25")
    _booking(storage, today, status="delivered", rental="300.00")
    _booking(storage, today, status="cancelled", rental="10.00")

    stats = storage.get_admin_stats()
    assert stats.total_products == 1
    assert stats.total_bookings == 4
    assert stats.pending_bookings == 1
    assert stats.active_bookings == 2
    assert stats.revenue == Decimal("610.75")


def test_money_is_stored_as_decimal128(storage, db, make_product):
    product = make_product("saree", base_price=Decimal("1250.5"))
    raw = db["product"].find_one({"id": product.id})
    assert raw["base_price"] == Decimal128("1250.50")
    assert storage.get_product_by_id(product.id).base_price == Decimal("1250.50")


def test_sessions_expire_through_ttl_index(db):
    indexes = db["session"].index_information()
    ttl = [spec for spec in indexes.values() if spec["key"] == [("expire", 1)]]
    assert len(ttl) == 1
    assert ttl[0]["expireAfterSeconds"] == 0


def test_upcoming_returns_window(storage):
    today = date(2024, 1, 10)
    _booking(storage, today - timedelta(days=1))
    inside_today = _booking(storage, today, status="delivered")
    inside_last = _booking(storage, today + timedelta(days=7))
    _booking(storage, today + timedelta(days=8))
    _booking(storage, today + timedelta(days=2), status="pending")

    returns = storage.get_upcoming_returns(today)
    assert [b.id for b in returns] == [inside_today.id, inside_last.id]


def test_upcoming_returns_capped(storage):
    today = date(2024, 1, 10)
    for i in range(12):
        _booking(storage, today + timedelta(days=i % 7))
    returns = storage.get_upcoming_returns(today)
    assert len(returns) == 10
    assert [b.end_date for b in returns] == sorted(b.end_date for b in returns)
    assert all(b.status in ("confirmed", "delivered") for b in returns)


def test_recent_bookings_newest_first(storage):
    ids = [_booking(storage, date(2024, 1, 10), user_id="u1").id for _ in range(7)]
    _booking(storage, date(2024, 1, 10), user_id="u2")
    recent = storage.get_recent_bookings("u1")
    assert [b.id for b in recent] == list(reversed(ids))[:5]
