"""
Cart and booking workflow

Turns a user's cart into pending bookings with computed pricing, and
checks date ranges before they are accepted into the cart.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import List, NamedTuple

from schemas import Booking, CartItem, CartItemCreate, CheckoutRequest, Product, money
from storage import Storage

logger = logging.getLogger(__name__)


class BookingError(Exception):
    """Base class for cart and booking rule failures."""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class CartEmptyError(BookingError):
    def __init__(self):
        super().__init__("Cart is empty")


class ProductNotFoundError(BookingError):
    status_code = 404

    def __init__(self, product_id: int):
        super().__init__("Product not found")
        self.product_id = product_id


class InvalidDateRangeError(BookingError):
    def __init__(self, start_date: date, end_date: date):
        super().__init__(f"End date {end_date} is before start date {start_date}")


class BlackoutConflictError(BookingError):
    def __init__(self, dates: List[date]):
        listed = ", ".join(d.isoformat() for d in dates)
        super().__init__(f"Product is unavailable on {listed}")
        self.dates = dates


class Quote(NamedTuple):
    total_days: int
    rental_amount: Decimal
    deposit_amount: Decimal
    total_amount: Decimal


def rental_days(start_date: date, end_date: date) -> int:
    """Inclusive day count, so a same-day rental is one day."""
    return (end_date - start_date).days + 1


def quote(product: Product, start_date: date, end_date: date) -> Quote:
    total_days = rental_days(start_date, end_date)
    rental_amount = money(total_days * product.base_price)
    deposit_amount = money(product.deposit_amount)
    return Quote(total_days, rental_amount, deposit_amount, money(rental_amount + deposit_amount))


def format_delivery_address(address: str, city: str, pincode: str) -> str:
    return f"{address}, {city} - {pincode}"


def add_to_cart(storage: Storage, user_id: str, item: CartItemCreate) -> CartItem:
    if storage.get_product_by_id(item.product_id) is None:
        raise ProductNotFoundError(item.product_id)
    if item.end_date < item.start_date:
        raise InvalidDateRangeError(item.start_date, item.end_date)
    blocked = storage.get_blackout_dates_between(item.product_id, item.start_date, item.end_date, item.variant_id)
    if blocked:
        raise BlackoutConflictError([b.blocked_date for b in blocked])
    return storage.add_to_cart(user_id, item)


def create_bookings_from_cart(storage: Storage, user_id: str, checkout: CheckoutRequest) -> List[Booking]:
    """
    Convert every item in the user's cart into a pending booking.

    The delivery details are saved to the user's profile first. Items whose
    product no longer exists are skipped. The whole cart is cleared at the
    end, skipped items included. The steps are not atomic.
    """
    items = storage.get_cart_items(user_id)
    if not items:
        raise CartEmptyError()

    storage.update_user(user_id, {
        "phone": checkout.phone,
        "address": checkout.address,
        "pincode": checkout.pincode,
        "city": checkout.city,
    })
    delivery_address = format_delivery_address(checkout.address, checkout.city, checkout.pincode)

    created = []
    for item in items:
        product = storage.get_product_by_id(item.product_id)
        if product is None:
            logger.warning("Skipping cart item %s: product %s no longer exists", item.id, item.product_id)
            continue

        price = quote(product, item.start_date, item.end_date)
        booking = storage.create_booking({
            "user_id": user_id,
            "product_id": item.product_id,
            "variant_id": item.variant_id,
            "start_date": item.start_date,
            "end_date": item.end_date,
            "total_days": price.total_days,
            "rental_amount": price.rental_amount,
            "deposit_amount": price.deposit_amount,
            "total_amount": price.total_amount,
            "status": "pending",
            "payment_status": "pending",
            "payment_intent_id": None,
            "size": item.size,
            "color": item.color,
            "delivery_address": delivery_address,
            "notes": checkout.notes,
        })
        created.append(booking)

    storage.clear_cart(user_id)
    logger.info("Created %d booking(s) from %d cart item(s) for user %s", len(created), len(items), user_id)
    return created
