"""Single-restaurant shopping cart kept in the client's local storage."""

from __future__ import annotations

import json
import logging

from packages.shared.schemas.food import (
    Cart,
    CartItem,
    CartTotals,
    CartValidation,
    MenuItem,
    Restaurant,
    normalize_special_requests,
)
from pydantic import ValidationError
from services.portal.app.services.events import EventBus
from services.portal.app.services.storage import (
    CART_KEY,
    Storage,
    StorageChange,
    read_json,
    write_json,
)

logger = logging.getLogger(__name__)

TAX_RATE_PERCENT = 8


def _decode_cart(data: object) -> Cart | None:
    if data is None:
        return None
    try:
        return Cart.model_validate(data)
    except ValidationError:
        return None


class CartEngine:
    """Cart CRUD over one storage key.

    The engine listens to its storage, so ``cart-updated`` fires for its own writes and for
    writes made by any other engine sharing the same storage (another tab). There is no
    merging: the last write wins.
    """

    def __init__(self, storage: Storage, bus: EventBus | None = None) -> None:
        self._storage = storage
        self.bus = bus or EventBus()
        self._unsubscribe = storage.subscribe(self._on_storage_change)

    def close(self) -> None:
        self._unsubscribe()

    def _on_storage_change(self, change: StorageChange) -> None:
        if change.key not in (CART_KEY, None):
            return

        cart = None
        if change.new_value is not None:
            try:
                cart = _decode_cart(json.loads(change.new_value))
            except ValueError:
                cart = None
        self.bus.cart_updated.publish(cart)

    def get_cart(self) -> Cart | None:
        data = read_json(self._storage, CART_KEY)
        if data is None:
            return None

        cart = _decode_cart(data)
        if cart is None or not cart.items:
            logger.warning("Discarding empty or unreadable cart")
            self._storage.remove(CART_KEY)
            return None
        return cart

    def _save(self, cart: Cart) -> Cart:
        write_json(self._storage, CART_KEY, cart.model_dump(mode="json"))
        return cart

    def clear(self) -> None:
        self._storage.remove(CART_KEY)

    def add_item(
        self,
        menu_item: MenuItem,
        quantity: int = 1,
        special_requests: str | None = None,
    ) -> Cart:
        if quantity < 1:
            raise ValueError(f"quantity must be at least 1, got {quantity}")

        note = normalize_special_requests(special_requests)
        cart = self.get_cart()

        if cart is None or cart.restaurant_id != menu_item.restaurant_id:
            if cart is not None:
                logger.info(
                    "Replacing cart for restaurant=%s with restaurant=%s",
                    cart.restaurant_id,
                    menu_item.restaurant_id,
                )
            cart = Cart(restaurant_id=menu_item.restaurant_id)

        for item in cart.items:
            if item.key == (menu_item.id, note):
                item.quantity += quantity
                break
        else:
            cart.items.append(
                CartItem(menu_item=menu_item, quantity=quantity, special_requests=note)
            )

        return self._save(cart)

    def remove_item(self, menu_item_id: str, special_requests: str | None = None) -> Cart | None:
        cart = self.get_cart()
        if cart is None:
            return None

        key = (menu_item_id, normalize_special_requests(special_requests))
        cart.items = [item for item in cart.items if item.key != key]

        if not cart.items:
            self.clear()
            return None
        return self._save(cart)

    def set_quantity(
        self,
        menu_item_id: str,
        new_quantity: int,
        special_requests: str | None = None,
    ) -> Cart | None:
        if new_quantity <= 0:
            return self.remove_item(menu_item_id, special_requests)

        cart = self.get_cart()
        if cart is None:
            return None

        key = (menu_item_id, normalize_special_requests(special_requests))
        for item in cart.items:
            if item.key == key:
                item.quantity = new_quantity
                return self._save(cart)

        return cart

    def item_count(self) -> int:
        cart = self.get_cart()
        if cart is None:
            return 0
        return sum(item.quantity for item in cart.items)

    def is_for_restaurant(self, restaurant_id: str) -> bool:
        cart = self.get_cart()
        return cart is not None and cart.restaurant_id == restaurant_id


def compute_totals(cart: Cart, restaurant: Restaurant) -> CartTotals:
    subtotal = cart.total_amount_cents
    # Flat fee only once the minimum order is met; no interpolation below it.
    delivery_fee = 0
    if subtotal >= restaurant.minimum_order_cents:
        delivery_fee = restaurant.delivery_fee_cents
    tax = (subtotal * TAX_RATE_PERCENT + 50) // 100

    return CartTotals(
        subtotal_cents=subtotal,
        delivery_fee_cents=delivery_fee,
        tax_cents=tax,
        total_cents=subtotal + delivery_fee + tax,
    )


def validate_cart(cart: Cart | None, restaurant: Restaurant) -> CartValidation:
    errors: list[str] = []

    if cart is None or not cart.items:
        errors.append("Cart is empty")

    if cart is not None and cart.total_amount_cents < restaurant.minimum_order_cents:
        errors.append(f"Minimum order amount is {format_price(restaurant.minimum_order_cents)}")

    if cart is not None and any(not item.menu_item.is_available for item in cart.items):
        errors.append("Some items in your cart are no longer available")

    return CartValidation(is_valid=not errors, errors=errors)


def format_price(cents: int) -> str:
    return f"${cents // 100}.{cents % 100:02d}"
