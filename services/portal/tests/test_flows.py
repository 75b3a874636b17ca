from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest
from packages.shared.schemas.food import MenuItem, Restaurant
from services.portal.app.models.checkout import CheckoutForm
from services.portal.app.models.lost_and_found import LostAndFoundFormData
from services.portal.app.models.repair import RepairFormData, RepairServiceType
from services.portal.app.models.results import FlowStatus
from services.portal.app.models.user import SignupRequest
from services.portal.app.services.auth import AuthGate
from services.portal.app.services.cart import CartEngine
from services.portal.app.services.events import EventBus
from services.portal.app.services.flows import FoodFlow, LostAndFoundFlow, RepairFlow
from services.portal.app.services.pending import PendingActions
from services.portal.app.services.remote_base import RemoteUnavailableError
from services.portal.app.services.remote_mock import MockRemoteBackend
from services.portal.app.services.storage import (
    PENDING_CART_ACCESS_KEY,
    PENDING_CART_ACTION_KEY,
    PENDING_LOST_AND_FOUND_KEY,
    PENDING_REPAIR_KEY,
    MemoryStorage,
)

SIGNUP = SignupRequest(
    email="ada@campus.edu",
    password="secret1",
    confirm_password="secret1",
    first_name="Ada",
    last_name="Lovelace",
    phone="5551234567",
    address="1 Campus Drive, Springfield",
)

STARBUCKS = Restaurant(
    id="rest-starbucks",
    name="Starbucks",
    slug="starbucks",
    delivery_fee_cents=299,
    minimum_order_cents=500,
)
LATTE = MenuItem(id="latte", restaurant_id=STARBUCKS.id, name="Latte", price_cents=400)

REPAIR_FORM = RepairFormData(
    first_name="Ada",
    last_name="Lovelace",
    phone_number="5551234567",
    device_model="MacBook Air M2",
    problem_description="Keyboard stopped responding after a spill",
)
REPORT = LostAndFoundFormData(item_name="Blue umbrella", category="lost", place="Library")
CHECKOUT_FORM = CheckoutForm(
    first_name="Ada",
    last_name="Lovelace",
    email="ada@campus.edu",
    phone="5551234567",
    address="1 Campus Drive",
    city="Springfield",
    zip_code="12345",
)


class _Portal:
    """One browser tab wired against an in-memory backend."""

    def __init__(self) -> None:
        self.now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        self.backend = MockRemoteBackend()
        self.backend.insert("service_types", {"id": "svc-phone", "name": "phone"})
        self.backend.insert("service_types", {"id": "svc-laptop", "name": "laptop"})
        self.local = MemoryStorage()
        self.session = MemoryStorage()
        self.bus = EventBus()
        self.navigations: list[str] = []
        self.gate = AuthGate(
            self.local, self.session, self.backend, self.bus, navigate=self.navigations.append
        )
        self.pending = PendingActions(self.session, ttl=timedelta(hours=24), clock=lambda: self.now)
        self.cart = CartEngine(self.local, self.bus)

    def repair(self, service_type: RepairServiceType) -> RepairFlow:
        return RepairFlow(self.gate, self.pending, self.backend, service_type)

    def lost_and_found(self) -> LostAndFoundFlow:
        return LostAndFoundFlow(self.gate, self.pending, self.backend)

    def food(self) -> FoodFlow:
        return FoodFlow(self.gate, self.pending, self.cart, self.backend, self.session)

    def sign_up(self) -> None:
        assert self.gate.signup(SIGNUP).success


@pytest.fixture()
def portal() -> _Portal:
    return _Portal()


def test_laptop_repair_resumes_as_prefilled_form(portal: _Portal) -> None:
    flow = portal.repair(RepairServiceType.LAPTOP)

    outcome = flow.submit(REPAIR_FORM)

    assert outcome.status == FlowStatus.AUTH_REQUIRED
    assert outcome.redirect_url == "/login?returnUrl=%2Frepair%2Flaptop"
    assert portal.navigations == [outcome.redirect_url]
    stored = json.loads(portal.session.get(PENDING_REPAIR_KEY))
    assert stored["context"] == "laptop"
    assert stored["timestamp"].startswith("2024-05-01T12:00:00")
    assert portal.backend.select("repair_orders") == []

    portal.sign_up()
    assert portal.gate.resolve_post_login_redirect() == "/repair/laptop"

    prefill = flow.stored_form()
    assert prefill == REPAIR_FORM

    done = flow.submit(prefill)

    assert done.status == FlowStatus.SUBMITTED
    assert done.data["service_type"] == "laptop"
    assert portal.session.get(PENDING_REPAIR_KEY) is None
    assert flow.stored_form() is None
    assert len(portal.backend.select("repair_orders")) == 1


def test_stored_form_is_hidden_until_signed_in(portal: _Portal) -> None:
    flow = portal.repair(RepairServiceType.LAPTOP)
    flow.submit(REPAIR_FORM)

    assert flow.stored_form() is None
    assert portal.session.get(PENDING_REPAIR_KEY) is not None


def test_repair_payload_is_not_used_by_other_service(portal: _Portal) -> None:
    portal.repair(RepairServiceType.LAPTOP).submit(REPAIR_FORM)
    portal.sign_up()

    assert portal.repair(RepairServiceType.PHONE).stored_form() is None
    assert portal.session.get(PENDING_REPAIR_KEY) is None


def test_expired_repair_payload_is_not_prefilled(portal: _Portal) -> None:
    flow = portal.repair(RepairServiceType.LAPTOP)
    flow.submit(REPAIR_FORM)
    portal.sign_up()

    portal.now += timedelta(hours=25)

    assert flow.stored_form() is None
    assert portal.session.get(PENDING_REPAIR_KEY) is None


def test_failed_repair_submission_keeps_payload(portal: _Portal) -> None:
    flow = portal.repair(RepairServiceType.PHONE)
    flow.submit(REPAIR_FORM)
    portal.sign_up()
    portal.backend.fail_next("insert", "repair_orders", RemoteUnavailableError("down"))

    outcome = flow.submit(flow.stored_form())

    assert outcome.status == FlowStatus.FAILED
    assert outcome.error == "down"
    assert flow.stored_form() == REPAIR_FORM

    flow.clear_stored()
    assert flow.stored_form() is None


def test_signed_in_failure_does_not_stash(portal: _Portal) -> None:
    portal.sign_up()
    portal.backend.fail_next("insert", "repair_orders", RemoteUnavailableError("down"))

    outcome = portal.repair(RepairServiceType.PHONE).submit(REPAIR_FORM)

    assert outcome.status == FlowStatus.FAILED
    assert portal.session.get(PENDING_REPAIR_KEY) is None


def test_lost_and_found_replays_exactly_once(portal: _Portal) -> None:
    flow = portal.lost_and_found()
    assert flow.submit(REPORT).status == FlowStatus.AUTH_REQUIRED
    portal.sign_up()

    portal.backend.fail_next("insert", "lost_and_found", RemoteUnavailableError("down"))
    first = flow.auto_submit_stored()
    assert first.status == FlowStatus.FAILED
    assert portal.session.get(PENDING_LOST_AND_FOUND_KEY) is not None

    second = flow.auto_submit_stored()
    assert second.status == FlowStatus.SUBMITTED
    assert portal.session.get(PENDING_LOST_AND_FOUND_KEY) is None

    assert flow.auto_submit_stored() is None
    assert len(portal.backend.select("lost_and_found")) == 1


def test_auto_submit_waits_for_login(portal: _Portal) -> None:
    flow = portal.lost_and_found()
    flow.submit(REPORT)

    assert flow.auto_submit_stored() is None
    assert portal.backend.select("lost_and_found") == []


def test_session_cleared_means_nothing_to_replay(portal: _Portal) -> None:
    flow = portal.lost_and_found()
    flow.submit(REPORT)
    portal.session.clear()
    portal.sign_up()

    assert flow.auto_submit_stored() is None


def test_anonymous_add_to_cart_is_replayed_after_login(portal: _Portal) -> None:
    food = portal.food()

    outcome = food.add_item(LATTE, 2, "oat milk", return_url="/food/starbucks")

    assert outcome.status == FlowStatus.AUTH_REQUIRED
    assert outcome.redirect_url == "/login?returnUrl=%2Ffood%2Fstarbucks"
    assert portal.cart.get_cart() is None
    assert portal.session.get(PENDING_CART_ACTION_KEY) is not None

    assert food.resume() is None

    portal.sign_up()
    resumed = food.resume()

    assert resumed.status == FlowStatus.SUBMITTED
    assert resumed.redirect_url == "/food/starbucks"
    cart = portal.cart.get_cart()
    assert [(i.quantity, i.special_requests) for i in cart.items] == [(2, "oat milk")]
    assert portal.session.get(PENDING_CART_ACTION_KEY) is None

    assert food.resume() is None
    assert portal.cart.item_count() == 2


def test_signed_in_add_goes_straight_to_cart(portal: _Portal) -> None:
    portal.sign_up()

    outcome = portal.food().add_item(LATTE)

    assert outcome.status == FlowStatus.SUBMITTED
    assert outcome.data.items[0].menu_item.id == "latte"


def test_open_checkout(portal: _Portal) -> None:
    food = portal.food()

    empty = food.open_checkout("/food/starbucks/checkout")
    assert empty.status == FlowStatus.INVALID
    assert empty.redirect_url == "/food"

    portal.cart.add_item(LATTE, 2)
    gated = food.open_checkout("/food/starbucks/checkout")
    assert gated.status == FlowStatus.AUTH_REQUIRED
    assert portal.session.get(PENDING_CART_ACCESS_KEY) == "/food/starbucks/checkout"

    portal.sign_up()
    resumed = food.resume()
    assert resumed.redirect_url == "/food/starbucks/checkout"
    assert portal.session.get(PENDING_CART_ACCESS_KEY) is None

    assert food.open_checkout("/food/starbucks/checkout").status == FlowStatus.SUBMITTED


def test_checkout_validates_before_any_remote_call(portal: _Portal) -> None:
    portal.sign_up()
    food = portal.food()
    portal.cart.add_item(LATTE, 1)

    outcome = food.checkout(STARBUCKS, CheckoutForm(email="not-an-email"))

    assert outcome.status == FlowStatus.INVALID
    assert "First name is required" in outcome.errors
    assert "Please enter a valid email address" in outcome.errors
    assert "Minimum order amount is $5.00" in outcome.errors
    assert portal.backend.select("food_orders") == []


def test_checkout_places_order_and_clears_cart(portal: _Portal) -> None:
    portal.sign_up()
    food = portal.food()
    portal.cart.add_item(LATTE, 2)

    outcome = food.checkout(STARBUCKS, CHECKOUT_FORM)

    assert outcome.status == FlowStatus.SUBMITTED
    order = outcome.data
    assert order["total_amount_cents"] == 800 + 299 + 64
    assert order["delivery_address"] == "1 Campus Drive, Springfield, 12345"
    assert outcome.redirect_url == f"/food/starbucks/order/{order['order_token']}"
    assert portal.cart.get_cart() is None


def test_failed_checkout_keeps_cart(portal: _Portal) -> None:
    portal.sign_up()
    food = portal.food()
    portal.cart.add_item(LATTE, 2)
    portal.backend.fail_next("insert", "food_orders", RemoteUnavailableError("down"))

    outcome = food.checkout(STARBUCKS, CHECKOUT_FORM)

    assert outcome.status == FlowStatus.FAILED
    assert portal.cart.item_count() == 2


def test_checkout_rejects_cart_from_other_restaurant(portal: _Portal) -> None:
    portal.sign_up()
    pizza_hut = STARBUCKS.model_copy(update={"id": "rest-pizza-hut", "slug": "pizza-hut"})
    portal.cart.add_item(LATTE, 2)

    outcome = portal.food().checkout(pizza_hut, CHECKOUT_FORM)

    assert outcome.status == FlowStatus.INVALID
    assert outcome.redirect_url == "/food/pizza-hut"


def test_anonymous_checkout_redirects_to_login(portal: _Portal) -> None:
    portal.cart.add_item(LATTE, 2)

    outcome = portal.food().checkout(STARBUCKS, CHECKOUT_FORM)

    assert outcome.status == FlowStatus.AUTH_REQUIRED
    assert outcome.redirect_url == "/login?returnUrl=%2Ffood%2Fstarbucks%2Fcheckout"
    assert portal.cart.item_count() == 2


@pytest.mark.parametrize("email", ["ada@campus..edu", "ada@", "ada campus@edu.org"])
def test_checkout_rejects_emails_signup_would_reject(portal: _Portal, email: str) -> None:
    portal.sign_up()
    portal.cart.add_item(LATTE, 2)
    form = CHECKOUT_FORM.model_copy(update={"email": email})

    outcome = portal.food().checkout(STARBUCKS, form)

    assert outcome.status == FlowStatus.INVALID
    assert outcome.errors == ["Please enter a valid email address"]
    assert portal.backend.select("food_orders") == []
    assert portal.cart.get_cart() is not None
