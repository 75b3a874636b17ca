"""Write flows behind the auth gate.

Each flow either runs its action right away or, when nobody is signed in, stores the
action as a pending payload and hands back the login URL. After login the flow picks the
payload up again: repair forms come back as pre-filled defaults, lost-and-found reports and
cart additions are replayed directly.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from packages.shared.schemas.food import MenuItem, Restaurant
from services.portal.app.models.checkout import CheckoutForm, FoodOrderDraft
from services.portal.app.models.lost_and_found import LostAndFoundFormData
from services.portal.app.models.pending import (
    FOOD_CONTEXT,
    LOST_AND_FOUND_CONTEXT,
    SERVICE_CONTEXTS,
    CartAddPending,
    LostAndFoundPending,
    PendingAction,
    PendingKind,
    RepairFormPending,
)
from services.portal.app.models.repair import RepairFormData, RepairServiceType
from services.portal.app.models.results import FlowOutcome, FlowStatus, OperationResult
from services.portal.app.services.auth import AuthGate
from services.portal.app.services.cart import CartEngine, compute_totals, validate_cart
from services.portal.app.services.orders import (
    create_food_order,
    create_repair_order,
    generate_order_token,
    submit_lost_and_found_item,
)
from services.portal.app.services.pending import PendingActions
from services.portal.app.services.remote_base import RemoteBackend
from services.portal.app.services.storage import PENDING_CART_ACCESS_KEY, Storage

logger = logging.getLogger(__name__)

FOOD_HOME = "/food"
LOST_AND_FOUND_HOME = "/lost-and-found"
ESTIMATED_DELIVERY = timedelta(minutes=30)


def _noop() -> None:
    return None


def _auth_redirect(gate: AuthGate, return_url: str, context: str) -> FlowOutcome:
    url = gate.require_auth(_noop, return_url=return_url, service_context=context)
    return FlowOutcome(status=FlowStatus.AUTH_REQUIRED, redirect_url=url)


def _stash_and_redirect(
    gate: AuthGate, pending: PendingActions, action: PendingAction
) -> FlowOutcome:
    pending.stash(action)
    return _auth_redirect(gate, action.redirect_url, SERVICE_CONTEXTS[PendingKind(action.kind)])


def _submitted(result: OperationResult, redirect_url: str | None = None) -> FlowOutcome:
    return FlowOutcome(status=FlowStatus.SUBMITTED, data=result.data, redirect_url=redirect_url)


def _failed(result: OperationResult) -> FlowOutcome:
    return FlowOutcome(status=FlowStatus.FAILED, error=result.error)


class RepairFlow:
    """Repair request form for one service type. Resumes by pre-filling the form."""

    def __init__(
        self,
        gate: AuthGate,
        pending: PendingActions,
        backend: RemoteBackend,
        service_type: RepairServiceType,
        redirect_url: str | None = None,
    ) -> None:
        self._gate = gate
        self._pending = pending
        self._backend = backend
        self.service_type = service_type
        self.redirect_url = redirect_url or f"/repair/{service_type.value}"

    def _pending_action(self, form: RepairFormData) -> RepairFormPending:
        return RepairFormPending(
            context=self.service_type,
            form=form,
            redirect_url=self.redirect_url,
            timestamp=self._pending.now(),
        )

    def submit(self, form: RepairFormData) -> FlowOutcome:
        if not self._gate.is_authenticated():
            return _stash_and_redirect(self._gate, self._pending, self._pending_action(form))

        result = create_repair_order(
            self._backend, self._gate.get_current_user_sync(), form, self.service_type
        )
        if result.success:
            self._pending.discard(PendingKind.REPAIR_FORM)
            return _submitted(result)
        if result.auth_required:
            return _stash_and_redirect(self._gate, self._pending, self._pending_action(form))
        # Any stored payload stays for a retry.
        return _failed(result)

    def stored_form(self) -> RepairFormData | None:
        """Form defaults left by a submission interrupted for login, if still valid here."""

        if not self._gate.is_authenticated():
            return None
        action = self._pending.resume(self.service_type.value)
        if action is None:
            return None
        return action.form

    def clear_stored(self) -> None:
        self._pending.discard(PendingKind.REPAIR_FORM)


class LostAndFoundFlow:
    def __init__(
        self,
        gate: AuthGate,
        pending: PendingActions,
        backend: RemoteBackend,
        redirect_url: str = LOST_AND_FOUND_HOME,
    ) -> None:
        self._gate = gate
        self._pending = pending
        self._backend = backend
        self.redirect_url = redirect_url

    def _pending_action(self, form: LostAndFoundFormData) -> LostAndFoundPending:
        return LostAndFoundPending(
            form=form, redirect_url=self.redirect_url, timestamp=self._pending.now()
        )

    def submit(self, form: LostAndFoundFormData) -> FlowOutcome:
        if not self._gate.is_authenticated():
            return _stash_and_redirect(self._gate, self._pending, self._pending_action(form))

        result = submit_lost_and_found_item(
            self._backend, self._gate.get_current_user_sync(), form
        )
        if result.success:
            self._pending.discard(PendingKind.LOST_AND_FOUND)
            return _submitted(result)
        if result.auth_required:
            return _stash_and_redirect(self._gate, self._pending, self._pending_action(form))
        return _failed(result)

    def stored_form(self) -> LostAndFoundFormData | None:
        if not self._gate.is_authenticated():
            return None
        action = self._pending.resume(LOST_AND_FOUND_CONTEXT)
        return action.form if action is not None else None

    def auto_submit_stored(self) -> FlowOutcome | None:
        """Replay a stored report after login. ``None`` when there is nothing to replay."""

        form = self.stored_form()
        if form is None:
            return None
        logger.info("Replaying stored lost and found report")
        return self.submit(form)


class FoodFlow:
    def __init__(
        self,
        gate: AuthGate,
        pending: PendingActions,
        cart: CartEngine,
        backend: RemoteBackend,
        session: Storage,
    ) -> None:
        self._gate = gate
        self._pending = pending
        self.cart = cart
        self._backend = backend
        self._session = session

    def add_item(
        self,
        menu_item: MenuItem,
        quantity: int = 1,
        special_requests: str | None = None,
        return_url: str | None = None,
    ) -> FlowOutcome:
        if not self._gate.is_authenticated():
            action = CartAddPending(
                menu_item=menu_item,
                quantity=quantity,
                special_requests=special_requests,
                redirect_url=return_url or FOOD_HOME,
                timestamp=self._pending.now(),
            )
            return _stash_and_redirect(self._gate, self._pending, action)

        cart = self.cart.add_item(menu_item, quantity, special_requests)
        return FlowOutcome(status=FlowStatus.SUBMITTED, data=cart)

    def _require_cart_access(self, return_url: str) -> FlowOutcome:
        # The flag holds the checkout URL; login consumes the generic return URL.
        self._session.set(PENDING_CART_ACCESS_KEY, return_url)
        return _auth_redirect(self._gate, return_url, FOOD_CONTEXT)

    def open_checkout(self, return_url: str) -> FlowOutcome:
        if self.cart.get_cart() is None:
            return FlowOutcome(
                status=FlowStatus.INVALID, errors=["Cart is empty"], redirect_url=FOOD_HOME
            )
        if not self._gate.is_authenticated():
            return self._require_cart_access(return_url)
        return FlowOutcome(status=FlowStatus.SUBMITTED, redirect_url=return_url)

    def checkout(self, restaurant: Restaurant, form: CheckoutForm) -> FlowOutcome:
        """Validate locally, then place the order. The cart is cleared only on success."""

        if not self._gate.is_authenticated():
            return self._require_cart_access(f"/food/{restaurant.slug}/checkout")

        cart = self.cart.get_cart()
        if cart is not None and cart.restaurant_id != restaurant.id:
            return FlowOutcome(
                status=FlowStatus.INVALID,
                errors=["Your cart is from a different restaurant"],
                redirect_url=f"/food/{restaurant.slug}",
            )

        errors = form.errors() + validate_cart(cart, restaurant).errors
        if errors:
            return FlowOutcome(status=FlowStatus.INVALID, errors=errors)

        order_token = generate_order_token()
        draft = FoodOrderDraft(
            restaurant_id=restaurant.id,
            order_token=order_token,
            totals=compute_totals(cart, restaurant),
            delivery_address=form.delivery_address(),
            delivery_phone=form.phone.strip(),
            special_instructions=form.special_instructions or None,
            estimated_delivery_time=(self._pending.now() + ESTIMATED_DELIVERY).isoformat(),
            items=cart.items,
        )
        result = create_food_order(self._backend, self._gate.get_current_user_sync(), draft)
        if result.success:
            self.cart.clear()
            return _submitted(result, f"/food/{restaurant.slug}/order/{order_token}")
        if result.auth_required:
            return self._require_cart_access(f"/food/{restaurant.slug}/checkout")
        return _failed(result)

    def resume(self) -> FlowOutcome | None:
        """Pick up where the user left off before logging in.

        A pending checkout visit wins over a pending add; ``None`` when there is nothing to
        resume or the user is still anonymous.
        """

        if not self._gate.is_authenticated():
            return None

        checkout_url = self._session.get(PENDING_CART_ACCESS_KEY)
        if checkout_url is not None:
            self._session.remove(PENDING_CART_ACCESS_KEY)
            self._gate.resolve_post_login_redirect()
            return FlowOutcome(status=FlowStatus.SUBMITTED, redirect_url=checkout_url or FOOD_HOME)

        action = self._pending.resume(FOOD_CONTEXT)
        if action is None:
            return None

        cart = self.cart.add_item(action.menu_item, action.quantity, action.special_requests)
        self._pending.discard(PendingKind.CART_ADD)
        logger.info("Replayed pending add of %s", action.menu_item.id)
        return FlowOutcome(status=FlowStatus.SUBMITTED, data=cart, redirect_url=action.redirect_url)
