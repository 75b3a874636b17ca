from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response
from packages.shared.schemas.food import Cart, MenuItem, Restaurant
from services.portal.app.client import ClientContext, get_client
from services.portal.app.models.checkout import (
    CartItemAddRequest,
    CartQuantityRequest,
    CartResponse,
    CartSummary,
    CheckoutOpenRequest,
    CheckoutRequest,
)
from services.portal.app.models.results import FlowResponse
from services.portal.app.routers.responses import (
    flow_response,
    operation_data,
    raise_remote_http_error,
)
from services.portal.app.services.cart import compute_totals, format_price, validate_cart
from services.portal.app.services.flows import FoodFlow
from services.portal.app.services.orders import get_food_order_by_token, list_user_food_orders
from services.portal.app.services.remote_base import RemoteBackend, RemoteBackendError

router = APIRouter()


def _food_flow(client: ClientContext) -> FoodFlow:
    return FoodFlow(client.gate, client.pending, client.cart, client.backend, client.session)


def _cart_response(client: ClientContext, cart: Cart | None) -> CartResponse:
    return CartResponse(cart=cart, item_count=client.cart.item_count())


def _restaurant(backend: RemoteBackend, **filters: str) -> Restaurant:
    try:
        return Restaurant.model_validate(backend.select_one("restaurants", filters))
    except RemoteBackendError as e:
        raise_remote_http_error(e)


def _menu_item(backend: RemoteBackend, menu_item_id: str) -> MenuItem:
    try:
        return MenuItem.model_validate(backend.select_one("menu_items", {"id": menu_item_id}))
    except RemoteBackendError as e:
        raise_remote_http_error(e)


# Catalog


@router.get("/v1/restaurants/{slug}", response_model=Restaurant)
def get_restaurant(slug: str, client: ClientContext = Depends(get_client)) -> Restaurant:
    restaurant = _restaurant(client.backend, slug=slug)
    if not restaurant.is_active:
        raise HTTPException(status_code=404, detail="Restaurant not found")
    return restaurant


@router.get("/v1/restaurants/{slug}/menu", response_model=list[MenuItem])
def get_menu(slug: str, client: ClientContext = Depends(get_client)) -> list[MenuItem]:
    restaurant = _restaurant(client.backend, slug=slug)
    try:
        rows = client.backend.select(
            "menu_items", {"restaurant_id": restaurant.id, "is_available": True}, order_by="name"
        )
    except RemoteBackendError as e:
        raise_remote_http_error(e)
    return [MenuItem.model_validate(row) for row in rows]


# Cart


@router.get("/v1/cart", response_model=CartResponse)
def get_cart(client: ClientContext = Depends(get_client)) -> CartResponse:
    return _cart_response(client, client.cart.get_cart())


@router.post("/v1/cart/items", response_model=FlowResponse)
def add_cart_item(
    payload: CartItemAddRequest, client: ClientContext = Depends(get_client)
) -> FlowResponse:
    menu_item = _menu_item(client.backend, payload.menu_item_id)
    outcome = _food_flow(client).add_item(
        menu_item,
        quantity=payload.quantity,
        special_requests=payload.special_requests,
        return_url=payload.return_url,
    )
    return flow_response(outcome)


@router.patch("/v1/cart/items/{menu_item_id}", response_model=CartResponse)
def set_cart_item_quantity(
    menu_item_id: str,
    payload: CartQuantityRequest,
    client: ClientContext = Depends(get_client),
) -> CartResponse:
    cart = client.cart.set_quantity(menu_item_id, payload.quantity, payload.special_requests)
    return _cart_response(client, cart)


@router.delete("/v1/cart/items/{menu_item_id}", response_model=CartResponse)
def remove_cart_item(
    menu_item_id: str,
    special_requests: str | None = None,
    client: ClientContext = Depends(get_client),
) -> CartResponse:
    cart = client.cart.remove_item(menu_item_id, special_requests)
    return _cart_response(client, cart)


@router.delete("/v1/cart", response_model=CartResponse)
def clear_cart(client: ClientContext = Depends(get_client)) -> CartResponse:
    client.cart.clear()
    return CartResponse()


@router.get("/v1/cart/totals", response_model=CartSummary)
def get_cart_totals(client: ClientContext = Depends(get_client)) -> CartSummary:
    cart = client.cart.get_cart()
    if cart is None:
        raise HTTPException(status_code=404, detail="Cart is empty")

    restaurant = _restaurant(client.backend, id=cart.restaurant_id)
    totals = compute_totals(cart, restaurant)
    validation = validate_cart(cart, restaurant)
    return CartSummary(
        cart=cart,
        totals=totals,
        is_valid=validation.is_valid,
        errors=validation.errors,
        formatted_total=format_price(totals.total_cents),
    )


@router.post("/v1/cart/checkout/open", response_model=FlowResponse)
def open_checkout(
    payload: CheckoutOpenRequest, client: ClientContext = Depends(get_client)
) -> FlowResponse:
    return flow_response(_food_flow(client).open_checkout(payload.return_url))


@router.post("/v1/cart/checkout", response_model=FlowResponse)
def checkout(payload: CheckoutRequest, client: ClientContext = Depends(get_client)) -> FlowResponse:
    restaurant = _restaurant(client.backend, slug=payload.restaurant_slug)
    return flow_response(_food_flow(client).checkout(restaurant, payload.form))


@router.post("/v1/cart/resume", response_model=FlowResponse)
def resume_cart(client: ClientContext = Depends(get_client)):
    outcome = _food_flow(client).resume()
    if outcome is None:
        return Response(status_code=204)
    return flow_response(outcome)


# Order history


@router.get("/v1/food/orders")
def list_food_orders(client: ClientContext = Depends(get_client)) -> list[dict]:
    user = client.gate.get_current_user_sync()
    return operation_data(list_user_food_orders(client.backend, user))


@router.get("/v1/food/orders/{order_token}")
def get_food_order(order_token: str, client: ClientContext = Depends(get_client)) -> dict:
    user = client.gate.get_current_user_sync()
    return operation_data(get_food_order_by_token(client.backend, user, order_token))
