"""
Shop routes: cart, checkout and orders for registered and guest customers.

Registered and guest carts share one router factory; the only difference is
the pair of dependencies that resolve the owning user document.
"""
from typing import Callable, Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import APIRouter, BackgroundTasks, Depends, Header, Query
from pymongo.database import Database

import carts
import guests
import orders
from database import get_db, serialize_doc
from errors import ApiError
from notifications import send_order_confirmation
from schemas import (
    AddCartItemRequest,
    ApplyCouponRequest,
    CheckoutRequest,
    GuestCheckoutRequest,
    UpdateCartItemRequest,
)


def ok(message: str, **data) -> dict:
    return {"success": True, "message": message, "data": data}

# ---------- Owners ----------


def current_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    db: Database = Depends(get_db),
) -> dict:
    if not x_user_id:
        raise ApiError(401, "Authentication required")
    try:
        user_id = ObjectId(x_user_id)
    except InvalidId:
        raise ApiError(401, "Invalid user")
    user = db["user"].find_one({"_id": user_id, "role": {"$ne": "guest"}, "isActive": True})
    if not user:
        raise ApiError(401, "Invalid user")
    return user


def guest_user(session_id: str, db: Database = Depends(get_db)) -> dict:
    return guests.get_or_create_guest_user(db, guests.validate_session_id(session_id))


def existing_guest(session_id: str, db: Database = Depends(get_db)):
    # reads and edits never create a guest; only adding an item does
    return guests.get_guest_user_by_session(db, guests.validate_session_id(session_id))

# ---------- Cart router factory ----------

EMPTY_CART = {"items": [], "coupon": None}


def _owner_id(user: Optional[dict], status: int = 404, message: str = "Cart not found") -> ObjectId:
    if user is None:
        raise ApiError(status, message)
    return user["_id"]


def build_cart_router(
    prefix: str,
    owner: Callable,
    lookup: Callable,
    add_path: str,
    label: str,
    tags: list,
) -> APIRouter:
    """
    Cart routes for one kind of customer. ``owner`` resolves (and may create)
    the user that adding an item needs; ``lookup`` resolves an existing user
    or None for every other route.
    """
    router = APIRouter(prefix=prefix, tags=tags)

    def view(db: Database, cart: dict) -> dict:
        return carts.cart_view(db, cart)

    @router.get("")
    def get_cart(user: Optional[dict] = Depends(lookup), db: Database = Depends(get_db)):
        cart = carts.get_or_create_cart(db, user["_id"]) if user else EMPTY_CART
        return ok(f"{label} retrieved successfully", cart=view(db, cart))

    @router.post(add_path)
    def add_to_cart(req: AddCartItemRequest, user: dict = Depends(owner), db: Database = Depends(get_db)):
        cart = carts.add_item(db, user["_id"], req)
        return ok(f"Item added to {label.lower()} successfully", cart=view(db, cart))

    @router.put("/items/{item_id}")
    def update_cart_item(
        item_id: str,
        req: UpdateCartItemRequest,
        user: Optional[dict] = Depends(lookup),
        db: Database = Depends(get_db),
    ):
        cart = carts.update_item(db, _owner_id(user), item_id, req.quantity)
        return ok(f"{label} item updated successfully", cart=view(db, cart))

    @router.delete("/items/{item_id}")
    def remove_from_cart(item_id: str, user: Optional[dict] = Depends(lookup), db: Database = Depends(get_db)):
        cart = carts.remove_item(db, _owner_id(user), item_id)
        return ok(f"Item removed from {label.lower()} successfully", cart=view(db, cart))

    @router.delete("")
    def clear_cart(user: Optional[dict] = Depends(lookup), db: Database = Depends(get_db)):
        cart = carts.clear_cart(db, _owner_id(user))
        return ok(f"{label} cleared successfully", cart=view(db, cart))

    @router.post("/coupon")
    def apply_coupon(req: ApplyCouponRequest, user: Optional[dict] = Depends(lookup), db: Database = Depends(get_db)):
        cart = carts.apply_coupon(db, _owner_id(user, 400, "Cart is empty"), req.coupon_code)
        return ok("Coupon applied successfully", cart=view(db, cart))

    @router.delete("/coupon")
    def remove_coupon(user: Optional[dict] = Depends(lookup), db: Database = Depends(get_db)):
        cart = carts.remove_coupon(db, _owner_id(user))
        return ok("Coupon removed successfully", cart=view(db, cart))

    return router


cart_router = build_cart_router("/api/shop/cart", current_user, current_user, "/items", "Cart", ["cart"])
guest_cart_router = build_cart_router(
    "/api/shop/guest/cart/{session_id}", guest_user, existing_guest, "", "Guest cart", ["guest"]
)

# ---------- Registered orders ----------

order_router = APIRouter(prefix="/api/shop", tags=["orders"])


@order_router.post("/checkout", status_code=201)
def create_order(
    req: CheckoutRequest,
    background: BackgroundTasks,
    user: dict = Depends(current_user),
    db: Database = Depends(get_db),
):
    order = orders.checkout(db, user, req)
    background.add_task(
        send_order_confirmation,
        order,
        user.get("email") or order["customerInfo"]["email"],
        user.get("name") or order["customerInfo"]["name"],
    )
    return ok("Order created successfully", order=serialize_doc(order), orderNumber=order["orderNumber"])


@order_router.get("/orders")
def list_my_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: dict = Depends(current_user),
    db: Database = Depends(get_db),
):
    return ok("Orders retrieved successfully", **orders.list_orders(db, {"user": user["_id"]}, page, limit))


@order_router.get("/orders/{order_number}")
def get_my_order(order_number: str, user: dict = Depends(current_user), db: Database = Depends(get_db)):
    order = orders.get_order_by_number(db, order_number)
    if order["user"] != user["_id"]:
        raise ApiError(404, "Order not found")
    return ok("Order retrieved successfully", order=serialize_doc(order))

# ---------- Guest session and orders ----------

guest_router = APIRouter(prefix="/api/shop/guest", tags=["guest"])


@guest_router.post("/session", status_code=201)
def create_guest_session():
    return ok("Guest session created successfully", sessionId=guests.generate_session_id())


@guest_router.get("/session")
def get_guest_session(
    session_id: Optional[str] = Query(None, alias="sessionId"),
    x_guest_session_id: Optional[str] = Header(None, alias="X-Guest-Session-Id"),
):
    current = x_guest_session_id or session_id
    if current:
        guests.validate_session_id(current)
    return ok("Guest session retrieved successfully", sessionId=current or guests.generate_session_id())


@guest_router.delete("/session/{session_id}")
def destroy_guest_session(session_id: str, db: Database = Depends(get_db)):
    if not guests.delete_guest_user(db, guests.validate_session_id(session_id)):
        raise ApiError(404, "Guest session not found")
    return ok("Guest session destroyed successfully")


@guest_router.post("/checkout", status_code=201)
def create_guest_order(req: GuestCheckoutRequest, db: Database = Depends(get_db)):
    customer = req.customer_info
    guest = guests.get_or_create_guest_user(db, guests.validate_session_id(req.session_id), {
        "name": customer.name,
        "email": str(customer.email).lower(),
        "phoneNumber": customer.phone,
    })
    order = orders.checkout(db, guest, req)
    return ok("Guest order created successfully", order=serialize_doc(order), orderNumber=order["orderNumber"])


def _guest_order(db: Database, order_number: str) -> dict:
    order = db["order"].find_one({"orderNumber": order_number})
    if not order or not db["user"].find_one({"_id": order["user"], "role": "guest"}):
        raise ApiError(404, "Guest order not found")
    return order


@guest_router.get("/orders/session/{session_id}")
def get_guest_orders_by_session(
    session_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Database = Depends(get_db),
):
    guest = guests.get_guest_user_by_session(db, guests.validate_session_id(session_id))
    if not guest:
        raise ApiError(404, "No guest orders found for this session")
    return ok("Guest orders retrieved successfully", **orders.list_orders(db, {"user": guest["_id"]}, page, limit))


@guest_router.get("/orders/email/{email}")
def get_guest_orders_by_email(
    email: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Database = Depends(get_db),
):
    users = guests.get_guest_users_by_email(db, email)
    if not users:
        raise ApiError(404, "No guest orders found for this email")
    filt = {"user": {"$in": [u["_id"] for u in users]}}
    return ok("Guest orders retrieved successfully", **orders.list_orders(db, filt, page, limit))


@guest_router.get("/orders/{order_number}")
def get_guest_order(order_number: str, db: Database = Depends(get_db)):
    order = _guest_order(db, order_number)
    return ok("Guest order retrieved successfully", order=serialize_doc(order))


@guest_router.get("/orders/{order_number}/track")
def track_guest_order(order_number: str, db: Database = Depends(get_db)):
    order = _guest_order(db, order_number)
    return ok("Order status retrieved successfully", tracking=orders.track_order(order))
