"""
Orders

Order numbers, checkout and order lookups.

Checkout touches three collections (menu stock, orders, the cart) without a
multi-document transaction, so it runs as a saga: each completed step is
recorded and undone in reverse if a later step fails.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

from config import settings
from database import serialize_doc, utcnow
from errors import ApiError
from pricing import cart_totals, checkout_totals, coupon_discount
from schemas import CheckoutRequest

logger = logging.getLogger("restaurant.orders")

ORDER = "order"
CART = "cart"
MENU = "menu"
COUNTER = "counter"

STATUS_DISPLAY = {
    "pending": "Order Received",
    "confirmed": "Order Confirmed",
    "preparing": "Preparing Your Order",
    "ready": "Ready for Pickup",
    "out_for_delivery": "Out for Delivery",
    "delivered": "Delivered",
    "completed": "Completed",
    "cancelled": "Cancelled",
}


# ---------- Helpers ----------

def restaurant_zone():
    if settings.timezone.upper() in ("UTC", "ETC/UTC"):
        return timezone.utc
    return ZoneInfo(settings.timezone)


def generate_order_number(db: Database, now: Optional[datetime] = None) -> str:
    """``PEP-YYYYMMDD-NNNN`` from an atomic per-day counter."""
    day = (now or utcnow()).strftime("%Y%m%d")
    counter = db[COUNTER].find_one_and_update(
        {"_id": f"orderNumber:{day}"},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return f"{settings.order_prefix}-{day}-{counter['seq']:04d}"


def calculate_estimated_time(
    order_type: str,
    timing: str,
    scheduled_date: Optional[str] = None,
    scheduled_time: Optional[str] = None,
    now: Optional[datetime] = None,
) -> datetime:
    if timing == "scheduled" and scheduled_date and scheduled_time:
        try:
            local = datetime.strptime(f"{scheduled_date} {scheduled_time}", "%Y-%m-%d %H:%M")
        except ValueError:
            raise ApiError(400, "Invalid scheduled date or time")
        return local.replace(tzinfo=restaurant_zone()).astimezone(timezone.utc)

    minutes = 45 if order_type == "delivery" else 20
    return (now or utcnow()) + timedelta(minutes=minutes)


def order_status_display(status):
    return STATUS_DISPLAY.get(status, status)


# ---------- Checkout ----------

def _validate_stock(items, menus):
    needed = {}
    for item in items:
        needed[item["menu"]] = needed.get(item["menu"], 0) + item["quantity"]

    for menu_id, quantity in needed.items():
        menu_item = menus.get(menu_id)
        if not menu_item or not menu_item.get("isActive", True):
            name = menu_item["name"] if menu_item else "Menu item"
            raise ApiError(400, f'Menu item "{name}" is no longer available')
        stock = menu_item.get("quantity") or 0
        if stock < quantity:
            raise ApiError(400, f'Only {stock} of "{menu_item["name"]}" available in stock')
    return needed


def _order_items(items, menus):
    out = []
    for item in items:
        menu_item = menus[item["menu"]]
        images = menu_item.get("images") or []
        out.append({
            "menu": item["menu"],
            "menuName": menu_item["name"],
            "menuImage": images[0].get("url", "") if images else "",
            "quantity": item["quantity"],
            "size": item.get("size"),
            "price": item["priceAtTime"],
            "addons": item.get("addons") or [],
            "specialInstructions": item.get("specialInstructions") or "",
            "itemTotal": item["itemTotal"],
        })
    return out


def _compensate(db, order_id, reserved):
    if order_id is not None:
        try:
            db[ORDER].delete_one({"_id": order_id})
            logger.warning("Checkout rolled back: deleted order %s", order_id)
        except PyMongoError:
            logger.exception("Checkout rollback could not delete order %s", order_id)

    for menu_id, quantity in reversed(reserved):
        try:
            db[MENU].update_one(
                {"_id": menu_id},
                {"$inc": {"quantity": quantity, "totalSales": -quantity}},
            )
            logger.warning("Checkout rolled back: restored %d units of %s", quantity, menu_id)
        except PyMongoError:
            logger.exception("Checkout rollback could not restore stock of %s", menu_id)


def checkout(db: Database, user: dict, req: CheckoutRequest, now: Optional[datetime] = None) -> dict:
    """Turn the user's cart into an order, reserving stock and emptying the cart."""
    now = now or utcnow()
    cart = db[CART].find_one({"user": user["_id"]})
    items = (cart or {}).get("items") or []
    if not items:
        raise ApiError(400, "Cart is empty or not found")

    menu_ids = list({i["menu"] for i in items})
    menus = {m["_id"]: m for m in db[MENU].find({"_id": {"$in": menu_ids}})}
    needed = _validate_stock(items, menus)

    subtotal = cart_totals(items)["subtotal"]
    coupon = cart.get("coupon")
    discount = coupon_discount(coupon, subtotal)
    totals = checkout_totals(subtotal, discount, req.order_type)
    estimated = calculate_estimated_time(
        req.order_type, req.timing, req.scheduled_date, req.scheduled_time, now=now
    )

    customer = req.customer_info
    order = {
        "orderNumber": generate_order_number(db, now),
        "user": user["_id"],
        "customerInfo": {
            "name": customer.name,
            "email": str(customer.email).lower(),
            "phone": customer.phone or "",
        },
        "items": _order_items(items, menus),
        "orderType": req.order_type,
        "timing": req.timing,
        "scheduledDate": req.scheduled_date if req.timing == "scheduled" else None,
        "scheduledTime": req.scheduled_time if req.timing == "scheduled" else None,
        "deliveryAddress": (
            req.delivery_address.model_dump(by_alias=True)
            if req.order_type == "delivery" and req.delivery_address else None
        ),
        **totals,
        "couponCode": coupon["code"] if coupon and discount > 0 else None,
        "paymentMethod": req.payment_method,
        "paymentStatus": "pending",
        "status": "pending",
        "specialInstructions": req.special_instructions,
        "estimatedDeliveryTime": estimated,
        "createdAt": now,
        "updatedAt": now,
    }

    reserved, order_id = [], None
    try:
        for menu_id, quantity in needed.items():
            taken = db[MENU].find_one_and_update(
                {"_id": menu_id, "isActive": {"$ne": False}, "quantity": {"$gte": quantity}},
                {"$inc": {"quantity": -quantity, "totalSales": quantity}},
            )
            if taken is None:
                raise ApiError(400, f'Not enough stock left for "{menus[menu_id]["name"]}"')
            reserved.append((menu_id, quantity))

        order_id = db[ORDER].insert_one(order).inserted_id

        cleared = db[CART].find_one_and_update(
            {"_id": cart["_id"], "version": cart.get("version")},
            {"$set": {"items": [], "coupon": None, "updatedAt": now}, "$inc": {"version": 1}},
        )
        if cleared is None:
            raise ApiError(500, "Failed to create order", error="Cart was modified during checkout")
    except Exception:
        _compensate(db, order_id, reserved)
        raise

    logger.info("Order %s created for user %s", order["orderNumber"], user["_id"])
    return order


# ---------- Lookups ----------

def get_order_by_number(db: Database, order_number: str) -> dict:
    order = db[ORDER].find_one({"orderNumber": order_number})
    if not order:
        raise ApiError(404, "Order not found")
    return order


def list_orders(db: Database, filter_dict: dict, page: int = 1, limit: int = 10) -> dict:
    page, limit = max(page, 1), max(min(limit, 100), 1)
    total = db[ORDER].count_documents(filter_dict)
    cursor = (
        db[ORDER].find(filter_dict)
        .sort("createdAt", DESCENDING)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    return {
        "orders": [serialize_doc(o) for o in cursor],
        "pagination": {
            "currentPage": page,
            "totalPages": (total + limit - 1) // limit,
            "totalOrders": total,
            "limit": limit,
        },
    }


def track_order(order):
    return serialize_doc({
        "orderNumber": order["orderNumber"],
        "status": order["status"],
        "statusDisplay": order_status_display(order["status"]),
        "orderType": order.get("orderType"),
        "estimatedDeliveryTime": order.get("estimatedDeliveryTime"),
        "createdAt": order.get("createdAt"),
    })
