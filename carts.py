"""
Cart service

One implementation shared by registered and guest customers; callers resolve
the owning user id first. Every write is a compare-and-set on the cart's
``version`` field, so a concurrent writer can never be overwritten: the loser
reloads the cart and re-runs the same decision.
"""
import logging
import time
from typing import Callable

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from config import settings
from database import oid, serialize_doc, utcnow
from errors import ApiError, CartConflictError
from pricing import (
    cart_totals,
    find_matching_line,
    line_total,
    resolve_size,
    validate_addons,
)
from schemas import AddCartItemRequest

logger = logging.getLogger("restaurant.cart")

CART = "cart"
MENU = "menu"

MENU_SUMMARY = {
    "name": 1,
    "images": 1,
    "discountedPrice": 1,
    "mrp": 1,
    "quantity": 1,
    "isActive": 1,
}


# ---------- Loading ----------

def get_or_create_cart(db: Database, user_id: ObjectId) -> dict:
    now = utcnow()
    try:
        return _upsert_cart(db, user_id, now)
    except DuplicateKeyError:
        # lost the insert race; the winner's cart is there now
        return db[CART].find_one({"user": user_id})


def _upsert_cart(db, user_id, now):
    return db[CART].find_one_and_update(
        {"user": user_id},
        {"$setOnInsert": {
            "items": [],
            "coupon": None,
            "version": 0,
            "isActive": True,
            "createdAt": now,
            "updatedAt": now,
        }},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )


def find_cart(db, user_id):
    cart = db[CART].find_one({"user": user_id})
    if not cart:
        raise ApiError(404, "Cart not found")
    return cart


def load_menu_item(db: Database, menu_id) -> dict:
    menu_item = db[MENU].find_one({"_id": oid(menu_id)})
    if not menu_item or not menu_item.get("isActive", True):
        raise ApiError(404, "Menu item not found or inactive")
    return menu_item


def check_stock(menu_item, quantity):
    if quantity > settings.max_line_quantity:
        raise ApiError(400, f"Quantity cannot exceed {settings.max_line_quantity}")
    stock = menu_item.get("quantity") or 0
    if quantity > stock:
        raise ApiError(400, f"Only {stock} items available in stock")


def _find_line(cart, item_id):
    for item in cart.get("items") or []:
        if str(item["_id"]) == item_id:
            return item
    raise ApiError(404, "Item not found in cart")


# ---------- Versioned write ----------

def _apply(
    db: Database,
    user_id: ObjectId,
    decide: Callable[[dict], dict],
    load: Callable[[Database, ObjectId], dict] = find_cart,
) -> dict:
    """
    Load the cart, ask ``decide`` for the fields to set, and write them only
    if nobody else wrote the cart in between. ``decide`` may raise ApiError to
    reject the change; nothing is written in that case.
    """
    attempts = settings.cart_retry_attempts
    for attempt in range(1, attempts + 1):
        cart = load(db, user_id)
        changes = decide(cart)
        changes["updatedAt"] = utcnow()
        updated = db[CART].find_one_and_update(
            {"_id": cart["_id"], "version": cart.get("version")},
            {"$set": changes, "$inc": {"version": 1}},
            return_document=ReturnDocument.AFTER,
        )
        if updated is not None:
            return updated
        if attempt < attempts:
            logger.warning(
                "Version conflict on cart %s (attempt %d/%d), retrying",
                cart["_id"], attempt, attempts,
            )
            time.sleep(settings.cart_retry_delay_ms / 1000)

    logger.error("Giving up on cart for user %s after %d attempts", user_id, attempts)
    raise CartConflictError(attempts)


# ---------- Operations ----------

def add_item(db: Database, user_id: ObjectId, req: AddCartItemRequest) -> dict:
    menu_item = load_menu_item(db, req.menu_item_id)
    check_stock(menu_item, req.quantity)

    size, base_price = resolve_size(req.size, menu_item)
    addons = validate_addons([a.model_dump() for a in req.addons], menu_item)
    instructions = req.special_instructions or ""

    def decide(cart: dict) -> dict:
        items = cart.get("items") or []
        line = find_matching_line(items, menu_item["_id"], size, instructions, addons)
        if line is not None:
            new_quantity = line["quantity"] + req.quantity
            stock = menu_item.get("quantity") or 0
            if new_quantity > stock:
                raise ApiError(400, f"Cannot add more items. Maximum available: {stock}")
            check_stock(menu_item, new_quantity)
            line["quantity"] = new_quantity
            line["priceAtTime"] = base_price
            line["itemTotal"] = line_total(base_price, line.get("addons") or [], new_quantity)
        else:
            items.append({
                "_id": ObjectId(),
                "menu": menu_item["_id"],
                "quantity": req.quantity,
                "size": size,
                "addons": addons,
                "specialInstructions": instructions,
                "priceAtTime": base_price,
                "itemTotal": line_total(base_price, addons, req.quantity),
            })
        return {"items": items}

    return _apply(db, user_id, decide, load=get_or_create_cart)


def update_item(db: Database, user_id: ObjectId, item_id: str, quantity: int) -> dict:
    def decide(cart: dict) -> dict:
        line = _find_line(cart, item_id)
        items = cart["items"]
        if quantity <= 0:
            return {"items": [i for i in items if i is not line]}

        menu_item = db[MENU].find_one({"_id": line["menu"]})
        if not menu_item or not menu_item.get("isActive", True):
            raise ApiError(400, "Menu item is no longer available")
        check_stock(menu_item, quantity)

        line["quantity"] = quantity
        line["itemTotal"] = line_total(line["priceAtTime"], line.get("addons") or [], quantity)
        return {"items": items}

    return _apply(db, user_id, decide)


def remove_item(db: Database, user_id: ObjectId, item_id: str) -> dict:
    def decide(cart: dict) -> dict:
        line = _find_line(cart, item_id)
        return {"items": [i for i in cart["items"] if i is not line]}

    return _apply(db, user_id, decide)


def clear_cart(db: Database, user_id: ObjectId) -> dict:
    return _apply(db, user_id, lambda cart: {"items": [], "coupon": None})


def _load_non_empty(db, user_id):
    cart = db[CART].find_one({"user": user_id})
    if not cart or not cart.get("items"):
        raise ApiError(400, "Cart is empty")
    return cart


def apply_coupon(db: Database, user_id: ObjectId, code: str) -> dict:
    code = code.strip().upper()

    def decide(cart: dict) -> dict:
        coupon = db["coupon"].find_one({"code": code, "isActive": True})
        if not coupon:
            raise ApiError(400, "Invalid coupon code")

        items = available_lines(cart["items"], _menus_for(db, cart["items"]))
        subtotal = cart_totals(items)["subtotal"]
        min_order = coupon.get("minOrder") or 0
        if subtotal < min_order:
            raise ApiError(400, f"Minimum order amount of ${min_order:.2f} required for this coupon")

        return {"coupon": {
            "code": coupon["code"],
            "type": coupon["type"],
            "value": coupon["value"],
            "minOrder": min_order,
            "maxDiscount": coupon.get("maxDiscount"),
            "isActive": True,
            "appliedAt": utcnow(),
        }}

    return _apply(db, user_id, decide, load=_load_non_empty)


def remove_coupon(db: Database, user_id: ObjectId) -> dict:
    return _apply(db, user_id, lambda cart: {"coupon": None})


# ---------- Presentation ----------

def line_is_available(menu_item):
    return bool(menu_item and menu_item.get("isActive", True) and (menu_item.get("quantity") or 0) > 0)


def _menus_for(db, items):
    menu_ids = list({i["menu"] for i in items})
    if not menu_ids:
        return {}
    return {m["_id"]: m for m in db[MENU].find({"_id": {"$in": menu_ids}}, MENU_SUMMARY)}


def available_lines(items, menus):
    return [i for i in items if line_is_available(menus.get(i["menu"]))]


def cart_view(db: Database, cart: dict) -> dict:
    """Cart with populated menu summaries. Totals cover only lines that can still be ordered."""
    items = cart.get("items") or []
    menus = _menus_for(db, items)

    view_items = []
    for item in items:
        menu_item = menus.get(item["menu"])
        entry = dict(item)
        entry["menu"] = menu_item or {"_id": item["menu"]}
        entry["isAvailable"] = line_is_available(menu_item)
        view_items.append(entry)

    view = {k: v for k, v in cart.items() if k != "items"}
    view["items"] = view_items
    view["totals"] = cart_totals(available_lines(items, menus), cart.get("coupon"))
    return serialize_doc(view)
