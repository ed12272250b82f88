"""
Cart pricing rules

Pure functions over stored documents (plain dicts): size resolution, addon
validation, line matching and the money arithmetic for carts and orders.
"""
import logging
from typing import Iterable, List, Optional, Tuple

from config import settings
from errors import ApiError

logger = logging.getLogger("restaurant.pricing")


def money(value):
    return round(float(value), 2)


# ---------- Sizes ----------

def _normalize_sizes(sizes):
    # Older menu documents store sizes as bare strings.
    out = []
    for s in sizes or []:
        if isinstance(s, str):
            out.append({"name": s, "price": None, "isDefault": False})
        elif isinstance(s, dict) and s.get("name"):
            out.append({
                "name": s["name"],
                "price": s.get("price"),
                "isDefault": bool(s.get("isDefault")),
            })
    return out


def resolve_size(requested: str, menu_item: dict) -> Tuple[str, float]:
    """
    Pick the size actually sold for a request and its base price.

    An unknown size falls back to the size flagged ``isDefault``, else the
    first one. Items without sizes get a synthesized default priced from
    ``discountedPrice`` then ``mrp``.
    """
    sizes = _normalize_sizes(menu_item.get("sizes"))
    item_price = menu_item.get("discountedPrice") or menu_item.get("mrp") or 0

    if sizes:
        size = next((s for s in sizes if s["name"] == requested), None)
        if size is None:
            size = next((s for s in sizes if s["isDefault"]), sizes[0])
            logger.info(
                'Size "%s" not found for menu item %s, using "%s" instead',
                requested, menu_item.get("name"), size["name"],
            )
    else:
        size = {"name": requested, "price": item_price, "isDefault": True}

    base_price = size["price"] or item_price
    if not base_price or base_price <= 0:
        raise ApiError(400, "Invalid price for menu item")
    return size["name"], float(base_price)


# ---------- Addons ----------

def validate_addons(requested: Iterable[dict], menu_item: dict) -> List[dict]:
    known = {str(a["_id"]): a for a in menu_item.get("addons") or [] if a.get("_id") is not None}
    valid = []
    for sel in requested or []:
        addon = known.get(str(sel.get("id")))
        quantity = sel.get("quantity") or 0
        if addon is None or quantity <= 0:
            continue
        valid.append({"name": addon["name"], "price": float(addon["price"]), "quantity": int(quantity)})
    return valid


def addons_total(addons):
    return sum(a["price"] * a.get("quantity", 1) for a in addons or [])


def line_total(price_at_time: float, addons: Iterable[dict], quantity: int) -> float:
    return money((price_at_time + addons_total(addons)) * quantity)


def _addon_key(addon):
    return (addon["name"], addon["price"], addon.get("quantity", 1))


def addons_equal(first, second):
    if len(first) != len(second):
        return False
    return sorted(map(_addon_key, first)) == sorted(map(_addon_key, second))


def find_matching_line(
    items: List[dict],
    menu_id,
    size: str,
    special_instructions: Optional[str],
    addons: List[dict],
) -> Optional[dict]:
    wanted = special_instructions or ""
    for item in items:
        if (
            str(item["menu"]) == str(menu_id)
            and item.get("size") == size
            and (item.get("specialInstructions") or "") == wanted
            and addons_equal(item.get("addons") or [], addons)
        ):
            return item
    return None


# ---------- Totals ----------

def coupon_discount(coupon: Optional[dict], subtotal: float) -> float:
    if not coupon or not coupon.get("isActive", True) or subtotal <= 0:
        return 0.0
    if subtotal < (coupon.get("minOrder") or 0):
        return 0.0

    if coupon["type"] == "percentage":
        discount = subtotal * coupon["value"] / 100
    else:
        discount = coupon["value"]

    cap = coupon.get("maxDiscount")
    if cap is not None:
        discount = min(discount, cap)
    return money(max(0.0, min(discount, subtotal)))


def cart_totals(items: Iterable[dict], coupon: Optional[dict] = None) -> dict:
    items = list(items)
    subtotal = money(sum(i.get("itemTotal") or 0 for i in items))
    discount = coupon_discount(coupon, subtotal)
    return {
        "subtotal": subtotal,
        "discount": discount,
        "total": money(max(0.0, subtotal - discount)),
        "totalItems": sum(i["quantity"] for i in items),
    }


def checkout_totals(subtotal: float, discount: float, order_type: str) -> dict:
    if order_type == "delivery" and subtotal < settings.free_delivery_threshold:
        delivery_fee = settings.delivery_fee
    else:
        delivery_fee = 0.0
    tax = money(subtotal * settings.tax_rate)
    total = max(0.0, subtotal + delivery_fee + tax - discount)
    return {
        "subtotal": money(subtotal),
        "deliveryFee": money(delivery_fee),
        "tax": tax,
        "discount": money(discount),
        "totalPrice": money(total),
    }
