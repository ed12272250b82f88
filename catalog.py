import re
from typing import Optional

from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database

from database import get_documents, oid, serialize_doc
from errors import ApiError

MENU = "menu"
CATEGORY = "category"

SORT_FIELDS = {
    "price": "discountedPrice",
    "rating": "averageRating",
    "popularity": "totalSales",
    "name": "name",
    "createdAt": "createdAt",
}


def availability_status(item):
    if not item.get("isActive", True):
        return "inactive"
    if not item.get("isAvailable", True):
        return "unavailable"
    if (item.get("quantity") or 0) <= 0:
        return "out_of_stock"
    return "available"


def discount_percentage(item):
    mrp = item.get("mrp") or 0
    if mrp <= 0:
        return 0
    return round((mrp - (item.get("discountedPrice") or 0)) / mrp * 100)


def present(item: dict) -> dict:
    out = serialize_doc(item)
    out["discountPercentage"] = discount_percentage(item)
    out["availabilityStatus"] = availability_status(item)
    return out


def build_menu_filter(
    search: str = "",
    category: str = "",
    is_vegetarian: Optional[bool] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    spicy_level: str = "",
    tags: str = "",
) -> dict:
    filt: dict = {"isActive": True}
    if search:
        pattern = re.escape(search)
        filt["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
            {"tags": {"$regex": pattern, "$options": "i"}},
        ]
    if category:
        filt["category"] = category
    if is_vegetarian is not None:
        filt["isVegetarian"] = is_vegetarian
    if min_price is not None or max_price is not None:
        price = {}
        if min_price is not None:
            price["$gte"] = min_price
        if max_price is not None:
            price["$lte"] = max_price
        filt["discountedPrice"] = price
    if spicy_level:
        filt["spicyLevel"] = spicy_level
    if tags:
        filt["tags"] = {"$in": [t.strip() for t in tags.split(",") if t.strip()]}
    return filt


def list_menu_items(
    db: Database,
    filt: dict,
    sort_by: str = "createdAt",
    sort_order: str = "desc",
    page: int = 1,
    limit: int = 12,
) -> dict:
    page, limit = max(page, 1), max(min(limit, 100), 1)
    direction = ASCENDING if sort_order == "asc" else DESCENDING
    sort_field = SORT_FIELDS.get(sort_by, "createdAt")

    total = db[MENU].count_documents(filt)
    cursor = (
        db[MENU].find(filt)
        .sort([(sort_field, direction), ("_id", direction)])
        .skip((page - 1) * limit)
        .limit(limit)
    )
    return {
        "menuItems": [present(m) for m in cursor],
        "pagination": {
            "currentPage": page,
            "totalPages": (total + limit - 1) // limit,
            "totalItems": total,
            "limit": limit,
        },
    }


def featured_menu_items(db: Database, limit: int = 8) -> list:
    cursor = (
        db[MENU].find({"featured": True, "isActive": True})
        .sort([("sortOrder", ASCENDING), ("averageRating", DESCENDING)])
        .limit(limit)
    )
    return [present(m) for m in cursor]


def search_menu_items(db: Database, q: str, limit: int = 10) -> list:
    if not q:
        return []
    cursor = db[MENU].find(build_menu_filter(search=q)).limit(limit)
    return [present(m) for m in cursor]


def get_menu_item(db: Database, menu_id: str) -> dict:
    item = db[MENU].find_one({"_id": oid(menu_id), "isActive": True})
    if not item:
        raise ApiError(404, "Menu item not found")
    return present(item)


def list_categories(db: Database) -> list:
    return get_documents(db, CATEGORY, {"isActive": True}, sort=[("sortOrder", ASCENDING), ("name", ASCENDING)])
