import logging
from contextlib import asynccontextmanager
from typing import Optional

from bson import ObjectId
from fastapi import Depends, FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from pymongo.database import Database
from pymongo.errors import PyMongoError

import catalog
import guests
from config import settings
from database import create_document, ensure_indexes, get_db
from errors import register_exception_handlers
from schemas import Category, Coupon, Menu
from shop_routes import cart_router, guest_cart_router, guest_router, ok, order_router

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger("restaurant")


@asynccontextmanager
async def lifespan(app: FastAPI):
    db = app.dependency_overrides.get(get_db, get_db)()
    try:
        ensure_indexes(db)
        guests.cleanup_old_guest_users(db)
    except PyMongoError:
        logger.exception("Startup maintenance on %s failed", db.name)
    yield


app = FastAPI(title="Restaurant Ordering API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(cart_router)
app.include_router(order_router)
app.include_router(guest_cart_router)
app.include_router(guest_router)

# ---------- Health ----------

@app.get("/")
def root():
    return {"message": "Restaurant Ordering API running"}

@app.get("/test")
def test_database(db: Database = Depends(get_db)):
    resp = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_name": "❌ Not Set",
        "collections": []
    }
    try:
        resp["database"] = "✅ Connected"
        resp["database_name"] = db.name
        resp["collections"] = db.list_collection_names()
    except Exception as e:
        resp["database"] = f"⚠️ {str(e)[:80]}"
    return resp

# ---------- Seed Data ----------

class SeedRequest(BaseModel):
    force: bool = False


def menu_document(menu: Menu) -> dict:
    doc = menu.model_dump(by_alias=True)
    for addon in doc["addons"]:
        addon["_id"] = ObjectId()
    return doc


SEED_CATEGORIES = [
    {"name": "Dosas", "slug": "dosas", "sortOrder": 1},
    {"name": "Uttapam", "slug": "uttapam", "sortOrder": 2},
    {"name": "Beverages", "slug": "beverages", "sortOrder": 3},
]

SEED_MENU = [
    {
        "name": "Masala Dosa",
        "description": "Crisp rice crepe filled with spiced potato masala.",
        "category": "dosas",
        "images": [{"url": "https://images.unsplash.com/photo-1668236543090-82eba5ee5976"}],
        "mrp": 12.0,
        "discountedPrice": 10.0,
        "quantity": 50,
        "sizes": [
            {"name": "Small", "price": 8.0},
            {"name": "Medium", "price": 10.0, "isDefault": True},
            {"name": "Large", "price": 13.0},
        ],
        "addons": [{"name": "Extra Chutney", "price": 1.0}, {"name": "Cheese", "price": 1.5}],
        "isVegetarian": True,
        "spicyLevel": "Mild",
        "tags": ["classic", "bestseller"],
        "featured": True,
    },
    {
        "name": "Mysore Masala Dosa",
        "description": "Dosa layered with fiery red chutney and potato masala.",
        "category": "dosas",
        "images": [{"url": "https://images.unsplash.com/photo-1630383249896-424e482df921"}],
        "mrp": 13.0,
        "discountedPrice": 13.0,
        "quantity": 40,
        "sizes": [{"name": "Medium", "price": 13.0, "isDefault": True}],
        "addons": [{"name": "Ghee Roast", "price": 2.0}],
        "isVegetarian": True,
        "spicyLevel": "Hot",
        "tags": ["spicy"],
        "featured": True,
    },
    {
        "name": "Onion Uttapam",
        "description": "Thick rice pancake topped with onion, chilli and coriander.",
        "category": "uttapam",
        "images": [{"url": "https://images.unsplash.com/photo-1694849789325-914b71ab4075"}],
        "mrp": 11.0,
        "discountedPrice": 11.0,
        "quantity": 30,
        "isVegetarian": True,
        "spicyLevel": "Medium",
        "tags": ["classic"],
    },
    {
        "name": "Filter Coffee",
        "description": "South Indian coffee brewed with chicory and frothed milk.",
        "category": "beverages",
        "images": [{"url": "https://images.unsplash.com/photo-1610632380989-680fe40816c6"}],
        "mrp": 4.0,
        "discountedPrice": 3.5,
        "quantity": 100,
        "sizes": [{"name": "Small"}, {"name": "Medium", "isDefault": True}, {"name": "Large"}],
        "isVegetarian": True,
        "tags": ["drink"],
    },
]

SEED_COUPONS = [
    {"code": "SAVE10", "type": "percentage", "value": 10, "minOrder": 100, "maxDiscount": 50},
    {"code": "FLAT20", "type": "fixed", "value": 20, "minOrder": 200, "maxDiscount": 20},
    {"code": "WELCOME15", "type": "percentage", "value": 15, "minOrder": 150, "maxDiscount": 75},
]


@app.post("/api/seed")
def seed(req: SeedRequest, db: Database = Depends(get_db)):
    # Only seed if empty or force=True
    if not req.force:
        if db["category"].estimated_document_count() > 0 and db["menu"].estimated_document_count() > 0:
            return {"status": "ok", "message": "Already seeded"}

    db["category"].delete_many({})
    db["menu"].delete_many({})
    db["coupon"].delete_many({})

    for c in SEED_CATEGORIES:
        create_document(db, "category", Category(**c))

    for m in SEED_MENU:
        create_document(db, "menu", menu_document(Menu(**m)))

    for c in SEED_COUPONS:
        create_document(db, "coupon", Coupon(**c))

    return {"status": "ok", "seeded": len(SEED_MENU)}

# ---------- Catalog ----------

@app.get("/api/shop/menus")
def list_menu_items(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    search: str = "",
    category: str = "",
    is_vegetarian: Optional[bool] = Query(None, alias="isVegetarian"),
    min_price: Optional[float] = Query(None, alias="minPrice", ge=0),
    max_price: Optional[float] = Query(None, alias="maxPrice", ge=0),
    spicy_level: str = Query("", alias="spicyLevel"),
    tags: str = "",
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder", pattern="^(asc|desc)$"),
    db: Database = Depends(get_db),
):
    filt = catalog.build_menu_filter(search, category, is_vegetarian, min_price, max_price, spicy_level, tags)
    result = catalog.list_menu_items(db, filt, sort_by, sort_order, page, limit)
    return ok("Menu items retrieved successfully", **result)

@app.get("/api/shop/menus/featured")
def featured_menu_items(limit: int = Query(8, ge=1, le=50), db: Database = Depends(get_db)):
    return ok("Featured menu items retrieved successfully", menuItems=catalog.featured_menu_items(db, limit))

@app.get("/api/shop/menus/search")
def search_menu_items(q: str = Query(""), db: Database = Depends(get_db)):
    return ok("Search results retrieved successfully", menuItems=catalog.search_menu_items(db, q))

@app.get("/api/shop/menus/{menu_id}")
def get_menu_item(menu_id: str, db: Database = Depends(get_db)):
    return ok("Menu item retrieved successfully", menuItem=catalog.get_menu_item(db, menu_id))

@app.get("/api/shop/categories")
def list_categories(db: Database = Depends(get_db)):
    return ok("Categories retrieved successfully", categories=catalog.list_categories(db))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
