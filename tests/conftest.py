import dataclasses
import uuid

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

import carts
from database import get_db
from main import app, menu_document
from schemas import Coupon, Menu


@pytest.fixture
def db():
    return mongomock.MongoClient()[f"test_{uuid.uuid4().hex}"]


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def no_retry_delay(monkeypatch):
    monkeypatch.setattr(carts, "settings", dataclasses.replace(carts.settings, cart_retry_delay_ms=0))


def insert_menu(db, **fields) -> dict:
    data = {
        "name": "Masala Dosa",
        "description": "Rice crepe with potato masala",
        "category": "dosas",
        "images": [{"url": "https://img.example.com/dosa.jpg"}],
        "mrp": 8.0,
        "discountedPrice": 7.0,
        "quantity": 20,
    }
    data.update(fields)
    doc = menu_document(Menu(**data))
    doc["_id"] = db["menu"].insert_one(doc).inserted_id
    return doc


@pytest.fixture
def dosa(db):
    return insert_menu(
        db,
        sizes=[
            {"name": "Small", "price": 5.0},
            {"name": "Medium", "price": 7.0, "isDefault": True},
            {"name": "Large", "price": 9.0},
        ],
        addons=[{"name": "Cheese", "price": 1.5}, {"name": "Chutney", "price": 0.5}],
    )


@pytest.fixture
def thali(db):
    return insert_menu(db, name="Veg Thali", category="meals", mrp=15.0, discountedPrice=12.0, quantity=50)


def addon_id(menu: dict, name: str) -> str:
    return str(next(a["_id"] for a in menu["addons"] if a["name"] == name))


@pytest.fixture
def user(db):
    doc = {"name": "Asha Rao", "email": "asha@example.com", "role": "user", "isActive": True}
    doc["_id"] = db["user"].insert_one(doc).inserted_id
    return doc


@pytest.fixture
def user_id(user) -> ObjectId:
    return user["_id"]


@pytest.fixture
def auth(user):
    return {"X-User-Id": str(user["_id"])}


@pytest.fixture
def coupons(db):
    for c in [
        {"code": "SAVE10", "type": "percentage", "value": 10, "minOrder": 100, "maxDiscount": 50},
        {"code": "FLAT20", "type": "fixed", "value": 20, "minOrder": 200, "maxDiscount": 20},
    ]:
        db["coupon"].insert_one(Coupon(**c).model_dump(by_alias=True))


def line(menu: dict, size: str = "Medium", quantity: int = 1, price: float = 7.0) -> dict:
    return {
        "_id": ObjectId(),
        "menu": menu["_id"],
        "quantity": quantity,
        "size": size,
        "addons": [],
        "specialInstructions": "",
        "priceAtTime": price,
        "itemTotal": price * quantity,
    }
