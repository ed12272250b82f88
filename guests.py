import logging
import secrets
import time
from datetime import datetime, timedelta
from typing import List, Optional

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from config import settings
from database import utcnow
from errors import ApiError

logger = logging.getLogger("restaurant.guests")

USER = "user"
CART = "cart"
ORDER = "order"

SESSION_PREFIXES = ("guest_", "temp_")


def generate_session_id() -> str:
    return f"guest_{int(time.time() * 1000)}_{secrets.token_hex(16)}"


def validate_session_id(session_id):
    if not session_id or not session_id.startswith(SESSION_PREFIXES):
        raise ApiError(400, "Invalid session ID format")
    return session_id


def get_or_create_guest_user(db: Database, session_id: str, info: Optional[dict] = None) -> dict:
    """Guest user for a session, created on first use; ``info`` overwrites contact fields."""
    now = utcnow()
    stamp = int(now.timestamp() * 1000)
    info = {k: v for k, v in (info or {}).items() if v}

    on_insert = {
        "name": f"Guest_{stamp}",
        "email": f"guest_{stamp}@temp.com",
        "phoneNumber": "",
        "isActive": True,
        "isEmailVerified": False,
        "createdAt": now,
    }
    for key in info:
        on_insert.pop(key, None)

    update = {"$setOnInsert": on_insert, "$set": {**info, "updatedAt": now}}
    try:
        return _upsert_guest(db, session_id, update)
    except DuplicateKeyError:
        return _upsert_guest(db, session_id, update)


def _upsert_guest(db, session_id, update):
    return db[USER].find_one_and_update(
        {"role": "guest", "sessionId": session_id},
        update,
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )


def get_guest_user_by_session(db: Database, session_id: str) -> Optional[dict]:
    return db[USER].find_one({"role": "guest", "sessionId": session_id})


def get_guest_users_by_email(db: Database, email: str) -> List[dict]:
    return list(db[USER].find({"role": "guest", "email": email.lower()}))


def _with_orders(db, user_ids):
    if not user_ids:
        return set()
    return set(db[ORDER].distinct("user", {"user": {"$in": user_ids}}))


def delete_guest_user(db: Database, session_id: str) -> bool:
    """
    Drop a guest session: its cart always, the guest user only when it never
    placed an order, so order lookups by session and email keep working.
    Returns False when the session is unknown.
    """
    guest = get_guest_user_by_session(db, session_id)
    if not guest:
        return False

    db[CART].delete_one({"user": guest["_id"]})
    if guest["_id"] not in _with_orders(db, [guest["_id"]]):
        db[USER].delete_one({"_id": guest["_id"]})
    logger.info("Guest session %s destroyed", session_id)
    return True


def cleanup_old_guest_users(db: Database, max_age_days: Optional[int] = None, now: Optional[datetime] = None) -> dict:
    """Remove guests (and their carts) idle for longer than ``max_age_days``."""
    days = settings.guest_retention_days if max_age_days is None else max_age_days
    cutoff = (now or utcnow()) - timedelta(days=days)

    stale = [u["_id"] for u in db[USER].find({"role": "guest", "updatedAt": {"$lt": cutoff}}, {"_id": 1})]
    if not stale:
        return {"deletedUsers": 0, "deletedCarts": 0}

    carts = db[CART].delete_many({"user": {"$in": stale}}).deleted_count
    keep = _with_orders(db, stale)
    users = db[USER].delete_many({"_id": {"$in": [u for u in stale if u not in keep]}}).deleted_count

    logger.info("Cleaned up %d idle guest users and %d carts", users, carts)
    return {"deletedUsers": users, "deletedCarts": carts}
