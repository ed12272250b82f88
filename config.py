from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parent
load_dotenv(dotenv_path=ROOT_DIR / ".env")


def _get_env(*keys: str, default: Optional[str] = None) -> Optional[str]:
    for k in keys:
        v = os.getenv(k)
        if v is not None and str(v).strip() != "":
            return v.strip()
    return default


def _get_int(*keys: str, default: int) -> int:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return int(v)


def _get_float(*keys: str, default: float) -> float:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return float(v)


def _get_list(*keys: str, default: str) -> List[str]:
    v = _get_env(*keys, default=default) or default
    return [x.strip() for x in v.split(",") if x.strip()]


@dataclass(frozen=True)
class Settings:
    database_url: str
    database_name: str
    port: int
    log_level: str
    order_prefix: str
    tax_rate: float
    delivery_fee: float
    free_delivery_threshold: float
    cart_retry_attempts: int
    cart_retry_delay_ms: int
    max_line_quantity: int
    guest_retention_days: int
    timezone: str
    admin_email: str
    smtp_host: Optional[str]
    smtp_port: int
    smtp_user: Optional[str]
    smtp_password: Optional[str]
    mail_from: str
    cors_origins: List[str] = field(default_factory=lambda: ["*"])


settings = Settings(
    database_url=_get_env("DATABASE_URL", "MONGODB_URI", default="mongodb://localhost:27017") or "",
    database_name=_get_env("DATABASE_NAME", "MONGODB_DB", default="restaurant") or "restaurant",
    port=_get_int("PORT", default=8000),
    log_level=(_get_env("LOG_LEVEL", default="INFO") or "INFO").upper(),
    order_prefix=_get_env("ORDER_PREFIX", default="PEP") or "PEP",
    tax_rate=_get_float("TAX_RATE", default=0.08),
    delivery_fee=_get_float("DELIVERY_FEE", default=5.99),
    free_delivery_threshold=_get_float("FREE_DELIVERY_THRESHOLD", default=50.0),
    cart_retry_attempts=max(1, _get_int("CART_RETRY_ATTEMPTS", default=3)),
    cart_retry_delay_ms=_get_int("CART_RETRY_DELAY_MS", default=50),
    max_line_quantity=_get_int("MAX_LINE_QUANTITY", default=10),
    guest_retention_days=_get_int("GUEST_RETENTION_DAYS", default=7),
    timezone=_get_env("RESTAURANT_TIMEZONE", default="UTC") or "UTC",
    admin_email=_get_env("ADMIN_EMAIL", default="orders@example.com") or "",
    smtp_host=_get_env("SMTP_HOST", "EMAIL_HOST"),
    smtp_port=_get_int("SMTP_PORT", "EMAIL_PORT", default=587),
    smtp_user=_get_env("SMTP_USER", "EMAIL_USER"),
    smtp_password=_get_env("SMTP_PASSWORD", "EMAIL_PASSWORD"),
    mail_from=_get_env("MAIL_FROM", "EMAIL_FROM", default="no-reply@example.com") or "",
    cors_origins=_get_list("CORS_ORIGINS", default="*"),
)
