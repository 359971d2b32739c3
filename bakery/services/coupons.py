"""
Coupon validation.

A coupon is usable when it exists, is active, and today's business-local
date is not after its expiration date. The comparison is done on calendar
days in BUSINESS_TIMEZONE: a coupon expiring today is still valid.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.orm import Session

from bakery.app.core.config import BUSINESS_TIMEZONE
from bakery.app.db.models.models_v1 import Coupon
from bakery.services.errors import ExpiredCoupon, InvalidCoupon, ValidationError

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class CouponApplication:
    discount: Decimal
    coupon: Coupon | None = None


def business_today(tz_name: str | None = None) -> date:
    return datetime.now(ZoneInfo(tz_name or BUSINESS_TIMEZONE)).date()


def normalize_code(code: str) -> str:
    return code.strip().upper()


def ensure_usable(coupon: Coupon | None, *, today: date | None = None) -> Coupon:
    if coupon is None or not coupon.active:
        raise InvalidCoupon("Coupon is invalid or inactive")

    if coupon.expires_on is not None:
        today = today or business_today()
        if today > coupon.expires_on:
            raise ExpiredCoupon("Coupon has expired", expired_on=coupon.expires_on.isoformat())

    return coupon


def compute_discount(subtotal: Decimal, percent: int) -> Decimal:
    return (Decimal(subtotal) * Decimal(percent) / Decimal(100)).quantize(CENTS, rounding=ROUND_HALF_UP)


def apply_coupon(
    db: Session,
    coupon_id: int | None,
    subtotal: Decimal,
    *,
    today: date | None = None,
) -> CouponApplication:
    if coupon_id is None:
        return CouponApplication(discount=Decimal("0.00"))

    coupon = ensure_usable(db.get(Coupon, coupon_id), today=today)
    return CouponApplication(
        discount=compute_discount(subtotal, coupon.discount_percent),
        coupon=coupon,
    )


def find_usable_coupon(db: Session, code: str, *, today: date | None = None) -> Coupon:
    """Checkout pre-check: look a coupon up by its code (case-insensitive)."""
    if not code or not code.strip():
        raise ValidationError("Coupon code is required")

    coupon = db.execute(
        select(Coupon).where(Coupon.code == normalize_code(code))
    ).scalar_one_or_none()
    return ensure_usable(coupon, today=today)
