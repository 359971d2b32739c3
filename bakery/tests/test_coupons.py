from datetime import date, datetime, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from bakery.app.db.models.models_v1 import Coupon
from bakery.services.coupons import (
    apply_coupon,
    business_today,
    compute_discount,
    find_usable_coupon,
)
from bakery.services.errors import ExpiredCoupon, InvalidCoupon, ValidationError

TODAY = date(2026, 3, 15)


def _coupon(db, **kw):
    values = {"code": "SPRING", "discount_percent": 15, "active": True}
    values.update(kw)
    coupon = Coupon(**values)
    db.add(coupon)
    db.commit()
    return coupon


def test_no_coupon_means_no_discount(db_session):
    result = apply_coupon(db_session, None, Decimal("200.00"), today=TODAY)

    assert result.discount == Decimal("0")
    assert result.coupon is None


def test_discount_is_percentage_of_subtotal(db_session, catalog):
    result = apply_coupon(db_session, catalog.coupon_10, Decimal("200.00"), today=TODAY)

    assert result.discount == Decimal("20.00")
    assert result.coupon.code == "PROMO10"


def test_coupon_expiring_today_is_still_valid(db_session):
    coupon = _coupon(db_session, expires_on=TODAY)

    assert apply_coupon(db_session, coupon.id, Decimal("100"), today=TODAY).discount == Decimal("15.00")


def test_coupon_expired_yesterday_is_rejected(db_session):
    coupon = _coupon(db_session, expires_on=TODAY - timedelta(days=1))

    with pytest.raises(ExpiredCoupon):
        apply_coupon(db_session, coupon.id, Decimal("100"), today=TODAY)


@pytest.mark.parametrize("active, exists", [(False, True), (True, False)])
def test_inactive_or_unknown_coupon_is_invalid(db_session, active, exists):
    coupon_id = _coupon(db_session, active=active).id if exists else 424242

    with pytest.raises(InvalidCoupon):
        apply_coupon(db_session, coupon_id, Decimal("100"), today=TODAY)


def test_discount_rounds_half_up_to_cents():
    assert compute_discount(Decimal("33.35"), 10) == Decimal("3.34")
    assert compute_discount(Decimal("0"), 50) == Decimal("0.00")
    assert compute_discount(Decimal("80"), 100) == Decimal("80.00")


def test_find_by_code_is_case_insensitive(db_session):
    _coupon(db_session, code="SPRING")

    assert find_usable_coupon(db_session, "  spring ", today=TODAY).code == "SPRING"


def test_find_by_code_applies_the_same_rules(db_session):
    _coupon(db_session, code="OLD", expires_on=TODAY - timedelta(days=30))

    with pytest.raises(ExpiredCoupon):
        find_usable_coupon(db_session, "old", today=TODAY)
    with pytest.raises(InvalidCoupon):
        find_usable_coupon(db_session, "NOPE", today=TODAY)
    with pytest.raises(ValidationError):
        find_usable_coupon(db_session, "   ", today=TODAY)


def test_business_today_uses_the_named_zone():
    # Costa Rica is UTC-6 all year: the local date lags UTC around midnight
    local = datetime.now(ZoneInfo("America/Costa_Rica")).date()
    assert business_today("America/Costa_Rica") in {local, local + timedelta(days=1)}
    assert business_today("Pacific/Kiritimati") >= business_today("Pacific/Pago_Pago")
