from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from bakery.app.api.deps import get_db
from bakery.services.coupons import find_usable_coupon

router = APIRouter(prefix="/coupons")


class CouponCheck(BaseModel):
    code: str = Field(min_length=1, max_length=64)


@router.post("/validate")
def validate_coupon(payload: CouponCheck, db: Session = Depends(get_db)):
    coupon = find_usable_coupon(db, payload.code)
    return {
        "message": "Coupon applied",
        "id": coupon.id,
        "code": coupon.code,
        "discount_percent": coupon.discount_percent,
    }
