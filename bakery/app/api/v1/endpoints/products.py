from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from bakery.app.api.deps import get_db
from bakery.app.schemas.availability import AvailabilityRead
from bakery.services.availability import RequestedItem, check_availability

router = APIRouter(prefix="/products")


class AvailabilityItem(BaseModel):
    product_id: int
    quantity: int = Field(ge=1, le=999_999)


class AvailabilityRequest(BaseModel):
    items: list[AvailabilityItem] = Field(min_length=1)


@router.post("/validate-availability", response_model=AvailabilityRead)
def validate_availability(payload: AvailabilityRequest, db: Session = Depends(get_db)):
    """
    Pre-checkout check (READ ONLY)
    - nothing is reserved, the answer can be stale by checkout time
    - payment confirmation re-checks against live stock
    """
    result = check_availability(db, [RequestedItem(i.product_id, i.quantity) for i in payload.items])
    return {
        "valid": result.ok,
        "conflicts": result.conflict_dicts(),
        "max_available_per_product": {str(pid): qty for pid, qty in result.max_available.items()},
    }
