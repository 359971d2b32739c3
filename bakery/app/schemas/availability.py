from pydantic import BaseModel


class ConflictRead(BaseModel):
    product_id: int
    name: str | None = None
    requested: int
    available: int


class AvailabilityRead(BaseModel):
    valid: bool
    conflicts: list[ConflictRead]
    max_available_per_product: dict[str, int]  # keyed by product id
