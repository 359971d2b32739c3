"""
Business errors raised by the order engine.

Every error carries the HTTP status it maps to; the API layer renders
them through a single exception handler.
"""

from __future__ import annotations

from typing import Any


class OrderEngineError(Exception):
    status_code = 400
    code = "error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "detail": self.message, **self.details}


class ValidationError(OrderEngineError):
    code = "validation_error"


class InsufficientStock(OrderEngineError):
    code = "insufficient_stock"

    def __init__(self, message: str, conflicts: list[dict[str, Any]]) -> None:
        super().__init__(message, conflicts=conflicts)
        self.conflicts = conflicts


class InvalidCoupon(OrderEngineError):
    code = "invalid_coupon"


class ExpiredCoupon(OrderEngineError):
    code = "expired_coupon"


class NotFound(OrderEngineError):
    status_code = 404
    code = "not_found"


class InvalidTransition(OrderEngineError):
    """
    The order is not in a state that allows the operation (confirm or cancel
    outside PendingPayment, admin changes on a Cancelled order). Rendered as
    409 on every endpoint, cancel included.
    """

    status_code = 409
    code = "invalid_transition"


class InternalFailure(OrderEngineError):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str = "Internal error while processing the request") -> None:
        super().__init__(message)
