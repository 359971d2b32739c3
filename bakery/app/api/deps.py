from __future__ import annotations

from typing import Generator

from fastapi import Header, HTTPException

from bakery.app.db.session import SessionLocal


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Identity is verified upstream (auth gateway); these only read what it forwarded.
def get_customer_id(customer_id: str | None = Header(default=None, alias="X-Customer-Id")) -> str:
    if not customer_id or not customer_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-Customer-Id header")
    return customer_id.strip()


def require_admin(role: str | None = Header(default=None, alias="X-User-Role")) -> str:
    if (role or "").strip().lower() != "admin":
        raise HTTPException(status_code=403, detail="Administrator role required")
    return "admin"
