# hospital_billing/api/deps.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Generator, Optional

from fastapi import Depends, Header, HTTPException
from jose import jwt, JWTError
from sqlalchemy.orm import Session

from hospital_billing.core.config import settings
from hospital_billing.db.session import SessionLocal


@dataclass(frozen=True)
class ActingStaff:
    id: int
    email: Optional[str] = None
    role: str = "staff"


# =========================================================
# DB
# =========================================================
def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# =========================================================
# AUTH HELPERS
# =========================================================
def _extract_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


def _decode_token(raw_token: str) -> dict:
    try:
        return jwt.decode(raw_token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")


def current_staff(authorization: Optional[str] = Header(default=None)) -> ActingStaff:
    token = _extract_bearer(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Access token required")

    payload = _decode_token(token)
    staff_id = payload.get("staff_id") or payload.get("sub")
    try:
        staff_id = int(staff_id)
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")

    return ActingStaff(
        id=staff_id,
        email=payload.get("email"),
        role=str(payload.get("role") or "staff").lower(),
    )


def require_billing(staff: ActingStaff = Depends(current_staff)) -> ActingStaff:
    if staff.role not in {r.lower() for r in settings.BILLING_ROLES}:
        raise HTTPException(status_code=403, detail="Billing access required")
    return staff
