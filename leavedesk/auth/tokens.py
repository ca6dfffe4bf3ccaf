"""JWT helpers for bearer tokens issued to LeaveDesk users."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from jose import jwt

from leavedesk.config import settings


def create_access_token(
    employee_id: uuid.UUID, *, expires_delta: Optional[timedelta] = None,
) -> str:
    expires = expires_delta or timedelta(hours=settings.JWT_EXPIRY_HOURS)
    payload = {
        "sub": str(employee_id),
        "type": "access",
        "exp": datetime.now(timezone.utc) + expires,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and verify a token; raises jose's JWTError on any failure."""
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
