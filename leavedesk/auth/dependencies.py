"""Auth dependencies — JWT validation, capability checks, cron caller."""

from __future__ import annotations

import hmac
import uuid
from typing import Callable

from fastapi import Depends, Request
from fastapi.exceptions import HTTPException
from jose import ExpiredSignatureError, JWTError

from leavedesk.auth.tokens import decode_access_token
from leavedesk.calendar.working_days import local_today
from leavedesk.common.constants import Capability
from leavedesk.common.exceptions import ForbiddenException
from leavedesk.config import settings
from leavedesk.dependencies import get_repository
from leavedesk.employees.models import Employee
from leavedesk.leave.repository import LeaveRepository


def _extract_bearer(request: Request) -> str:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header.")
    return auth_header[7:]


# ── Core dependency ─────────────────────────────────────────────────

async def get_current_user(
    request: Request,
    repository: LeaveRepository = Depends(get_repository),
) -> Employee:
    """Validate the JWT and return the authenticated, still-employed Employee."""
    token = _extract_bearer(request)

    try:
        payload = decode_access_token(token)
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired.")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token.")

    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type.")

    try:
        employee_id = uuid.UUID(payload["sub"])
    except (KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token subject.")

    employee = await repository.get_employee(employee_id)
    if employee is None or (
        employee.end_work_date is not None and employee.end_work_date <= local_today()
    ):
        raise HTTPException(status_code=401, detail="User account is inactive or not found.")

    # Role always comes from the employee record, never from the token
    request.state.user_role = employee.role
    return employee


# ── Capability-based dependency ─────────────────────────────────────

def require_capability(capability: Capability) -> Callable:
    """Return a FastAPI dependency that enforces a role capability."""

    async def _check(employee: Employee = Depends(get_current_user)) -> Employee:
        if not employee.role.can(capability):
            raise ForbiddenException(
                detail=f"Role '{employee.role.value}' lacks '{capability.value}'.",
            )
        return employee

    return _check


# ── Scheduled-job caller ────────────────────────────────────────────

async def require_cron_secret(request: Request) -> None:
    """Authenticate the scheduler by the shared CRON_SECRET bearer token."""
    token = _extract_bearer(request)
    if not hmac.compare_digest(token.encode(), settings.CRON_SECRET.encode()):
        raise HTTPException(status_code=401, detail="Invalid cron credentials.")
