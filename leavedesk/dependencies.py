"""Shared FastAPI dependencies."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.database import get_db
from leavedesk.leave.repository import LeaveRepository, SqlAlchemyLeaveRepository
from leavedesk.leave.service import LeaveService


async def get_repository(db: AsyncSession = Depends(get_db)) -> LeaveRepository:
    """Request-scoped repository over the request's session."""
    return SqlAlchemyLeaveRepository(db)


async def get_leave_service(
    repository: LeaveRepository = Depends(get_repository),
) -> LeaveService:
    return LeaveService(repository)
