"""Shared API dependencies and the response envelope."""

from typing import Any

from fastapi import Depends
from sqlmodel import Session

from backend.database import get_session
from backend.services.commission_engine import FeeSchedule
from backend.services.fee_schedules import resolve_schedule
from backend.services.repository import SqlRepository


def get_repository(session: Session = Depends(get_session)) -> SqlRepository:
    return SqlRepository(session)


def get_fee_schedule(
    broker: str | None = None,
    repo: SqlRepository = Depends(get_repository),
) -> FeeSchedule:
    """Fee schedule for the `broker` query parameter, or the active one."""
    return resolve_schedule(repo, broker)


def ok(data: Any = None, message: str | None = None) -> dict[str, Any]:
    """Success envelope shared by every endpoint."""
    body: dict[str, Any] = {"success": True, "data": data}
    if message:
        body["message"] = message
    return body
