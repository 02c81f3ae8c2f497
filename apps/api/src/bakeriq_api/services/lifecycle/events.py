"""Append-only activity event log used by lifecycle segmentation."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Mapping, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from bakeriq_api.core.timeutils import ensure_utc
from bakeriq_api.models.activity import ActivityEvent, ActivityEventType


class ActivityEventLog:
    """Record and query behavioural events for a single tenant at a time."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(
        self,
        tenant_id: UUID,
        event_type: ActivityEventType,
        payload: Mapping[str, Any] | None = None,
    ) -> ActivityEvent | None:
        """Persist an event without ever raising to the caller.

        The insert runs inside a savepoint so a failed write leaves the
        caller's transaction usable. The caller owns the commit.
        """

        try:
            async with self._session.begin_nested():
                event = ActivityEvent(
                    tenant_id=tenant_id,
                    event_type=event_type,
                    payload=dict(payload) if payload is not None else None,
                )
                self._session.add(event)
                await self._session.flush()
        except Exception as exc:
            logger.warning(
                "Failed to record activity event",
                tenant_id=str(tenant_id),
                event_type=getattr(event_type, "value", event_type),
                error=str(exc),
            )
            return None
        return event

    async def count_since(
        self,
        tenant_id: UUID,
        since: datetime,
        event_types: Iterable[ActivityEventType] | None = None,
    ) -> int:
        stmt = select(func.count(ActivityEvent.id)).where(
            ActivityEvent.tenant_id == tenant_id,
            ActivityEvent.created_at >= since,
        )
        types = list(event_types or [])
        if types:
            stmt = stmt.where(ActivityEvent.event_type.in_(types))
        result = await self._session.execute(stmt)
        return int(result.scalar_one() or 0)

    async def has_event_since(
        self,
        tenant_id: UUID,
        event_type: ActivityEventType,
        since: datetime,
    ) -> bool:
        stmt = (
            select(ActivityEvent.id)
            .where(
                ActivityEvent.tenant_id == tenant_id,
                ActivityEvent.event_type == event_type,
                ActivityEvent.created_at >= since,
            )
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.first() is not None

    async def has_any_event(self, tenant_id: UUID, event_types: Iterable[ActivityEventType]) -> bool:
        types = list(event_types)
        if not types:
            return False
        stmt = (
            select(ActivityEvent.id)
            .where(ActivityEvent.tenant_id == tenant_id, ActivityEvent.event_type.in_(types))
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.first() is not None

    async def last_of_type(
        self,
        tenant_id: UUID,
        event_type: ActivityEventType,
    ) -> tuple[dict[str, Any] | None, datetime] | None:
        stmt = (
            select(ActivityEvent.payload, ActivityEvent.created_at)
            .where(ActivityEvent.tenant_id == tenant_id, ActivityEvent.event_type == event_type)
            .order_by(ActivityEvent.created_at.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        row = result.first()
        if row is None:
            return None
        payload, created_at = row
        return payload, ensure_utc(created_at)

    async def events_since(self, tenant_id: UUID, since: datetime, *, limit: int = 100) -> Sequence[ActivityEvent]:
        stmt = (
            select(ActivityEvent)
            .where(ActivityEvent.tenant_id == tenant_id, ActivityEvent.created_at >= since)
            .order_by(ActivityEvent.created_at.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def last_activity_at(self, tenant_id: UUID) -> datetime | None:
        result = await self._session.execute(
            select(func.max(ActivityEvent.created_at)).where(ActivityEvent.tenant_id == tenant_id)
        )
        value = result.scalar_one_or_none()
        return ensure_utc(value) if value is not None else None


__all__ = ["ActivityEventLog"]
