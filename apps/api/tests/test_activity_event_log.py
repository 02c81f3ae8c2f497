from datetime import timedelta
from uuid import uuid4

import pytest

from bakeriq_api.core.timeutils import utcnow
from bakeriq_api.models import ActivityEvent, ActivityEventType
from bakeriq_api.services.lifecycle import ActivityEventLog


@pytest.mark.asyncio
async def test_record_and_query_events(session_factory, make_tenant) -> None:
    reference = utcnow()
    async with session_factory() as session:
        tenant = await make_tenant(session, age=timedelta(days=3), reference=reference)
        log = ActivityEventLog(session)

        login = await log.record(tenant.id, ActivityEventType.LOGIN)
        shared = await log.record(tenant.id, ActivityEventType.QUICK_QUOTE_LINK_SHARED, {"channel": "instagram"})
        await session.commit()

        assert login is not None and shared is not None
        since = reference - timedelta(hours=1)
        assert await log.count_since(tenant.id, since) == 2
        assert await log.count_since(tenant.id, since, []) == 2
        assert await log.count_since(tenant.id, since, [ActivityEventType.LOGIN]) == 1
        assert await log.has_event_since(tenant.id, ActivityEventType.QUICK_QUOTE_LINK_SHARED, since)
        assert not await log.has_any_event(tenant.id, [ActivityEventType.ORDER_SCHEDULED])

        last = await log.last_of_type(tenant.id, ActivityEventType.QUICK_QUOTE_LINK_SHARED)
        assert last is not None
        payload, occurred_at = last
        assert payload == {"channel": "instagram"}
        assert occurred_at.tzinfo is not None

        assert await log.last_activity_at(tenant.id) is not None


@pytest.mark.asyncio
async def test_events_since_returns_newest_first(session_factory, make_tenant) -> None:
    reference = utcnow()
    async with session_factory() as session:
        tenant = await make_tenant(session, age=timedelta(days=10), reference=reference)
        for days_ago, event_type in [(5, ActivityEventType.LOGIN), (1, ActivityEventType.QUOTE_SENT)]:
            session.add(
                ActivityEvent(
                    tenant_id=tenant.id,
                    event_type=event_type,
                    created_at=reference - timedelta(days=days_ago),
                )
            )
        await session.commit()

        events = await ActivityEventLog(session).events_since(tenant.id, reference - timedelta(days=7))

    assert [event.event_type for event in events] == [ActivityEventType.QUOTE_SENT, ActivityEventType.LOGIN]


@pytest.mark.asyncio
async def test_record_never_raises_and_keeps_session_usable(session_factory, make_tenant) -> None:
    reference = utcnow()
    async with session_factory() as session:
        tenant = await make_tenant(session, age=timedelta(days=1), reference=reference)
        log = ActivityEventLog(session)

        # Not a JSON-serialisable payload, so the insert fails inside the savepoint.
        failed = await log.record(tenant.id, ActivityEventType.LOGIN, {"bad": object()})
        assert failed is None

        recorded = await log.record(tenant.id, ActivityEventType.LOGIN)
        await session.commit()

        assert recorded is not None
        assert await log.count_since(tenant.id, reference - timedelta(hours=1)) == 1


@pytest.mark.asyncio
async def test_unknown_tenant_has_no_activity(session_factory) -> None:
    async with session_factory() as session:
        log = ActivityEventLog(session)

        assert await log.last_activity_at(uuid4()) is None
        assert await log.last_of_type(uuid4(), ActivityEventType.LOGIN) is None
