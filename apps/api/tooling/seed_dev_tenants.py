"""Seed development tenants at different lifecycle stages into the API database."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
import os
from typing import TypedDict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from bakeriq_api.core.settings import settings
from bakeriq_api.models import ActivityEventType, Lead, Quote, Tenant, TenantRoleEnum
from bakeriq_api.services.lifecycle import ActivityEventLog, seed_retention_templates


class SeedTenant(TypedDict):
    email: str
    business_name: str
    slug: str
    role: str
    age_days: int
    processor_connected: bool
    events: list[ActivityEventType]
    leads: int
    quotes: int


DEV_TENANTS: list[SeedTenant] = [
    {
        "email": os.getenv("DEV_SHORTCUT_NEW_BAKER_EMAIL", "new-baker@bakeriq.dev").lower(),
        "business_name": "Fresh Crumbs Bakery",
        "slug": "fresh-crumbs",
        "role": TenantRoleEnum.BAKER.value,
        "age_days": 1,
        "processor_connected": False,
        "events": [],
        "leads": 0,
        "quotes": 0,
    },
    {
        "email": os.getenv("DEV_SHORTCUT_CONFIGURED_BAKER_EMAIL", "configured-baker@bakeriq.dev").lower(),
        "business_name": "Rolling Pin Cakes",
        "slug": "rolling-pin",
        "role": TenantRoleEnum.BAKER.value,
        "age_days": 10,
        "processor_connected": True,
        "events": [ActivityEventType.QUICK_QUOTE_CONFIGURED, ActivityEventType.LOGIN],
        "leads": 0,
        "quotes": 0,
    },
    {
        "email": os.getenv("DEV_SHORTCUT_LEADS_BAKER_EMAIL", "leads-baker@bakeriq.dev").lower(),
        "business_name": "Sugar Bloom",
        "slug": "sugar-bloom",
        "role": TenantRoleEnum.BAKER.value,
        "age_days": 20,
        "processor_connected": True,
        "events": [ActivityEventType.QUICK_QUOTE_CONFIGURED, ActivityEventType.QUICK_QUOTE_LINK_SHARED],
        "leads": 3,
        "quotes": 0,
    },
    {
        "email": os.getenv("DEV_SHORTCUT_ADMIN_EMAIL", "admin@bakeriq.dev").lower(),
        "business_name": "BakerIQ Admin",
        "slug": "bakeriq-admin",
        "role": TenantRoleEnum.SUPER_ADMIN.value,
        "age_days": 90,
        "processor_connected": False,
        "events": [],
        "leads": 0,
        "quotes": 0,
    },
]


async def seed_tenants(session: AsyncSession) -> int:
    now = datetime.now(timezone.utc)
    events = ActivityEventLog(session)
    created = 0
    for profile in DEV_TENANTS:
        with session.no_autoflush:
            existing = await session.execute(select(Tenant).where(Tenant.email == profile["email"]))
        if existing.scalar_one_or_none() is not None:
            continue

        created_at = now - timedelta(days=profile["age_days"])
        tenant = Tenant(
            email=profile["email"],
            business_name=profile["business_name"],
            slug=profile["slug"],
            role=profile["role"],
            created_at=created_at,
            processor_connected_at=created_at + timedelta(hours=2) if profile["processor_connected"] else None,
            processor_charges_enabled=profile["processor_connected"],
            processor_payouts_enabled=profile["processor_connected"],
        )
        session.add(tenant)
        await session.flush()

        for event_type in profile["events"]:
            await events.record(tenant.id, event_type, {"source": "dev-seed"})
        for index in range(profile["leads"]):
            session.add(
                Lead(
                    tenant_id=tenant.id,
                    customer_name=f"Customer {index + 1}",
                    customer_email=f"customer{index + 1}@example.com",
                )
            )
        for _ in range(profile["quotes"]):
            session.add(Quote(tenant_id=tenant.id))
        created += 1

    await session.commit()
    return created


async def main() -> None:
    engine = create_async_engine(settings.database_url, future=True)
    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        async with session_factory() as session:
            tenants = await seed_tenants(session)
            templates = await seed_retention_templates(session)
            await session.commit()
        print(f"Development tenants ready ({tenants} created, {templates} retention templates seeded)")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
