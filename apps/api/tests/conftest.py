import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

from bakeriq_api.app import create_app  # noqa: E402
from bakeriq_api.db.base import Base  # noqa: E402
from bakeriq_api.db.session import get_session  # noqa: E402
from bakeriq_api.models import Tenant, TenantRoleEnum  # noqa: E402
from bakeriq_api.services.notifications import InMemoryEmailBackend  # noqa: E402

BASE_URL = "https://bakeriq.app"
NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def email_backend() -> InMemoryEmailBackend:
    return InMemoryEmailBackend()


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)

    # pysqlite defers BEGIN on its own, which breaks SAVEPOINT handling.
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
def make_tenant():
    """Build and persist a tenant; keyword overrides map to model columns."""

    async def _make(session: AsyncSession, *, age: timedelta, reference: datetime = NOW, **overrides) -> Tenant:
        suffix = uuid4().hex[:8]
        connected = overrides.pop("connected", False)
        tenant = Tenant(
            email=overrides.pop("email", f"baker-{suffix}@example.com"),
            business_name=overrides.pop("business_name", "Sweet Tooth Bakery"),
            slug=overrides.pop("slug", f"baker-{suffix}"),
            role=overrides.pop("role", TenantRoleEnum.BAKER.value),
            created_at=reference - age,
            processor_connected_at=(reference - age + timedelta(hours=1)) if connected else None,
            processor_charges_enabled=connected,
            processor_payouts_enabled=connected,
            **overrides,
        )
        session.add(tenant)
        await session.commit()
        return tenant

    return _make


@pytest_asyncio.fixture
async def app_with_db(session_factory, email_backend):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.state.email_backend = email_backend

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()
