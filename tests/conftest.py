from dataclasses import dataclass
from uuid import UUID

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import riselocal_api.models  # noqa: F401
from riselocal_api.app import create_app
from riselocal_api.db.base import Base
from riselocal_api.db.session import get_session
from riselocal_api.models.deal import Deal, DealStatus
from riselocal_api.models.user import User
from riselocal_api.models.vendor import Vendor
from riselocal_api.observability.redemptions import get_redemption_store


@dataclass
class Marketplace:
    user_id: UUID
    other_user_id: UUID
    vendor_id: UUID
    other_vendor_id: UUID


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """File-backed database so independent sessions see each other's commits."""

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'redemptions.db'}",
        future=True,
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def app_with_db(session_factory):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()


async def _seed_marketplace(factory) -> Marketplace:
    async with factory() as session:
        member = User(email="member@example.com", display_name="Member")
        neighbour = User(email="neighbour@example.com")
        session.add_all([member, neighbour])
        await session.flush()
        bakery = Vendor(name="Corner Bakery", city="Asheville", owner_user_id=member.id)
        cafe = Vendor(name="River Cafe", city="Asheville")
        session.add_all([bakery, cafe])
        await session.commit()
        return Marketplace(
            user_id=member.id,
            other_user_id=neighbour.id,
            vendor_id=bakery.id,
            other_vendor_id=cafe.id,
        )


@pytest_asyncio.fixture
async def marketplace(session_factory) -> Marketplace:
    return await _seed_marketplace(session_factory)


@pytest_asyncio.fixture
async def file_marketplace(file_session_factory) -> Marketplace:
    return await _seed_marketplace(file_session_factory)


async def create_deal(factory, vendor_id: UUID, **overrides) -> Deal:
    fields = {
        "vendor_id": vendor_id,
        "title": "20% off pastries",
        "status": DealStatus.PUBLISHED,
        "is_active": True,
    }
    fields.update(overrides)
    async with factory() as session:
        deal = Deal(**fields)
        session.add(deal)
        await session.commit()
        return deal


@pytest.fixture
def deal_factory(session_factory):
    async def _create(vendor_id: UUID, **overrides) -> Deal:
        return await create_deal(session_factory, vendor_id, **overrides)

    return _create


@pytest.fixture
def file_deal_factory(file_session_factory):
    async def _create(vendor_id: UUID, **overrides) -> Deal:
        return await create_deal(file_session_factory, vendor_id, **overrides)

    return _create


@pytest.fixture
def redemption_observability():
    store = get_redemption_store()
    store.reset()
    try:
        yield store
    finally:
        store.reset()
