"""Shared fixtures: fake HTTP transport, fake clock and an in-memory database."""
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from anchor_api.models import Base
from anchor_api.services import MetadataService


class FakeClock:
    """Clock whose time only moves when a test says so."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 11, 20, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def make_service():
    """Build a MetadataService whose requests go to ``handler``."""
    clients: list[httpx.AsyncClient] = []

    def factory(handler, **kwargs) -> MetadataService:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return MetadataService(client=client, **kwargs)

    yield factory
    for client in clients:
        await client.aclose()


@pytest.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    await engine.dispose()
