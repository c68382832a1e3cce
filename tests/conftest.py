from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from spot_tracker import models  # noqa: F401
from spot_tracker.config import IntakePolicy
from spot_tracker.database import Base, make_sessionmaker
from spot_tracker.models import Spot, User, UserRole
from spot_tracker.services.intake import IntakeEngine

START = datetime(2025, 1, 31, 9, 30, tzinfo=timezone.utc)

ADMIN_ID = 1
WORKER_ID = 2
OTHER_WORKER_ID = 3
INACTIVE_WORKER_ID = 4

# 1 m of latitude in degrees on a 6,371 km sphere.
LAT_DEGREES_PER_M = 1 / 111_194.93


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(START)


@pytest.fixture
def policy() -> IntakePolicy:
    return IntakePolicy()


@pytest.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session_factory(db_engine):
    factory = make_sessionmaker(db_engine)
    async with factory() as session:
        session.add_all(
            [
                User(id=ADMIN_ID, name="System Admin", email="admin@example.com", role=UserRole.ADMIN),
                User(id=WORKER_ID, name="Nimal Perera", email="nimal@example.com", role=UserRole.USER),
                User(id=OTHER_WORKER_ID, name="Kasun Silva", email="kasun@example.com", role=UserRole.USER),
                User(
                    id=INACTIVE_WORKER_ID,
                    name="Old Worker",
                    email="old@example.com",
                    role=UserRole.USER,
                    is_active=False,
                ),
            ]
        )
        await session.commit()
    return factory


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def intake(session_factory, policy, clock) -> IntakeEngine:
    return IntakeEngine(session_factory, policy, clock=clock)


@pytest.fixture
def make_spot(session_factory):
    async def _make(
        latitude: float,
        longitude: float,
        *,
        spot_id: int | None = None,
        last_claimed_at: datetime | None = None,
        last_claimed_by: int | None = None,
        address_text: str | None = None,
        district: str | None = None,
    ) -> Spot:
        async with session_factory() as session:
            spot = Spot(
                id=spot_id,
                latitude=latitude,
                longitude=longitude,
                last_claimed_at=last_claimed_at,
                last_claimed_by=last_claimed_by,
                address_text=address_text,
                district=district,
            )
            session.add(spot)
            await session.commit()
            return spot

    return _make


def north_of(latitude: float, meters: float) -> float:
    return latitude + meters * LAT_DEGREES_PER_M
