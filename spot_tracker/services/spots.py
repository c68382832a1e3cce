import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..clock import Clock, add_calendar_months, as_utc, utcnow
from ..config import IntakePolicy
from ..errors import NotFoundError
from ..geo import Coordinate, distance_meters, extract_district
from ..models import Spot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpotMatch:
    spot: Spot
    distance_m: float


@dataclass(frozen=True)
class CooldownState:
    in_cooldown: bool
    available_at: datetime | None


def spot_location(spot: Spot) -> Coordinate:
    return Coordinate(latitude=spot.latitude, longitude=spot.longitude)


def cooldown_state(spot: Spot, cooldown_months: int, now: datetime) -> CooldownState:
    """A never-claimed spot is always available."""
    last = as_utc(spot.last_claimed_at)
    if last is None:
        return CooldownState(in_cooldown=False, available_at=None)
    available_at = add_calendar_months(last, cooldown_months)
    return CooldownState(in_cooldown=as_utc(now) < available_at, available_at=available_at)


def next_available_at(spot: Spot, cooldown_months: int) -> datetime | None:
    last = as_utc(spot.last_claimed_at)
    return add_calendar_months(last, cooldown_months) if last is not None else None


class SpotRegistry:
    """Creation, proximity lookup and claim-state updates for spots."""

    def __init__(
        self,
        session: AsyncSession,
        policy: IntakePolicy,
        clock: Clock = utcnow,
    ) -> None:
        self.session = session
        self.policy = policy
        self.clock = clock

    async def get(self, spot_id: int, *, for_update: bool = False) -> Spot:
        stmt = select(Spot).where(Spot.id == spot_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        spot: Spot | None = result.scalar_one_or_none()
        if spot is None:
            raise NotFoundError("Spot not found", spot_id=spot_id)
        return spot

    async def find_nearest(
        self, point: Coordinate, radius_m: float | None = None
    ) -> SpotMatch | None:
        """
        Return the closest spot within `radius_m`, or None.

        Linear scan over every spot; equal distances fall back to the lowest id.
        """
        radius = self.policy.match_radius_m if radius_m is None else radius_m
        result = await self.session.execute(select(Spot).order_by(Spot.id))

        nearest: SpotMatch | None = None
        for spot in result.scalars():
            d = distance_meters(point, spot_location(spot))
            if d <= radius and (nearest is None or d < nearest.distance_m):
                nearest = SpotMatch(spot=spot, distance_m=d)
        return nearest

    async def create(self, point: Coordinate, address_text: str | None = None) -> Spot:
        spot = Spot(
            latitude=point.latitude,
            longitude=point.longitude,
            address_text=address_text or None,
            district=extract_district(address_text),
            created_at=self.clock(),
        )
        self.session.add(spot)
        await self.session.flush()
        logger.info("Created spot %s at %.6f,%.6f", spot.id, point.latitude, point.longitude)
        return spot

    async def record_claim(
        self,
        spot: Spot,
        user_id: int,
        address_text: str | None = None,
        district: str | None = None,
        claimed_at: datetime | None = None,
    ) -> Spot:
        """
        Mark the spot as claimed by `user_id`.

        A non-empty `address_text` replaces the stored label; `district` is only
        written while the spot has none.
        """
        spot.last_claimed_at = claimed_at or self.clock()
        spot.last_claimed_by = user_id
        if address_text:
            spot.address_text = address_text
        if spot.district is None and district:
            spot.district = district
        await self.session.flush()
        logger.info("Spot %s claimed by user %s", spot.id, user_id)
        return spot

    def is_in_cooldown(self, spot: Spot, cooldown_months: int | None = None) -> CooldownState:
        months = self.policy.cooldown_months if cooldown_months is None else cooldown_months
        return cooldown_state(spot, months, self.clock())
