from datetime import datetime, timezone

import pytest

from spot_tracker.clock import as_utc
from spot_tracker.errors import NotFoundError
from spot_tracker.geo import Coordinate
from spot_tracker.services.spots import SpotRegistry

from conftest import START, WORKER_ID, north_of

pytestmark = pytest.mark.anyio

BASE = Coordinate(6.9271, 79.8612)


async def test_find_nearest_returns_closest_within_radius(session, policy, clock, make_spot):
    far = await make_spot(north_of(BASE.latitude, 18), BASE.longitude)
    near = await make_spot(north_of(BASE.latitude, 5), BASE.longitude)
    await make_spot(north_of(BASE.latitude, 40), BASE.longitude)

    registry = SpotRegistry(session, policy, clock)
    match = await registry.find_nearest(BASE)

    assert match is not None
    assert match.spot.id == near.id
    assert match.spot.id != far.id
    assert match.distance_m == pytest.approx(5, abs=0.01)


async def test_find_nearest_none_outside_radius(session, policy, clock, make_spot):
    await make_spot(north_of(BASE.latitude, 25), BASE.longitude)

    registry = SpotRegistry(session, policy, clock)

    assert await registry.find_nearest(BASE) is None
    assert await registry.find_nearest(BASE, radius_m=30) is not None


async def test_find_nearest_tie_goes_to_lowest_id(session, policy, clock, make_spot):
    first = await make_spot(north_of(BASE.latitude, 10), BASE.longitude)
    await make_spot(north_of(BASE.latitude, 10), BASE.longitude)

    match = await SpotRegistry(session, policy, clock).find_nearest(BASE)

    assert match.spot.id == first.id


async def test_create_derives_district(session, policy, clock):
    registry = SpotRegistry(session, policy, clock)

    spot = await registry.create(BASE, "Main St, Colombo District, Western Province")
    await session.commit()

    assert spot.id is not None
    assert spot.district == "Colombo"
    assert spot.last_claimed_at is None


async def test_record_claim_overwrites_address_but_keeps_district(session, policy, clock, make_spot):
    created = await make_spot(
        BASE.latitude, BASE.longitude, address_text="Old label", district="Colombo"
    )
    registry = SpotRegistry(session, policy, clock)
    spot = await registry.get(created.id)

    await registry.record_claim(spot, WORKER_ID, "New label, Gampaha District, WP", "Gampaha")
    await session.commit()

    assert spot.address_text == "New label, Gampaha District, WP"
    assert spot.district == "Colombo"
    assert spot.last_claimed_by == WORKER_ID
    assert as_utc(spot.last_claimed_at) == START


async def test_record_claim_without_address_keeps_label(session, policy, clock, make_spot):
    created = await make_spot(BASE.latitude, BASE.longitude, address_text="Kept label")
    registry = SpotRegistry(session, policy, clock)
    spot = await registry.get(created.id)

    await registry.record_claim(spot, WORKER_ID, None, None)

    assert spot.address_text == "Kept label"
    assert spot.district is None


async def test_record_claim_fills_missing_district(session, policy, clock, make_spot):
    created = await make_spot(BASE.latitude, BASE.longitude)
    registry = SpotRegistry(session, policy, clock)
    spot = await registry.get(created.id)

    await registry.record_claim(spot, WORKER_ID, "X, Kandy District, CP", "Kandy")

    assert spot.district == "Kandy"


async def test_get_missing_spot(session, policy, clock):
    with pytest.raises(NotFoundError):
        await SpotRegistry(session, policy, clock).get(999)


async def test_is_in_cooldown_uses_registry_clock(session, policy, clock, make_spot):
    created = await make_spot(BASE.latitude, BASE.longitude, last_claimed_at=START)
    registry = SpotRegistry(session, policy, clock)
    spot = await registry.get(created.id)

    state = registry.is_in_cooldown(spot)
    assert state.in_cooldown is True
    assert state.available_at == datetime(2025, 4, 30, 9, 30, tzinfo=timezone.utc)

    assert registry.is_in_cooldown(spot, cooldown_months=0).in_cooldown is False
