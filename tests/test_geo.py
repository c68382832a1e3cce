import math
from datetime import datetime, timezone

import pytest

from spot_tracker.clock import add_calendar_months, as_utc
from spot_tracker.errors import ValidationError
from spot_tracker.geo import Coordinate, distance_meters, extract_district, maps_link

from conftest import north_of

COLOMBO = Coordinate(6.9271, 79.8612)


def test_distance_is_symmetric_and_zero_on_self():
    other = Coordinate(7.2906, 80.6337)

    assert distance_meters(COLOMBO, other) == distance_meters(other, COLOMBO)
    assert distance_meters(COLOMBO, COLOMBO) == 0


def test_one_degree_of_latitude():
    a = Coordinate(10.0, 45.0)
    b = Coordinate(11.0, 45.0)

    assert distance_meters(a, b) == pytest.approx(111_195, abs=50)


def test_small_offsets_are_measured_in_meters():
    fifteen = Coordinate(north_of(COLOMBO.latitude, 15), COLOMBO.longitude)
    twenty_five = Coordinate(north_of(COLOMBO.latitude, 25), COLOMBO.longitude)

    assert distance_meters(COLOMBO, fifteen) == pytest.approx(15, abs=0.01)
    assert distance_meters(COLOMBO, twenty_five) == pytest.approx(25, abs=0.01)


def test_antipodal_points_do_not_overflow_asin():
    d = distance_meters(Coordinate(0.0, 0.0), Coordinate(0.0, 180.0))

    assert math.isfinite(d)
    assert d == pytest.approx(math.pi * 6_371_000)


def test_parse_accepts_numeric_strings():
    point = Coordinate.parse("6.92715", "79.86125")

    assert point == Coordinate(6.92715, 79.86125)


@pytest.mark.parametrize(
    "latitude, longitude",
    [
        ("abc", "79.8"),
        (None, 79.8),
        (float("nan"), 79.8),
        (6.9, float("inf")),
        (90.5, 79.8),
        (6.9, -180.01),
    ],
)
def test_parse_rejects_bad_coordinates(latitude, longitude):
    with pytest.raises(ValidationError):
        Coordinate.parse(latitude, longitude)


def test_extract_district():
    address = "12 Galle Road, Colombo 03, Colombo District, Western Province, Sri Lanka"

    assert extract_district(address) == "Colombo"
    assert extract_district("Temple Rd, Kandy district , Central Province") == "Kandy"
    assert extract_district("12 Galle Road, Colombo 03") is None
    # Needs a trailing comma after "District".
    assert extract_district("Main St, Galle District") is None
    assert extract_district(None) is None
    assert extract_district("") is None


def test_maps_link():
    assert maps_link(6.9271, 79.8612) == "https://www.google.com/maps?q=6.9271,79.8612"


def test_add_calendar_months_clamps_day():
    jan31 = datetime(2025, 1, 31, 8, 0, tzinfo=timezone.utc)

    assert add_calendar_months(jan31, 1).date().isoformat() == "2025-02-28"
    assert add_calendar_months(jan31, 3).date().isoformat() == "2025-04-30"
    assert add_calendar_months(jan31.replace(year=2024), 1).date().isoformat() == "2024-02-29"
    assert add_calendar_months(jan31, 3).time() == jan31.time()


def test_as_utc_attaches_utc_to_naive_values():
    naive = datetime(2025, 1, 31, 8, 0)

    assert as_utc(naive) == datetime(2025, 1, 31, 8, 0, tzinfo=timezone.utc)
    assert as_utc(None) is None
