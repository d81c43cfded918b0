import math

import pytest

from app.shared.geo import (
    coerce_point, distance_km, distance_m, haversine_km, is_valid_coordinate, within_threshold
)


def test_lilongwe_city_centre_points_are_about_half_a_kilometre_apart():
    km = haversine_km(-13.9600, 33.7700, -13.9626, 33.7741)
    assert km == pytest.approx(0.5, abs=0.05)


def test_same_point_is_zero_and_distance_is_symmetric():
    assert haversine_km(-15.78, 35.0, -15.78, 35.0) == 0.0
    a = (-13.9626, 33.7741)
    b = (-15.7861, 35.0058)
    assert distance_km(a, b) == pytest.approx(distance_km(b, a))


def test_lilongwe_to_blantyre_is_a_long_haul():
    km = distance_km((-13.9626, 33.7741), (-15.7861, 35.0058))
    assert 230 < km < 250


@pytest.mark.parametrize("lat,lng", [
    (None, 33.7),
    (-13.9, None),
    (float("nan"), 33.7),
    (-13.9, float("inf")),
    (91.0, 0.0),
    (0.0, -180.5),
    ("north", 33.7),
    (True, 33.7),
])
def test_invalid_coordinates_are_rejected(lat, lng):
    assert is_valid_coordinate(lat, lng) is False
    assert distance_km((lat, lng), (-13.9, 33.7)) is None


def test_coerce_point_accepts_tuples_mappings_and_objects():
    class Fix:
        lat = "-13.96"
        lng = 33.77

    assert coerce_point((-13.96, 33.77)) == (-13.96, 33.77)
    assert coerce_point({"lat": -13.96, "lng": 33.77}) == (-13.96, 33.77)
    assert coerce_point(Fix()) == (-13.96, 33.77)
    assert coerce_point((1.0, 2.0, 3.0)) is None


def test_within_threshold_in_meters():
    here = (-13.9600, 33.7700)
    near = (-13.9604, 33.7700)  # ~44 m north-south
    assert within_threshold(here, near, 100.0)
    assert not within_threshold(here, near, 10.0)
    assert not within_threshold(here, (math.nan, 0.0), 100.0)
    assert distance_m(here, near) == pytest.approx(44.5, abs=1.0)
