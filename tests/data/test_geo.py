"""Tests for distance and bearing helpers."""

import pytest

from taxidispatch.data.geo import bearing, haversine_distance


def test_same_point_is_zero():
    assert haversine_distance(19.4326, -99.1332, 19.4326, -99.1332) == 0


def test_one_degree_of_latitude():
    assert haversine_distance(0, 0, 1, 0) == pytest.approx(111195, rel=1e-3)


def test_distance_is_symmetric():
    there = haversine_distance(19.4326, -99.1332, 19.4361, -99.0719)
    back = haversine_distance(19.4361, -99.0719, 19.4326, -99.1332)

    assert there == pytest.approx(back)
    assert 6000 < there < 7000


@pytest.mark.parametrize("dest,expected", [
    ((1, 0), 0),
    ((0, 1), 90),
    ((-1, 0), 180),
    ((0, -1), 270),
])
def test_bearing_cardinal_directions(dest, expected):
    assert bearing(0, 0, *dest) == pytest.approx(expected)
