from __future__ import annotations

import math

import numpy as np
import pytest

from plate_kinematics_engine.modules.kinematics.spherical import (
    distance,
    rotate,
    rotate_coord,
    rotate_coords,
    spherical_centroid,
    to_coord,
    to_vector,
    wrap_lon,
)

Z_AXIS = np.array([0.0, 0.0, 1.0])


def test_rotation_round_trip_returns_original_point():
    axis = to_vector((40.0, 30.0))
    start = (12.5, -33.0)
    angle = math.radians(47.0)

    there = rotate_coord(start, axis, angle)
    back = rotate_coord(there, axis, -angle)

    assert back[0] == pytest.approx(start[0], abs=1e-9)
    assert back[1] == pytest.approx(start[1], abs=1e-9)


def test_rotation_about_north_pole_shifts_longitude():
    lon, lat = rotate_coord((10.0, 0.0), Z_AXIS, math.radians(60.0))
    assert lon == pytest.approx(70.0, abs=1e-9)
    assert lat == pytest.approx(0.0, abs=1e-9)


def test_zero_angle_is_exact_identity():
    coord = (123.456789, -45.678)
    assert rotate_coord(coord, Z_AXIS, 0.0) == coord
    vec = to_vector(coord)
    assert rotate(vec, Z_AXIS, 0.0) is vec


def test_stacked_rotation_matches_single_rotations():
    axis = to_vector((-20.0, 60.0))
    coords = [(0.0, 0.0), (45.0, 10.0), (-170.0, -60.0)]
    angle = math.radians(33.0)

    stacked = rotate_coords(coords, axis, angle)
    single = [rotate_coord(coord, axis, angle) for coord in coords]

    for got, expected in zip(stacked, single):
        assert got[0] == pytest.approx(expected[0], abs=1e-9)
        assert got[1] == pytest.approx(expected[1], abs=1e-9)


def test_vector_conversion_round_trip():
    coord = (-75.0, 42.0)
    lon, lat = to_coord(to_vector(coord))
    assert lon == pytest.approx(-75.0)
    assert lat == pytest.approx(42.0)


def test_wrap_lon():
    assert wrap_lon(190.0) == pytest.approx(-170.0)
    assert wrap_lon(-190.0) == pytest.approx(170.0)
    assert wrap_lon(-180.0) == 180.0
    assert wrap_lon(45.0) == 45.0


def test_spherical_centroid_edge_cases():
    assert spherical_centroid([]) == (0.0, 0.0)
    assert spherical_centroid([(15.0, 20.0)]) == (15.0, 20.0)
    # antipodal points cancel, the first point is returned
    assert spherical_centroid([(0.0, 0.0), (180.0, 0.0)]) == (0.0, 0.0)
    assert spherical_centroid([(10.0, 20.0), (-170.0, -20.0)]) == (10.0, 20.0)


def test_spherical_centroid_of_symmetric_square():
    lon, lat = spherical_centroid([(-5.0, -5.0), (5.0, -5.0), (5.0, 5.0), (-5.0, 5.0)])
    assert lon == pytest.approx(0.0, abs=1e-9)
    assert lat == pytest.approx(0.0, abs=1e-9)


def test_distance_is_in_radians():
    assert distance((0.0, 0.0), (90.0, 0.0)) == pytest.approx(math.pi / 2)
    assert distance((10.0, 10.0), (10.0, 10.0)) == pytest.approx(0.0, abs=1e-7)
