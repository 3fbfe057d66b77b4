from __future__ import annotations

import math
from typing import Iterable, Sequence

import numpy as np

from ...models import Coordinate

CANCEL_EPSILON = 1e-12


def wrap_lon(value: float) -> float:
    wrapped = ((value + 180.0) % 360.0) - 180.0
    if wrapped == -180.0:
        return 180.0
    return wrapped


def to_vector(coord: Sequence[float]) -> np.ndarray:
    lon = math.radians(coord[0])
    lat = math.radians(coord[1])
    cos_lat = math.cos(lat)
    return np.array([cos_lat * math.cos(lon), cos_lat * math.sin(lon), math.sin(lat)], dtype=np.float64)


def to_coord(vector: np.ndarray) -> Coordinate:
    lat = math.asin(float(np.clip(vector[2], -1.0, 1.0)))
    lon = math.atan2(float(vector[1]), float(vector[0]))
    return (math.degrees(lon), math.degrees(lat))


def to_vectors(coords: Sequence[Sequence[float]]) -> np.ndarray:
    arr = np.radians(np.asarray(coords, dtype=np.float64).reshape(-1, 2))
    cos_lat = np.cos(arr[:, 1])
    return np.column_stack([cos_lat * np.cos(arr[:, 0]), cos_lat * np.sin(arr[:, 0]), np.sin(arr[:, 1])])


def to_coords(vectors: np.ndarray) -> list[Coordinate]:
    lat = np.degrees(np.arcsin(np.clip(vectors[:, 2], -1.0, 1.0)))
    lon = np.degrees(np.arctan2(vectors[:, 1], vectors[:, 0]))
    return [(float(x), float(y)) for x, y in zip(lon, lat)]


def rotate(vector: np.ndarray, axis: np.ndarray, angle: float) -> np.ndarray:
    if angle == 0:
        return vector
    cos_a = math.cos(angle)
    sin_a = math.sin(angle)
    dot = vector @ axis
    cross = np.cross(axis, vector)
    return vector * cos_a + cross * sin_a + np.multiply.outer(dot * (1.0 - cos_a), axis)


def rotate_coord(coord: Coordinate, axis: np.ndarray, angle: float) -> Coordinate:
    if angle == 0:
        return coord
    return to_coord(rotate(to_vector(coord), axis, angle))


def rotate_coords(coords: Sequence[Coordinate], axis: np.ndarray, angle: float) -> list[Coordinate]:
    if angle == 0 or not coords:
        return list(coords)
    return to_coords(rotate(to_vectors(coords), axis, angle))


def spherical_centroid(points: Iterable[Coordinate]) -> Coordinate:
    points = list(points)
    if not points:
        return (0.0, 0.0)
    if len(points) == 1:
        return points[0]

    total = to_vectors(points).sum(axis=0)
    norm = float(np.linalg.norm(total))
    if norm < CANCEL_EPSILON:
        # antipodal points cancel out
        return points[0]
    return to_coord(total / norm)


def distance(a: Coordinate, b: Coordinate) -> float:
    # radians
    va = to_vector(a)
    vb = to_vector(b)
    return math.atan2(float(np.linalg.norm(np.cross(va, vb))), float(va @ vb))
