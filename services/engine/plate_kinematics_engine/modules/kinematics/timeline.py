from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from ...logging import get_logger
from ...models import EulerPole, Feature, MotionKeyframe, PaintStroke, Polygon, TectonicPlate
from .spherical import rotate_coord, rotate_coords, to_vector

logger = get_logger(__name__)

KEYFRAME_TIME_TOLERANCE = 0.001


@dataclass(frozen=True)
class ActiveMotion:
    keyframe: MotionKeyframe | None
    elapsed: float
    axis: np.ndarray | None
    angle: float

    @property
    def has_rotation(self) -> bool:
        return self.axis is not None and self.angle != 0


@dataclass(frozen=True)
class KeyframeInterval:
    keyframe: MotionKeyframe
    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start


def sorted_keyframes(keyframes: Sequence[MotionKeyframe]) -> list[MotionKeyframe]:
    return sorted(keyframes, key=lambda kf: kf.time)


def pole_rotation(pole: EulerPole, duration: float) -> tuple[np.ndarray | None, float]:
    if pole.rate == 0 or duration == 0:
        return None, 0.0
    return to_vector(pole.position), math.radians(pole.rate * duration)


def active_keyframe(keyframes: Sequence[MotionKeyframe], time_ma: float) -> MotionKeyframe | None:
    active: MotionKeyframe | None = None
    for keyframe in keyframes:
        if keyframe.time <= time_ma and (active is None or keyframe.time >= active.time):
            active = keyframe
    return active


def resolve_motion(keyframes: Sequence[MotionKeyframe], time_ma: float) -> ActiveMotion:
    keyframe = active_keyframe(keyframes, time_ma)
    if keyframe is None:
        return ActiveMotion(keyframe=None, elapsed=0.0, axis=None, angle=0.0)

    elapsed = time_ma - keyframe.time
    axis, angle = pole_rotation(keyframe.eulerPole, elapsed)
    return ActiveMotion(keyframe=keyframe, elapsed=elapsed, axis=axis, angle=angle)


def insert_keyframe(
    keyframes: Sequence[MotionKeyframe],
    keyframe: MotionKeyframe,
    tolerance: float = KEYFRAME_TIME_TOLERANCE,
) -> list[MotionKeyframe]:
    kept = [kf for kf in keyframes if abs(kf.time - keyframe.time) >= tolerance]
    kept.append(keyframe)
    return sorted_keyframes(kept)


def keyframe_intervals(keyframes: Sequence[MotionKeyframe], start: float, end: float) -> list[KeyframeInterval]:
    """Split ``[start, end)`` into pieces, each governed by a single keyframe.

    Time before the first keyframe is not covered: no motion law applies there.
    """
    if end <= start:
        return []

    ordered = sorted_keyframes(keyframes)
    intervals: list[KeyframeInterval] = []
    for idx, keyframe in enumerate(ordered):
        if keyframe.time >= end:
            break
        next_time = ordered[idx + 1].time if idx + 1 < len(ordered) else math.inf
        interval_start = max(start, keyframe.time)
        interval_end = min(end, next_time)
        if interval_end > interval_start:
            intervals.append(KeyframeInterval(keyframe=keyframe, start=interval_start, end=interval_end))
    return intervals


def _rotate_polygons(polygons: Sequence[Polygon], axis: np.ndarray | None, angle: float) -> list[Polygon]:
    if axis is None:
        return list(polygons)
    return [poly.model_copy(update={"points": rotate_coords(poly.points, axis, angle)}) for poly in polygons]


def _rotate_features(features: Sequence[Feature], axis: np.ndarray | None, angle: float) -> list[Feature]:
    if axis is None:
        return list(features)
    return [feat.model_copy(update={"position": rotate_coord(feat.position, axis, angle)}) for feat in features]


def _rotate_strokes(strokes: Sequence[PaintStroke], axis: np.ndarray | None, angle: float) -> list[PaintStroke]:
    if axis is None:
        return list(strokes)
    return [stroke.model_copy(update={"points": rotate_coords(stroke.points, axis, angle)}) for stroke in strokes]


def recalculate_motion_history(plate: TectonicPlate) -> TectonicPlate:
    keyframes = sorted_keyframes(plate.motionKeyframes)
    rebuilt: list[MotionKeyframe] = []

    for keyframe in keyframes:
        if not rebuilt:
            rebuilt.append(
                keyframe.model_copy(
                    update={
                        "snapshotPolygons": list(plate.initialPolygons),
                        "snapshotFeatures": list(plate.initialFeatures),
                    }
                )
            )
            continue

        previous = rebuilt[-1]
        delta = keyframe.time - previous.time
        if delta < 0:
            logger.warning("negative keyframe delta on plate %s at %.3f Ma", plate.id, keyframe.time)
            continue

        axis, angle = pole_rotation(previous.eulerPole, delta)
        rebuilt.append(
            keyframe.model_copy(
                update={
                    "snapshotPolygons": _rotate_polygons(previous.snapshotPolygons, axis, angle),
                    "snapshotFeatures": _rotate_features(previous.snapshotFeatures, axis, angle),
                    "snapshotPaintStrokes": _rotate_strokes(previous.snapshotPaintStrokes, axis, angle),
                }
            )
        )

    return plate.model_copy(update={"motionKeyframes": rebuilt})
