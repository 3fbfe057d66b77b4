from __future__ import annotations

import math

import pytest

from plate_kinematics_engine.models import EulerPole, MotionKeyframe, PaintStroke, Polygon, TectonicPlate
from plate_kinematics_engine.modules.kinematics.timeline import (
    active_keyframe,
    insert_keyframe,
    keyframe_intervals,
    pole_rotation,
    recalculate_motion_history,
    resolve_motion,
)


def _keyframe(time: float, rate: float = 1.0, label: str | None = None) -> MotionKeyframe:
    return MotionKeyframe(time=time, eulerPole=EulerPole(position=(0.0, 90.0), rate=rate), label=label)


def test_active_keyframe_picks_latest_not_after_time():
    keyframes = [_keyframe(50.0), _keyframe(10.0)]

    assert active_keyframe(keyframes, 5.0) is None
    assert active_keyframe(keyframes, 10.0).time == 10.0
    assert active_keyframe(keyframes, 49.9).time == 10.0
    assert active_keyframe(keyframes, 60.0).time == 50.0


def test_resolve_motion_reports_elapsed_and_angle():
    motion = resolve_motion([_keyframe(10.0, rate=2.0)], 25.0)

    assert motion.keyframe is not None
    assert motion.elapsed == pytest.approx(15.0)
    assert motion.angle == pytest.approx(math.radians(30.0))
    assert motion.has_rotation

    before = resolve_motion([_keyframe(10.0)], 0.0)
    assert before.keyframe is None
    assert not before.has_rotation


def test_pole_rotation_without_rate_or_duration_is_empty():
    assert pole_rotation(EulerPole(rate=0.0), 100.0) == (None, 0.0)
    assert pole_rotation(EulerPole(rate=3.0), 0.0) == (None, 0.0)


def test_insert_keyframe_replaces_within_tolerance():
    keyframes = [_keyframe(10.0, label="old"), _keyframe(40.0)]

    updated = insert_keyframe(keyframes, _keyframe(10.0005, rate=5.0, label="new"))

    assert [kf.time for kf in updated] == [10.0005, 40.0]
    assert updated[0].label == "new"
    # the input list is left alone
    assert keyframes[0].label == "old"


def test_insert_keyframe_keeps_order():
    updated = insert_keyframe([_keyframe(40.0), _keyframe(10.0)], _keyframe(25.0))
    assert [kf.time for kf in updated] == [10.0, 25.0, 40.0]


def test_keyframe_intervals_split_at_each_keyframe():
    keyframes = [_keyframe(10.0), _keyframe(50.0)]

    intervals = keyframe_intervals(keyframes, 0.0, 80.0)
    assert [(item.start, item.end) for item in intervals] == [(10.0, 50.0), (50.0, 80.0)]

    intervals = keyframe_intervals(keyframes, 30.0, 60.0)
    assert [(item.start, item.end) for item in intervals] == [(30.0, 50.0), (50.0, 60.0)]
    assert intervals[0].duration == pytest.approx(20.0)

    assert keyframe_intervals(keyframes, 60.0, 60.0) == []


def test_recalculate_motion_history_rebuilds_snapshots_from_birth():
    square = Polygon(id="sq", points=[(-5.0, -5.0), (5.0, -5.0), (5.0, 5.0), (-5.0, 5.0)])
    plate = TectonicPlate(
        id="p",
        name="P",
        initialPolygons=[square],
        motionKeyframes=[
            _keyframe(0.0, rate=1.0).model_copy(
                update={"snapshotPaintStrokes": [PaintStroke(id="coast", points=[(0.0, 0.0)])]}
            ),
            _keyframe(30.0, rate=0.0),
        ],
    )

    rebuilt = recalculate_motion_history(plate)

    first, second = rebuilt.motionKeyframes
    assert first.snapshotPolygons[0].points == square.points
    lon, lat = second.snapshotPolygons[0].points[0]
    assert lon == pytest.approx(25.0, abs=1e-9)
    assert lat == pytest.approx(-5.0, abs=1e-9)
    assert second.snapshotPaintStrokes[0].points[0][0] == pytest.approx(30.0, abs=1e-9)
