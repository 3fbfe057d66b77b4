from __future__ import annotations

import pytest

from plate_kinematics_engine.models import (
    CrustType,
    EulerPole,
    MotionKeyframe,
    PaintStroke,
    PlateMotion,
    Polygon,
    TectonicPlate,
)
from plate_kinematics_engine.modules.kinematics import (
    LinkError,
    MotionEditError,
    PlateNotFoundError,
    add_motion_keyframe,
    invalidate_future_crust,
    link_descendants,
    link_plate,
    reconstruct_plate,
    unlink_plate,
)

NORTH = (0.0, 90.0)


def _build_plate(plate_id: str, rate: float = 0.0, **kwargs) -> TectonicPlate:
    square = Polygon(id=f"{plate_id}-sq", points=[(-5.0, -5.0), (5.0, -5.0), (5.0, 5.0), (-5.0, 5.0)])
    return TectonicPlate(
        id=plate_id,
        name=plate_id.upper(),
        initialPolygons=[square],
        polygons=[square],
        motion=PlateMotion(eulerPole=EulerPole(position=NORTH, rate=rate)),
        **kwargs,
    )


def _by_id(plates):
    return {plate.id: plate for plate in plates}


def _center_lon(plate_id, time_ma, plates) -> float:
    return reconstruct_plate(_by_id(plates)[plate_id], time_ma, plates).center[0]


def test_add_motion_keyframe_bakes_legacy_history():
    plates = [_build_plate("p", rate=1.0)]

    plates, removed = add_motion_keyframe(plates, "p", EulerPole(position=NORTH, rate=0.0), 40.0)

    plate = _by_id(plates)["p"]
    assert removed == []
    assert [kf.time for kf in plate.motionKeyframes] == [0.0, 40.0]
    assert plate.motionKeyframes[0].eulerPole.rate == 1.0
    assert plate.motion.eulerPole.rate == 0.0
    assert [event.type for event in plate.events] == ["motion_change"]
    assert _center_lon("p", 20.0, plates) == pytest.approx(20.0, abs=1e-6)
    assert _center_lon("p", 100.0, plates) == pytest.approx(40.0, abs=1e-6)


def test_editing_same_time_replaces_keyframe_and_event():
    plates = [_build_plate("p", rate=1.0)]

    plates, _ = add_motion_keyframe(plates, "p", EulerPole(position=NORTH, rate=2.0), 40.0)
    plates, _ = add_motion_keyframe(plates, "p", EulerPole(position=NORTH, rate=3.0), 40.0005)

    plate = _by_id(plates)["p"]
    assert len(plate.motionKeyframes) == 2
    assert plate.motionKeyframes[-1].eulerPole.rate == 3.0
    assert len(plate.events) == 1
    assert _center_lon("p", 50.0, plates) == pytest.approx(40.0005 + 3.0 * 9.9995, abs=1e-6)


def test_later_keyframe_snapshots_are_rebuilt():
    square = _build_plate("p").initialPolygons
    plate = _build_plate("p", rate=1.0).model_copy(
        update={
            "motionKeyframes": [
                MotionKeyframe(time=0.0, eulerPole=EulerPole(position=NORTH, rate=1.0), snapshotPolygons=square),
                MotionKeyframe(time=60.0, eulerPole=EulerPole(position=NORTH, rate=0.0), snapshotPolygons=square),
            ]
        }
    )
    plates = [plate]
    plates, _ = add_motion_keyframe(plates, "p", EulerPole(position=NORTH, rate=0.0), 30.0)

    assert [kf.time for kf in _by_id(plates)["p"].motionKeyframes] == [0.0, 30.0, 60.0]
    assert _center_lon("p", 80.0, plates) == pytest.approx(30.0, abs=1e-6)


def test_edit_outside_lifetime_is_rejected():
    plates = [_build_plate("p", birthTime=20.0, deathTime=80.0)]

    with pytest.raises(MotionEditError):
        add_motion_keyframe(plates, "p", EulerPole(rate=1.0), 10.0)
    with pytest.raises(MotionEditError):
        add_motion_keyframe(plates, "p", EulerPole(rate=1.0), 80.0)
    with pytest.raises(PlateNotFoundError):
        add_motion_keyframe(plates, "nope", EulerPole(rate=1.0), 30.0)


def test_future_oceanic_crust_is_invalidated():
    plates = [
        _build_plate("p"),
        _build_plate("late-ocean", crustType=CrustType.oceanic, birthTime=60.0, linkedToPlateId="p"),
        _build_plate("old-ocean", crustType=CrustType.oceanic, birthTime=20.0, linkedToPlateId="p"),
        _build_plate("land", birthTime=60.0, linkedToPlateId="p"),
        _build_plate("land-ocean", crustType=CrustType.oceanic, birthTime=50.0, linkedToPlateId="land"),
        _build_plate("far-ocean", crustType=CrustType.oceanic, birthTime=60.0),
    ]

    assert link_descendants("p", plates) == {"late-ocean", "old-ocean", "land", "land-ocean"}

    kept, removed = invalidate_future_crust(plates, "p", 40.0)

    assert removed == ["late-ocean", "land-ocean"]
    assert [plate.id for plate in kept] == ["p", "old-ocean", "land", "far-ocean"]


def test_motion_edit_runs_invalidation():
    plates = [
        _build_plate("p", rate=1.0),
        _build_plate("ocean", crustType=CrustType.oceanic, birthTime=50.0, linkedToPlateId="p"),
    ]

    plates, removed = add_motion_keyframe(plates, "p", EulerPole(position=NORTH, rate=2.0), 40.0)

    assert removed == ["ocean"]
    assert [plate.id for plate in plates] == ["p"]


def test_link_rejects_self_and_cycles():
    plates = [_build_plate("a", linkedToPlateId="b"), _build_plate("b")]

    with pytest.raises(LinkError):
        link_plate(plates, "a", "a", 10.0)
    with pytest.raises(LinkError):
        link_plate(plates, "b", "a", 10.0)
    with pytest.raises(PlateNotFoundError):
        link_plate(plates, "a", "ghost", 10.0)


def test_link_then_unlink_keeps_history():
    plates = [_build_plate("parent", rate=1.0), _build_plate("child")]

    plates = link_plate(plates, "child", "parent", 50.0)
    child = _by_id(plates)["child"]
    assert child.linkedToPlateId == "parent"
    assert child.linkTime == 50.0
    assert child.unlinkTime is None
    assert [kf.time for kf in child.motionKeyframes] == [0.0, 50.0]
    assert _center_lon("child", 40.0, plates) == pytest.approx(0.0, abs=1e-6)
    assert _center_lon("child", 75.0, plates) == pytest.approx(25.0, abs=1e-6)

    plates = unlink_plate(plates, "child", 100.0)
    child = _by_id(plates)["child"]
    assert child.unlinkTime == 100.0
    assert child.motionKeyframes[-1].time == 100.0
    assert child.motionKeyframes[-1].eulerPole.rate == 1.0
    assert [event.type for event in child.events] == ["link", "unlink"]
    # inside the closed window the parent still carries the child
    assert _center_lon("child", 75.0, plates) == pytest.approx(25.0, abs=1e-6)
    # after it the baked pole keeps the same motion going
    assert _center_lon("child", 120.0, plates) == pytest.approx(70.0, abs=1e-6)


def test_unlink_requires_active_link():
    plates = [_build_plate("parent", rate=1.0), _build_plate("child")]

    with pytest.raises(LinkError):
        unlink_plate(plates, "child", 10.0)

    plates = link_plate(plates, "child", "parent", 50.0)
    with pytest.raises(LinkError):
        unlink_plate(plates, "child", 20.0)


def _closed_link_window():
    plates = [_build_plate("parent", rate=1.0), _build_plate("child")]
    plates = link_plate(plates, "child", "parent", 10.0)
    return unlink_plate(plates, "child", 50.0)


def test_parent_edit_refreshes_unlink_snapshot():
    plates = _closed_link_window()
    assert _center_lon("child", 50.0, plates) == pytest.approx(40.0, abs=1e-6)

    plates, _ = add_motion_keyframe(plates, "parent", EulerPole(position=NORTH, rate=3.0), 20.0)

    unlink_keyframe = _by_id(plates)["child"].motionKeyframes[-1]
    assert unlink_keyframe.label == "unlink"
    assert unlink_keyframe.eulerPole.rate == 3.0
    # 10 Ma at 1 deg/Ma, then 30 Ma at 3 deg/Ma
    assert _center_lon("child", 49.999, plates) == pytest.approx(99.997, abs=1e-6)
    assert _center_lon("child", 50.0, plates) == pytest.approx(100.0, abs=1e-6)
    assert _center_lon("child", 60.0, plates) == pytest.approx(130.0, abs=1e-6)


def test_parent_edit_keeps_hand_edited_unlink_pole():
    plates = _closed_link_window()
    plates, _ = add_motion_keyframe(plates, "child", EulerPole(position=NORTH, rate=0.0), 50.0)
    assert _center_lon("child", 50.0, plates) == pytest.approx(40.0, abs=1e-6)

    plates, _ = add_motion_keyframe(plates, "parent", EulerPole(position=NORTH, rate=3.0), 20.0)

    assert _by_id(plates)["child"].motionKeyframes[-1].eulerPole.rate == 0.0
    assert _center_lon("child", 50.0, plates) == pytest.approx(100.0, abs=1e-6)
    assert _center_lon("child", 80.0, plates) == pytest.approx(100.0, abs=1e-6)


def test_parent_edit_after_unlink_leaves_child_alone():
    plates = _closed_link_window()
    before = _by_id(plates)["child"]

    plates, _ = add_motion_keyframe(plates, "parent", EulerPole(position=NORTH, rate=5.0), 70.0)

    assert _by_id(plates)["child"].motionKeyframes == before.motionKeyframes


def test_keyframes_capture_paint_strokes():
    plate = _build_plate("p", rate=1.0, paintStrokes=[PaintStroke(id="coast", points=[(0.0, 0.0)])])

    plates, _ = add_motion_keyframe([plate], "p", EulerPole(position=NORTH, rate=0.0), 40.0)

    birth, edit = _by_id(plates)["p"].motionKeyframes
    assert birth.snapshotPaintStrokes[0].points == [(0.0, 0.0)]
    assert edit.snapshotPaintStrokes[0].points[0][0] == pytest.approx(40.0, abs=1e-6)
    (stroke,) = reconstruct_plate(_by_id(plates)["p"], 100.0, plates).paintStrokes
    assert stroke.points[0][0] == pytest.approx(40.0, abs=1e-6)
