from __future__ import annotations

import pytest

from plate_kinematics_engine.models import EulerPole, Feature, PlateMotion, Polygon, TectonicPlate
from plate_kinematics_engine.modules.kinematics import (
    assign_inherited_features,
    point_in_polygon,
    reconstruct_plate,
    reconstruct_world,
    resolve_inherited_features,
)
from plate_kinematics_engine.modules.kinematics.reconstruction import apply_snapshot


def _box(box_id: str, west: float, east: float, south: float = -10.0, north: float = 10.0) -> Polygon:
    return Polygon(id=box_id, points=[(west, south), (east, south), (east, north), (west, north)])


def _build_split(parent_rate: float = 0.0):
    """A parent covering [-10, 10] that splits at 50 Ma into west and east halves."""
    parent = TectonicPlate(
        id="parent",
        name="Parent",
        initialPolygons=[_box("parent-box", -10.0, 10.0)],
        motion=PlateMotion(eulerPole=EulerPole(position=(0.0, 90.0), rate=parent_rate)),
        deathTime=50.0,
        features=[
            Feature(id="west-volcano", type="volcano", position=(-5.0, 0.0), originalPosition=(-5.0, 0.0), generatedAt=10.0),
            Feature(id="east-volcano", type="volcano", position=(5.0, 0.0), originalPosition=(5.0, 0.0), generatedAt=10.0),
            Feature(id="too-late", position=(5.0, 5.0), originalPosition=(5.0, 5.0), generatedAt=60.0),
            Feature(id="extinct", position=(-5.0, 5.0), originalPosition=(-5.0, 5.0), generatedAt=10.0, deathTime=40.0),
        ],
    )
    west = TectonicPlate(
        id="west",
        name="West",
        birthTime=50.0,
        parentPlateId="parent",
        initialPolygons=[_box("west-box", -10.0, 0.0)],
    )
    east = TectonicPlate(
        id="east",
        name="East",
        birthTime=50.0,
        parentPlateId="parent",
        initialPolygons=[_box("east-box", 0.0, 10.0)],
    )
    return parent, west, east


def test_point_in_polygon_basic():
    ring = _box("b", -10.0, 10.0).points
    assert point_in_polygon((0.0, 0.0), ring)
    assert point_in_polygon((-9.5, 9.5), ring)
    assert not point_in_polygon((20.0, 0.0), ring)
    assert not point_in_polygon((0.0, 20.0), ring)
    assert not point_in_polygon((0.0, 0.0), ring[:2])


def test_point_in_polygon_across_antimeridian():
    ring = [(170.0, -10.0), (-170.0, -10.0), (-170.0, 10.0), (170.0, 10.0)]
    assert point_in_polygon((179.0, 0.0), ring)
    assert point_in_polygon((-179.0, 0.0), ring)
    assert point_in_polygon((180.0, 5.0), ring)
    assert not point_in_polygon((0.0, 0.0), ring)
    assert not point_in_polygon((160.0, 0.0), ring)


def test_split_features_go_to_exactly_one_child():
    parent, west, east = _build_split()

    assigned = assign_inherited_features([west, east], [parent])

    assert [feat.id for feat in assigned["west"]] == ["west-volcano"]
    assert [feat.id for feat in assigned["east"]] == ["east-volcano"]
    assert all(feat.inheritedFromPlateId == "parent" for feats in assigned.values() for feat in feats)


def test_features_outside_the_generation_window_or_dead_are_not_inherited():
    parent, west, east = _build_split()

    west_ids = {feat.id for feat in resolve_inherited_features(west, [parent])}
    east_ids = {feat.id for feat in resolve_inherited_features(east, [parent])}

    assert "too-late" not in east_ids
    assert "extinct" not in west_ids


def test_containment_uses_parent_position_at_child_birth():
    parent, _, _ = _build_split(parent_rate=1.0)
    parent = parent.model_copy(
        update={
            "features": [
                Feature(id="drifter", position=(-30.0, 0.0), originalPosition=(-30.0, 0.0), generatedAt=10.0),
            ]
        }
    )
    # 40 Ma of motion carries the drifter from -30 to +10 longitude
    catcher = TectonicPlate(
        id="catcher",
        name="Catcher",
        birthTime=50.0,
        parentPlateId="parent",
        initialPolygons=[_box("catcher-box", 0.0, 20.0)],
    )

    (inherited,) = resolve_inherited_features(catcher, [parent])

    assert inherited.id == "drifter"
    assert inherited.position[0] == pytest.approx(10.0, abs=1e-6)


def test_child_own_features_are_not_duplicated():
    parent, west, _ = _build_split()
    west = west.model_copy(
        update={"features": [Feature(id="west-volcano", position=(-5.0, 0.0), generatedAt=50.0)]}
    )

    assert resolve_inherited_features(west, [parent]) == []


def test_inherited_features_survive_repeated_world_reconstruction():
    parent, west, east = _build_split()
    plates = [parent, west, east]

    for time_ma in (50.0, 80.0, 80.0, 60.0):
        result = reconstruct_world(plates, time_ma)
        plates = result.plates

    by_id = {plate.id: plate for plate in plates}
    west_features = [feat for feat in by_id["west"].features if feat.id == "west-volcano"]
    assert len(west_features) == 1
    assert west_features[0].inheritedFromPlateId == "parent"
    assert not any(feat.id == "west-volcano" for feat in by_id["east"].features)


def test_reconstruct_plate_resolves_inheritance_on_its_own():
    parent, west, _ = _build_split()

    snapshot = reconstruct_plate(west, 70.0, [parent, west])
    assert [feat.id for feat in snapshot.features] == ["west-volcano"]

    applied = apply_snapshot(west, snapshot)
    again = reconstruct_plate(applied, 70.0, [parent, applied])
    assert [feat.id for feat in again.features] == ["west-volcano"]


def test_missing_lineage_parent_is_reported():
    orphan = TectonicPlate(
        id="orphan",
        name="Orphan",
        parentPlateIds=["gone"],
        initialPolygons=[_box("orphan-box", 0.0, 10.0)],
    )
    diagnostics = []

    snapshot = reconstruct_plate(orphan, 10.0, [orphan], diagnostics)

    assert snapshot.features == []
    assert [diag.code for diag in diagnostics] == ["missing_lineage_parent"]
