from __future__ import annotations

from typing import Iterable, Mapping, Sequence

from ...models import Coordinate, Feature, ReconstructionDiagnostic, TectonicPlate
from ..validation import record_diagnostic
from .plate_state import transform_plate
from .spherical import wrap_lon


def _unwrap_lon(lon: float, reference: float) -> float:
    return reference + wrap_lon(lon - reference)


def point_in_polygon(point: Coordinate, ring: Sequence[Coordinate]) -> bool:
    """Winding-number test in lon/lat space.

    The ring is unwrapped vertex by vertex and the query longitude is moved
    next to it, so rings that straddle the antimeridian are handled. Rings
    enclosing a pole, or with edges longer than 180 degrees, are not.
    """
    if len(ring) < 3:
        return False

    lons: list[float] = []
    for lon, _ in ring:
        lons.append(lon if not lons else _unwrap_lon(lon, lons[-1]))
    p_lon = _unwrap_lon(point[0], (min(lons) + max(lons)) / 2.0)
    p_lat = point[1]

    winding = 0
    prev = len(ring) - 1
    for idx in range(len(ring)):
        lat1, lat2 = ring[prev][1], ring[idx][1]
        if (lat1 <= p_lat < lat2) or (lat2 <= p_lat < lat1):
            lon1, lon2 = lons[prev], lons[idx]
            if idx == 0:
                # closing edge: bring the first vertex next to the last one
                lon2 = _unwrap_lon(lon2, lon1)
            t = (p_lat - lat1) / (lat2 - lat1)
            if p_lon < lon1 + t * (lon2 - lon1):
                winding += 1 if lat2 > lat1 else -1
        prev = idx
    return winding != 0


def contains_point(plate: TectonicPlate, point: Coordinate) -> bool:
    return any(point_in_polygon(point, poly.points) for poly in plate.initialPolygons)


def _child_own_ids(child: TectonicPlate) -> set[str]:
    ids = {feat.id for feat in child.initialFeatures}
    ids.update(feat.id for feat in child.features if feat.inheritedFromPlateId is None)
    return ids


def resolve_inherited_features(
    child: TectonicPlate,
    parent_plates: Sequence[TectonicPlate],
    all_plates: Iterable[TectonicPlate] | None = None,
    diagnostics: list[ReconstructionDiagnostic] | None = None,
    claimed: set[str] | None = None,
) -> list[Feature]:
    """Features of ``parent_plates`` that transfer to ``child`` at its birth.

    Each parent is reconstructed at ``child.birthTime``; a candidate was
    generated between the parent's birth and the child's birth and sits inside
    the child's initial polygons. ``claimed`` is shared between siblings so a
    feature is handed out once per resolution pass.
    """
    if all_plates is None:
        all_plates = [*parent_plates, child]
    plates_by_id = {plate.id: plate for plate in all_plates}
    claimed = claimed if claimed is not None else set()
    own_ids = _child_own_ids(child)

    inherited: list[Feature] = []
    for parent in parent_plates:
        snapshot = transform_plate(parent, child.birthTime, plates_by_id, (), diagnostics)
        for feat in snapshot.features:
            if feat.generatedAt is None:
                continue
            if not (parent.birthTime <= feat.generatedAt <= child.birthTime):
                continue
            if feat.deathTime is not None and feat.deathTime <= child.birthTime:
                continue
            if feat.id in own_ids or feat.id in claimed:
                continue
            if not contains_point(child, feat.position):
                continue
            inherited.append(feat.model_copy(update={"inheritedFromPlateId": parent.id}))
            claimed.add(feat.id)
    return inherited


def lineage_parents(
    child: TectonicPlate,
    plates_by_id: Mapping[str, TectonicPlate],
    diagnostics: list[ReconstructionDiagnostic] | None = None,
) -> list[TectonicPlate]:
    parents: list[TectonicPlate] = []
    for parent_id in child.lineage_parent_ids():
        parent = plates_by_id.get(parent_id)
        if parent is None or parent.id == child.id:
            record_diagnostic(
                diagnostics,
                code="missing_lineage_parent",
                severity="info",
                message=f"Plate {child.id} references unknown lineage parent {parent_id}",
                plate_id=child.id,
                details={"parentPlateId": parent_id},
            )
            continue
        parents.append(parent)
    return parents


def assign_inherited_features(
    children: Sequence[TectonicPlate],
    parent_plates: Sequence[TectonicPlate],
    all_plates: Iterable[TectonicPlate] | None = None,
    diagnostics: list[ReconstructionDiagnostic] | None = None,
) -> dict[str, list[Feature]]:
    if all_plates is None:
        all_plates = [*parent_plates, *children]
    all_plates = list(all_plates)
    claimed: set[str] = set()
    return {
        child.id: resolve_inherited_features(child, parent_plates, all_plates, diagnostics, claimed)
        for child in children
    }


def resolve_world_inheritance(
    plates: Sequence[TectonicPlate],
    diagnostics: list[ReconstructionDiagnostic] | None = None,
) -> dict[str, list[Feature]]:
    plates_by_id = {plate.id: plate for plate in plates}
    claimed: set[str] = set()
    result: dict[str, list[Feature]] = {}
    for plate in sorted(plates, key=lambda p: p.birthTime):
        if not plate.lineage_parent_ids():
            continue
        parents = lineage_parents(plate, plates_by_id, diagnostics)
        if parents:
            result[plate.id] = resolve_inherited_features(plate, parents, plates, diagnostics, claimed)
    return result
