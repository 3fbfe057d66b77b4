from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Mapping, Sequence

from ...models import (
    Coordinate,
    Feature,
    Landmass,
    MotionKeyframe,
    PaintStroke,
    PlateSnapshot,
    Polygon,
    ReconstructionDiagnostic,
    TectonicPlate,
)
from ..validation import has_errors, record_diagnostic, validate_plate
from .composer import RotationSegment, ancestor_segments, apply_segments, apply_segments_to_ring, plate_motion_segments
from .spherical import spherical_centroid
from .timeline import active_keyframe


class FeatureClass(str, Enum):
    snapshot = "snapshot"
    dynamic = "dynamic"
    inherited = "inherited"


@dataclass(frozen=True)
class ClassifiedFeature:
    feature: Feature
    kind: FeatureClass
    anchor_time: float
    source: Coordinate


@dataclass(frozen=True)
class ClassifiedStroke:
    stroke: PaintStroke
    kind: FeatureClass
    anchor_time: float
    source: list[Coordinate]


def _own_feature_ids(plate: TectonicPlate) -> set[str]:
    ids = {feat.id for feat in plate.initialFeatures}
    ids.update(feat.id for feat in plate.features if feat.inheritedFromPlateId is None)
    return ids


def classify_features(
    plate: TectonicPlate,
    keyframe: MotionKeyframe | None,
    inherited: Sequence[Feature] = (),
) -> list[ClassifiedFeature]:
    """Assign each feature its class, rotation anchor time and rotation source.

    ``keyframe`` is the active keyframe; ``None`` means the plate has no
    keyframes and its initial features play the snapshot role, anchored at birth.
    """
    if keyframe is not None:
        base_features = keyframe.snapshotFeatures
        base_time = keyframe.time
    else:
        base_features = plate.initialFeatures
        base_time = plate.birthTime

    classified = [
        ClassifiedFeature(feature=feat, kind=FeatureClass.snapshot, anchor_time=base_time, source=feat.position)
        for feat in base_features
    ]
    claimed = {feat.id for feat in base_features}

    for feat in plate.features:
        if feat.id in claimed or feat.inheritedFromPlateId is not None:
            continue
        if keyframe is not None and (feat.generatedAt is None or feat.generatedAt < keyframe.time):
            continue
        anchor = feat.generatedAt if feat.generatedAt is not None else plate.birthTime
        source = feat.originalPosition if feat.originalPosition is not None else feat.position
        classified.append(ClassifiedFeature(feature=feat, kind=FeatureClass.dynamic, anchor_time=anchor, source=source))
        claimed.add(feat.id)

    own_ids = _own_feature_ids(plate)
    for feat in inherited:
        if feat.id in claimed or feat.id in own_ids:
            continue
        classified.append(
            ClassifiedFeature(feature=feat, kind=FeatureClass.inherited, anchor_time=plate.birthTime, source=feat.position)
        )
        claimed.add(feat.id)

    return classified


def classify_strokes(plate: TectonicPlate, keyframe: MotionKeyframe | None) -> list[ClassifiedStroke]:
    # strokes without a birth time count as dynamic and ride from plate birth
    classified: list[ClassifiedStroke] = []
    claimed: set[str] = set()
    if keyframe is not None:
        for stroke in keyframe.snapshotPaintStrokes:
            classified.append(
                ClassifiedStroke(stroke=stroke, kind=FeatureClass.snapshot, anchor_time=keyframe.time, source=stroke.points)
            )
            claimed.add(stroke.id)

    for stroke in plate.paintStrokes:
        if stroke.id in claimed:
            continue
        if keyframe is not None and stroke.birthTime is not None and stroke.birthTime < keyframe.time:
            continue
        anchor = stroke.birthTime if stroke.birthTime is not None else plate.birthTime
        source = stroke.originalPoints if stroke.originalPoints is not None else stroke.points
        classified.append(ClassifiedStroke(stroke=stroke, kind=FeatureClass.dynamic, anchor_time=anchor, source=source))
        claimed.add(stroke.id)
    return classified


def motion_segments(
    plate: TectonicPlate,
    start_time: float,
    time_ma: float,
    plates_by_id: Mapping[str, TectonicPlate],
    diagnostics: list[ReconstructionDiagnostic] | None = None,
) -> list[RotationSegment]:
    # ancestors first, then the plate's own keyframe intervals
    segments = ancestor_segments(plate, time_ma, start_time, plates_by_id, diagnostics)
    segments.extend(plate_motion_segments(plate, start_time, time_ma))
    return segments


class _SegmentCache:
    def __init__(
        self,
        plate: TectonicPlate,
        time_ma: float,
        plates_by_id: Mapping[str, TectonicPlate],
        diagnostics: list[ReconstructionDiagnostic] | None,
    ):
        self.plate = plate
        self.time_ma = time_ma
        self.plates_by_id = plates_by_id
        self.diagnostics = diagnostics
        self._segments: dict[float, list[RotationSegment]] = {}

    def since(self, anchor_time: float) -> list[RotationSegment]:
        start = min(anchor_time, self.time_ma)
        if start not in self._segments:
            self._segments[start] = motion_segments(
                self.plate, start, self.time_ma, self.plates_by_id, self.diagnostics
            )
        return self._segments[start]


def transform_features(
    classified: Iterable[ClassifiedFeature],
    plate: TectonicPlate,
    time_ma: float,
    plates_by_id: Mapping[str, TectonicPlate],
    diagnostics: list[ReconstructionDiagnostic] | None = None,
) -> list[Feature]:
    cache = _SegmentCache(plate, time_ma, plates_by_id, diagnostics)
    features: list[Feature] = []
    for item in classified:
        update: dict = {"position": apply_segments(item.source, cache.since(item.anchor_time))}
        if item.kind == FeatureClass.dynamic and item.feature.originalPosition is None:
            # pin the source so the next recompute does not rotate a rotated position
            update["originalPosition"] = item.source
        features.append(item.feature.model_copy(update=update))
    return features


def transform_strokes(
    classified: Iterable[ClassifiedStroke],
    plate: TectonicPlate,
    time_ma: float,
    plates_by_id: Mapping[str, TectonicPlate],
    diagnostics: list[ReconstructionDiagnostic] | None = None,
) -> list[PaintStroke]:
    cache = _SegmentCache(plate, time_ma, plates_by_id, diagnostics)
    strokes: list[PaintStroke] = []
    for item in classified:
        update: dict = {"points": apply_segments_to_ring(item.source, cache.since(item.anchor_time))}
        if item.kind == FeatureClass.dynamic and item.stroke.originalPoints is None:
            update["originalPoints"] = list(item.source)
        strokes.append(item.stroke.model_copy(update=update))
    return strokes


def transform_landmasses(
    plate: TectonicPlate,
    time_ma: float,
    plates_by_id: Mapping[str, TectonicPlate],
    diagnostics: list[ReconstructionDiagnostic] | None = None,
) -> list[Landmass]:
    # only landmasses bound to this plate move, from their own birth time
    cache = _SegmentCache(plate, time_ma, plates_by_id, diagnostics)
    landmasses: list[Landmass] = []
    for landmass in plate.landmasses:
        if landmass.linkedToPlateId != plate.id:
            landmasses.append(landmass)
            continue
        source = landmass.originalPolygon if landmass.originalPolygon is not None else landmass.polygon
        anchor = landmass.birthTime if landmass.birthTime is not None else plate.birthTime
        landmasses.append(
            landmass.model_copy(
                update={
                    "polygon": apply_segments_to_ring(source, cache.since(anchor)),
                    "originalPolygon": list(source),
                }
            )
        )
    return landmasses


def transform_polygons(
    polygons: Sequence[Polygon],
    segments: Sequence[RotationSegment],
) -> list[Polygon]:
    if not segments:
        return list(polygons)
    return [poly.model_copy(update={"points": apply_segments_to_ring(poly.points, segments)}) for poly in polygons]


def all_points(polygons: Iterable[Polygon]) -> list[Coordinate]:
    return [point for poly in polygons for point in poly.points]


def _snapshot_points(snapshot: PlateSnapshot) -> Iterable[Coordinate]:
    yield from all_points(snapshot.polygons)
    for feat in snapshot.features:
        yield feat.position
    for stroke in snapshot.paintStrokes:
        yield from stroke.points
    for landmass in snapshot.landmasses:
        yield from landmass.polygon


def _is_finite_snapshot(snapshot: PlateSnapshot) -> bool:
    return all(math.isfinite(lon) and math.isfinite(lat) for lon, lat in _snapshot_points(snapshot))


def last_known_good(plate: TectonicPlate, time_ma: float) -> PlateSnapshot:
    return PlateSnapshot(
        plateId=plate.id,
        timeMa=time_ma,
        polygons=list(plate.polygons),
        features=list(plate.features),
        paintStrokes=list(plate.paintStrokes),
        landmasses=list(plate.landmasses),
        center=plate.center,
        fallbackUsed=True,
    )


def _before_first_keyframe(plate: TectonicPlate, time_ma: float, inherited: Sequence[Feature]) -> PlateSnapshot:
    initial_ids = {feat.id for feat in plate.initialFeatures}
    features = list(plate.initialFeatures)
    for feat in plate.features:
        if feat.id in initial_ids or feat.inheritedFromPlateId is not None or feat.generatedAt is None:
            continue
        source = feat.originalPosition if feat.originalPosition is not None else feat.position
        features.append(feat.model_copy(update={"position": source, "originalPosition": source}))
    claimed = {feat.id for feat in features}
    features.extend(feat for feat in inherited if feat.id not in claimed)

    strokes = []
    for stroke in plate.paintStrokes:
        source = stroke.originalPoints if stroke.originalPoints is not None else stroke.points
        strokes.append(stroke.model_copy(update={"points": list(source), "originalPoints": list(source)}))
    landmasses = []
    for landmass in plate.landmasses:
        if landmass.linkedToPlateId != plate.id or landmass.originalPolygon is None:
            landmasses.append(landmass)
        else:
            landmasses.append(landmass.model_copy(update={"polygon": list(landmass.originalPolygon)}))

    return PlateSnapshot(
        plateId=plate.id,
        timeMa=time_ma,
        polygons=list(plate.initialPolygons),
        features=features,
        paintStrokes=strokes,
        landmasses=landmasses,
        center=spherical_centroid(all_points(plate.initialPolygons)),
    )


def transform_plate(
    plate: TectonicPlate,
    time_ma: float,
    plates_by_id: Mapping[str, TectonicPlate],
    inherited: Sequence[Feature] = (),
    diagnostics: list[ReconstructionDiagnostic] | None = None,
) -> PlateSnapshot:
    """Geometry, features and center of ``plate`` at ``time_ma``.

    Inherited features must already be resolved; see ``lineage``.
    Invalid input never propagates: the plate's cached state is returned instead.
    """
    issues = validate_plate(plate)
    for issue in issues:
        record_diagnostic(
            diagnostics,
            code=issue.code,
            severity=issue.severity,
            message=issue.message,
            plate_id=issue.plateId,
            details=issue.details,
        )
    if has_errors(issues):
        return last_known_good(plate, time_ma)

    if plate.motionKeyframes:
        keyframe = active_keyframe(plate.motionKeyframes, time_ma)
        if keyframe is None:
            return _before_first_keyframe(plate, time_ma, inherited)
        source_polygons = keyframe.snapshotPolygons
        base_time = keyframe.time
    else:
        # legacy plates: a single pole applied from birth
        keyframe = None
        source_polygons = plate.initialPolygons
        base_time = plate.birthTime

    segments = motion_segments(plate, min(base_time, time_ma), time_ma, plates_by_id, diagnostics)
    polygons = transform_polygons(source_polygons, segments)
    snapshot = PlateSnapshot(
        plateId=plate.id,
        timeMa=time_ma,
        polygons=polygons,
        features=transform_features(classify_features(plate, keyframe, inherited), plate, time_ma, plates_by_id, diagnostics),
        paintStrokes=transform_strokes(classify_strokes(plate, keyframe), plate, time_ma, plates_by_id, diagnostics),
        landmasses=transform_landmasses(plate, time_ma, plates_by_id, diagnostics),
        center=spherical_centroid(all_points(polygons)),
    )

    if not _is_finite_snapshot(snapshot):
        record_diagnostic(
            diagnostics,
            code="non_finite_result",
            severity="error",
            message=f"Plate {plate.id} produced non-finite coordinates at {time_ma} Ma; keeping last known state",
            plate_id=plate.id,
        )
        return last_known_good(plate, time_ma)
    return snapshot
