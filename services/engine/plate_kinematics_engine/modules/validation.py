from __future__ import annotations

import logging
import math
from typing import Any, Iterable

from ..logging import get_logger
from ..models import Coordinate, Polygon, ReconstructionDiagnostic, TectonicPlate

logger = get_logger(__name__)

_LOG_LEVELS = {
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
}


def record_diagnostic(
    diagnostics: list[ReconstructionDiagnostic] | None,
    *,
    code: str,
    severity: str,
    message: str,
    plate_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    logger.log(_LOG_LEVELS.get(severity, logging.WARNING), "%s: %s", code, message)
    if diagnostics is None:
        return
    for existing in diagnostics:
        if existing.code == code and existing.plateId == plate_id and existing.message == message:
            return
    diagnostics.append(
        ReconstructionDiagnostic(
            code=code,
            severity=severity,
            message=message,
            plateId=plate_id,
            details=details or {},
        )
    )


def is_valid_coordinate(coord: Coordinate) -> bool:
    lon, lat = coord
    if not (math.isfinite(lon) and math.isfinite(lat)):
        return False
    return -90.0 <= lat <= 90.0


def _invalid_points(polygons: Iterable[Polygon]) -> list[str]:
    return [poly.id for poly in polygons if not all(is_valid_coordinate(point) for point in poly.points)]


def validate_plate(plate: TectonicPlate) -> list[ReconstructionDiagnostic]:
    issues: list[ReconstructionDiagnostic] = []

    for poly in plate.initialPolygons:
        if len(poly.points) < 3:
            issues.append(
                ReconstructionDiagnostic(
                    code="malformed_polygon",
                    severity="error",
                    message=f"Plate {plate.id} polygon {poly.id} has fewer than 3 points",
                    plateId=plate.id,
                    details={"polygonId": poly.id, "pointCount": len(poly.points)},
                )
            )

    bad_initial = _invalid_points(plate.initialPolygons)
    if bad_initial:
        issues.append(
            ReconstructionDiagnostic(
                code="invalid_coordinate",
                severity="error",
                message=f"Plate {plate.id} initial geometry contains non-finite or out-of-range coordinates",
                plateId=plate.id,
                details={"polygonIds": bad_initial},
            )
        )

    for keyframe in plate.motionKeyframes:
        bad_snapshot = _invalid_points(keyframe.snapshotPolygons)
        bad_features = [feat.id for feat in keyframe.snapshotFeatures if not is_valid_coordinate(feat.position)]
        pole_ok = is_valid_coordinate(keyframe.eulerPole.position) and math.isfinite(keyframe.eulerPole.rate)
        if bad_snapshot or bad_features or not pole_ok or not math.isfinite(keyframe.time):
            issues.append(
                ReconstructionDiagnostic(
                    code="invalid_keyframe",
                    severity="error",
                    message=f"Plate {plate.id} keyframe at {keyframe.time} contains invalid values",
                    plateId=plate.id,
                    details={"polygonIds": bad_snapshot, "featureIds": bad_features, "poleValid": pole_ok},
                )
            )

    bad_features = [
        feat.id
        for feat in plate.features
        if not is_valid_coordinate(feat.position)
        or (feat.originalPosition is not None and not is_valid_coordinate(feat.originalPosition))
    ]
    if bad_features:
        issues.append(
            ReconstructionDiagnostic(
                code="invalid_feature",
                severity="error",
                message=f"Plate {plate.id} has features with invalid positions",
                plateId=plate.id,
                details={"featureIds": bad_features},
            )
        )

    bad_strokes = [
        stroke.id
        for stroke in plate.paintStrokes
        if not all(is_valid_coordinate(point) for point in [*stroke.points, *(stroke.originalPoints or [])])
    ]
    bad_landmasses = [
        landmass.id
        for landmass in plate.landmasses
        if not all(is_valid_coordinate(point) for point in [*landmass.polygon, *(landmass.originalPolygon or [])])
    ]
    if bad_strokes or bad_landmasses:
        issues.append(
            ReconstructionDiagnostic(
                code="invalid_overlay",
                severity="error",
                message=f"Plate {plate.id} has paint strokes or landmasses with invalid points",
                plateId=plate.id,
                details={"paintStrokeIds": bad_strokes, "landmassIds": bad_landmasses},
            )
        )

    legacy_pole = plate.motion.eulerPole
    if not is_valid_coordinate(legacy_pole.position) or not math.isfinite(legacy_pole.rate):
        issues.append(
            ReconstructionDiagnostic(
                code="invalid_legacy_pole",
                severity="error",
                message=f"Plate {plate.id} legacy Euler pole is invalid",
                plateId=plate.id,
            )
        )

    times = [kf.time for kf in plate.motionKeyframes]
    if times != sorted(times):
        issues.append(
            ReconstructionDiagnostic(
                code="keyframes_unordered",
                severity="warning",
                message=f"Plate {plate.id} keyframes are not time-ordered",
                plateId=plate.id,
            )
        )
    if len(set(times)) != len(times):
        issues.append(
            ReconstructionDiagnostic(
                code="keyframes_duplicated",
                severity="warning",
                message=f"Plate {plate.id} has more than one keyframe at the same time",
                plateId=plate.id,
            )
        )

    return issues


def has_errors(issues: Iterable[ReconstructionDiagnostic]) -> bool:
    return any(issue.severity == "error" for issue in issues)
