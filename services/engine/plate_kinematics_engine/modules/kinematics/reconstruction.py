from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Mapping, Sequence

from ...logging import get_logger
from ...models import (
    Feature,
    PlateSnapshot,
    ReconstructionDiagnostic,
    TectonicPlate,
    WorldReconstruction,
)
from ...settings import Settings
from ...utils import stable_hash
from ..validation import has_errors, record_diagnostic, validate_plate
from .composer import RotationSegment
from .lineage import lineage_parents, resolve_inherited_features, resolve_world_inheritance
from .plate_state import (
    all_points,
    classify_features,
    classify_strokes,
    transform_features,
    transform_landmasses,
    transform_plate,
    transform_polygons,
    transform_strokes,
)
from .spherical import distance, spherical_centroid
from .timeline import active_keyframe, pole_rotation

logger = get_logger(__name__)


class HistoryRewriteStrategy:
    name = "history_rewrite"

    def reconstruct(
        self,
        plate: TectonicPlate,
        time_ma: float,
        plates_by_id: Mapping[str, TectonicPlate],
        inherited: Sequence[Feature] = (),
        diagnostics: list[ReconstructionDiagnostic] | None = None,
    ) -> PlateSnapshot:
        return transform_plate(plate, time_ma, plates_by_id, inherited, diagnostics)


@dataclass
class _IncrementalEntry:
    keyframe_key: str
    snapshot: PlateSnapshot
    steps_since_verify: int = 0


def max_drift_deg(a: PlateSnapshot, b: PlateSnapshot) -> float:
    points_a = all_points(a.polygons)
    points_b = all_points(b.polygons)
    if len(points_a) != len(points_b):
        return math.inf
    drift = 0.0
    for pa, pb in zip(points_a, points_b):
        drift = max(drift, math.degrees(distance(pa, pb)))
    return drift


class IncrementalStrategy:
    """Rotates the previous result by the time delta instead of replaying history.

    Only used for unlinked plates whose active keyframe is unchanged since the
    cached result. Every ``verify_every`` steps the geometry is compared against
    the stateless result and the cache is reset if it drifted.
    """

    name = "incremental"

    def __init__(self, tolerance_deg: float = 1e-6, verify_every: int = 10):
        self.tolerance_deg = tolerance_deg
        self.verify_every = max(1, verify_every)
        self._exact = HistoryRewriteStrategy()
        self._cache: dict[str, _IncrementalEntry] = {}

    def _store(self, plate_id: str, key: str | None, snapshot: PlateSnapshot) -> PlateSnapshot:
        if key is None or snapshot.fallbackUsed:
            self._cache.pop(plate_id, None)
        else:
            self._cache[plate_id] = _IncrementalEntry(keyframe_key=key, snapshot=snapshot)
        return snapshot

    def reconstruct(
        self,
        plate: TectonicPlate,
        time_ma: float,
        plates_by_id: Mapping[str, TectonicPlate],
        inherited: Sequence[Feature] = (),
        diagnostics: list[ReconstructionDiagnostic] | None = None,
    ) -> PlateSnapshot:
        keyframe = active_keyframe(plate.motionKeyframes, time_ma) if plate.motionKeyframes else None
        if plate.linkedToPlateId is not None or keyframe is None or has_errors(validate_plate(plate)):
            return self._store(plate.id, None, self._exact.reconstruct(plate, time_ma, plates_by_id, inherited, diagnostics))

        key = stable_hash(keyframe.model_dump(mode="json"))
        entry = self._cache.get(plate.id)
        if entry is None or entry.keyframe_key != key:
            return self._store(plate.id, key, self._exact.reconstruct(plate, time_ma, plates_by_id, inherited, diagnostics))

        previous = entry.snapshot
        axis, angle = pole_rotation(keyframe.eulerPole, time_ma - previous.timeMa)
        segments = [] if axis is None else [RotationSegment(axis, angle, plate.id, previous.timeMa, time_ma)]
        polygons = transform_polygons(previous.polygons, segments)
        features = transform_features(
            classify_features(plate, keyframe, inherited), plate, time_ma, plates_by_id, diagnostics
        )
        snapshot = PlateSnapshot(
            plateId=plate.id,
            timeMa=time_ma,
            polygons=polygons,
            features=features,
            paintStrokes=transform_strokes(classify_strokes(plate, keyframe), plate, time_ma, plates_by_id, diagnostics),
            landmasses=transform_landmasses(plate, time_ma, plates_by_id, diagnostics),
            center=spherical_centroid(all_points(polygons)),
        )

        entry.snapshot = snapshot
        entry.steps_since_verify += 1
        if entry.steps_since_verify >= self.verify_every:
            exact = self._exact.reconstruct(plate, time_ma, plates_by_id, inherited, diagnostics)
            drift = max_drift_deg(snapshot, exact)
            if drift > self.tolerance_deg:
                record_diagnostic(
                    diagnostics,
                    code="incremental_drift",
                    severity="warning",
                    message=f"Plate {plate.id} incremental geometry drifted {drift:.3g} deg; cache reset",
                    plate_id=plate.id,
                    details={"driftDeg": drift},
                )
                return self._store(plate.id, key, exact)
            entry.steps_since_verify = 0
        return snapshot


ReconstructionStrategy = HistoryRewriteStrategy | IncrementalStrategy


def build_strategy(settings: Settings | None = None) -> ReconstructionStrategy:
    if settings is None or settings.reconstruction_strategy == HistoryRewriteStrategy.name:
        return HistoryRewriteStrategy()
    if settings.reconstruction_strategy == IncrementalStrategy.name:
        return IncrementalStrategy(
            tolerance_deg=settings.incremental_tolerance_deg,
            verify_every=settings.incremental_verify_every,
        )
    raise ValueError(f"unknown reconstruction strategy {settings.reconstruction_strategy!r}")


def _index(plates: Sequence[TectonicPlate]) -> dict[str, TectonicPlate]:
    return {plate.id: plate for plate in plates}


def reconstruct_plate(
    plate: TectonicPlate,
    time_ma: float,
    all_plates: Sequence[TectonicPlate],
    diagnostics: list[ReconstructionDiagnostic] | None = None,
    strategy: ReconstructionStrategy | None = None,
) -> PlateSnapshot:
    strategy = strategy or HistoryRewriteStrategy()
    plates_by_id = _index(all_plates)
    plates_by_id.setdefault(plate.id, plate)

    inherited: list[Feature] = []
    if plate.lineage_parent_ids():
        parents = lineage_parents(plate, plates_by_id, diagnostics)
        if parents:
            inherited = resolve_inherited_features(plate, parents, plates_by_id.values(), diagnostics)
    return strategy.reconstruct(plate, time_ma, plates_by_id, inherited, diagnostics)


def apply_snapshot(plate: TectonicPlate, snapshot: PlateSnapshot) -> TectonicPlate:
    return plate.model_copy(
        update={
            "polygons": snapshot.polygons,
            "features": snapshot.features,
            "paintStrokes": snapshot.paintStrokes,
            "landmasses": snapshot.landmasses,
            "center": snapshot.center,
        }
    )


def reconstruct_world(
    plates: Sequence[TectonicPlate],
    time_ma: float,
    strategy: ReconstructionStrategy | None = None,
    version: int = 0,
) -> WorldReconstruction:
    # unborn, dead and locked plates pass through unchanged
    strategy = strategy or HistoryRewriteStrategy()
    diagnostics: list[ReconstructionDiagnostic] = []
    plates_by_id = _index(plates)
    inherited_by_plate = resolve_world_inheritance(plates, diagnostics)

    updated: list[TectonicPlate] = []
    for plate in plates:
        if plate.locked or not plate.is_active_at(time_ma):
            updated.append(plate)
            continue
        try:
            snapshot = strategy.reconstruct(
                plate,
                time_ma,
                plates_by_id,
                inherited_by_plate.get(plate.id, []),
                diagnostics,
            )
        except Exception as exc:
            logger.exception("reconstruction of plate %s failed", plate.id)
            record_diagnostic(
                diagnostics,
                code="reconstruction_failed",
                severity="error",
                message=f"Plate {plate.id} could not be reconstructed at {time_ma} Ma: {exc}",
                plate_id=plate.id,
            )
            updated.append(plate)
            continue
        updated.append(apply_snapshot(plate, snapshot))

    logger.debug("reconstructed %d plates at %.3f Ma with %s", len(updated), time_ma, strategy.name)
    return WorldReconstruction(timeMa=time_ma, version=version, plates=updated, diagnostics=diagnostics)
