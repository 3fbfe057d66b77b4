from __future__ import annotations

from typing import Mapping, Sequence

from ...models import Coordinate, FeatureType, ReconstructionDiagnostic, TectonicPlate
from .composer import apply_segments
from .plate_state import motion_segments

DEFAULT_STEP_MYR = 5.0
DEFAULT_FADE_DURATION_MYR = 100.0


def position_at_time(
    origin: Coordinate,
    origin_time: float,
    plate: TectonicPlate,
    time_ma: float,
    plates_by_id: Mapping[str, TectonicPlate] | None = None,
    diagnostics: list[ReconstructionDiagnostic] | None = None,
) -> Coordinate:
    # keyframe intervals are replayed one by one, never collapsed into the latest pole
    if time_ma <= origin_time:
        return origin
    plates_by_id = plates_by_id if plates_by_id is not None else {plate.id: plate}
    return apply_segments(origin, motion_segments(plate, origin_time, time_ma, plates_by_id, diagnostics))


def sample_trajectory(
    origin: Coordinate,
    plate_id: str,
    from_time: float,
    to_time: float,
    all_plates: Sequence[TectonicPlate],
    step: float = DEFAULT_STEP_MYR,
    diagnostics: list[ReconstructionDiagnostic] | None = None,
) -> list[Coordinate]:
    if step <= 0:
        raise ValueError("step must be positive")

    plates_by_id = {plate.id: plate for plate in all_plates}
    plate = plates_by_id.get(plate_id)
    if plate is None:
        return [origin]

    points: list[Coordinate] = []
    idx = 0
    current = from_time
    sampled = None
    while current <= to_time:
        points.append(position_at_time(origin, from_time, plate, current, plates_by_id, diagnostics))
        sampled = current
        idx += 1
        current = from_time + idx * step
    if sampled != to_time:
        points.append(position_at_time(origin, from_time, plate, to_time, plates_by_id, diagnostics))
    return points


def update_flowlines(
    plates: Sequence[TectonicPlate],
    current_time: float,
    step: float = DEFAULT_STEP_MYR,
    fade_duration: float = DEFAULT_FADE_DURATION_MYR,
    auto_delete: bool = True,
    diagnostics: list[ReconstructionDiagnostic] | None = None,
) -> list[TectonicPlate]:
    updated: list[TectonicPlate] = []
    for plate in plates:
        if not any(feat.type == FeatureType.flowline for feat in plate.features):
            updated.append(plate)
            continue

        features = []
        for feat in plate.features:
            if feat.type != FeatureType.flowline:
                features.append(feat)
                continue
            start_time = feat.generatedAt if feat.generatedAt is not None else plate.birthTime
            origin = feat.originalPosition if feat.originalPosition is not None else feat.position
            seed_plate_id = feat.seedPlateId or plate.id
            trail = sample_trajectory(origin, seed_plate_id, start_time, current_time, plates, step, diagnostics)
            update: dict = {"trail": trail}
            if auto_delete and feat.deathTime is None and current_time - start_time >= fade_duration:
                update["deathTime"] = current_time
            features.append(feat.model_copy(update=update))
        updated.append(plate.model_copy(update={"features": features}))
    return updated
