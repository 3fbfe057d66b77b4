from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

import numpy as np

from ...models import Coordinate, ReconstructionDiagnostic, TectonicPlate
from ..validation import record_diagnostic
from .spherical import rotate_coord, rotate_coords
from .timeline import keyframe_intervals, pole_rotation, sorted_keyframes


@dataclass(frozen=True)
class RotationSegment:
    axis: np.ndarray
    angle: float
    plate_id: str
    start: float
    end: float


def in_link_window(plate: TectonicPlate, time_ma: float) -> bool:
    if plate.linkTime is not None and time_ma < plate.linkTime:
        return False
    if plate.unlinkTime is not None and time_ma >= plate.unlinkTime:
        return False
    return True


def _link_start(plate: TectonicPlate, parent: TectonicPlate) -> float:
    if plate.linkTime is not None:
        return plate.linkTime
    if parent.motionKeyframes:
        return sorted_keyframes(parent.motionKeyframes)[0].time
    return parent.birthTime


def on_link_cycle(plate: TectonicPlate, plates_by_id: Mapping[str, TectonicPlate]) -> bool:
    seen = {plate.id}
    current = plate
    while current.linkedToPlateId is not None:
        if current.linkedToPlateId == plate.id:
            return True
        if current.linkedToPlateId in seen:
            # cycle further up the chain; this plate only hangs off it
            return False
        seen.add(current.linkedToPlateId)
        parent = plates_by_id.get(current.linkedToPlateId)
        if parent is None:
            return False
        current = parent
    return False


def plate_motion_segments(plate: TectonicPlate, start: float, end: float) -> list[RotationSegment]:
    segments: list[RotationSegment] = []
    if plate.motionKeyframes:
        for interval in keyframe_intervals(plate.motionKeyframes, start, end):
            axis, angle = pole_rotation(interval.keyframe.eulerPole, interval.duration)
            if axis is not None:
                segments.append(
                    RotationSegment(axis=axis, angle=angle, plate_id=plate.id, start=interval.start, end=interval.end)
                )
        return segments

    legacy_start = max(start, plate.birthTime)
    axis, angle = pole_rotation(plate.motion.eulerPole, max(0.0, end - legacy_start))
    if axis is not None:
        segments.append(RotationSegment(axis=axis, angle=angle, plate_id=plate.id, start=legacy_start, end=end))
    return segments


def ancestor_segments(
    plate: TectonicPlate,
    time_ma: float,
    start_time: float,
    plates_by_id: Mapping[str, TectonicPlate],
    diagnostics: list[ReconstructionDiagnostic] | None = None,
    _visited: frozenset[str] | None = None,
) -> list[RotationSegment]:
    """Rotations inherited through the motion-link chain, outermost ancestor first.

    Only motion in ``[start_time, time_ma)`` is accumulated, and only while
    ``time_ma`` lies inside each link's ``[linkTime, unlinkTime)`` window.
    """
    if plate.linkedToPlateId is None:
        return []

    visited = _visited if _visited is not None else frozenset({plate.id})
    parent = plates_by_id.get(plate.linkedToPlateId)
    if parent is None:
        record_diagnostic(
            diagnostics,
            code="missing_link_parent",
            severity="info",
            message=f"Plate {plate.id} is linked to unknown plate {plate.linkedToPlateId}; using own motion only",
            plate_id=plate.id,
            details={"linkedToPlateId": plate.linkedToPlateId},
        )
        return []

    if parent.id in visited or on_link_cycle(plate, plates_by_id):
        record_diagnostic(
            diagnostics,
            code="link_cycle",
            severity="warning",
            message=f"Circular link detected between {plate.id} and {parent.id}; link ignored",
            plate_id=plate.id,
            details={"chain": sorted(visited)},
        )
        return []

    if not in_link_window(plate, time_ma):
        return []

    window_start = max(start_time, _link_start(plate, parent))
    if window_start >= time_ma:
        return []

    segments = ancestor_segments(
        parent,
        time_ma,
        window_start,
        plates_by_id,
        diagnostics,
        visited | {parent.id},
    )
    segments.extend(plate_motion_segments(parent, window_start, time_ma))
    return segments


def apply_segments(coord: Coordinate, segments: Sequence[RotationSegment]) -> Coordinate:
    for segment in segments:
        coord = rotate_coord(coord, segment.axis, segment.angle)
    return coord


def apply_segments_to_ring(points: Sequence[Coordinate], segments: Sequence[RotationSegment]) -> list[Coordinate]:
    result = list(points)
    for segment in segments:
        result = rotate_coords(result, segment.axis, segment.angle)
    return result
