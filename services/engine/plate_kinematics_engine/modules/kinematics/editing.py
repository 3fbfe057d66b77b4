from __future__ import annotations

from collections import deque
from typing import Sequence

from ...logging import get_logger
from ...models import CrustType, EulerPole, MotionKeyframe, PlateEvent, TectonicPlate
from ...utils import generate_id
from .composer import in_link_window
from .reconstruction import reconstruct_plate
from .timeline import KEYFRAME_TIME_TOLERANCE, active_keyframe, insert_keyframe, sorted_keyframes

logger = get_logger(__name__)


class MotionEditError(ValueError):
    pass


class LinkError(MotionEditError):
    pass


class PlateNotFoundError(KeyError):
    pass


def _find(plates: Sequence[TectonicPlate], plate_id: str) -> TectonicPlate:
    for plate in plates:
        if plate.id == plate_id:
            return plate
    raise PlateNotFoundError(plate_id)


def _replace(plates: Sequence[TectonicPlate], updated: TectonicPlate) -> list[TectonicPlate]:
    return [updated if plate.id == updated.id else plate for plate in plates]


def _check_edit_time(plate: TectonicPlate, time_ma: float) -> None:
    if time_ma < plate.birthTime:
        raise MotionEditError(f"plate {plate.id} is not born at {time_ma} Ma")
    if plate.deathTime is not None and time_ma >= plate.deathTime:
        raise MotionEditError(f"plate {plate.id} is dead at {time_ma} Ma")


def _snapshot_keyframe(
    plate: TectonicPlate,
    time_ma: float,
    pole: EulerPole,
    plates: Sequence[TectonicPlate],
    label: str | None = None,
) -> MotionKeyframe:
    snapshot = reconstruct_plate(plate, time_ma, plates)
    if snapshot.fallbackUsed:
        raise MotionEditError(f"plate {plate.id} has invalid geometry; fix it before editing motion")
    # features generated later stay dynamic and are anchored at their own birth
    features = [feat for feat in snapshot.features if feat.generatedAt is None or feat.generatedAt <= time_ma]
    strokes = [stroke for stroke in snapshot.paintStrokes if stroke.birthTime is None or stroke.birthTime <= time_ma]
    return MotionKeyframe(
        time=time_ma,
        eulerPole=pole,
        snapshotPolygons=snapshot.polygons,
        snapshotFeatures=features,
        snapshotPaintStrokes=strokes,
        label=label,
    )


def _bake_legacy_motion(plate: TectonicPlate, time_ma: float, tolerance: float) -> TectonicPlate:
    # the legacy pole becomes an explicit birth keyframe before the first edit after birth
    if any(kf.time < time_ma - tolerance for kf in plate.motionKeyframes):
        return plate
    if time_ma - plate.birthTime < tolerance:
        return plate

    strokes = [
        stroke.model_copy(update={"points": list(stroke.originalPoints or stroke.points)})
        for stroke in plate.paintStrokes
        if stroke.birthTime is None or stroke.birthTime <= plate.birthTime
    ]
    birth_keyframe = MotionKeyframe(
        time=plate.birthTime,
        eulerPole=plate.motion.eulerPole,
        snapshotPolygons=list(plate.initialPolygons),
        snapshotFeatures=list(plate.initialFeatures),
        snapshotPaintStrokes=strokes,
        label="birth",
    )
    return plate.model_copy(
        update={"motionKeyframes": insert_keyframe(plate.motionKeyframes, birth_keyframe, tolerance)}
    )


def _record_event(
    plate: TectonicPlate,
    event_type: str,
    time_ma: float,
    description: str,
    tolerance: float = KEYFRAME_TIME_TOLERANCE,
) -> TectonicPlate:
    events = list(plate.events)
    if event_type == "motion_change":
        events = [
            event for event in events if not (event.type == event_type and abs(event.time - time_ma) < tolerance)
        ]
    events.append(PlateEvent(id=generate_id(), time=time_ma, type=event_type, description=description))
    events.sort(key=lambda event: event.time)
    return plate.model_copy(update={"events": events})


def _history_before(plate: TectonicPlate, time_ma: float, tolerance: float) -> TectonicPlate:
    update: dict = {"motionKeyframes": [kf for kf in plate.motionKeyframes if kf.time < time_ma - tolerance]}
    if plate.unlinkTime is not None and abs(plate.unlinkTime - time_ma) < tolerance:
        # the state at the unlink time still carries the parent's motion up to it
        update["unlinkTime"] = None
    return plate.model_copy(update=update)


def rebuild_snapshots_after(
    plate: TectonicPlate,
    time_ma: float,
    plates: Sequence[TectonicPlate],
    tolerance: float = KEYFRAME_TIME_TOLERANCE,
) -> TectonicPlate:
    # oldest first, so a change at time_ma flows through every later snapshot
    current = plate
    for keyframe in sorted_keyframes(plate.motionKeyframes):
        if keyframe.time <= time_ma + tolerance:
            continue
        history = _history_before(current, keyframe.time, tolerance)
        rebuilt = _snapshot_keyframe(history, keyframe.time, keyframe.eulerPole, _replace(plates, history), keyframe.label)
        current = current.model_copy(
            update={"motionKeyframes": insert_keyframe(current.motionKeyframes, rebuilt, tolerance)}
        )
    return current


def _descendants_in_link_order(plate_id: str, plates: Sequence[TectonicPlate]) -> list[str]:
    # breadth first, so every parent comes before its children
    children: dict[str, list[str]] = {}
    for plate in plates:
        if plate.linkedToPlateId is not None:
            children.setdefault(plate.linkedToPlateId, []).append(plate.id)

    order: list[str] = []
    seen = {plate_id}
    pending = deque(children.get(plate_id, []))
    while pending:
        current = pending.popleft()
        if current in seen:
            continue
        seen.add(current)
        order.append(current)
        pending.extend(children.get(current, []))
    return order


def link_descendants(plate_id: str, plates: Sequence[TectonicPlate]) -> set[str]:
    return set(_descendants_in_link_order(plate_id, plates))


def _parent_pole(plates: Sequence[TectonicPlate], parent_id: str | None, time_ma: float) -> EulerPole:
    parent = next((plate for plate in plates if plate.id == parent_id), None)
    if parent is None:
        return EulerPole()
    keyframe = active_keyframe(parent.motionKeyframes, time_ma)
    return keyframe.eulerPole if keyframe is not None else parent.motion.eulerPole


def _rebase_unlink_pole(
    child: TectonicPlate,
    before: Sequence[TectonicPlate],
    after: Sequence[TectonicPlate],
    tolerance: float,
) -> TectonicPlate:
    if child.unlinkTime is None or child.linkedToPlateId is None:
        return child
    baked = _parent_pole(before, child.linkedToPlateId, child.unlinkTime)
    pole = _parent_pole(after, child.linkedToPlateId, child.unlinkTime)
    keyframes = []
    for keyframe in child.motionKeyframes:
        # a pole edited by hand after the unlink is left alone
        if keyframe.label == "unlink" and abs(keyframe.time - child.unlinkTime) < tolerance and keyframe.eulerPole == baked:
            keyframe = keyframe.model_copy(update={"eulerPole": pole})
        keyframes.append(keyframe)
    return child.model_copy(update={"motionKeyframes": keyframes})


def rebuild_link_descendants(
    before: Sequence[TectonicPlate],
    after: Sequence[TectonicPlate],
    plate_id: str,
    time_ma: float,
    tolerance: float = KEYFRAME_TIME_TOLERANCE,
) -> list[TectonicPlate]:
    """Refresh the keyframes of plates riding on ``plate_id`` after its motion changed at ``time_ma``.

    ``before`` is the plate list prior to the change and ``after`` the list
    holding the changed plate.
    """
    current = list(after)
    for child_id in _descendants_in_link_order(plate_id, current):
        child = _find(current, child_id)
        if not any(kf.time > time_ma + tolerance for kf in child.motionKeyframes):
            continue
        child = _rebase_unlink_pole(child, before, current, tolerance)
        child = rebuild_snapshots_after(child, time_ma, _replace(current, child), tolerance)
        current = _replace(current, child)
    return current


def invalidate_future_crust(
    plates: Sequence[TectonicPlate],
    plate_id: str,
    time_ma: float,
) -> tuple[list[TectonicPlate], list[str]]:
    affected = {plate_id} | link_descendants(plate_id, plates)
    kept: list[TectonicPlate] = []
    removed: list[str] = []
    for plate in plates:
        if (
            plate.id != plate_id
            and plate.crustType == CrustType.oceanic
            and plate.birthTime >= time_ma
            and plate.linkedToPlateId in affected
        ):
            removed.append(plate.id)
            continue
        kept.append(plate)

    if removed:
        logger.info("motion edit of %s at %.3f Ma invalidated oceanic plates %s", plate_id, time_ma, removed)
    return kept, removed


def add_motion_keyframe(
    plates: Sequence[TectonicPlate],
    plate_id: str,
    pole: EulerPole,
    time_ma: float,
    tolerance: float = KEYFRAME_TIME_TOLERANCE,
) -> tuple[list[TectonicPlate], list[str]]:
    plate = _find(plates, plate_id)
    _check_edit_time(plate, time_ma)

    plate = _bake_legacy_motion(plate, time_ma, tolerance)
    history = plate
    previous = active_keyframe(plate.motionKeyframes, time_ma)
    label = None
    if previous is not None and abs(previous.time - time_ma) < tolerance:
        label = previous.label
        # replacing a keyframe: the state at its time comes from the history before it
        history = _history_before(plate, time_ma, tolerance)
    keyframe = _snapshot_keyframe(history, time_ma, pole, _replace(plates, history), label=label)

    plate = plate.model_copy(
        update={
            "motionKeyframes": insert_keyframe(plate.motionKeyframes, keyframe, tolerance),
            "motion": plate.motion.model_copy(update={"eulerPole": pole}),
        }
    )
    plate = rebuild_snapshots_after(plate, time_ma, _replace(plates, plate), tolerance)
    plate = _record_event(
        plate,
        "motion_change",
        time_ma,
        f"pole ({pole.position[0]:.2f}, {pole.position[1]:.2f}) at {pole.rate:g} deg/Ma",
        tolerance,
    )
    logger.info("plate %s motion changed at %.3f Ma", plate_id, time_ma)
    kept, removed = invalidate_future_crust(_replace(plates, plate), plate_id, time_ma)
    return rebuild_link_descendants(plates, kept, plate_id, time_ma, tolerance), removed


def _links_to(start_id: str, target_id: str, plates: Sequence[TectonicPlate]) -> bool:
    plates_by_id = {plate.id: plate for plate in plates}
    seen: set[str] = set()
    current = plates_by_id.get(start_id)
    while current is not None and current.id not in seen:
        if current.id == target_id:
            return True
        seen.add(current.id)
        if current.linkedToPlateId is None:
            return False
        current = plates_by_id.get(current.linkedToPlateId)
    return False


def link_plate(
    plates: Sequence[TectonicPlate],
    child_id: str,
    parent_id: str,
    time_ma: float,
    tolerance: float = KEYFRAME_TIME_TOLERANCE,
) -> list[TectonicPlate]:
    child = _find(plates, child_id)
    parent = _find(plates, parent_id)
    if child.id == parent.id:
        raise LinkError(f"plate {child_id} cannot be linked to itself")
    if _links_to(parent.id, child.id, plates):
        raise LinkError(f"linking {child_id} to {parent_id} would create a cycle")
    if child.linkedToPlateId == parent.id and child.unlinkTime is None:
        raise LinkError(f"plate {child_id} is already linked to {parent_id}")
    _check_edit_time(child, time_ma)

    child = _bake_legacy_motion(child, time_ma, tolerance)
    if not any(abs(kf.time - time_ma) < tolerance for kf in child.motionKeyframes):
        # own motion stops; the parent carries the plate from here
        keyframe = _snapshot_keyframe(child, time_ma, EulerPole(), _replace(plates, child), label="link")
        child = child.model_copy(update={"motionKeyframes": insert_keyframe(child.motionKeyframes, keyframe, tolerance)})

    child = child.model_copy(update={"linkedToPlateId": parent.id, "linkTime": time_ma, "unlinkTime": None})
    child = rebuild_snapshots_after(child, time_ma, _replace(plates, child), tolerance)
    child = _record_event(child, "link", time_ma, f"linked to {parent.name}")
    logger.info("plate %s linked to %s at %.3f Ma", child_id, parent_id, time_ma)
    return rebuild_link_descendants(plates, _replace(plates, child), child_id, time_ma, tolerance)


def unlink_plate(
    plates: Sequence[TectonicPlate],
    child_id: str,
    time_ma: float,
    tolerance: float = KEYFRAME_TIME_TOLERANCE,
) -> list[TectonicPlate]:
    """Close the link window of ``child_id`` at ``time_ma``.

    The parent's pole active at ``time_ma`` is baked into a child keyframe so
    the plate keeps moving the same way on its own.
    """
    child = _find(plates, child_id)
    if child.linkedToPlateId is None or not in_link_window(child, time_ma):
        raise LinkError(f"plate {child_id} is not linked at {time_ma} Ma")
    if child.linkTime is not None and time_ma <= child.linkTime:
        raise LinkError(f"plate {child_id} cannot be unlinked at or before its link time")
    _check_edit_time(child, time_ma)

    parent = next((plate for plate in plates if plate.id == child.linkedToPlateId), None)
    pole = _parent_pole(plates, child.linkedToPlateId, time_ma)

    child = _bake_legacy_motion(child, time_ma, tolerance)
    keyframe = _snapshot_keyframe(child, time_ma, pole, _replace(plates, child), label="unlink")
    child = child.model_copy(
        update={
            "motionKeyframes": insert_keyframe(child.motionKeyframes, keyframe, tolerance),
            "unlinkTime": time_ma,
        }
    )
    child = rebuild_snapshots_after(child, time_ma, _replace(plates, child), tolerance)
    child = _record_event(child, "unlink", time_ma, f"unlinked from {parent.name if parent else child.linkedToPlateId}")
    logger.info("plate %s unlinked at %.3f Ma", child_id, time_ma)
    return rebuild_link_descendants(plates, _replace(plates, child), child_id, time_ma, tolerance)
