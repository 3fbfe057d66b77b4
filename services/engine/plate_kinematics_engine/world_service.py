from __future__ import annotations

import threading
import uuid

from .logging import get_logger
from .models import (
    EulerPole,
    InheritedFeaturesResponse,
    MotionEditResponse,
    PlateSnapshot,
    ReconstructionDiagnostic,
    TectonicPlate,
    TrajectoryRequest,
    TrajectoryResponse,
    World,
    WorldCreateRequest,
    WorldReconstruction,
)
from .modules.kinematics import (
    add_motion_keyframe,
    build_strategy,
    link_plate,
    reconstruct_plate,
    reconstruct_world,
    sample_trajectory,
    unlink_plate,
    update_flowlines,
)
from .modules.kinematics.editing import PlateNotFoundError
from .modules.kinematics.lineage import lineage_parents, resolve_inherited_features
from .modules.kinematics.reconstruction import ReconstructionStrategy
from .settings import Settings
from .utils import utc_now_iso
from .world_store import WorldStore

logger = get_logger(__name__)


class WorldNotFoundError(KeyError):
    pass


class WorldService:
    def __init__(self, settings: Settings, store: WorldStore):
        self.settings = settings
        self.store = store
        self._lock = threading.Lock()
        self._strategies: dict[str, ReconstructionStrategy] = {}

    def _strategy(self, world_id: str) -> ReconstructionStrategy:
        strategy = self._strategies.get(world_id)
        if strategy is None:
            strategy = build_strategy(self.settings)
            self._strategies[world_id] = strategy
        return strategy

    def _require_world(self, world_id: str) -> World:
        world = self.store.load_world(world_id)
        if world is None:
            raise WorldNotFoundError(world_id)
        return world

    def _require_plate(self, world: World, plate_id: str) -> TectonicPlate:
        for plate in world.plates:
            if plate.id == plate_id:
                return plate
        raise PlateNotFoundError(plate_id)

    def _commit(self, world: World, plates: list[TectonicPlate]) -> World:
        updated = world.model_copy(
            update={"plates": plates, "version": world.version + 1, "updatedAt": utc_now_iso()}
        )
        self.store.save_world(updated)
        # cached incremental state no longer matches the edited history
        self._strategies.pop(world.worldId, None)
        return updated

    def create_world(self, request: WorldCreateRequest) -> World:
        world = World(
            worldId=str(uuid.uuid4()),
            name=request.name,
            currentTime=request.currentTime,
            plates=request.plates,
        )
        with self._lock:
            self.store.save_world(world)
        logger.info("created world %s with %d plates", world.worldId, len(world.plates))
        return world

    def get_world(self, world_id: str) -> World | None:
        return self.store.load_world(world_id)

    def list_worlds(self) -> list[str]:
        return self.store.list_worlds()

    def reconstruct(self, world_id: str, time_ma: float) -> WorldReconstruction:
        with self._lock:
            world = self._require_world(world_id)
            version = world.version + 1
            result = reconstruct_world(world.plates, time_ma, self._strategy(world_id), version=version)
            plates = update_flowlines(
                result.plates,
                time_ma,
                step=self.settings.flowline_step_myr,
                fade_duration=self.settings.flowline_fade_duration_myr,
                auto_delete=self.settings.flowline_auto_delete,
                diagnostics=result.diagnostics,
            )
            result = result.model_copy(update={"plates": plates})
            self.store.save_world(
                world.model_copy(
                    update={
                        "plates": plates,
                        "currentTime": time_ma,
                        "version": version,
                        "updatedAt": utc_now_iso(),
                    }
                )
            )
            self.store.write_diagnostics(world_id, result)
        return result

    def plate_snapshot(self, world_id: str, plate_id: str, time_ma: float) -> PlateSnapshot:
        world = self._require_world(world_id)
        plate = self._require_plate(world, plate_id)
        return reconstruct_plate(plate, time_ma, world.plates)

    def edit_motion(self, world_id: str, plate_id: str, time_ma: float, pole: EulerPole) -> MotionEditResponse:
        with self._lock:
            world = self._require_world(world_id)
            plates, removed = add_motion_keyframe(
                world.plates, plate_id, pole, time_ma, tolerance=self.settings.keyframe_tolerance
            )
            updated = self._commit(world, plates)
        return MotionEditResponse(world=updated, removedPlateIds=removed)

    def link(self, world_id: str, plate_id: str, parent_plate_id: str, time_ma: float) -> World:
        with self._lock:
            world = self._require_world(world_id)
            plates = link_plate(
                world.plates, plate_id, parent_plate_id, time_ma, tolerance=self.settings.keyframe_tolerance
            )
            return self._commit(world, plates)

    def unlink(self, world_id: str, plate_id: str, time_ma: float) -> World:
        with self._lock:
            world = self._require_world(world_id)
            plates = unlink_plate(world.plates, plate_id, time_ma, tolerance=self.settings.keyframe_tolerance)
            return self._commit(world, plates)

    def inherited_features(self, world_id: str, plate_id: str) -> InheritedFeaturesResponse:
        world = self._require_world(world_id)
        plate = self._require_plate(world, plate_id)
        diagnostics: list[ReconstructionDiagnostic] = []
        plates_by_id = {item.id: item for item in world.plates}
        parents = lineage_parents(plate, plates_by_id, diagnostics)
        features = resolve_inherited_features(plate, parents, world.plates, diagnostics) if parents else []
        return InheritedFeaturesResponse(
            plateId=plate.id,
            parentPlateIds=[parent.id for parent in parents],
            features=features,
            diagnostics=diagnostics,
        )

    def sample_trajectory(self, world_id: str, request: TrajectoryRequest) -> TrajectoryResponse:
        world = self._require_world(world_id)
        self._require_plate(world, request.plateId)
        step = request.stepMyr if request.stepMyr is not None else self.settings.flowline_step_myr
        points = sample_trajectory(
            request.origin,
            request.plateId,
            request.fromTime,
            request.toTime,
            world.plates,
            step=step,
        )
        return TrajectoryResponse(
            plateId=request.plateId,
            fromTime=request.fromTime,
            toTime=request.toTime,
            points=points,
        )
