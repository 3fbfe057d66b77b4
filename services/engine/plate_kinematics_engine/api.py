from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from .logging import configure_logging
from .models import (
    InheritedFeaturesResponse,
    LinkRequest,
    MotionEditRequest,
    MotionEditResponse,
    PlateSnapshot,
    TrajectoryRequest,
    TrajectoryResponse,
    UnlinkRequest,
    World,
    WorldCreateRequest,
    WorldReconstruction,
)
from .modules.kinematics import MotionEditError, PlateNotFoundError
from .settings import Settings, load_settings
from .world_service import WorldNotFoundError, WorldService
from .world_store import WorldStore


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()
    configure_logging()
    store = WorldStore(settings.data_root)
    service = WorldService(settings, store)

    app = FastAPI(title="Plate Kinematics Engine", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.store = store
    app.state.service = service

    def require_world(world_id: str) -> World:
        world = service.get_world(world_id)
        if world is None:
            raise HTTPException(status_code=404, detail="world not found")
        return world

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/v1/worlds", response_model=World)
    def create_world(request: WorldCreateRequest) -> World:
        return service.create_world(request)

    @app.get("/v1/worlds/{world_id}", response_model=World)
    def get_world(world_id: str) -> World:
        return require_world(world_id)

    @app.get("/v1/worlds/{world_id}/reconstruction/{time_ma}", response_model=WorldReconstruction)
    def reconstruct(world_id: str, time_ma: float) -> WorldReconstruction:
        require_world(world_id)
        try:
            return service.reconstruct(world_id, time_ma)
        except WorldNotFoundError:
            raise HTTPException(status_code=404, detail="world not found")

    @app.get("/v1/worlds/{world_id}/plates/{plate_id}/snapshot/{time_ma}", response_model=PlateSnapshot)
    def plate_snapshot(world_id: str, plate_id: str, time_ma: float) -> PlateSnapshot:
        require_world(world_id)
        try:
            return service.plate_snapshot(world_id, plate_id, time_ma)
        except PlateNotFoundError:
            raise HTTPException(status_code=404, detail="plate not found")

    @app.post("/v1/worlds/{world_id}/plates/{plate_id}/motion", response_model=MotionEditResponse)
    def edit_motion(world_id: str, plate_id: str, request: MotionEditRequest) -> MotionEditResponse:
        require_world(world_id)
        try:
            return service.edit_motion(world_id, plate_id, request.timeMa, request.eulerPole)
        except PlateNotFoundError:
            raise HTTPException(status_code=404, detail="plate not found")
        except MotionEditError as exc:
            raise HTTPException(status_code=400, detail=str(exc))

    @app.post("/v1/worlds/{world_id}/plates/{plate_id}/link", response_model=World)
    def link(world_id: str, plate_id: str, request: LinkRequest) -> World:
        require_world(world_id)
        try:
            return service.link(world_id, plate_id, request.parentPlateId, request.timeMa)
        except PlateNotFoundError:
            raise HTTPException(status_code=404, detail="plate not found")
        except MotionEditError as exc:
            raise HTTPException(status_code=400, detail=str(exc))

    @app.post("/v1/worlds/{world_id}/plates/{plate_id}/unlink", response_model=World)
    def unlink(world_id: str, plate_id: str, request: UnlinkRequest) -> World:
        require_world(world_id)
        try:
            return service.unlink(world_id, plate_id, request.timeMa)
        except PlateNotFoundError:
            raise HTTPException(status_code=404, detail="plate not found")
        except MotionEditError as exc:
            raise HTTPException(status_code=400, detail=str(exc))

    @app.get(
        "/v1/worlds/{world_id}/plates/{plate_id}/inherited-features",
        response_model=InheritedFeaturesResponse,
    )
    def inherited_features(world_id: str, plate_id: str) -> InheritedFeaturesResponse:
        require_world(world_id)
        try:
            return service.inherited_features(world_id, plate_id)
        except PlateNotFoundError:
            raise HTTPException(status_code=404, detail="plate not found")

    @app.post("/v1/worlds/{world_id}/trajectories", response_model=TrajectoryResponse)
    def trajectories(world_id: str, request: TrajectoryRequest) -> TrajectoryResponse:
        require_world(world_id)
        try:
            return service.sample_trajectory(world_id, request)
        except PlateNotFoundError:
            raise HTTPException(status_code=404, detail="plate not found")

    return app
