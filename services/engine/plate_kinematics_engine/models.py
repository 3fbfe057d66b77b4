from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

from .utils import utc_now_iso

# [longitude, latitude] in degrees
Coordinate = tuple[float, float]


class FeatureType(str, Enum):
    mountain = "mountain"
    volcano = "volcano"
    hotspot = "hotspot"
    rift = "rift"
    trench = "trench"
    island = "island"
    weakness = "weakness"
    poly_region = "poly_region"
    flowline = "flowline"
    seafloor = "seafloor"


class CrustType(str, Enum):
    continental = "continental"
    oceanic = "oceanic"


class EulerPole(BaseModel):
    position: Coordinate = (0.0, 90.0)
    rate: float = 0.0
    visible: bool = False


class Polygon(BaseModel):
    id: str
    points: list[Coordinate] = Field(default_factory=list)
    closed: bool = True


class Feature(BaseModel):
    id: str
    type: FeatureType = FeatureType.mountain
    position: Coordinate
    originalPosition: Coordinate | None = None
    rotation: float = 0.0
    scale: float = 1.0
    properties: dict[str, Any] = Field(default_factory=dict)
    generatedAt: float | None = None
    deathTime: float | None = None
    name: str | None = None
    description: str | None = None
    trail: list[Coordinate] | None = None
    seedPlateId: str | None = None
    inheritedFromPlateId: str | None = None


class PaintStroke(BaseModel):
    id: str
    color: str = "#ffffff"
    width: float = 2.0
    opacity: float = 1.0
    points: list[Coordinate] = Field(default_factory=list)
    originalPoints: list[Coordinate] | None = None
    birthTime: float | None = None


class Landmass(BaseModel):
    id: str
    name: str | None = None
    polygon: list[Coordinate] = Field(default_factory=list)
    originalPolygon: list[Coordinate] | None = None
    birthTime: float | None = None
    linkedToPlateId: str | None = None


class MotionKeyframe(BaseModel):
    time: float
    eulerPole: EulerPole = Field(default_factory=EulerPole)
    snapshotPolygons: list[Polygon] = Field(default_factory=list)
    snapshotFeatures: list[Feature] = Field(default_factory=list)
    snapshotPaintStrokes: list[PaintStroke] = Field(default_factory=list)
    label: str | None = None


class PlateMotion(BaseModel):
    eulerPole: EulerPole = Field(default_factory=EulerPole)


class PlateEvent(BaseModel):
    id: str
    time: float
    type: Literal["motion_change", "split", "fusion", "birth", "link", "unlink"]
    description: str = ""


class TectonicPlate(BaseModel):
    id: str
    name: str
    color: str = "#4a9c6d"
    description: str | None = None
    zIndex: int | None = None

    polygons: list[Polygon] = Field(default_factory=list)
    features: list[Feature] = Field(default_factory=list)
    center: Coordinate = (0.0, 0.0)
    paintStrokes: list[PaintStroke] = Field(default_factory=list)
    landmasses: list[Landmass] = Field(default_factory=list)

    birthTime: float = 0.0
    deathTime: float | None = None
    parentPlateId: str | None = None
    parentPlateIds: list[str] | None = None

    initialPolygons: list[Polygon] = Field(default_factory=list)
    initialFeatures: list[Feature] = Field(default_factory=list)
    motionKeyframes: list[MotionKeyframe] = Field(default_factory=list)

    motion: PlateMotion = Field(default_factory=PlateMotion)
    events: list[PlateEvent] = Field(default_factory=list)

    linkedToPlateId: str | None = None
    linkTime: float | None = None
    unlinkTime: float | None = None

    crustType: CrustType = CrustType.continental
    visible: bool = True
    locked: bool = False

    def lineage_parent_ids(self) -> list[str]:
        if self.parentPlateIds:
            return list(self.parentPlateIds)
        if self.parentPlateId:
            return [self.parentPlateId]
        return []

    def is_active_at(self, time_ma: float) -> bool:
        if time_ma < self.birthTime:
            return False
        return self.deathTime is None or time_ma < self.deathTime


class World(BaseModel):
    worldId: str
    name: str = "Untitled World"
    currentTime: float = 0.0
    version: int = 0
    plates: list[TectonicPlate] = Field(default_factory=list)
    createdAt: str = Field(default_factory=utc_now_iso)
    updatedAt: str = Field(default_factory=utc_now_iso)

    @model_validator(mode="after")
    def validate_unique_plate_ids(self) -> "World":
        seen: set[str] = set()
        for plate in self.plates:
            if plate.id in seen:
                raise ValueError(f"duplicate plate id {plate.id}")
            seen.add(plate.id)
        return self


class ReconstructionDiagnostic(BaseModel):
    code: str
    severity: Literal["error", "warning", "info"]
    message: str
    plateId: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class PlateSnapshot(BaseModel):
    plateId: str
    timeMa: float
    polygons: list[Polygon]
    features: list[Feature]
    paintStrokes: list[PaintStroke] = Field(default_factory=list)
    landmasses: list[Landmass] = Field(default_factory=list)
    center: Coordinate
    fallbackUsed: bool = False


class WorldReconstruction(BaseModel):
    timeMa: float
    version: int = 0
    plates: list[TectonicPlate]
    diagnostics: list[ReconstructionDiagnostic] = Field(default_factory=list)


class WorldCreateRequest(BaseModel):
    name: str = Field(default="Untitled World")
    currentTime: float = 0.0
    plates: list[TectonicPlate] = Field(default_factory=list)


class MotionEditRequest(BaseModel):
    timeMa: float
    eulerPole: EulerPole


class LinkRequest(BaseModel):
    parentPlateId: str
    timeMa: float


class UnlinkRequest(BaseModel):
    timeMa: float


class TrajectoryRequest(BaseModel):
    origin: Coordinate
    plateId: str
    fromTime: float
    toTime: float
    stepMyr: float | None = None

    @model_validator(mode="after")
    def validate_step(self) -> "TrajectoryRequest":
        if self.stepMyr is not None and self.stepMyr <= 0:
            raise ValueError("stepMyr must be positive")
        return self


class TrajectoryResponse(BaseModel):
    plateId: str
    fromTime: float
    toTime: float
    points: list[Coordinate]


class InheritedFeaturesResponse(BaseModel):
    plateId: str
    parentPlateIds: list[str]
    features: list[Feature]
    diagnostics: list[ReconstructionDiagnostic] = Field(default_factory=list)


class MotionEditResponse(BaseModel):
    world: World
    removedPlateIds: list[str] = Field(default_factory=list)
