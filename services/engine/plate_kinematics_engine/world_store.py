from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from .models import World, WorldReconstruction
from .utils import ensure_dir


class WorldStore:
    def __init__(self, data_root: Path):
        self.data_root = ensure_dir(data_root)
        self.worlds_root = ensure_dir(self.data_root / "worlds")

    def world_dir(self, world_id: str) -> Path:
        return self.worlds_root / world_id

    def world_path(self, world_id: str) -> Path:
        return self.world_dir(world_id) / "world.json"

    def diagnostics_path(self, world_id: str, version: int) -> Path:
        return self.world_dir(world_id) / "diagnostics" / f"{version}.json"

    def write_json(self, path: Path, payload: dict[str, Any]) -> None:
        ensure_dir(path.parent)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        tmp.replace(path)

    def read_json(self, path: Path) -> dict[str, Any]:
        return json.loads(path.read_text(encoding="utf-8"))

    def save_world(self, world: World) -> Path:
        path = self.world_path(world.worldId)
        self.write_json(path, world.model_dump(mode="json"))
        return path

    def load_world(self, world_id: str) -> World | None:
        path = self.world_path(world_id)
        if not path.exists():
            return None
        return World.model_validate(self.read_json(path))

    def list_worlds(self) -> list[str]:
        return sorted(path.parent.name for path in self.worlds_root.glob("*/world.json"))

    def write_diagnostics(self, world_id: str, reconstruction: WorldReconstruction) -> Path:
        path = self.diagnostics_path(world_id, reconstruction.version)
        self.write_json(
            path,
            {
                "timeMa": reconstruction.timeMa,
                "version": reconstruction.version,
                "diagnostics": [diag.model_dump(mode="json") for diag in reconstruction.diagnostics],
            },
        )
        return path

    def read_diagnostics(self, world_id: str, version: int) -> dict[str, Any] | None:
        path = self.diagnostics_path(world_id, version)
        if not path.exists():
            return None
        return self.read_json(path)
