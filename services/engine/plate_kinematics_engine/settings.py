from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    data_root: Path
    keyframe_tolerance: float = 0.001
    flowline_step_myr: float = 5.0
    flowline_fade_duration_myr: float = 100.0
    flowline_auto_delete: bool = True
    reconstruction_strategy: str = "history_rewrite"
    incremental_tolerance_deg: float = 1e-6
    incremental_verify_every: int = 10


def load_settings() -> Settings:
    env_root = os.environ.get("PKE_DATA_ROOT")
    if env_root:
        root = Path(env_root).expanduser().resolve()
    else:
        root = Path.home() / ".plate_kinematics"
    return Settings(
        data_root=root,
        keyframe_tolerance=float(os.environ.get("PKE_KEYFRAME_TOLERANCE", 0.001)),
        flowline_step_myr=float(os.environ.get("PKE_FLOWLINE_STEP_MYR", 5.0)),
        flowline_fade_duration_myr=float(os.environ.get("PKE_FLOWLINE_FADE_MYR", 100.0)),
        flowline_auto_delete=_env_bool("PKE_FLOWLINE_AUTO_DELETE", True),
        reconstruction_strategy=os.environ.get("PKE_RECONSTRUCTION_STRATEGY", "history_rewrite"),
        incremental_tolerance_deg=float(os.environ.get("PKE_INCREMENTAL_TOLERANCE_DEG", 1e-6)),
        incremental_verify_every=int(os.environ.get("PKE_INCREMENTAL_VERIFY_EVERY", 10)),
    )
