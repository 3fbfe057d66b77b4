from .editing import (
    LinkError,
    MotionEditError,
    PlateNotFoundError,
    add_motion_keyframe,
    invalidate_future_crust,
    link_descendants,
    link_plate,
    rebuild_link_descendants,
    unlink_plate,
)
from .flowline import position_at_time, sample_trajectory, update_flowlines
from .lineage import assign_inherited_features, point_in_polygon, resolve_inherited_features, resolve_world_inheritance
from .plate_state import (
    ClassifiedFeature,
    FeatureClass,
    classify_features,
    classify_strokes,
    transform_landmasses,
    transform_plate,
    transform_strokes,
)
from .reconstruction import (
    HistoryRewriteStrategy,
    IncrementalStrategy,
    build_strategy,
    reconstruct_plate,
    reconstruct_world,
)

__all__ = [
    "LinkError",
    "MotionEditError",
    "PlateNotFoundError",
    "add_motion_keyframe",
    "invalidate_future_crust",
    "link_descendants",
    "link_plate",
    "rebuild_link_descendants",
    "unlink_plate",
    "position_at_time",
    "sample_trajectory",
    "update_flowlines",
    "assign_inherited_features",
    "point_in_polygon",
    "resolve_inherited_features",
    "resolve_world_inheritance",
    "ClassifiedFeature",
    "FeatureClass",
    "classify_features",
    "classify_strokes",
    "transform_landmasses",
    "transform_plate",
    "transform_strokes",
    "HistoryRewriteStrategy",
    "IncrementalStrategy",
    "build_strategy",
    "reconstruct_plate",
    "reconstruct_world",
]
