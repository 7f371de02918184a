"""
Core data layer.

Contains the data models and typed failures shared by every
processing stage, independent of any I/O.
"""

from .exceptions import (
    StickerPipelineError,
    ConfigError,
    InvalidLayout,
    GeometryError,
    BoundsOutOfRange,
    FormatError,
    UnsupportedFormat,
)
from .models import (
    QUALITY_NO_ALPHA,
    QUALITY_SUSPECT,
    DEFAULT_GRID_LAYOUT,
    GridLayout,
    CellBounds,
    PoseDescriptor,
    KeyConfig,
    CutConfig,
    StickerResult,
    ProcessingMetadata,
    PipelineResult,
)

__all__ = [
    # Errors
    "StickerPipelineError",
    "ConfigError",
    "InvalidLayout",
    "GeometryError",
    "BoundsOutOfRange",
    "FormatError",
    "UnsupportedFormat",
    # Models
    "QUALITY_NO_ALPHA",
    "QUALITY_SUSPECT",
    "DEFAULT_GRID_LAYOUT",
    "GridLayout",
    "CellBounds",
    "PoseDescriptor",
    "KeyConfig",
    "CutConfig",
    "StickerResult",
    "ProcessingMetadata",
    "PipelineResult",
]
