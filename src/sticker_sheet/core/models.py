"""
Data models for the sticker sheet pipeline.

Contains dataclasses for grid geometry, pose metadata, processing
configuration and the results handed back to callers. Sheets and
stickers themselves are PIL images that the pipeline never mutates
in place.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from PIL import Image

from ..config import (
    DEFAULT_CELL_PADDING,
    DEFAULT_EDGE_SOFTNESS,
    DEFAULT_GRID_COLS,
    DEFAULT_GRID_ROWS,
    DEFAULT_KEY_COLOR,
    DEFAULT_KEY_TOLERANCE,
    DEFAULT_OUTPUT_FORMAT,
    SUPPORTED_OUTPUT_FORMATS,
)
from .exceptions import ConfigError

QUALITY_NO_ALPHA = "no-alpha"
QUALITY_SUSPECT = "suspect"

RGB = Tuple[int, int, int]


@dataclass(frozen=True)
class GridLayout:
    """Rows x columns arrangement of poses on a sheet."""
    rows: int = DEFAULT_GRID_ROWS
    cols: int = DEFAULT_GRID_COLS

    @property
    def cell_count(self) -> int:
        return self.rows * self.cols

    def __str__(self) -> str:
        return f"{self.rows}x{self.cols}"


DEFAULT_GRID_LAYOUT = GridLayout(DEFAULT_GRID_ROWS, DEFAULT_GRID_COLS)


@dataclass(frozen=True)
class CellBounds:
    """
    Rectangle of one grid cell, in sheet pixel coordinates.

    Index is row-major: index = row * cols + col.
    """
    index: int
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def box(self) -> Tuple[int, int, int, int]:
        """(left, upper, right, lower) tuple for Image.crop."""
        return (self.x, self.y, self.right, self.bottom)

    def inset(self, padding: int) -> "CellBounds":
        """Shrink by padding on every side, never below 1x1."""
        return CellBounds(
            index=self.index,
            x=self.x + padding,
            y=self.y + padding,
            width=max(1, self.width - 2 * padding),
            height=max(1, self.height - 2 * padding),
        )

    def fits_within(self, width: int, height: int) -> bool:
        """True if this rectangle is non-empty and inside a width x height image."""
        return (
            self.x >= 0
            and self.y >= 0
            and self.width > 0
            and self.height > 0
            and self.right <= width
            and self.bottom <= height
        )


@dataclass(frozen=True)
class PoseDescriptor:
    """Pose text for one cell. Index 0 is the user's original pose."""
    index: int
    text: str
    is_original: bool = False


@dataclass(frozen=True)
class KeyConfig:
    """
    Chroma key settings.

    `enabled` is the caller's provider capability flag: keying runs only for
    providers known to return flat-color backdrops. A key_color of None means
    the backdrop color is sampled from the sheet border.
    """
    enabled: bool = True
    key_color: Optional[RGB] = DEFAULT_KEY_COLOR
    tolerance: int = DEFAULT_KEY_TOLERANCE
    edge_softness: int = DEFAULT_EDGE_SOFTNESS
    edge_smoothing: bool = True
    spill_correction: bool = True

    def __post_init__(self) -> None:
        if not 0 <= self.tolerance <= 255:
            raise ConfigError(f"Key tolerance must be within 0-255, got {self.tolerance}")
        if self.edge_softness <= 0:
            raise ConfigError(f"Edge softness must be positive, got {self.edge_softness}")
        if self.key_color is not None:
            color = tuple(self.key_color)
            if len(color) != 3 or any(not 0 <= int(c) <= 255 for c in color):
                raise ConfigError(f"Key color must be three 0-255 channels, got {self.key_color!r}")
            object.__setattr__(self, "key_color", tuple(int(c) for c in color))


@dataclass(frozen=True)
class CutConfig:
    """
    Sheet cutting settings.

    expected_size is the (width, height) the sheet was requested at. When set,
    cell geometry is computed from it instead of the decoded sheet size.
    """
    padding: int = DEFAULT_CELL_PADDING
    output_format: str = DEFAULT_OUTPUT_FORMAT
    transparent_background: bool = True
    expected_size: Optional[Tuple[int, int]] = None
    max_workers: Optional[int] = None

    def __post_init__(self) -> None:
        fmt = (self.output_format or "").upper()
        if fmt not in SUPPORTED_OUTPUT_FORMATS:
            raise ConfigError(
                f"Unsupported output format {self.output_format!r}; "
                f"expected one of {', '.join(SUPPORTED_OUTPUT_FORMATS)}"
            )
        object.__setattr__(self, "output_format", fmt)
        if self.max_workers is not None and self.max_workers < 1:
            raise ConfigError(f"max_workers must be at least 1, got {self.max_workers}")

    @property
    def worker_count(self) -> int:
        return self.max_workers or os.cpu_count() or 1


@dataclass(frozen=True, eq=False)
class StickerResult:
    """One cut sticker plus the pose it depicts."""
    index: int
    image: Image.Image
    bounds: CellBounds
    pose_text: str
    is_original: bool
    quality_flag: Optional[str] = None
    output_format: str = DEFAULT_OUTPUT_FORMAT

    def to_bytes(self) -> bytes:
        """Encode the sticker image in its output format."""
        from ..processing.image_utils import encode_image
        return encode_image(self.image, self.output_format)


@dataclass
class ProcessingMetadata:
    """What the pipeline did for one request."""
    layout: GridLayout
    padding: int
    keying_applied: bool = False
    key_color: Optional[RGB] = None
    fallback_used: bool = False
    cell_failures: Dict[int, str] = field(default_factory=dict)
    quality_warnings: Dict[int, List[str]] = field(default_factory=dict)

    def add_warning(self, index: int, flag: str) -> None:
        flags = self.quality_warnings.setdefault(index, [])
        if flag not in flags:
            flags.append(flag)

    @property
    def suspect_indices(self) -> List[int]:
        return sorted(i for i, flags in self.quality_warnings.items() if QUALITY_SUSPECT in flags)

    def to_dict(self) -> Dict[str, Any]:
        """Plain dict view for YAML/JSON manifests."""
        return {
            "layout": {"rows": self.layout.rows, "cols": self.layout.cols},
            "padding": self.padding,
            "keying_applied": self.keying_applied,
            "key_color": list(self.key_color) if self.key_color else None,
            "fallback_used": self.fallback_used,
            "cell_failures": dict(sorted(self.cell_failures.items())),
            "quality_warnings": {i: list(f) for i, f in sorted(self.quality_warnings.items())},
        }


@dataclass(frozen=True, eq=False)
class PipelineResult:
    """Processed (post-keying) sheet, stickers in index order, and metadata."""
    sheet: Image.Image
    stickers: Tuple[StickerResult, ...]
    metadata: ProcessingMetadata
