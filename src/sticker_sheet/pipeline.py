#!/usr/bin/env python3
"""
pipeline.py

Turns one generated pose sheet into labeled sticker images.

This is the orchestrator that sequences the processing stages. The heavy
lifting lives in the sticker_sheet.processing modules.

Flow (per sheet):
  - Validate the request and resolve cell geometry (config errors surface
    here, before any pixel work)
  - Chroma key the backdrop if the provider returns flat-color sheets
  - Cut every cell; on a bounds failure, fall back once to the raw default grid
  - Flag suspiciously uniform cells
"""

import re
from dataclasses import replace
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from PIL import Image

from .config import (
    DEFAULT_CELL_PADDING,
    DEFAULT_EDGE_SOFTNESS,
    DEFAULT_GRID_COLS,
    DEFAULT_GRID_ROWS,
    DEFAULT_KEY_COLOR,
    DEFAULT_KEY_TOLERANCE,
    DEFAULT_OUTPUT_FORMAT,
)
from .core.exceptions import (
    BoundsOutOfRange,
    ConfigError,
    InvalidLayout,
    StickerPipelineError,
)
from .core.models import (
    DEFAULT_GRID_LAYOUT,
    QUALITY_SUSPECT,
    RGB,
    CellBounds,
    CutConfig,
    GridLayout,
    KeyConfig,
    PipelineResult,
    PoseDescriptor,
    ProcessingMetadata,
    StickerResult,
)
from .logging_utils import log_error, log_info, log_stage, log_warning
from .processing.chroma_key import apply_chroma_key, resolve_key_color
from .processing.cutter import check_pose_alignment, cut_sheet
from .processing.grid import resolve_cells, resolve_grid
from .processing.quality import is_suspect

CELL_FAILURE_OUT_OF_RANGE = "bounds-out-of-range"


class PipelineStage(str, Enum):
    START = "start"
    KEYING_DECISION = "keying_decision"
    KEYING = "keying"
    GRID_RESOLUTION = "grid_resolution"
    CUTTING = "cutting"
    VALIDATION = "validation"
    DONE = "done"
    FAILED_FALLBACK = "failed_fallback"


class KeyingMode(Enum):
    ENABLED = "enabled"
    DISABLED = "disabled"


# =============================================================================
# Stages
# =============================================================================

def _resolve_geometry(
    sheet: Image.Image,
    poses: Sequence[PoseDescriptor],
    layout: GridLayout,
    cut_config: CutConfig,
) -> List[CellBounds]:
    """Validate the request and compute padded cell bounds."""
    width, height = cut_config.expected_size or sheet.size
    bounds = resolve_grid(width, height, layout, cut_config.padding)
    if layout.cell_count != len(poses):
        raise InvalidLayout(
            f"Layout {layout} needs {layout.cell_count} poses, got {len(poses)}",
            stage=PipelineStage.GRID_RESOLUTION.value,
        )
    check_pose_alignment(bounds, poses)
    return bounds


def _cut_with_fallback(
    sheet: Image.Image,
    poses: Sequence[PoseDescriptor],
    layout: GridLayout,
    cut_config: CutConfig,
    metadata: ProcessingMetadata,
    error: BoundsOutOfRange,
) -> List[StickerResult]:
    """
    Retry the cut exactly once on the raw default grid with zero padding.

    The default layout is used when it has one cell per pose; otherwise the
    request's own layout is re-resolved against the actual sheet size.
    """
    for index in error.failed_indices:
        metadata.cell_failures[index] = CELL_FAILURE_OUT_OF_RANGE

    fallback_layout = DEFAULT_GRID_LAYOUT if DEFAULT_GRID_LAYOUT.cell_count == len(poses) else layout
    log_warning(
        f"Cut failed ({error}); retrying once with raw {fallback_layout} grid "
        f"on {sheet.width}x{sheet.height}, padding 0"
    )
    print(f"[WARN] Cell geometry did not fit the sheet; falling back to the raw {fallback_layout} grid.")

    try:
        bounds = resolve_cells(sheet.width, sheet.height, fallback_layout)
        stickers = cut_sheet(sheet, bounds, poses, replace(cut_config, padding=0))
    except (BoundsOutOfRange, InvalidLayout) as e:
        raise BoundsOutOfRange(
            f"Fallback grid cut failed: {e}",
            bounds=getattr(e, "bounds", None),
            image_size=sheet.size,
            stage=PipelineStage.FAILED_FALLBACK.value,
            cell_index=e.cell_index,
            failed_indices=getattr(e, "failed_indices", None),
        ) from e

    metadata.fallback_used = True
    metadata.layout = fallback_layout
    metadata.padding = 0
    return stickers


def _validate(stickers: Sequence[StickerResult], metadata: ProcessingMetadata) -> List[StickerResult]:
    """Record quality flags; mark near-uniform cells as suspect."""
    validated: List[StickerResult] = []
    for sticker in stickers:
        if sticker.quality_flag:
            metadata.add_warning(sticker.index, sticker.quality_flag)
        if is_suspect(sticker.image):
            metadata.add_warning(sticker.index, QUALITY_SUSPECT)
            if sticker.quality_flag is None:
                sticker = replace(sticker, quality_flag=QUALITY_SUSPECT)
        validated.append(sticker)
    return validated


# =============================================================================
# Main Entry Point
# =============================================================================

def process_sheet(
    sheet: Image.Image,
    poses: Sequence[PoseDescriptor],
    layout: Optional[GridLayout] = None,
    key_config: Optional[KeyConfig] = None,
    cut_config: Optional[CutConfig] = None,
) -> PipelineResult:
    """
    Run the full post-generation pipeline on one sheet.

    Steps:
      - resolve geometry (InvalidLayout is fatal, never retried)
      - chroma key when key_config.enabled
      - cut cells, with a single raw-grid fallback on BoundsOutOfRange
      - flag near-uniform cells as "suspect"

    Args:
        sheet: Decoded sheet image. Never modified.
        poses: One PoseDescriptor per cell, row-major.
        layout: Grid layout; None selects the default 3x3 grid.
        key_config: Chroma key settings; None keys with defaults.
        cut_config: Cut settings; None uses defaults.

    Returns:
        PipelineResult with all rows * cols stickers in index order.

    Raises:
        InvalidLayout: Bad layout, padding, or pose list.
        BoundsOutOfRange: The fallback cut also failed.
        UnsupportedFormat: Keying was requested on a non-RGB(A) sheet.
    """
    layout = layout or DEFAULT_GRID_LAYOUT
    key_config = key_config or KeyConfig()
    cut_config = cut_config or CutConfig()
    keying_mode = KeyingMode.ENABLED if key_config.enabled else KeyingMode.DISABLED
    poses = list(poses)

    stage = PipelineStage.START
    log_stage(stage.value, f"sheet={sheet.size} mode={sheet.mode} layout={layout} poses={len(poses)}")

    try:
        stage = PipelineStage.GRID_RESOLUTION
        log_stage(stage.value, f"padding={cut_config.padding}")
        bounds = _resolve_geometry(sheet, poses, layout, cut_config)

        metadata = ProcessingMetadata(layout=layout, padding=cut_config.padding)

        stage = PipelineStage.KEYING_DECISION
        log_stage(stage.value, keying_mode.value)
        if keying_mode is KeyingMode.ENABLED:
            stage = PipelineStage.KEYING
            log_stage(stage.value)
            key_color = resolve_key_color(sheet, key_config)
            keyed = apply_chroma_key(
                sheet,
                replace(key_config, key_color=key_color),
                max_workers=cut_config.max_workers,
            )
            metadata.keying_applied = True
            metadata.key_color = key_color
        else:
            keyed = sheet

        stage = PipelineStage.CUTTING
        log_stage(stage.value, f"{len(bounds)} cells")
        try:
            stickers = cut_sheet(keyed, bounds, poses, cut_config)
        except BoundsOutOfRange as e:
            stickers = _cut_with_fallback(keyed, poses, layout, cut_config, metadata, e)

        stage = PipelineStage.VALIDATION
        log_stage(stage.value)
        stickers = _validate(stickers, metadata)

    except StickerPipelineError as e:
        if e.stage is None:
            e.stage = stage.value
        log_error(f"Sheet processing failed at {e.stage}", str(e))
        raise

    log_stage(PipelineStage.DONE.value)
    log_info(
        f"Processed sheet into {len(stickers)} stickers "
        f"(keyed={metadata.keying_applied}, fallback={metadata.fallback_used}, "
        f"suspect={metadata.suspect_indices})"
    )
    return PipelineResult(sheet=keyed, stickers=tuple(stickers), metadata=metadata)


# =============================================================================
# Settings
# =============================================================================

_HEX_COLOR = re.compile(r"^#?([0-9a-fA-F]{6})$")


def parse_key_color(value: Any) -> Optional[RGB]:
    """
    Parse a key color from config or CLI input.

    Accepts "#00ff00" / "00ff00", an [r, g, b] sequence, or "auto"/None
    (sample the sheet border).

    Raises:
        ConfigError: If the value is not a recognizable color.
    """
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        if text.lower() == "auto":
            return None
        match = _HEX_COLOR.match(text)
        if not match:
            raise ConfigError(f"Unrecognized key color: {value!r}")
        hex_value = match.group(1)
        return tuple(int(hex_value[i:i + 2], 16) for i in (0, 2, 4))
    try:
        color = tuple(int(c) for c in value)
    except (TypeError, ValueError):
        raise ConfigError(f"Unrecognized key color: {value!r}")
    if len(color) != 3:
        raise ConfigError(f"Key color needs three channels, got {value!r}")
    return color


def settings_from_config(config: Dict[str, Any]) -> Tuple[KeyConfig, CutConfig, GridLayout]:
    """
    Build pipeline settings from the user config dict.

    Recognized sections: "chroma_key", "cut", "layout". Missing keys take
    the package defaults.

    Args:
        config: Parsed contents of CONFIG_PATH.

    Returns:
        (KeyConfig, CutConfig, GridLayout)
    """
    key_section = config.get("chroma_key") or {}
    cut_section = config.get("cut") or {}
    layout_section = config.get("layout") or {}

    key_config = KeyConfig(
        enabled=bool(key_section.get("enabled", True)),
        key_color=parse_key_color(key_section.get("key_color", list(DEFAULT_KEY_COLOR))),
        tolerance=int(key_section.get("tolerance", DEFAULT_KEY_TOLERANCE)),
        edge_softness=int(key_section.get("edge_softness", DEFAULT_EDGE_SOFTNESS)),
        edge_smoothing=bool(key_section.get("edge_smoothing", True)),
        spill_correction=bool(key_section.get("spill_correction", True)),
    )

    expected_size = cut_section.get("expected_size")
    max_workers = cut_section.get("max_workers")
    cut_config = CutConfig(
        padding=int(cut_section.get("padding", DEFAULT_CELL_PADDING)),
        output_format=str(cut_section.get("output_format", DEFAULT_OUTPUT_FORMAT)),
        transparent_background=bool(cut_section.get("transparent_background", True)),
        expected_size=tuple(int(v) for v in expected_size) if expected_size else None,
        max_workers=int(max_workers) if max_workers is not None else None,
    )

    layout = GridLayout(
        rows=int(layout_section.get("rows", DEFAULT_GRID_ROWS)),
        cols=int(layout_section.get("cols", DEFAULT_GRID_COLS)),
    )
    return key_config, cut_config, layout
