"""
Processing module for sheet keying, cutting and export.

Handles chroma keying, grid geometry, cell extraction, quality checks,
image utilities, and result export.
"""

from .chroma_key import (
    apply_chroma_key,
    key_distance,
    resolve_key_color,
    sample_border_color,
)

from .grid import (
    resolve_cells,
    resolve_grid,
)

from .cutter import (
    check_bounds,
    check_pose_alignment,
    cut_sheet,
)

from .quality import (
    dominant_color_ratio,
    is_suspect,
)

from .image_utils import (
    encode_image,
    get_unique_folder_name,
    load_sheet_image,
    save_image,
)

from .export import (
    build_manifest,
    load_pose_list,
    poses_from_texts,
    save_pipeline_result,
)

__all__ = [
    # Chroma key
    "apply_chroma_key",
    "key_distance",
    "resolve_key_color",
    "sample_border_color",
    # Grid geometry
    "resolve_cells",
    "resolve_grid",
    # Cutting
    "check_bounds",
    "check_pose_alignment",
    "cut_sheet",
    # Quality
    "dominant_color_ratio",
    "is_suspect",
    # Image utilities
    "encode_image",
    "get_unique_folder_name",
    "load_sheet_image",
    "save_image",
    # Export
    "build_manifest",
    "load_pose_list",
    "poses_from_texts",
    "save_pipeline_result",
]
