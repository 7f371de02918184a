"""
Sheet cutting.

Extracts one sticker per grid cell from the (possibly keyed) sheet and
pairs it with its pose. Cells are independent, so they are cropped on a
thread pool and collected into a list addressed by cell index.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List, Optional, Sequence

from PIL import Image

from ..core.exceptions import BoundsOutOfRange, InvalidLayout
from ..core.models import (
    QUALITY_NO_ALPHA,
    CellBounds,
    CutConfig,
    PoseDescriptor,
    StickerResult,
)
from ..logging_utils import log_debug, log_warning

STAGE = "cutting"


def check_pose_alignment(bounds: Sequence[CellBounds], poses: Sequence[PoseDescriptor]) -> None:
    """
    Require exactly one pose per cell, with matching row-major indices.

    Raises:
        InvalidLayout: On a count or index mismatch.
    """
    if len(bounds) != len(poses):
        raise InvalidLayout(
            f"{len(poses)} poses supplied for {len(bounds)} cells",
            stage=STAGE,
        )
    for position, (cell, pose) in enumerate(zip(bounds, poses)):
        if cell.index != position or pose.index != position:
            raise InvalidLayout(
                f"Cell/pose index mismatch at position {position}: "
                f"cell={cell.index} pose={pose.index}",
                stage=STAGE,
                cell_index=position,
            )


def check_bounds(sheet: Image.Image, bounds: Sequence[CellBounds]) -> None:
    """
    Verify every cell lies inside the sheet.

    Raises:
        BoundsOutOfRange: If any cell does not fit. `bounds` is the first
            offending cell; `failed_indices` lists all of them.
    """
    width, height = sheet.size
    failed = [cell for cell in bounds if not cell.fits_within(width, height)]
    if failed:
        first = failed[0]
        raise BoundsOutOfRange(
            f"{len(failed)} of {len(bounds)} cells exceed sheet extent {width}x{height} "
            f"(first: cell {first.index} {first.box})",
            bounds=first,
            image_size=(width, height),
            stage=STAGE,
            failed_indices=[cell.index for cell in failed],
        )


def has_alpha(img: Image.Image) -> bool:
    return "A" in img.getbands()


def cut_sheet(
    sheet: Image.Image,
    bounds: Sequence[CellBounds],
    poses: Sequence[PoseDescriptor],
    config: Optional[CutConfig] = None,
) -> List[StickerResult]:
    """
    Crop every cell out of the sheet.

    Each sticker is an exact pixel copy of the sheet at its bounds. If a
    transparent background was requested but the sheet carries no alpha
    band (keying skipped), stickers keep their opaque pixels and are
    flagged "no-alpha".

    Args:
        sheet: Post-keying sheet image.
        bounds: Cell rectangles in row-major order.
        poses: One PoseDescriptor per cell, same order.
        config: Cut settings (defaults to CutConfig()).

    Returns:
        StickerResults in cell index order.

    Raises:
        InvalidLayout: If poses and cells do not line up.
        BoundsOutOfRange: If any cell exceeds the sheet; raised before any
            cell is extracted.
    """
    config = config or CutConfig()
    check_pose_alignment(bounds, poses)
    check_bounds(sheet, bounds)

    flag = None
    if config.transparent_background and not has_alpha(sheet):
        flag = QUALITY_NO_ALPHA
        log_warning(f"Sheet mode {sheet.mode} has no alpha; stickers will be opaque")

    # Decode once up front so worker threads only read pixel data
    sheet.load()

    results: List[Optional[StickerResult]] = [None] * len(bounds)
    workers = min(config.worker_count, max(1, len(bounds)))
    log_debug(f"Cutting {len(bounds)} cells with {workers} workers")

    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = {
            pool.submit(sheet.crop, cell.box): position
            for position, cell in enumerate(bounds)
        }
        for future in as_completed(futures):
            position = futures[future]
            cell = bounds[position]
            pose = poses[position]
            results[position] = StickerResult(
                index=cell.index,
                image=future.result(),
                bounds=cell,
                pose_text=pose.text,
                is_original=pose.is_original,
                quality_flag=flag,
                output_format=config.output_format,
            )

    return results
