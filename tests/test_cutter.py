from __future__ import annotations

import numpy as np
import pytest
from PIL import Image, features

from sticker_sheet.core.exceptions import BoundsOutOfRange, InvalidLayout
from sticker_sheet.core.models import QUALITY_NO_ALPHA, CutConfig, GridLayout
from sticker_sheet.processing.chroma_key import apply_chroma_key
from sticker_sheet.processing.cutter import cut_sheet
from sticker_sheet.processing.grid import resolve_cells, resolve_grid


def _random_rgba(width: int, height: int, seed: int = 0) -> Image.Image:
    rng = np.random.default_rng(seed)
    return Image.fromarray(rng.integers(0, 256, size=(height, width, 4), dtype=np.uint8))


def test_each_sticker_is_an_exact_crop(nine_poses) -> None:
    sheet = _random_rgba(301, 299)
    bounds = resolve_grid(301, 299, GridLayout(3, 3), padding=6)

    stickers = cut_sheet(sheet, bounds, nine_poses, CutConfig(padding=6))

    assert [s.index for s in stickers] == list(range(9))
    for sticker, cell, pose in zip(stickers, bounds, nine_poses):
        assert sticker.bounds == cell
        assert sticker.image.size == (cell.width, cell.height)
        assert sticker.image.tobytes() == sheet.crop(cell.box).tobytes()
        assert sticker.pose_text == pose.text
        assert sticker.is_original == pose.is_original
        assert sticker.quality_flag is None


def test_stickers_recomposite_into_the_keyed_sheet(sheet_factory, nine_poses) -> None:
    keyed = apply_chroma_key(sheet_factory(size=302))
    bounds = resolve_cells(302, 302, GridLayout(3, 3))

    stickers = cut_sheet(keyed, bounds, nine_poses)

    canvas = Image.new("RGBA", keyed.size, (1, 2, 3, 4))
    for sticker in stickers:
        canvas.paste(sticker.image, (sticker.bounds.x, sticker.bounds.y))
    assert canvas.tobytes() == keyed.tobytes()


def test_order_is_by_index_with_many_workers(nine_poses) -> None:
    sheet = _random_rgba(90, 90, seed=5)
    bounds = resolve_cells(90, 90, GridLayout(3, 3))

    stickers = cut_sheet(sheet, bounds, nine_poses, CutConfig(max_workers=8))

    assert [s.index for s in stickers] == list(range(9))
    assert [s.pose_text for s in stickers] == [p.text for p in nine_poses]


def test_out_of_range_bounds_fail_before_extraction(nine_poses) -> None:
    sheet = _random_rgba(300, 300)
    stale = resolve_cells(600, 600, GridLayout(3, 3))

    with pytest.raises(BoundsOutOfRange) as excinfo:
        cut_sheet(sheet, stale, nine_poses)

    err = excinfo.value
    assert err.cell_index == 1
    assert err.bounds == stale[1]
    assert err.failed_indices == list(range(1, 9))
    assert err.image_size == (300, 300)
    assert err.stage == "cutting"


def test_pose_count_mismatch_is_rejected(nine_poses) -> None:
    bounds = resolve_cells(90, 90, GridLayout(3, 3))
    with pytest.raises(InvalidLayout):
        cut_sheet(_random_rgba(90, 90), bounds, nine_poses[:8])


def test_opaque_sheet_is_flagged_no_alpha(sheet_factory, nine_poses) -> None:
    sheet = sheet_factory()
    bounds = resolve_cells(300, 300, GridLayout(3, 3))

    stickers = cut_sheet(sheet, bounds, nine_poses, CutConfig(transparent_background=True))

    assert all(s.quality_flag == QUALITY_NO_ALPHA for s in stickers)
    assert all(s.image.mode == "RGB" for s in stickers)


def test_opaque_sheet_without_transparency_request_is_not_flagged(sheet_factory, nine_poses) -> None:
    bounds = resolve_cells(300, 300, GridLayout(3, 3))
    stickers = cut_sheet(sheet_factory(), bounds, nine_poses, CutConfig(transparent_background=False))
    assert all(s.quality_flag is None for s in stickers)


def test_output_format_is_passed_through_as_png(nine_poses) -> None:
    bounds = resolve_cells(90, 90, GridLayout(3, 3))
    stickers = cut_sheet(_random_rgba(90, 90), bounds, nine_poses, CutConfig(output_format="png"))

    assert stickers[0].output_format == "PNG"
    assert stickers[0].to_bytes().startswith(b"\x89PNG")


@pytest.mark.skipif(not features.check("webp"), reason="Pillow built without WEBP")
def test_output_format_is_passed_through_as_webp(nine_poses) -> None:
    sheet = _random_rgba(90, 90)
    bounds = resolve_cells(90, 90, GridLayout(3, 3))
    stickers = cut_sheet(sheet, bounds, nine_poses, CutConfig(output_format="webp"))

    assert stickers[0].output_format == "WEBP"
    data = stickers[0].to_bytes()
    assert data[:4] == b"RIFF" and data[8:12] == b"WEBP"
    # extraction itself does not depend on the format
    assert stickers[0].image.tobytes() == sheet.crop(bounds[0].box).tobytes()


def test_only_cells_past_the_edge_are_reported(nine_poses) -> None:
    # 400x400 bounds on a 300x300 sheet: only the last column and row spill over
    sheet = _random_rgba(300, 300)
    stale = resolve_cells(400, 400, GridLayout(3, 3))

    with pytest.raises(BoundsOutOfRange) as excinfo:
        cut_sheet(sheet, stale, nine_poses)

    assert excinfo.value.failed_indices == [2, 5, 6, 7, 8]
    assert excinfo.value.cell_index == 2
