from __future__ import annotations

import numpy as np
import pytest
from PIL import Image

from sticker_sheet.core.exceptions import ConfigError, UnsupportedFormat
from sticker_sheet.core.models import KeyConfig
from sticker_sheet.processing.chroma_key import (
    apply_chroma_key,
    key_distance,
    sample_border_color,
)

GREEN = (0, 255, 0)
# 60% of the way from pure green to mid gray: inside the default soft band
EDGE_GREEN = (77, 179, 77)


def _pixels(*colors, mode="RGB") -> Image.Image:
    img = Image.new(mode, (len(colors), 1))
    img.putdata(list(colors))
    return img


def test_key_color_becomes_transparent_and_subject_stays_opaque() -> None:
    out = apply_chroma_key(_pixels(GREEN, (220, 30, 30), (250, 250, 250), (20, 20, 20)))

    assert out.mode == "RGBA"
    assert out.getpixel((0, 0))[3] == 0
    assert out.getpixel((1, 0)) == (220, 30, 30, 255)
    assert out.getpixel((2, 0)) == (250, 250, 250, 255)
    assert out.getpixel((3, 0)) == (20, 20, 20, 255)


def test_input_is_not_modified() -> None:
    src = _pixels(GREEN, EDGE_GREEN, (220, 30, 30))
    before = src.tobytes()
    out = apply_chroma_key(src)

    assert src.tobytes() == before
    assert src.mode == "RGB"
    assert out is not src
    assert out.size == src.size


@pytest.mark.parametrize("mode", ["L", "CMYK", "P", "LA"])
def test_unsupported_modes_are_rejected(mode) -> None:
    img = Image.new(mode, (4, 4))
    with pytest.raises(UnsupportedFormat) as excinfo:
        apply_chroma_key(img)
    assert excinfo.value.mode == mode


def test_edge_pixel_gets_partial_alpha() -> None:
    dist = float(key_distance(np.array(EDGE_GREEN), GREEN))
    assert 60 < dist < 100

    out = apply_chroma_key(_pixels(EDGE_GREEN), KeyConfig(spill_correction=False))
    r, g, b, a = out.getpixel((0, 0))

    assert 0 < a < 255
    assert (r, g, b) == EDGE_GREEN


def test_spill_correction_pulls_green_out_of_edges() -> None:
    out = apply_chroma_key(_pixels(EDGE_GREEN), KeyConfig(spill_correction=True))
    r, g, b, a = out.getpixel((0, 0))

    assert 0 < a < 255
    assert g < EDGE_GREEN[1]
    assert g - max(r, b) < EDGE_GREEN[1] - max(EDGE_GREEN[0], EDGE_GREEN[2])


def test_spill_correction_moves_pixels_away_from_key() -> None:
    out = apply_chroma_key(_pixels(EDGE_GREEN))
    corrected = out.getpixel((0, 0))[:3]
    assert key_distance(np.array(corrected), GREEN) > key_distance(np.array(EDGE_GREEN), GREEN)


def test_hard_matte_without_smoothing() -> None:
    cfg = KeyConfig(edge_smoothing=False, spill_correction=False)
    out = apply_chroma_key(_pixels(GREEN, EDGE_GREEN), cfg)

    assert out.getpixel((0, 0))[3] == 0
    assert out.getpixel((1, 0)) == EDGE_GREEN + (255,)


def test_already_transparent_pixels_stay_transparent() -> None:
    img = _pixels((220, 30, 30, 0), (220, 30, 30, 255), mode="RGBA")
    out = apply_chroma_key(img)
    assert out.getpixel((0, 0))[3] == 0
    assert out.getpixel((1, 0))[3] == 255


def test_rekeying_keeps_fully_opaque_and_transparent_alpha() -> None:
    rng = np.random.default_rng(7)
    arr = rng.integers(0, 256, size=(96, 128, 3), dtype=np.uint8)
    arr[:20] = GREEN
    arr[20:30] = EDGE_GREEN
    cfg = KeyConfig()

    first = np.asarray(apply_chroma_key(Image.fromarray(arr), cfg))
    second = np.asarray(apply_chroma_key(Image.fromarray(first), cfg))

    settled = (first[..., 3] == 0) | (first[..., 3] == 255)
    assert settled.any()
    assert np.array_equal(first[..., 3][settled], second[..., 3][settled])


def test_output_is_identical_for_any_worker_count() -> None:
    rng = np.random.default_rng(3)
    arr = rng.integers(0, 256, size=(300, 200, 3), dtype=np.uint8)
    arr[::4] = GREEN
    img = Image.fromarray(arr)

    single = apply_chroma_key(img, KeyConfig(), max_workers=1)
    several = apply_chroma_key(img, KeyConfig(), max_workers=4)
    again = apply_chroma_key(img, KeyConfig(), max_workers=4)

    assert single.tobytes() == several.tobytes() == again.tobytes()


def test_pixels_outside_the_soft_band_keep_exact_color() -> None:
    rng = np.random.default_rng(11)
    arr = rng.integers(0, 256, size=(64, 64, 3), dtype=np.uint8)
    cfg = KeyConfig()

    out = np.asarray(apply_chroma_key(Image.fromarray(arr), cfg))
    dist = key_distance(arr, GREEN)
    outside = (dist <= cfg.tolerance) | (dist >= cfg.tolerance + cfg.edge_softness)

    assert np.array_equal(out[..., :3][outside], arr[outside])


def test_custom_key_color() -> None:
    magenta = (255, 0, 255)
    out = apply_chroma_key(_pixels(magenta, GREEN), KeyConfig(key_color=magenta))
    assert out.getpixel((0, 0))[3] == 0
    assert out.getpixel((1, 0))[3] == 255


def test_sample_border_color_finds_backdrop(sheet_factory) -> None:
    sheet = sheet_factory(backdrop=(10, 200, 30))
    assert sample_border_color(sheet) == (10, 200, 30)


def test_sample_border_color_ignores_transparent_border() -> None:
    img = Image.new("RGBA", (8, 8), (0, 0, 0, 0))
    assert sample_border_color(img) is None


def test_auto_key_color_keys_the_sampled_backdrop(sheet_factory) -> None:
    sheet = sheet_factory(backdrop=(255, 0, 255))
    out = apply_chroma_key(sheet, KeyConfig(key_color=None))

    assert out.getpixel((0, 0))[3] == 0
    assert out.getpixel((50, 50))[3] == 255


@pytest.mark.parametrize(
    "kwargs",
    [
        {"tolerance": -1},
        {"tolerance": 256},
        {"edge_softness": 0},
        {"key_color": (0, 255)},
        {"key_color": (0, 300, 0)},
    ],
)
def test_invalid_key_config_is_rejected(kwargs) -> None:
    with pytest.raises(ConfigError):
        KeyConfig(**kwargs)
