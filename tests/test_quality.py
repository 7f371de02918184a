from __future__ import annotations

import pytest
from PIL import Image

from sticker_sheet.processing.quality import dominant_color_ratio, is_suspect


def test_transparent_pixels_count_as_one_value() -> None:
    img = Image.new("RGBA", (10, 10), (0, 0, 0, 0))
    img.putpixel((0, 0), (255, 0, 0, 0))
    img.putpixel((1, 0), (0, 255, 0, 0))

    assert dominant_color_ratio(img) == 1.0
    assert is_suspect(img)


def test_mostly_filled_cell_is_not_suspect() -> None:
    img = Image.new("RGBA", (10, 10), (0, 0, 0, 0))
    for x in range(10):
        img.putpixel((x, 5), (200, 30, 30, 255))

    assert dominant_color_ratio(img) == pytest.approx(0.9)
    assert not is_suspect(img)


def test_threshold_is_inclusive() -> None:
    img = Image.new("RGB", (10, 10), (0, 255, 0))
    img.putpixel((3, 3), (10, 10, 10))
    img.putpixel((4, 4), (10, 10, 10))

    assert dominant_color_ratio(img) == pytest.approx(0.98)
    assert is_suspect(img)
    assert not is_suspect(img, threshold=0.99)
