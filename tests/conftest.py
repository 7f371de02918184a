from __future__ import annotations

import sys
from pathlib import Path
from typing import Iterable, List, Tuple

import pytest
from PIL import Image, ImageDraw

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from sticker_sheet.core.models import GridLayout, PoseDescriptor
from sticker_sheet.processing.export import poses_from_texts
from sticker_sheet.processing.grid import resolve_cells

GREEN = (0, 255, 0)

# Subject colors, all well outside the default key band around pure green.
SUBJECT_COLORS: List[Tuple[int, int, int]] = [
    (220, 30, 30),
    (30, 30, 220),
    (250, 250, 250),
    (20, 20, 20),
    (230, 140, 20),
    (150, 40, 160),
    (240, 200, 40),
    (90, 60, 30),
    (200, 80, 140),
]

POSE_TEXTS = [
    "waving hello",
    "thumbs up",
    "crying",
    "laughing",
    "sleeping",
    "pointing forward",
    "heart hands",
    "surprised jump",
    "bowing politely",
]


def make_sheet(
    size: int = 300,
    layout: GridLayout = GridLayout(3, 3),
    empty_cells: Iterable[int] = (),
    backdrop: Tuple[int, int, int] = GREEN,
    subject_ratio: float = 0.6,
    mode: str = "RGB",
) -> Image.Image:
    """Flat backdrop with one solid square 'pose' centered in each cell."""
    empty = set(empty_cells)
    img = Image.new("RGB", (size, size), backdrop)
    draw = ImageDraw.Draw(img)
    for cell in resolve_cells(size, size, layout):
        if cell.index in empty:
            continue
        margin = int(cell.width * (1.0 - subject_ratio) / 2)
        color = SUBJECT_COLORS[cell.index % len(SUBJECT_COLORS)]
        draw.rectangle(
            [cell.x + margin, cell.y + margin, cell.right - margin - 1, cell.bottom - margin - 1],
            fill=color,
        )
    return img.convert(mode)


@pytest.fixture
def sheet_factory():
    return make_sheet


@pytest.fixture
def nine_poses() -> List[PoseDescriptor]:
    return poses_from_texts(POSE_TEXTS)
