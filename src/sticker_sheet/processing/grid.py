"""
Grid geometry for pose sheets.

Cell rectangles come purely from the sheet dimensions and the layout; no
pixel content is inspected. The last row and column absorb any remainder
from integer division, so the raw cells tile the whole sheet.
"""

from typing import List

from ..core.exceptions import InvalidLayout
from ..core.models import CellBounds, GridLayout

STAGE = "grid_resolution"


def _cell_size(width: int, height: int, layout: GridLayout):
    if layout.rows <= 0 or layout.cols <= 0:
        raise InvalidLayout(
            f"Grid layout must have positive rows and columns, got {layout}",
            stage=STAGE,
        )
    cell_w = width // layout.cols
    cell_h = height // layout.rows
    if cell_w <= 0 or cell_h <= 0:
        raise InvalidLayout(
            f"Sheet of {width}x{height} is too small for a {layout} grid",
            stage=STAGE,
        )
    return cell_w, cell_h


def resolve_cells(width: int, height: int, layout: GridLayout) -> List[CellBounds]:
    """
    Raw (unpadded) cell rectangles, row-major.

    Args:
        width: Sheet width in pixels.
        height: Sheet height in pixels.
        layout: Grid layout.

    Returns:
        rows * cols CellBounds whose union is exactly the sheet.

    Raises:
        InvalidLayout: If the layout is non-positive or the sheet is too small.
    """
    cell_w, cell_h = _cell_size(width, height, layout)

    cells: List[CellBounds] = []
    for row in range(layout.rows):
        y = row * cell_h
        h = height - y if row == layout.rows - 1 else cell_h
        for col in range(layout.cols):
            x = col * cell_w
            w = width - x if col == layout.cols - 1 else cell_w
            cells.append(CellBounds(index=row * layout.cols + col, x=x, y=y, width=w, height=h))
    return cells


def resolve_grid(width: int, height: int, layout: GridLayout, padding: int = 0) -> List[CellBounds]:
    """
    Cut rectangles for every cell: the raw cell minus padding on each side.

    A 1536x1536 sheet on a 3x3 grid with padding 20 gives nine 472x472
    rectangles, each centered in its 512x512 cell.

    Args:
        width: Sheet width in pixels.
        height: Sheet height in pixels.
        layout: Grid layout.
        padding: Pixels trimmed from every side of each cell.

    Returns:
        rows * cols CellBounds in row-major order.

    Raises:
        InvalidLayout: If rows/cols <= 0, padding < 0, or 2 * padding would
            leave a cell with no pixels.
    """
    if padding < 0:
        raise InvalidLayout(f"Cell padding must be non-negative, got {padding}", stage=STAGE)

    cell_w, cell_h = _cell_size(width, height, layout)
    if padding * 2 >= min(cell_w, cell_h):
        raise InvalidLayout(
            f"Padding {padding} leaves no pixels in {cell_w}x{cell_h} cells "
            f"({layout} grid on {width}x{height})",
            stage=STAGE,
        )

    return [cell.inset(padding) for cell in resolve_cells(width, height, layout)]
