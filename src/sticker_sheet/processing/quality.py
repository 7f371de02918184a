"""
Post-cut quality checks.

A sticker that is almost entirely one color usually means the key ate the
subject or the model left the cell empty. Flagging never fails a run; it
only tells the caller which cells to look at.
"""

import numpy as np
from PIL import Image

from ..config import SUSPECT_UNIFORM_RATIO


def dominant_color_ratio(img: Image.Image) -> float:
    """
    Share of pixels that carry the single most common RGBA value.

    Fully transparent pixels all count as the same value whatever their RGB,
    since they look identical once composited.

    Args:
        img: Any PIL image.

    Returns:
        Ratio in [0, 1]; 1.0 for an empty image.
    """
    arr = np.array(img.convert("RGBA"), dtype=np.uint8)
    if arr.size == 0:
        return 1.0

    arr[arr[..., 3] == 0] = 0
    packed = arr.reshape(-1, 4).view(np.uint32).ravel()
    _, counts = np.unique(packed, return_counts=True)
    return float(counts.max()) / float(packed.size)


def is_suspect(img: Image.Image, threshold: float = SUSPECT_UNIFORM_RATIO) -> bool:
    """True if at least `threshold` of the image is one uniform color."""
    return dominant_color_ratio(img) >= threshold
