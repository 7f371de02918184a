"""
Chroma key background removal for generated sheets.

Turns a flat-color backdrop into transparency with a soft matte at the
edges, then pulls residual key-color spill out of the edge pixels so no
green halo survives compositing onto another background.

Every pixel is processed independently of its neighbours, so the image is
split into row bands and keyed on a thread pool. Output is bit-identical
for any band split.
"""

import math
import os
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Tuple

import numpy as np
from PIL import Image

from ..config import DEFAULT_KEY_COLOR, KEY_LUMA_WEIGHT
from ..core.exceptions import UnsupportedFormat
from ..core.models import RGB, KeyConfig
from ..logging_utils import log_debug

SUPPORTED_MODES = ("RGB", "RGBA")

# Bands smaller than this are not worth a separate task
MIN_ROWS_PER_BAND = 64


# =============================================================================
# Color Space
# =============================================================================

def _rgb_to_ycbcr(rgb: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """BT.601 full-range RGB -> (Y, Cb, Cr) as float64 arrays."""
    r = rgb[..., 0]
    g = rgb[..., 1]
    b = rgb[..., 2]
    y = 0.299 * r + 0.587 * g + 0.114 * b
    cb = 128.0 - 0.168736 * r - 0.331264 * g + 0.5 * b
    cr = 128.0 + 0.5 * r - 0.418688 * g - 0.081312 * b
    return y, cb, cr


def _ycbcr_to_rgb(y: np.ndarray, cb: np.ndarray, cr: np.ndarray) -> np.ndarray:
    """Inverse of _rgb_to_ycbcr, rounded and clipped to uint8."""
    cb0 = cb - 128.0
    cr0 = cr - 128.0
    r = y + 1.402 * cr0
    g = y - 0.344136 * cb0 - 0.714136 * cr0
    b = y + 1.772 * cb0
    rgb = np.stack([r, g, b], axis=-1)
    return np.clip(np.rint(rgb), 0, 255).astype(np.uint8)


def _key_ycbcr(key_color: RGB) -> Tuple[float, float, float]:
    y, cb, cr = _rgb_to_ycbcr(np.asarray(key_color, dtype=np.float64))
    return float(y), float(cb), float(cr)


def _distance(
    y: np.ndarray,
    cb: np.ndarray,
    cr: np.ndarray,
    key_ycc: Tuple[float, float, float],
) -> np.ndarray:
    ky, kcb, kcr = key_ycc
    return np.sqrt((cb - kcb) ** 2 + (cr - kcr) ** 2 + (KEY_LUMA_WEIGHT * (y - ky)) ** 2)


def key_distance(rgb: np.ndarray, key_color: RGB) -> np.ndarray:
    """
    Distance of each pixel from the key color.

    Chroma-dominant YCbCr distance: sqrt(dCb^2 + dCr^2 + (w * dY)^2) with
    w = KEY_LUMA_WEIGHT, so shading across the backdrop still keys while
    subjects that differ in hue stay well clear of it.

    Args:
        rgb: Array of shape (..., 3), any numeric dtype.
        key_color: (r, g, b) key.

    Returns:
        float64 array of shape rgb.shape[:-1].
    """
    y, cb, cr = _rgb_to_ycbcr(np.asarray(rgb, dtype=np.float64))
    return _distance(y, cb, cr, _key_ycbcr(key_color))


# =============================================================================
# Key Color
# =============================================================================

def _require_supported_mode(image: Image.Image) -> None:
    if image.mode not in SUPPORTED_MODES:
        raise UnsupportedFormat(
            f"Chroma key needs an RGB or RGBA image, got mode {image.mode!r}",
            mode=image.mode,
        )


def sample_border_color(image: Image.Image) -> Optional[RGB]:
    """
    Estimate the backdrop color from the sheet border.

    Strategy:
      1) Collect all opaque pixels on the outer rows and columns.
      2) Take the per-channel median to ignore anti-aliased outliers.

    Args:
        image: RGB or RGBA sheet.

    Returns:
        (r, g, b) median border color, or None if the border is fully transparent.

    Raises:
        UnsupportedFormat: If the image is not RGB/RGBA.
    """
    _require_supported_mode(image)
    arr = np.asarray(image.convert("RGBA"))
    if arr.size == 0:
        return None

    border = np.concatenate([arr[0], arr[-1], arr[:, 0], arr[:, -1]])
    opaque = border[border[:, 3] > 0]
    if opaque.size == 0:
        return None

    median = np.median(opaque[:, :3].astype(np.float64), axis=0)
    return tuple(int(v) for v in np.rint(median))


def resolve_key_color(image: Image.Image, config: KeyConfig) -> RGB:
    """Configured key color, or the sampled border color when none is set."""
    if config.key_color is not None:
        return config.key_color
    sampled = sample_border_color(image)
    if sampled is None:
        log_debug(f"Border sampling found no opaque pixels; keying default {DEFAULT_KEY_COLOR}")
        return DEFAULT_KEY_COLOR
    log_debug(f"Sampled key color from sheet border: RGB{sampled}")
    return sampled


# =============================================================================
# Keying
# =============================================================================

def _row_bands(height: int, workers: int) -> List[Tuple[int, int]]:
    """Split [0, height) into at most `workers` contiguous row ranges."""
    if height <= 0:
        return []
    count = max(1, min(workers, height // MIN_ROWS_PER_BAND))
    step = -(-height // count)
    return [(start, min(start + step, height)) for start in range(0, height, step)]


def _suppress_spill(
    y: np.ndarray,
    cb: np.ndarray,
    cr: np.ndarray,
    amount: np.ndarray,
    key_chroma: Tuple[float, float],
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Remove the key-direction chroma component from edge pixels.

    The pixel's chroma (relative to neutral) is projected onto the key's
    chroma direction. When that projection p lies in (0, |key|], amount * p
    is subtracted along the key direction. Luma is kept. The pixel only
    ever moves away from the key, never toward it.

    Returns:
        (rgb uint8 array of shape (n, 3), bool mask of pixels that changed)
    """
    kx, ky = key_chroma
    knorm = math.hypot(kx, ky)
    ux, uy = kx / knorm, ky / knorm

    proj = (cb - 128.0) * ux + (cr - 128.0) * uy
    removable = np.where((proj > 0.0) & (proj <= knorm), proj, 0.0)
    shift = amount * removable
    changed = shift > 0.0

    rgb = _ycbcr_to_rgb(y, cb - shift * ux, cr - shift * uy)
    return rgb, changed


def _key_rows(
    src: np.ndarray,
    dst: np.ndarray,
    rows: Tuple[int, int],
    key_color: RGB,
    config: KeyConfig,
) -> None:
    """Key one row band of src into the same rows of dst."""
    start, stop = rows
    block = src[start:stop]
    out = dst[start:stop]

    key_ycc = _key_ycbcr(key_color)
    y, cb, cr = _rgb_to_ycbcr(block[..., :3].astype(np.float64))
    dist = _distance(y, cb, cr, key_ycc)

    ramp = np.clip((dist - config.tolerance) / float(config.edge_softness), 0.0, 1.0)
    if config.edge_smoothing:
        matte = ramp
    else:
        matte = (dist > config.tolerance).astype(np.float64)

    alpha = np.rint(block[..., 3] * matte).astype(np.uint8)
    out[..., 3] = alpha

    key_chroma = (key_ycc[1] - 128.0, key_ycc[2] - 128.0)
    if not config.spill_correction or math.hypot(*key_chroma) == 0.0:
        return

    band = (ramp < 1.0) & (alpha > 0)
    if config.edge_smoothing:
        # Fully opaque results keep their color so re-keying leaves them opaque
        band &= alpha < 255
    if not band.any():
        return

    rr, cc = np.nonzero(band)
    corrected, changed = _suppress_spill(
        y[band], cb[band], cr[band], 1.0 - ramp[band], key_chroma
    )
    # Rounding back to RGB must not land a pixel closer to the key
    new_dist = _distance(*_rgb_to_ycbcr(corrected.astype(np.float64)), key_ycc)
    changed &= new_dist >= dist[band]
    if changed.any():
        out[rr[changed], cc[changed], :3] = corrected[changed]


def apply_chroma_key(
    image: Image.Image,
    config: Optional[KeyConfig] = None,
    max_workers: Optional[int] = None,
) -> Image.Image:
    """
    Key out a flat-color backdrop.

    Pixels within config.tolerance of the key become fully transparent.
    Pixels beyond tolerance + edge_softness keep their alpha. Pixels in
    between get a linear partial alpha when edge_smoothing is on, or stay
    opaque when it is off. With spill_correction, visible pixels inside that
    band have the key tint pulled out of their color.

    The input is never modified.

    Args:
        image: RGB or RGBA sheet.
        config: Key settings (defaults to KeyConfig()).
        max_workers: Thread count for row bands (defaults to one per core).

    Returns:
        New RGBA image of the same size.

    Raises:
        UnsupportedFormat: If the image is not RGB/RGBA.
    """
    config = config or KeyConfig()
    _require_supported_mode(image)
    key_color = resolve_key_color(image, config)

    src = np.asarray(image.convert("RGBA"))
    dst = np.array(src, dtype=np.uint8, copy=True)
    height = src.shape[0]

    workers = max_workers or os.cpu_count() or 1
    bands = _row_bands(height, workers)

    log_debug(
        f"Chroma key: size={image.size} key=RGB{key_color} tolerance={config.tolerance} "
        f"softness={config.edge_softness} smoothing={config.edge_smoothing} "
        f"spill={config.spill_correction} bands={len(bands)}"
    )

    if len(bands) <= 1:
        for rows in bands:
            _key_rows(src, dst, rows, key_color, config)
    else:
        with ThreadPoolExecutor(max_workers=len(bands)) as pool:
            futures = [
                pool.submit(_key_rows, src, dst, rows, key_color, config)
                for rows in bands
            ]
            for future in futures:
                future.result()

    alpha = dst[..., 3]
    log_debug(
        f"Chroma key done: transparent={int((alpha == 0).sum())} "
        f"partial={int(((alpha > 0) & (alpha < 255)).sum())}"
    )
    return Image.fromarray(dst)
