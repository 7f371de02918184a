"""
Image utility functions for loading sheets and encoding/saving stickers.
"""

from io import BytesIO
from pathlib import Path
from typing import Union

from PIL import Image, UnidentifiedImageError

from ..config import OUTPUT_EXTENSIONS, SUPPORTED_OUTPUT_FORMATS
from ..core.exceptions import UnsupportedFormat
from ..logging_utils import log_warning


def load_sheet_image(source: Union[bytes, str, Path]) -> Image.Image:
    """
    Decode a generated sheet from raw bytes or a file path.

    Palette, grayscale and CMYK sheets are normalized to RGB/RGBA so the
    chroma key pass can read them; RGB and RGBA are kept as-is.

    Args:
        source: Encoded image bytes, or a path to an image file.

    Returns:
        Fully loaded PIL image in RGB or RGBA mode.

    Raises:
        UnsupportedFormat: If the data cannot be decoded as an image.
    """
    try:
        if isinstance(source, (bytes, bytearray)):
            img = Image.open(BytesIO(source))
        else:
            img = Image.open(Path(source))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise UnsupportedFormat(f"Could not decode sheet image: {e}") from e

    if img.mode in ("RGB", "RGBA"):
        return img
    has_alpha = "A" in img.getbands() or "transparency" in img.info
    return img.convert("RGBA" if has_alpha else "RGB")


def encode_image(img: Image.Image, output_format: str = "PNG") -> bytes:
    """
    Encode an image losslessly as PNG or WEBP.

    Args:
        img: PIL image to encode.
        output_format: "PNG" or "WEBP" (case-insensitive).

    Returns:
        Encoded bytes.
    """
    fmt = output_format.upper()
    if fmt not in SUPPORTED_OUTPUT_FORMATS:
        raise ValueError(f"Unsupported output format: {output_format}")

    buffer = BytesIO()
    if fmt == "WEBP":
        img.save(buffer, format="WEBP", lossless=True, quality=100, method=6)
    else:
        img.save(buffer, format="PNG", compress_level=0, optimize=False)
    return buffer.getvalue()


def save_image(img: Image.Image, dest_stem: Path, output_format: str = "PNG") -> Path:
    """
    Save image as lossless PNG or WEBP, falling back to PNG if WEBP fails.

    Args:
        img: PIL Image to save.
        dest_stem: Destination path without extension.
        output_format: "PNG" or "WEBP".

    Returns:
        Path to saved file (with appropriate extension).
    """
    dest_stem = Path(dest_stem)
    dest_stem.parent.mkdir(parents=True, exist_ok=True)
    fmt = output_format.upper()

    if fmt == "WEBP":
        try:
            out_path = dest_stem.with_suffix(OUTPUT_EXTENSIONS["WEBP"])
            img.save(out_path, format="WEBP", lossless=True, quality=100, method=6)
            return out_path
        except (OSError, KeyError) as e:
            log_warning(f"WEBP save failed for {dest_stem.name}: {e}. Falling back to PNG.")
            print(f"[WARN] WEBP save failed for {dest_stem.name}: {e}. Falling back to PNG.")

    out_path = dest_stem.with_suffix(OUTPUT_EXTENSIONS["PNG"])
    img.save(out_path, format="PNG", compress_level=0, optimize=False)
    return out_path


def get_unique_folder_name(base_path: Path, desired_name: str) -> str:
    """
    Ensure folder name is unique within base_path by appending a counter.

    Args:
        base_path: Parent directory.
        desired_name: Desired folder name.

    Returns:
        Unique folder name (may have _2, _3, etc. appended).
    """
    candidate = desired_name
    counter = 1
    while (base_path / candidate).exists():
        counter += 1
        candidate = f"{desired_name}_{counter}"
    return candidate
