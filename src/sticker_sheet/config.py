#!/usr/bin/env python3
"""
config.py

All global paths, defaults, and static tables for the sticker sheet pipeline.
"""

from pathlib import Path
from typing import Dict, Tuple

# ═══════════════════════════════════════════════════════════════════════════════
# APPLICATION INFO
# ═══════════════════════════════════════════════════════════════════════════════
APP_NAME = "Sticker Sheet"
APP_VERSION = "0.3.0"

# User configuration (API key plus optional pipeline overrides)
CONFIG_PATH = Path.home() / ".sticker_sheet_config.json"

# Gemini API constants
GEMINI_IMAGE_MODEL = "gemini-2.5-flash-image"
GEMINI_API_URL = (
    "https://generativelanguage.googleapis.com/v1beta/models/"
    f"{GEMINI_IMAGE_MODEL}:generateContent"
)
GEMINI_MAX_RETRIES = 3
GEMINI_REQUEST_TIMEOUT = 120  # seconds per HTTP attempt
GEMINI_RETRYABLE_STATUS = (429, 500, 502, 503, 504)
GEMINI_SAFETY_FINISH_REASONS = ("SAFETY", "IMAGE_SAFETY", "IMAGE_OTHER")

# ═══════════════════════════════════════════════════════════════════════════════
# CHROMA KEY DEFAULTS
# ═══════════════════════════════════════════════════════════════════════════════
DEFAULT_KEY_COLOR: Tuple[int, int, int] = (0, 255, 0)  # pure green backdrop
DEFAULT_KEY_TOLERANCE = 60      # distance at or below which a pixel is fully keyed
DEFAULT_EDGE_SOFTNESS = 40      # width of the partial-alpha band above tolerance
KEY_LUMA_WEIGHT = 0.5           # luma contribution to the YCbCr key distance

# ═══════════════════════════════════════════════════════════════════════════════
# GRID / CUT DEFAULTS
# ═══════════════════════════════════════════════════════════════════════════════
DEFAULT_GRID_ROWS = 3
DEFAULT_GRID_COLS = 3
DEFAULT_CELL_PADDING = 0
DEFAULT_OUTPUT_FORMAT = "PNG"
SUPPORTED_OUTPUT_FORMATS: Tuple[str, ...] = ("PNG", "WEBP")
OUTPUT_EXTENSIONS: Dict[str, str] = {"PNG": ".png", "WEBP": ".webp"}

# A cell whose pixels are at least this share one RGBA value is flagged "suspect"
SUSPECT_UNIFORM_RATIO = 0.98

# Output names written by the exporter
SHEET_FILENAME = "sheet"
STICKER_FILENAME_TEMPLATE = "sticker_{number:02d}"
MANIFEST_FILENAME = "stickers.yml"

# ═══════════════════════════════════════════════════════════════════════════════
# PROVIDER CAPABILITIES
# ═══════════════════════════════════════════════════════════════════════════════
# Whether sheets from a provider come back on a flat keyable backdrop.
# Only providers listed as True get the chroma key pass.
PROVIDER_FLAT_BACKGROUND: Dict[str, bool] = {
    "gemini": True,
    "openai": False,
    "stability": False,
    "replicate": False,
}


def provider_emits_flat_background(provider: str) -> bool:
    """
    Look up whether an image provider returns flat-color sheet backgrounds.

    Unknown providers are treated as not keyable.

    Args:
        provider: Provider name (case-insensitive), e.g. "gemini".

    Returns:
        True if the chroma key pass should run for this provider's sheets.
    """
    return PROVIDER_FLAT_BACKGROUND.get((provider or "").strip().lower(), False)
