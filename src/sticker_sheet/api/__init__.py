"""
API module for Gemini interactions.

Handles the upstream sheet generation call:
- Authentication and configuration
- Image generation with retry logic
- Safety block detection
"""

from .exceptions import GeminiAPIError, GeminiSafetyError

from .gemini_client import (
    get_api_key,
    load_config,
    save_config,
    interactive_api_key_setup,
    load_image_as_base64,
    call_gemini_sheet,
    generate_sheet_image,
)

__all__ = [
    # Errors
    "GeminiAPIError",
    "GeminiSafetyError",
    # Client functions
    "get_api_key",
    "load_config",
    "save_config",
    "interactive_api_key_setup",
    "load_image_as_base64",
    "call_gemini_sheet",
    "generate_sheet_image",
]
