"""
Gemini API client for pose sheet generation.

Handles authentication, the image-generation call, retries, and response
parsing. The returned sheet is raw model output; keying and cutting are
done afterwards by sticker_sheet.pipeline.
"""

import base64
import json
import os
import webbrowser
from io import BytesIO
from pathlib import Path
from typing import List, Optional

import requests
from PIL import Image

from ..config import (
    CONFIG_PATH,
    GEMINI_API_URL,
    GEMINI_MAX_RETRIES,
    GEMINI_REQUEST_TIMEOUT,
    GEMINI_RETRYABLE_STATUS,
    GEMINI_SAFETY_FINISH_REASONS,
)
from ..logging_utils import log_api_call, log_debug, log_warning
from ..processing.image_utils import load_sheet_image
from .exceptions import GeminiAPIError, GeminiSafetyError

API_KEY_PAGE_URL = "https://aistudio.google.com/app/apikey"


# =============================================================================
# Configuration Management
# =============================================================================

def load_config(path: Optional[Path] = None) -> dict:
    """
    Load configuration from ~/.sticker_sheet_config.json if present.

    Args:
        path: Override for the config file location.

    Returns:
        Dictionary containing configuration, or empty dict if not found or unreadable.
    """
    path = Path(path) if path else CONFIG_PATH
    if path.is_file():
        try:
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
        except (OSError, json.JSONDecodeError) as e:
            log_warning(f"Could not read config {path}: {e}")
            return {}
    return {}


def save_config(config: dict, path: Optional[Path] = None) -> None:
    """
    Save configuration dictionary to the config file.

    Sets file permissions to 0o600 since the file holds the API key.

    Args:
        config: Configuration dictionary to save.
        path: Override for the config file location.
    """
    path = Path(path) if path else CONFIG_PATH
    path.write_text(json.dumps(config, indent=2), encoding="utf-8")
    try:
        os.chmod(path, 0o600)
    except OSError:
        pass  # Permissions may not be supported on all platforms


def interactive_api_key_setup() -> str:
    """
    Prompt user for a Gemini API key and save it to config.

    Returns:
        The API key entered by the user.

    Raises:
        SystemExit: If no API key is entered.
    """
    print("\nNo Gemini API key is configured yet.")
    print("Sheet generation uses Google Gemini's image model, which needs an API key.")
    input("Press Enter to open the Gemini API key page in your browser...")

    try:
        webbrowser.open(API_KEY_PAGE_URL)
    except webbrowser.Error as e:
        print(f"Warning: could not open browser automatically: {e}")
        print(f"Please open this URL manually in your browser: {API_KEY_PAGE_URL}")

    api_key = input("\nPaste your Gemini API key here and press Enter:\n> ").strip()
    if not api_key:
        raise SystemExit("No API key entered. Please rerun when you have a key.")

    config = load_config()
    config["api_key"] = api_key
    save_config(config)
    print(f"Saved API key to {CONFIG_PATH}.")
    return api_key


def get_api_key(interactive: bool = True) -> str:
    """
    Return Gemini API key from environment variable or config file.

    Checks GEMINI_API_KEY first, then the config file, then (optionally)
    asks on the command line.

    Args:
        interactive: If False, raise instead of prompting.

    Returns:
        Gemini API key.

    Raises:
        GeminiAPIError: If no key is available and interactive is False.
    """
    env_key = os.environ.get("GEMINI_API_KEY")
    if env_key:
        return env_key

    config = load_config()
    if config.get("api_key"):
        return config["api_key"]

    if not interactive:
        raise GeminiAPIError("No Gemini API key found in GEMINI_API_KEY or config file")
    return interactive_api_key_setup()


# =============================================================================
# Request / Response Helpers
# =============================================================================

def load_image_as_base64(path: Path) -> str:
    """
    Load a reference image from disk, re-encode as PNG, return base64 string.

    Args:
        path: Path to image file.

    Returns:
        Base64-encoded PNG image data.
    """
    img = Image.open(path).convert("RGBA")
    buffer = BytesIO()
    img.save(buffer, format="PNG", compress_level=0, optimize=False)
    return base64.b64encode(buffer.getvalue()).decode("utf-8")


def _extract_inline_image_from_response(data: dict) -> Optional[bytes]:
    """
    Extract the first inline image bytes from a Gemini JSON response.

    Handles both 'inlineData' and 'inline_data' field naming.

    Args:
        data: Parsed JSON response from Gemini API.

    Returns:
        Decoded image bytes, or None if no image found.
    """
    for candidate in data.get("candidates", []):
        content = candidate.get("content", {})
        for part in content.get("parts", []):
            blob = part.get("inlineData") or part.get("inline_data")
            if blob and "data" in blob:
                return base64.b64decode(blob["data"])
    return None


def _raise_if_blocked(data: dict, context: str) -> None:
    """Raise GeminiSafetyError if any candidate was stopped by safety filters."""
    feedback = data.get("promptFeedback", {})
    if feedback.get("blockReason"):
        reason = feedback["blockReason"]
        log_api_call(context, False, f"Prompt blocked: {reason}")
        raise GeminiSafetyError(
            f"Prompt blocked by safety filters ({context}): {reason}",
            finish_reason=reason,
            safety_ratings=feedback.get("safetyRatings", []),
        )

    for candidate in data.get("candidates", []):
        finish_reason = candidate.get("finishReason")
        if finish_reason in GEMINI_SAFETY_FINISH_REASONS:
            log_api_call(context, False, f"Safety blocked: {finish_reason}")
            raise GeminiSafetyError(
                f"Content blocked by safety filters ({context}): {finish_reason}",
                finish_reason=finish_reason,
                safety_ratings=candidate.get("safetyRatings", []),
            )


# =============================================================================
# Gemini API Calls
# =============================================================================

def _call_gemini_with_parts(
    api_key: str,
    parts: List[dict],
    context: str,
    aspect_ratio: Optional[str] = None,
    timeout: float = GEMINI_REQUEST_TIMEOUT,
) -> bytes:
    """
    Call Gemini API with a parts array and retry logic.

    Retries transient HTTP errors (429, 5xx), network failures, and responses
    without image data. Safety blocks and other HTTP errors are not retried.

    Args:
        api_key: Google Gemini API key.
        parts: List of content parts (text, images).
        context: Description of the operation for logs and error messages.
        aspect_ratio: Optional output aspect ratio, e.g. "1:1".
        timeout: Per-attempt HTTP timeout in seconds.

    Returns:
        Raw image bytes from the model.

    Raises:
        GeminiSafetyError: If the request was blocked.
        GeminiAPIError: If the call fails after all retries.
    """
    payload: dict = {"contents": [{"parts": parts}]}
    if aspect_ratio:
        payload["generationConfig"] = {
            "responseModalities": ["IMAGE"],
            "imageConfig": {"aspectRatio": aspect_ratio},
        }
    headers = {"Content-Type": "application/json", "x-goog-api-key": api_key}
    last_error = ""

    log_debug(f"Gemini API call starting: {context}")

    for attempt in range(1, GEMINI_MAX_RETRIES + 1):
        try:
            response = requests.post(
                GEMINI_API_URL,
                headers=headers,
                data=json.dumps(payload),
                timeout=timeout,
            )
        except requests.RequestException as e:
            last_error = str(e)
            log_warning(f"Gemini call failed ({context}) attempt {attempt}: {e}")
            continue

        if not response.ok:
            last_error = f"Gemini API error {response.status_code}: {response.text[:200]}"
            if response.status_code in GEMINI_RETRYABLE_STATUS and attempt < GEMINI_MAX_RETRIES:
                log_warning(f"Gemini API error {response.status_code} ({context}) attempt {attempt}, retrying...")
                print(f"[WARN] Gemini API error {response.status_code} ({context}) attempt {attempt}; retrying...")
                continue
            log_api_call(context, False, f"HTTP {response.status_code}: {response.text[:200]}")
            raise GeminiAPIError(last_error, status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            last_error = f"Invalid JSON from Gemini ({context}): {e}"
            log_warning(f"{last_error} attempt {attempt}")
            continue

        _raise_if_blocked(data, context)

        raw_bytes = _extract_inline_image_from_response(data)
        if raw_bytes is not None:
            log_api_call(context, True, f"Image received ({len(raw_bytes)} bytes)")
            return raw_bytes

        log_debug(f"Gemini response without image data: {json.dumps(data, indent=2)[:500]}")
        last_error = f"No image data in Gemini response ({context})."
        if attempt < GEMINI_MAX_RETRIES:
            log_warning(f"Gemini response missing image ({context}) attempt {attempt}, retrying...")
            print(f"[WARN] Gemini response missing image ({context}) attempt {attempt}; retrying...")

    log_api_call(context, False, f"Failed after {GEMINI_MAX_RETRIES} attempts: {last_error}")
    raise GeminiAPIError(
        f"Gemini call failed after {GEMINI_MAX_RETRIES} attempts ({context}): {last_error}"
    )


def call_gemini_sheet(
    api_key: str,
    prompt: str,
    ref_images: Optional[List[Path]] = None,
    aspect_ratio: Optional[str] = "1:1",
    timeout: float = GEMINI_REQUEST_TIMEOUT,
) -> bytes:
    """
    Ask Gemini for one pose sheet image.

    Args:
        api_key: Google Gemini API key.
        prompt: Full sheet prompt (built by the caller).
        ref_images: Optional character reference images.
        aspect_ratio: Requested output aspect ratio.
        timeout: Per-attempt HTTP timeout in seconds.

    Returns:
        Raw sheet image bytes.
    """
    parts: List[dict] = [{"text": prompt}]

    for ref_path in ref_images or []:
        try:
            parts.append({
                "inline_data": {"mime_type": "image/png", "data": load_image_as_base64(ref_path)}
            })
        except OSError as e:
            log_warning(f"Could not load reference image {ref_path}: {e}")
            print(f"[WARN] Could not load reference image {ref_path}: {e}")

    return _call_gemini_with_parts(api_key, parts, "pose_sheet", aspect_ratio, timeout)


def generate_sheet_image(
    api_key: str,
    prompt: str,
    ref_images: Optional[List[Path]] = None,
) -> Image.Image:
    """Generate a pose sheet and decode it for the pipeline."""
    return load_sheet_image(call_gemini_sheet(api_key, prompt, ref_images))
