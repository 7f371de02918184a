"""Custom exceptions for Gemini sheet generation errors."""
from typing import List, Optional


class GeminiAPIError(RuntimeError):
    """
    Base exception for Gemini API errors.

    Attributes:
        status_code: HTTP status of the failing response, if there was one.
    """
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class GeminiSafetyError(GeminiAPIError):
    """
    Raised when Gemini blocks a sheet request due to safety filters.

    Not retried: the caller must change the prompt.

    Attributes:
        finish_reason: Candidate finishReason that triggered the block.
        safety_ratings: List of safety rating dicts from the API response.
    """
    def __init__(
        self,
        message: str,
        finish_reason: str = "",
        safety_ratings: Optional[List[dict]] = None,
    ):
        super().__init__(message)
        self.finish_reason = finish_reason
        self.safety_ratings = safety_ratings or []
