"""Typed failures raised by the sheet processing pipeline."""
from typing import List, Optional, Tuple


class StickerPipelineError(RuntimeError):
    """
    Base exception for sheet processing failures.

    Attributes:
        stage: Pipeline stage name where the failure surfaced, if known.
        cell_index: Index of the offending cell, if the failure is cell specific.
    """
    def __init__(self, message: str, stage: Optional[str] = None, cell_index: Optional[int] = None):
        super().__init__(message)
        self.stage = stage
        self.cell_index = cell_index


class ConfigError(StickerPipelineError):
    """Raised for invalid request configuration. Never retried."""
    pass


class InvalidLayout(ConfigError):
    """Raised when a grid layout cannot produce non-empty cells for the request."""
    pass


class GeometryError(StickerPipelineError):
    """Base exception for cell geometry failures."""
    pass


class BoundsOutOfRange(GeometryError):
    """
    Raised when a cell rectangle falls outside the image it is cut from.

    Attributes:
        bounds: The first offending CellBounds.
        image_size: (width, height) of the image being cut.
        failed_indices: Indices of every cell that did not fit, in order.
    """
    def __init__(
        self,
        message: str,
        bounds=None,
        image_size: Optional[Tuple[int, int]] = None,
        stage: Optional[str] = None,
        cell_index: Optional[int] = None,
        failed_indices: Optional[List[int]] = None,
    ):
        if cell_index is None and bounds is not None:
            cell_index = bounds.index
        super().__init__(message, stage=stage, cell_index=cell_index)
        self.bounds = bounds
        self.image_size = image_size
        if failed_indices is None:
            failed_indices = [cell_index] if cell_index is not None else []
        self.failed_indices = list(failed_indices)


class FormatError(StickerPipelineError):
    """Base exception for image format problems."""
    pass


class UnsupportedFormat(FormatError):
    """
    Raised when an image does not have the channel layout an operation needs.

    Attributes:
        mode: The PIL mode of the rejected image.
    """
    def __init__(self, message: str, mode: Optional[str] = None, stage: Optional[str] = None):
        super().__init__(message, stage=stage)
        self.mode = mode
