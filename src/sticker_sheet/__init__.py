"""
Sticker Sheet

Turns an AI-generated 3x3 pose sheet into nine transparent sticker images:
chroma key background removal with spill correction, grid geometry, and
cell cutting with a fallback for bad geometry.

Package Structure:
    core/       - Data models and typed errors
    processing/ - Chroma key, grid geometry, cutting, quality checks, export
    api/        - Gemini sheet generation client
    pipeline.py - Orchestrator (process_sheet)
"""

__version__ = "0.3.0"


# Lazy imports for heavy dependencies
def __getattr__(name):
    if name == "process_sheet":
        from .pipeline import process_sheet
        return process_sheet
    if name == "PipelineResult":
        from .core.models import PipelineResult
        return PipelineResult
    if name == "PoseDescriptor":
        from .core.models import PoseDescriptor
        return PoseDescriptor
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "__version__",
    "process_sheet",
    "PipelineResult",
    "PoseDescriptor",
]
