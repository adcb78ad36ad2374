"""Public API for grayscale Mandelbrot rendering utilities."""

from .renderer import (
    BAILOUT_NORM_SQR,
    ESCAPE_LIMIT,
    ImageBounds,
    RenderParameters,
    escape_time,
    intensity,
    pixel_to_point,
    render_band,
)
from .scheduler import (
    BACKENDS,
    Band,
    RenderError,
    RenderResult,
    default_workers,
    plan_bands,
    render_frame,
    rows_per_band,
)

__all__ = [
    "BACKENDS",
    "BAILOUT_NORM_SQR",
    "Band",
    "ESCAPE_LIMIT",
    "ImageBounds",
    "RenderError",
    "RenderParameters",
    "RenderResult",
    "default_workers",
    "escape_time",
    "intensity",
    "pixel_to_point",
    "plan_bands",
    "render_band",
    "render_frame",
    "rows_per_band",
]
