"""Rendering primitives for grayscale Mandelbrot images."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

ESCAPE_LIMIT = 255
BAILOUT_NORM_SQR = 4.0


@dataclass(frozen=True)
class ImageBounds:
    """Pixel dimensions of an image or of one band of it."""

    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"image bounds must be positive, got {self.width}x{self.height}")

    @property
    def size(self) -> int:
        return self.width * self.height


@dataclass(frozen=True)
class RenderParameters:
    """Parameters that describe a single render of the Mandelbrot set."""

    width: int
    height: int
    upper_left: complex
    lower_right: complex

    @property
    def bounds(self) -> ImageBounds:
        return ImageBounds(self.width, self.height)


def pixel_to_point(
    bounds: ImageBounds,
    pixel: tuple[int, int],
    upper_left: complex,
    lower_right: complex,
) -> complex:
    """Map ``pixel`` (column, row) of ``bounds`` onto the viewport.

    Row 0 is the top of the image, which is the largest imaginary value of the
    viewport, so the imaginary axis is walked downwards.
    """

    column, row = pixel
    width = lower_right.real - upper_left.real
    height = upper_left.imag - lower_right.imag
    return complex(
        upper_left.real + column / bounds.width * width,
        upper_left.imag - row / bounds.height * height,
    )


def escape_time(c: complex, limit: int) -> Optional[int]:
    """Return the iteration at which ``c`` escapes, or ``None`` if it stays bounded."""

    z = 0j
    for i in range(limit):
        z = z * z + c
        if z.real * z.real + z.imag * z.imag > BAILOUT_NORM_SQR:
            return i
    return None


def intensity(count: Optional[int]) -> int:
    # points that never escape are drawn black
    if count is None:
        return 0
    return ESCAPE_LIMIT - count


def render_band(
    pixels: np.ndarray,
    bounds: ImageBounds,
    upper_left: complex,
    lower_right: complex,
) -> None:
    """Fill ``pixels`` with the grayscale escape times of the band.

    ``pixels`` is the flat buffer of the band only, and ``upper_left`` and
    ``lower_right`` are the corners of the band, not of the whole image.
    """

    if len(pixels) != bounds.size:
        raise ValueError(
            f"band buffer holds {len(pixels)} pixels but bounds "
            f"{bounds.width}x{bounds.height} need {bounds.size}"
        )

    width = bounds.width
    for row in range(bounds.height):
        line = [
            intensity(escape_time(pixel_to_point(bounds, (column, row), upper_left, lower_right), ESCAPE_LIMIT))
            for column in range(width)
        ]
        pixels[row * width:(row + 1) * width] = line
