"""Split a Mandelbrot render into row bands and render them concurrently."""

from __future__ import annotations

import math
import os
from concurrent.futures import ALL_COMPLETED, Future, ProcessPoolExecutor, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .renderer import ImageBounds, RenderParameters, pixel_to_point, render_band

BACKENDS = ("thread", "process")


class RenderError(RuntimeError):
    """Raised when a band task fails, so no partial image is returned."""

    def __init__(self, band: "Band", cause: BaseException) -> None:
        super().__init__(f"band {band.index} (rows {band.top}-{band.top + band.height - 1}) failed: {cause}")
        self.band = band


@dataclass(frozen=True)
class Band:
    """A contiguous run of image rows and the viewport it covers."""

    index: int
    top: int
    height: int
    upper_left: complex
    lower_right: complex

    def bounds(self, width: int) -> ImageBounds:
        return ImageBounds(width, self.height)

    def start(self, width: int) -> int:
        return self.top * width

    def stop(self, width: int) -> int:
        return (self.top + self.height) * width


@dataclass(frozen=True)
class RenderResult:
    """Container for a finished render."""

    pixels: np.ndarray
    bounds: ImageBounds
    bands: tuple[Band, ...]


def default_workers() -> int:
    """Number of CPUs this process may run on."""

    if hasattr(os, "sched_getaffinity"):
        return max(len(os.sched_getaffinity(0)), 1)
    return os.cpu_count() or 1


def rows_per_band(total_rows: int, workers: int) -> int:
    if workers < 1:
        raise ValueError(f"workers must be at least 1, got {workers}")
    return math.ceil(total_rows / workers)


def plan_bands(bounds: ImageBounds, upper_left: complex, lower_right: complex, workers: int) -> list[Band]:
    """Partition the rows of ``bounds`` into at most ``workers`` disjoint bands.

    Every band but the last holds ``rows_per_band`` rows; the last one is
    clipped to the image. Band corners come from mapping the band's top-left
    and bottom-right pixels through the full-image viewport.
    """

    step = rows_per_band(bounds.height, workers)
    bands = []
    top = 0
    while top < bounds.height:
        height = min(step, bounds.height - top)
        bands.append(
            Band(
                index=len(bands),
                top=top,
                height=height,
                upper_left=pixel_to_point(bounds, (0, top), upper_left, lower_right),
                lower_right=pixel_to_point(bounds, (bounds.width, top + height), upper_left, lower_right),
            )
        )
        top += height
    return bands


def _render_band_copy(bounds: ImageBounds, upper_left: complex, lower_right: complex) -> np.ndarray:
    pixels = np.zeros(bounds.size, dtype=np.uint8)
    render_band(pixels, bounds, upper_left, lower_right)
    return pixels


def _make_executor(backend: str, workers: int):
    if backend == "thread":
        return ThreadPoolExecutor(max_workers=workers)
    if backend == "process":
        return ProcessPoolExecutor(max_workers=workers)
    raise ValueError(f"unknown backend '{backend}', expected one of: {', '.join(BACKENDS)}")


def render_frame(
    params: RenderParameters,
    *,
    workers: Optional[int] = None,
    backend: str = "thread",
) -> RenderResult:
    """Render ``params`` with one concurrent task per band.

    With the thread backend each task writes straight into its view of the
    shared buffer. Process workers cannot share the buffer, so each returns
    its band and the band is copied into place once every task has finished.
    """

    bounds = params.bounds
    workers = default_workers() if workers is None else workers
    bands = plan_bands(bounds, params.upper_left, params.lower_right, workers)
    pixels = np.zeros(bounds.size, dtype=np.uint8)

    with _make_executor(backend, len(bands)) as executor:
        futures: dict[Future, Band] = {}
        for band in bands:
            if backend == "thread":
                view = pixels[band.start(bounds.width):band.stop(bounds.width)]
                future = executor.submit(render_band, view, band.bounds(bounds.width), band.upper_left, band.lower_right)
            else:
                future = executor.submit(_render_band_copy, band.bounds(bounds.width), band.upper_left, band.lower_right)
            futures[future] = band
        wait(futures, return_when=ALL_COMPLETED)

    for future, band in futures.items():
        try:
            rendered = future.result()
        except Exception as exc:
            raise RenderError(band, exc) from exc
        if rendered is not None:
            pixels[band.start(bounds.width):band.stop(bounds.width)] = rendered

    return RenderResult(pixels=pixels, bounds=bounds, bands=tuple(bands))
