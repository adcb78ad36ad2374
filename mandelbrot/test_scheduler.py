"""
test_scheduler.py
"""
import numpy as np
import pytest

from mandelbrot import scheduler
from mandelbrot.renderer import ImageBounds, RenderParameters, pixel_to_point, render_band
from mandelbrot.scheduler import (
    Band,
    RenderError,
    default_workers,
    plan_bands,
    render_frame,
    rows_per_band,
)

# corners and sizes chosen so every band corner is exactly representable
DYADIC = RenderParameters(width=32, height=64, upper_left=complex(-2.0, 2.0), lower_right=complex(2.0, -2.0))


def _reference(params):
    pixels = np.zeros(params.bounds.size, dtype=np.uint8)
    render_band(pixels, params.bounds, params.upper_left, params.lower_right)
    return pixels


def test_default_workers_is_positive():
    assert default_workers() >= 1


@pytest.mark.parametrize('total_rows, workers, expected', [
    (10, 3, 4),
    (10, 1, 10),
    (8, 8, 1),
    (3, 8, 1),
    (100, 8, 13),
])
def test_rows_per_band_rounds_up(total_rows, workers, expected):
    assert rows_per_band(total_rows, workers) == expected


@pytest.mark.parametrize('workers', [0, -1])
def test_rows_per_band_requires_a_worker(workers):
    with pytest.raises(ValueError):
        rows_per_band(10, workers)


def test_plan_bands_clips_last_band():
    bands = plan_bands(ImageBounds(5, 10), complex(-2.0, 1.0), complex(1.0, -1.0), 3)
    assert [band.height for band in bands] == [4, 4, 2]
    assert [(band.top, band.top + band.height - 1) for band in bands] == [(0, 3), (4, 7), (8, 9)]
    assert [band.index for band in bands] == [0, 1, 2]


@pytest.mark.parametrize('height, workers', [(10, 3), (10, 4), (10, 6), (7, 7), (3, 8), (64, 5), (1, 1)])
def test_plan_bands_cover_every_row_once(height, workers):
    bounds = ImageBounds(3, height)
    bands = plan_bands(bounds, complex(-2.0, 1.0), complex(1.0, -1.0), workers)
    rows = [row for band in bands for row in range(band.top, band.top + band.height)]
    assert rows == list(range(height))
    assert len(bands) <= workers
    assert sum(band.stop(bounds.width) - band.start(bounds.width) for band in bands) == bounds.size


def test_plan_bands_derive_corners_from_full_viewport():
    bounds = ImageBounds(32, 64)
    upper_left, lower_right = complex(-2.0, 2.0), complex(2.0, -2.0)
    bands = plan_bands(bounds, upper_left, lower_right, 4)
    assert bands[1] == Band(
        index=1,
        top=16,
        height=16,
        upper_left=pixel_to_point(bounds, (0, 16), upper_left, lower_right),
        lower_right=pixel_to_point(bounds, (32, 32), upper_left, lower_right),
    )
    assert bands[1].upper_left == complex(-2.0, 1.0)
    assert bands[1].lower_right == complex(2.0, 0.0)
    assert bands[0].upper_left == upper_left
    assert bands[-1].lower_right == lower_right


def test_render_frame_concrete_scenario():
    params = RenderParameters(width=100, height=100, upper_left=complex(-1.20, 0.35), lower_right=complex(-1.0, 0.20))
    result = render_frame(params, workers=4, backend="thread")
    assert result.pixels.dtype == np.uint8
    assert len(result.pixels) == 10000
    assert result.bounds == ImageBounds(100, 100)
    assert result.bands[0].upper_left == complex(-1.20, 0.35)


@pytest.mark.parametrize('workers', [1, 2, 4, 8, 64])
def test_band_count_does_not_change_pixels(workers):
    single = render_frame(DYADIC, workers=1, backend="thread")
    assert np.array_equal(single.pixels, _reference(DYADIC))

    result = render_frame(DYADIC, workers=workers, backend="thread")
    assert len(result.bands) == workers
    assert np.array_equal(result.pixels, single.pixels)


@pytest.mark.parametrize('workers', [2, 3, 4, 7, 8])
def test_band_count_does_not_change_pixels_of_zoomed_viewport(workers):
    params = RenderParameters(width=100, height=100, upper_left=complex(-1.20, 0.35), lower_right=complex(-1.0, 0.20))
    single = render_frame(params, workers=1, backend="thread")
    result = render_frame(params, workers=workers, backend="thread")
    assert len(result.pixels) == 10000
    assert np.array_equal(result.pixels, single.pixels)


def test_process_backend_matches_thread_backend():
    threaded = render_frame(DYADIC, workers=4, backend="thread")
    forked = render_frame(DYADIC, workers=4, backend="process")
    assert np.array_equal(forked.pixels, threaded.pixels)


def test_render_frame_rejects_unknown_backend():
    with pytest.raises(ValueError):
        render_frame(DYADIC, workers=2, backend="gpu")


def test_render_frame_defaults_to_available_cpus():
    params = RenderParameters(width=4, height=256, upper_left=complex(-2.0, 2.0), lower_right=complex(2.0, -2.0))
    result = render_frame(params)
    expected = plan_bands(params.bounds, params.upper_left, params.lower_right, default_workers())
    assert result.bands == tuple(expected)
    assert len(result.pixels) == params.bounds.size


def test_failing_band_aborts_render(monkeypatch):
    def flaky_render_band(pixels, bounds, upper_left, lower_right):
        if upper_left.imag <= 0:
            raise ArithmeticError("boom")
        render_band(pixels, bounds, upper_left, lower_right)

    monkeypatch.setattr(scheduler, "render_band", flaky_render_band)

    with pytest.raises(RenderError) as excinfo:
        render_frame(DYADIC, workers=4, backend="thread")

    assert excinfo.value.band.index == 2
    assert isinstance(excinfo.value.__cause__, ArithmeticError)


def test_mismatched_band_buffer_surfaces_as_render_error(monkeypatch):
    def short_bounds(self, width):
        return ImageBounds(width, self.height + 1)

    monkeypatch.setattr(Band, "bounds", short_bounds)

    with pytest.raises(RenderError) as excinfo:
        render_frame(DYADIC, workers=2, backend="thread")

    assert isinstance(excinfo.value.__cause__, ValueError)


def _short_band_copy(bounds, upper_left, lower_right):
    # lower half of the image gets a buffer one pixel short
    size = bounds.size - 1 if upper_left.imag <= 0 else bounds.size
    pixels = np.zeros(size, dtype=np.uint8)
    render_band(pixels, bounds, upper_left, lower_right)
    return pixels


def test_failing_band_aborts_process_render(monkeypatch):
    monkeypatch.setattr(scheduler, "_render_band_copy", _short_band_copy)

    with pytest.raises(RenderError) as excinfo:
        render_frame(DYADIC, workers=4, backend="process")

    assert excinfo.value.band.index == 2
    assert isinstance(excinfo.value.__cause__, ValueError)
