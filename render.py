import os
import re
import sys
import time
from argparse import ArgumentParser
from pathlib import Path
from typing import Callable, Optional, TypeVar

import numpy as np
import PIL.Image

from mandelbrot import (
    BACKENDS,
    ImageBounds,
    RenderError,
    RenderParameters,
    default_workers,
    render_frame,
)

T = TypeVar("T")

VERBOSE = False

USAGE_EXAMPLE = "mandel.png 1000x750 -1.20,0.35 -1,0.20"


def log(message, *args, **kwargs):
    if VERBOSE:
        print(message, *args, **kwargs)


class RenderArgumentParser(ArgumentParser):
    """Argument parser that exits with status 1 and shows an example on misuse."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        # corners such as "-1.20,0.35" are values, not options
        self._negative_number_matcher = re.compile(r"^-\.?\d")

    def error(self, message):
        self.print_usage(sys.stderr)
        print(f"Example: {self.prog} {USAGE_EXAMPLE}", file=sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def parse_pair(s: str, separator: str, convert: Callable[[str], T]) -> Optional[tuple[T, T]]:
    """Split ``s`` at the first ``separator`` and convert both halves."""

    index = s.find(separator)
    if index == -1:
        return None
    try:
        return convert(s[:index]), convert(s[index + 1:])
    except ValueError:
        return None


def parse_complex(s: str) -> Optional[complex]:
    pair = parse_pair(s, ",", float)
    if pair is None:
        return None
    return complex(*pair)


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise ValueError(f"expected a positive integer, got {value}")
    return number


def _env_workers() -> Optional[int]:
    value = os.environ.get("MANDELBROT_WORKERS")
    if not value:
        return None
    try:
        return _positive_int(value)
    except ValueError:
        print(f"Ignoring invalid MANDELBROT_WORKERS '{value}'.", file=sys.stderr)
        return None


def build_parser():
    parser = RenderArgumentParser(
        prog="mandelbrot-render",
        description="Render the Mandelbrot set to a grayscale image.",
    )

    parser.add_argument('file', metavar='FILE', help='path of the image to write')

    parser.add_argument('pixels', metavar='PIXELS',
                        help='image size as WIDTHxHEIGHT, e.g. 1000x750')

    parser.add_argument('upper_left', metavar='UPPERLEFT',
                        help='upper left corner of the viewport as RE,IM')

    parser.add_argument('lower_right', metavar='LOWERRIGHT',
                        help='lower right corner of the viewport as RE,IM')

    parser.add_argument('--workers', type=_positive_int, dest='workers', metavar='WORKERS', default=None,
                        help='number of bands rendered in parallel. Default: $MANDELBROT_WORKERS or the number of CPUs.')

    parser.add_argument('--backend', choices=BACKENDS, default='process',
                        help='run bands in worker processes or threads. Default: "process".')

    parser.add_argument('-v', '--verbose', action='store_true',
                        help='print CPU counts, the band layout and timings.')

    return parser


def _image_format(output_path: Path) -> str:
    image_format = PIL.Image.registered_extensions().get(output_path.suffix.lower())
    # some registered extensions can only be read
    if image_format not in PIL.Image.SAVE:
        return "PNG"
    return image_format


def write_image(output_path: Path, pixels: np.ndarray, bounds: ImageBounds) -> None:
    """Write the flat grayscale ``pixels`` to ``output_path``."""

    image = PIL.Image.fromarray(pixels.reshape(bounds.height, bounds.width))
    output_path.parent.mkdir(parents=True, exist_ok=True)
    image.save(str(output_path), format=_image_format(output_path))


def main(argv=None):
    parser = build_parser()
    opt = parser.parse_args(argv)

    global VERBOSE
    VERBOSE = bool(opt.verbose)

    dimensions = parse_pair(opt.pixels, "x", int)
    if dimensions is None or min(dimensions) < 1:
        parser.error(f"error parsing image dimensions '{opt.pixels}'")
    upper_left = parse_complex(opt.upper_left)
    if upper_left is None:
        parser.error(f"error parsing upper left corner point '{opt.upper_left}'")
    lower_right = parse_complex(opt.lower_right)
    if lower_right is None:
        parser.error(f"error parsing lower right corner point '{opt.lower_right}'")

    workers = opt.workers or _env_workers() or default_workers()
    log("Number of cpus = {0} and number of available cpus = {1}".format(os.cpu_count(), default_workers()))

    params = RenderParameters(
        width=dimensions[0],
        height=dimensions[1],
        upper_left=upper_left,
        lower_right=lower_right,
    )

    start = time.perf_counter()
    try:
        result = render_frame(params, workers=workers, backend=opt.backend)
    except RenderError as exc:
        print(f"error rendering image: {exc}", file=sys.stderr)
        sys.exit(1)

    for band in result.bands:
        log("band {0}: rows {1}-{2}".format(band.index, band.top, band.top + band.height - 1))
    log("rendered {0}x{1} with {2} {3} workers in {4:.3f} seconds".format(
        params.width, params.height, len(result.bands), opt.backend, time.perf_counter() - start))

    output_path = Path(opt.file).expanduser()
    try:
        write_image(output_path, result.pixels, result.bounds)
    except (OSError, ValueError) as exc:
        print(f"error writing image file: {exc}", file=sys.stderr)
        sys.exit(1)

    log("wrote {0}".format(output_path))


if __name__ == '__main__':
    main()
