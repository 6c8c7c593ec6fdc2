"""
Numba JIT compilation backend for tile generation.

The kernels mirror the NumPy escape-time iterator exactly: the same sample
coordinates, the same arithmetic order and the same count encoding, so a
tile generated here is byte-identical to one generated with NumPy and both
backends share cache keys.
"""

import numpy as np
from typing import Tuple
import logging

import numba
from numba import njit, prange

from ..core.math_functions import ESCAPE_RADIUS_SQ

logger = logging.getLogger(__name__)


@njit(parallel=True, cache=True)
def mandelbrot_tile_kernel(start_re, start_im, step_re, step_im, width, height, max_iter):
    """
    JIT-compiled Mandelbrot tile kernel.

    Args:
        start_re, start_im: Lower-left corner of the tile
        step_re, step_im: Distance between samples
        width, height: Samples per axis
        max_iter: Iteration budget

    Returns:
        uint64 count array shaped (height, width)
    """
    counts = np.zeros((height, width), dtype=np.uint64)

    for y in prange(height):
        ci = start_im + y * step_im
        for x in range(width):
            cr = start_re + x * step_re
            zr = cr
            zi = ci
            n = 1
            while zr * zr + zi * zi <= ESCAPE_RADIUS_SQ and n < max_iter:
                new_zr = zr * zr - zi * zi + cr
                zi = 2.0 * zr * zi + ci
                zr = new_zr
                n += 1
            counts[y, x] = 0 if n == max_iter else n

    return counts


@njit(parallel=True, cache=True)
def julia_tile_kernel(start_re, start_im, step_re, step_im, width, height, max_iter, c_re, c_im):
    """JIT-compiled Julia tile kernel with constant ``c_re + i*c_im``."""
    counts = np.zeros((height, width), dtype=np.uint64)

    for y in prange(height):
        zi0 = start_im + y * step_im
        for x in range(width):
            zr = start_re + x * step_re
            zi = zi0
            n = 1
            while zr * zr + zi * zi <= ESCAPE_RADIUS_SQ and n < max_iter:
                new_zr = zr * zr - zi * zi + c_re
                zi = 2.0 * zr * zi + c_im
                zr = new_zr
                n += 1
            counts[y, x] = 0 if n == max_iter else n

    return counts


@njit(parallel=True, cache=True)
def burning_ship_tile_kernel(start_re, start_im, step_re, step_im, width, height, max_iter):
    """JIT-compiled Burning Ship tile kernel."""
    counts = np.zeros((height, width), dtype=np.uint64)

    for y in prange(height):
        ci = start_im + y * step_im
        for x in range(width):
            cr = start_re + x * step_re
            zr = cr
            zi = ci
            n = 1
            while zr * zr + zi * zi <= ESCAPE_RADIUS_SQ and n < max_iter:
                ar = abs(zr)
                ai = abs(zi)
                zr = ar * ar - ai * ai + cr
                zi = 2.0 * ar * ai + ci
                n += 1
            counts[y, x] = 0 if n == max_iter else n

    return counts


class NumbaAccelerator:
    """Numba-accelerated tile computation backend."""

    def __init__(self):
        logger.info(f"Numba accelerator initialized (numba {numba.__version__})")

    def mandelbrot_tile(self, start: Tuple[float, float], step: Tuple[float, float],
                        size: Tuple[int, int], max_iter: int) -> np.ndarray:
        """
        Accelerated Mandelbrot tile.

        Args:
            start: Lower-left corner (re, im)
            step: Sample spacing (re, im)
            size: Samples (width, height)
            max_iter: Iteration budget

        Returns:
            uint64 count array shaped (height, width)
        """
        return mandelbrot_tile_kernel(float(start[0]), float(start[1]),
                                      float(step[0]), float(step[1]),
                                      int(size[0]), int(size[1]), int(max_iter))

    def julia_tile(self, start, step, size, max_iter, c: complex) -> np.ndarray:
        """Accelerated Julia tile."""
        return julia_tile_kernel(float(start[0]), float(start[1]),
                                 float(step[0]), float(step[1]),
                                 int(size[0]), int(size[1]), int(max_iter),
                                 float(c.real), float(c.imag))

    def burning_ship_tile(self, start, step, size, max_iter) -> np.ndarray:
        """Accelerated Burning Ship tile."""
        return burning_ship_tile_kernel(float(start[0]), float(start[1]),
                                        float(step[0]), float(step[1]),
                                        int(size[0]), int(size[1]), int(max_iter))


# Global accelerator instance
_numba_accelerator = None


def get_numba_accelerator():
    """Get the global Numba accelerator instance."""
    global _numba_accelerator
    if _numba_accelerator is None:
        _numba_accelerator = NumbaAccelerator()
    return _numba_accelerator
