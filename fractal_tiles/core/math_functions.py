"""
Core escape-time iteration for tile generation.

Every kernel here uses the same count encoding:

- ``z0`` is the starting point and counts as the first iteration, so ``n``
  starts at 1.
- Iteration continues while ``|z|^2 <= 4`` and ``n < max_iter``.
- A point that used up the whole budget is stored as ``0`` (in the set).
  Any other point stores ``n``, which lies in ``[1, max_iter - 1]``.

The scalar functions are the reference; ``EscapeTimeIterator`` is the
vectorised NumPy version and produces identical counts element-wise.
"""

import numpy as np
from typing import Tuple
import logging

logger = logging.getLogger(__name__)

ESCAPE_RADIUS_SQ = 4.0
COUNT_DTYPE = np.uint64


def _finish(n: int, max_iter: int) -> int:
    return 0 if n == max_iter else n


def mandel_iter(max_iter: int, c: complex) -> int:
    """
    Escape-time count for a single Mandelbrot point.

    Args:
        max_iter: Iteration budget
        c: Point in the complex plane

    Returns:
        0 if the orbit never escaped, else the escape iteration
    """
    cr, ci = c.real, c.imag
    zr, zi = cr, ci
    n = 1
    while zr * zr + zi * zi <= ESCAPE_RADIUS_SQ and n < max_iter:
        zr, zi = zr * zr - zi * zi + cr, 2.0 * zr * zi + ci
        n += 1
    return _finish(n, max_iter)


def julia_iter(max_iter: int, z: complex, c: complex) -> int:
    """Escape-time count for a Julia point ``z`` with constant ``c``."""
    cr, ci = c.real, c.imag
    zr, zi = z.real, z.imag
    n = 1
    while zr * zr + zi * zi <= ESCAPE_RADIUS_SQ and n < max_iter:
        zr, zi = zr * zr - zi * zi + cr, 2.0 * zr * zi + ci
        n += 1
    return _finish(n, max_iter)


def burning_ship_iter(max_iter: int, c: complex) -> int:
    """Escape-time count for the Burning Ship map ``(|Re z| + i|Im z|)^2 + c``."""
    cr, ci = c.real, c.imag
    zr, zi = cr, ci
    n = 1
    while zr * zr + zi * zi <= ESCAPE_RADIUS_SQ and n < max_iter:
        ar, ai = abs(zr), abs(zi)
        zr, zi = ar * ar - ai * ai + cr, 2.0 * ar * ai + ci
        n += 1
    return _finish(n, max_iter)


def sample_grid(start: Tuple[float, float], step: Tuple[float, float],
                width: int, height: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Sample coordinates for a tile.

    Args:
        start: Lower-left corner (re, im)
        step: Distance between samples (re, im)
        width, height: Number of samples per axis

    Returns:
        Tuple of (real, imag) arrays shaped (height, width)
    """
    xs = start[0] + np.arange(width, dtype=np.float64) * step[0]
    ys = start[1] + np.arange(height, dtype=np.float64) * step[1]
    return np.meshgrid(xs, ys)


class EscapeTimeIterator:
    """Vectorised escape-time iteration over coordinate arrays."""

    def __init__(self, max_iter: int):
        """
        Initialize iterator.

        Args:
            max_iter: Iteration budget; counts reaching it are stored as 0
        """
        if int(max_iter) != max_iter or max_iter <= 0:
            raise ValueError(f"max_iter must be a positive integer, got {max_iter}")
        self.max_iter = int(max_iter)

    def _run(self, zr: np.ndarray, zi: np.ndarray, cr: np.ndarray, ci: np.ndarray,
             fold: bool = False) -> np.ndarray:
        zr = np.array(zr, dtype=np.float64)
        zi = np.array(zi, dtype=np.float64)
        cr = np.broadcast_to(np.asarray(cr, dtype=np.float64), zr.shape)
        ci = np.broadcast_to(np.asarray(ci, dtype=np.float64), zr.shape)
        n = np.ones(zr.shape, dtype=COUNT_DTYPE)
        limit = COUNT_DTYPE(self.max_iter)

        with np.errstate(over='ignore', invalid='ignore'):
            active = (zr * zr + zi * zi <= ESCAPE_RADIUS_SQ) & (n < limit)
            while np.any(active):
                ar = zr[active]
                ai = zi[active]
                if fold:
                    ar = np.abs(ar)
                    ai = np.abs(ai)
                zr[active] = ar * ar - ai * ai + cr[active]
                zi[active] = 2.0 * ar * ai + ci[active]
                n[active] += COUNT_DTYPE(1)
                active &= (zr * zr + zi * zi <= ESCAPE_RADIUS_SQ) & (n < limit)

        n[n == limit] = 0
        return n

    def mandelbrot_iteration(self, c_real: np.ndarray, c_imag: np.ndarray) -> np.ndarray:
        """
        Mandelbrot counts for each point of the grid.

        Args:
            c_real, c_imag: Coordinate arrays of equal shape

        Returns:
            uint64 count array of the same shape
        """
        return self._run(c_real, c_imag, c_real, c_imag)

    def julia_iteration(self, z_real: np.ndarray, z_imag: np.ndarray, c: complex) -> np.ndarray:
        """Julia counts for each starting point with constant ``c``."""
        return self._run(z_real, z_imag, c.real, c.imag)

    def burning_ship_iteration(self, c_real: np.ndarray, c_imag: np.ndarray) -> np.ndarray:
        """Burning Ship counts for each point of the grid."""
        return self._run(c_real, c_imag, c_real, c_imag, fold=True)


def count_statistics(counts: np.ndarray, max_iter: int) -> dict:
    """Summary of a count array, used for debug logging of generated tiles."""
    inside = int(np.count_nonzero(counts == 0))
    escaped = counts[counts != 0]
    return {
        'samples': int(counts.size),
        'inside': inside,
        'max_escape': int(escaped.max()) if escaped.size else None,
        'max_iter': max_iter,
    }
