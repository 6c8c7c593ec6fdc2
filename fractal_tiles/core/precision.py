"""
Float64 precision limits across zoom levels.

Tiles are generated with fixed-width float64 arithmetic. At deep zoom the
spacing between tile samples eventually drops below the spacing of float64
values around the coordinate, and neighbouring samples collapse onto the
same number. This module detects that point so callers can warn about it.
"""

import math
import threading
from typing import Set
import logging

import numpy as np

from .spaces import ComplexSpace

logger = logging.getLogger(__name__)

_warned: Set[int] = set()
_warned_lock = threading.Lock()


def float_spacing(value: float) -> float:
    """Distance from ``value`` to the next representable float64."""
    return float(np.spacing(np.float64(abs(value))))


def max_resolvable_zoom(coordinate: ComplexSpace, tile_pixel_width: int) -> int:
    """
    Largest tile zoom whose sample step is still wider than float64 spacing.

    Args:
        coordinate: Point the viewport is looking at
        tile_pixel_width: Samples per tile along each axis

    Returns:
        Maximum zoom level that keeps samples distinct at ``coordinate``
    """
    spacing = max(float_spacing(coordinate.re), float_spacing(coordinate.im))
    # tile step at zoom z is 2**-z / tile_pixel_width
    return max(0, math.floor(-math.log2(spacing * tile_pixel_width)))


def check_zoom_precision(center: ComplexSpace, zoom: int, tile_pixel_width: int) -> bool:
    """
    Log a warning when ``zoom`` is beyond float64 resolution at ``center``.

    Each distinct limit is reported once per process.

    Returns:
        True if the zoom is within precision
    """
    limit = max_resolvable_zoom(center, tile_pixel_width)
    if zoom <= limit:
        return True

    with _warned_lock:
        first = limit not in _warned
        _warned.add(limit)
    if first:
        logger.warning(f"Tile zoom {zoom} exceeds float64 resolution near "
                       f"({center.re:.8g}, {center.im:.8g}); samples repeat beyond zoom {limit}")
    return False
