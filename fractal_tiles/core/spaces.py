"""
Coordinate spaces for tile-based fractal rendering.

Three spaces are involved when a pixel is drawn:

- Complex space: true mathematical coordinates in the complex plane.
- Tile space: an integer tile index plus a zoom level. At zoom ``z`` the
  tile ``(ix, iy)`` covers ``[ix, ix + 1) x [iy, iy + 1)`` of the plane
  scaled by ``2**z``.
- Sample space: a tile plus a normalized offset in ``[0, 1)`` inside it.
  The tile cache is keyed on tile space only, so the same tile serves every
  viewport that overlaps it.

All functions here are pure. NaN and infinity propagate per IEEE-754.
"""

import math
from dataclasses import dataclass, replace
from typing import NamedTuple, Tuple, Union

import numpy as np

Number = Union[int, float]

# scaled coordinates at or beyond this do not fit an int64 tile index
INDEX_LIMIT = 2.0 ** 63


class ViewportError(ValueError):
    """Raised when a viewport cannot be rendered."""


class Point(NamedTuple):
    """A 2D point used for tile indices, pixel sizes and offsets."""
    x: Number
    y: Number


@dataclass(frozen=True)
class ComplexSpace:
    """A point in the complex plane."""
    re: float
    im: float

    def __add__(self, other: 'ComplexSpace') -> 'ComplexSpace':
        return ComplexSpace(self.re + other.re, self.im + other.im)

    def to_complex(self) -> complex:
        return complex(self.re, self.im)

    @classmethod
    def from_complex(cls, c: complex) -> 'ComplexSpace':
        return cls(c.real, c.imag)


@dataclass(frozen=True)
class TileSpace:
    """Address of one tile: integer index at a non-negative zoom."""
    index: Point
    zoom: int

    def __post_init__(self):
        if self.zoom < 0:
            raise ValueError(f"zoom must be non-negative, got {self.zoom}")
        if not isinstance(self.index, Point):
            object.__setattr__(self, 'index', Point(int(self.index[0]), int(self.index[1])))

    def neighbour(self, dx: int, dy: int) -> 'TileSpace':
        """Tile offset by (dx, dy) at the same zoom."""
        return TileSpace(Point(self.index.x + dx, self.index.y + dy), self.zoom)


@dataclass(frozen=True)
class SampleSpace:
    """A tile and a normalized offset inside it, both coordinates in [0, 1)."""
    tile: TileSpace
    coord: Point


def tile_to_complex(tile: TileSpace) -> ComplexSpace:
    """Lower-left corner of ``tile`` in complex space."""
    scale = 2.0 ** tile.zoom
    return ComplexSpace(tile.index.x / scale, tile.index.y / scale)


def _split(scaled: float) -> Tuple[int, float]:
    # floor-modulo; fmod truncates toward zero so negative remainders get +1
    remainder = math.fmod(scaled, 1.0)
    if remainder < 0:
        remainder += 1.0
    index = math.floor(scaled)
    if remainder >= 1.0:
        # -tiny + 1.0 rounds to 1.0, which belongs to the next tile
        remainder = 0.0
        index = math.floor(scaled) + 1
    return index, remainder


def complex_to_sample(c: ComplexSpace, zoom: int) -> SampleSpace:
    """
    Locate ``c`` in tile space at ``zoom``.

    Args:
        c: Point in complex space
        zoom: Tile zoom level (>= 0)

    Returns:
        The owning tile and the offset of ``c`` inside it
    """
    scale = 2.0 ** zoom
    ix, fx = _split(c.re * scale)
    iy, fy = _split(c.im * scale)
    return SampleSpace(TileSpace(Point(ix, iy), zoom), Point(fx, fy))


def complex_to_sample_arrays(re: np.ndarray, im: np.ndarray,
                             zoom: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    Vectorised :func:`complex_to_sample`.

    Returns:
        Tuple of (index_x, index_y, coord_x, coord_y); indices are int64

    Raises:
        ViewportError: If a tile index would not fit in int64 at ``zoom``
    """
    scale = 2.0 ** zoom
    out = []
    for values in (re, im):
        scaled = np.asarray(values, dtype=np.float64) * scale
        if np.any(np.abs(scaled) >= INDEX_LIMIT):
            raise ViewportError(f"Tile indices exceed int64 range at zoom {zoom}")
        remainder = np.fmod(scaled, 1.0)
        remainder = np.where(remainder < 0, remainder + 1.0, remainder)
        index = np.floor(scaled)
        carry = remainder >= 1.0
        remainder = np.where(carry, 0.0, remainder)
        index = np.where(carry, index + 1, index)
        out.append((index.astype(np.int64), remainder))
    (ix, fx), (iy, fy) = out
    return ix, iy, fx, fy


def sample_offset_to_complex(coord: Point, zoom: int) -> ComplexSpace:
    """Size of a normalized in-tile offset, in complex-plane units."""
    scale = 2.0 ** zoom
    return ComplexSpace(coord.x / scale, coord.y / scale)


def sample_to_complex(sample: SampleSpace) -> ComplexSpace:
    """Inverse of :func:`complex_to_sample`."""
    return tile_to_complex(sample.tile) + sample_offset_to_complex(sample.coord, sample.tile.zoom)


def viewport_to_tilewidth(viewport_width: float, zoom_level: float) -> float:
    """Width in complex-plane units of one tile's worth of detail."""
    return viewport_width / 2.0 ** zoom_level


@dataclass(frozen=True)
class Viewport:
    """
    The visible window into the complex plane.

    ``width`` is measured along the real axis; the imaginary extent follows
    from the output aspect ratio so pixels stay square.
    """
    center: ComplexSpace
    width: float
    output_size: Point

    def validate(self) -> None:
        """Raise ViewportError unless the viewport can be rendered."""
        if not (math.isfinite(self.center.re) and math.isfinite(self.center.im)):
            raise ViewportError(f"Viewport center must be finite, got {self.center}")
        if not math.isfinite(self.width) or self.width <= 0:
            raise ViewportError(f"Viewport width must be positive and finite, got {self.width}")
        w, h = self.output_size
        if int(w) != w or int(h) != h or w <= 0 or h <= 0:
            raise ViewportError(f"Output size must be positive integers, got {tuple(self.output_size)}")

    @property
    def zoom_level(self) -> float:
        return -math.log2(self.width)

    @property
    def aspect_ratio(self) -> float:
        return self.output_size.y / self.output_size.x

    @property
    def height(self) -> float:
        return self.width * self.aspect_ratio

    @property
    def pixel_step(self) -> float:
        return self.width / self.output_size.x

    @property
    def origin(self) -> ComplexSpace:
        """Complex coordinate of pixel (0, 0)."""
        return ComplexSpace(self.center.re - self.width / 2.0,
                            self.center.im - self.height / 2.0)

    def resize(self, width: int, height: int) -> 'Viewport':
        return replace(self, output_size=Point(int(width), int(height)))

    def translate(self, du: float, dv: float) -> 'Viewport':
        """
        Move the center by a fraction of the viewport width.

        Args:
            du, dv: Offsets in units of viewport width
        """
        return replace(self, center=ComplexSpace(self.center.re + self.width * du,
                                                 self.center.im + self.width * dv))

    def zoom(self, factor: float, u: float = 0.5, v: float = 0.5) -> 'Viewport':
        """
        Scale the width by ``1 + factor`` keeping the normalized point (u, v) fixed.

        Args:
            factor: Negative values zoom in, positive values zoom out
            u, v: Normalized position in the viewport (0.5, 0.5 is the center)
        """
        z = 1.0 + factor
        if z <= 0:
            raise ViewportError(f"Zoom factor must be greater than -1, got {factor}")
        # offsets are in units of the old width; v is scaled to the real-axis unit
        shifted = self.translate((u - 0.5) * (1.0 - z),
                                 (v - 0.5) * self.aspect_ratio * (1.0 - z))
        return replace(shifted, width=self.width * z)


def pixel_to_complex(viewport: Viewport, px: Number, py: Number) -> ComplexSpace:
    """Complex coordinate of output pixel (px, py)."""
    origin = viewport.origin
    step = viewport.pixel_step
    return ComplexSpace(origin.re + px * step, origin.im + py * step)


def pixel_grid(viewport: Viewport) -> Tuple[np.ndarray, np.ndarray]:
    """
    Complex coordinates of every output pixel.

    Returns:
        Tuple of (real, imag) arrays shaped (height, width)
    """
    w, h = int(viewport.output_size.x), int(viewport.output_size.y)
    origin = viewport.origin
    step = viewport.pixel_step
    re = origin.re + np.arange(w, dtype=np.float64) * step
    im = origin.im + np.arange(h, dtype=np.float64) * step
    return np.meshgrid(re, im)


def tile_zoom_for(viewport: Viewport, tile_pixel_width: int) -> int:
    """
    Smallest zoom whose tile samples are no coarser than the viewport's pixels.

    Args:
        viewport: Viewport being rendered
        tile_pixel_width: Samples per tile along the real axis

    Returns:
        Non-negative tile zoom level
    """
    ratio = viewport.output_size.x / (viewport.width * tile_pixel_width)
    return max(0, math.ceil(math.log2(ratio)))
