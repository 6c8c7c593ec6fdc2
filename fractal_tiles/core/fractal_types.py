"""
Tile generators for the supported fractal families.

A generator owns three things for its family: the cache key of a tile, the
computation of a tile's iteration data, and nearest-sample lookup inside a
generated tile. Families are registered in ``GeneratorRegistry`` and picked
by name at configuration time.
"""

import math
import numpy as np
from typing import Dict, Any, List, Optional, Tuple
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
import logging

from .math_functions import EscapeTimeIterator, sample_grid, count_statistics
from .spaces import Point, TileSpace, tile_to_complex

logger = logging.getLogger(__name__)

BACKENDS = ('numpy', 'numba')


@dataclass(frozen=True)
class Tile:
    """
    Iteration data for one tile.

    ``data`` is a read-only, row-major uint64 array of ``size.x * size.y``
    counts. 0 means the sample never escaped.
    """
    key: str
    size: Point
    max_iter: int
    data: np.ndarray = field(repr=False)

    def __post_init__(self):
        if self.data.shape != (self.size.x * self.size.y,):
            raise ValueError(f"Tile data has shape {self.data.shape}, "
                             f"expected ({self.size.x * self.size.y},)")
        self.data.flags.writeable = False

    @property
    def nbytes(self) -> int:
        return self.data.nbytes

    def as_grid(self) -> np.ndarray:
        """Read-only (height, width) view of the counts."""
        return self.data.reshape(self.size.y, self.size.x)


def _check_request(tile_pixel_size: Point, max_iter: int) -> Point:
    w, h = tile_pixel_size
    if int(w) != w or int(h) != h or w <= 0 or h <= 0:
        raise ValueError(f"Tile pixel size must be positive integers, got {tuple(tile_pixel_size)}")
    if int(max_iter) != max_iter or max_iter <= 0:
        raise ValueError(f"max_iter must be a positive integer, got {max_iter}")
    return Point(int(w), int(h))


def generation_grid(tile: TileSpace, size: Point) -> Tuple[Tuple[float, float], Tuple[float, float]]:
    """
    Lower-left corner and sample spacing for ``tile``.

    Returns:
        Tuple of (start, step), each an (re, im) pair
    """
    start = tile_to_complex(tile)
    end = tile_to_complex(tile.neighbour(1, 1))
    step = ((end.re - start.re) / size.x, (end.im - start.im) / size.y)
    return (start.re, start.im), step


class Generator(ABC):
    """Abstract base class for tile generators."""

    name = 'generator'

    def __init__(self, backend: str = 'numpy'):
        """
        Initialize generator.

        Args:
            backend: 'numpy' or 'numba'; both produce identical tiles
        """
        if backend not in BACKENDS:
            raise ValueError(f"Unknown backend '{backend}'. Available: {', '.join(BACKENDS)}")
        self.backend = backend
        self._accelerator = None
        if backend == 'numba':
            from ..acceleration.numba_backend import get_numba_accelerator
            self._accelerator = get_numba_accelerator()

    def key_parameters(self) -> str:
        """Family parameters that change tile content, formatted exactly."""
        return ''

    def key(self, tile: TileSpace, tile_pixel_size: Point, max_iter: int) -> str:
        """
        Deterministic cache key for a tile request.

        Every field that affects tile content is part of the key. Integers
        are written in full and floats with ``repr`` so nothing is rounded.
        """
        size = _check_request(tile_pixel_size, max_iter)
        family = self.name
        params = self.key_parameters()
        if params:
            family = f"{family}({params})"
        return (f"{family}:{size.x}x{size.y}:{int(max_iter)}:"
                f"{tile.index.x}:{tile.index.y}:{tile.zoom}")

    def generate(self, tile: TileSpace, tile_pixel_size: Point, max_iter: int) -> Tile:
        """
        Compute the iteration data for one tile.

        Args:
            tile: Tile address
            tile_pixel_size: Samples per tile (width, height)
            max_iter: Iteration budget

        Returns:
            Immutable Tile
        """
        size = _check_request(tile_pixel_size, max_iter)
        start, step = generation_grid(tile, size)
        if self._accelerator is not None:
            counts = self._compute_accelerated(start, step, size, int(max_iter))
        else:
            c_real, c_imag = sample_grid(start, step, size.x, size.y)
            counts = self._compute(EscapeTimeIterator(max_iter), c_real, c_imag)

        key = self.key(tile, size, max_iter)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Generated tile {key}: {count_statistics(counts, int(max_iter))}")
        return Tile(key=key, size=size, max_iter=int(max_iter),
                    data=np.ascontiguousarray(counts, dtype=np.uint64).reshape(-1))

    def sample(self, tile: Tile, coord: Point, tile_pixel_size: Optional[Point] = None) -> int:
        """
        Nearest-sample lookup inside a tile.

        Args:
            tile: Generated tile
            coord: Offset inside the tile, both components in [0, 1)
            tile_pixel_size: Sample grid size (defaults to the tile's own)

        Returns:
            Stored iteration count
        """
        w, h = tile_pixel_size if tile_pixel_size is not None else tile.size
        x = min(int(math.floor(coord.x * w)), w - 1)
        y = min(int(math.floor(coord.y * h)), h - 1)
        return int(tile.data[y * w + x])

    def sample_many(self, tile: Tile, coord_x: np.ndarray, coord_y: np.ndarray) -> np.ndarray:
        """Vectorised :meth:`sample` over arrays of offsets."""
        w, h = tile.size
        x = np.minimum(np.floor(coord_x * w).astype(np.int64), w - 1)
        y = np.minimum(np.floor(coord_y * h).astype(np.int64), h - 1)
        return tile.data[y * w + x]

    @abstractmethod
    def _compute(self, iterator: EscapeTimeIterator,
                 c_real: np.ndarray, c_imag: np.ndarray) -> np.ndarray:
        """Count array for a grid of sample coordinates."""

    @abstractmethod
    def _compute_accelerated(self, start, step, size: Point, max_iter: int) -> np.ndarray:
        """Count array for a tile using the Numba backend."""

    def get_description(self) -> str:
        return f"{self.name} generator"


class MandelbrotGenerator(Generator):
    """Mandelbrot set: z_{n+1} = z_n^2 + c with z_0 = c."""

    name = 'mandelbrot'

    def _compute(self, iterator, c_real, c_imag):
        return iterator.mandelbrot_iteration(c_real, c_imag)

    def _compute_accelerated(self, start, step, size, max_iter):
        return self._accelerator.mandelbrot_tile(start, step, size, max_iter)

    def get_description(self) -> str:
        return "Mandelbrot set: z_{n+1} = z_n^2 + c, where c is the complex coordinate and z_0 = c"


class JuliaGenerator(Generator):
    """Julia set for a fixed constant c; the sample point is z_0."""

    name = 'julia'

    def __init__(self, c_real: float = -0.75, c_imag: float = 0.1, backend: str = 'numpy'):
        if not all(isinstance(v, (int, float)) and math.isfinite(v) for v in (c_real, c_imag)):
            raise ValueError(f"Julia constant must be finite numbers, got ({c_real}, {c_imag})")
        super().__init__(backend)
        self.c = complex(c_real, c_imag)

    def key_parameters(self) -> str:
        return f"{float(self.c.real)!r},{float(self.c.imag)!r}"

    def _compute(self, iterator, c_real, c_imag):
        return iterator.julia_iteration(c_real, c_imag, self.c)

    def _compute_accelerated(self, start, step, size, max_iter):
        return self._accelerator.julia_tile(start, step, size, max_iter, self.c)

    def get_description(self) -> str:
        return f"Julia set: z_{{n+1}} = z_n^2 + c, where c = {self.c} and z_0 is the complex coordinate"


class BurningShipGenerator(Generator):
    """Burning Ship: z_{n+1} = (|Re(z_n)| + i|Im(z_n)|)^2 + c."""

    name = 'burning_ship'

    def _compute(self, iterator, c_real, c_imag):
        return iterator.burning_ship_iteration(c_real, c_imag)

    def _compute_accelerated(self, start, step, size, max_iter):
        return self._accelerator.burning_ship_tile(start, step, size, max_iter)

    def get_description(self) -> str:
        return "Burning Ship: z_{n+1} = (|Re(z_n)| + i|Im(z_n)|)^2 + c"


class GeneratorRegistry:
    """Registry for managing available fractal families."""

    _generators: Dict[str, type] = {
        'mandelbrot': MandelbrotGenerator,
        'julia': JuliaGenerator,
        'burning_ship': BurningShipGenerator,
    }

    @classmethod
    def register(cls, name: str, generator_class: type) -> None:
        """
        Register a new fractal family.

        Args:
            name: Unique identifier for the family
            generator_class: Class implementing Generator
        """
        if not issubclass(generator_class, Generator):
            raise ValueError("Generator class must inherit from Generator")
        cls._generators[name.lower()] = generator_class
        logger.info(f"Registered generator: {name}")

    @classmethod
    def get(cls, name: str) -> type:
        generator_class = cls._generators.get(name.lower())
        if generator_class is None:
            available = ', '.join(cls._generators.keys())
            raise ValueError(f"Unknown fractal type '{name}'. Available: {available}")
        return generator_class

    @classmethod
    def names(cls) -> List[str]:
        """Registered family names."""
        return list(cls._generators.keys())

    @classmethod
    def list_generators(cls) -> Dict[str, str]:
        """Names and descriptions of the registered families."""
        return {name: generator_class().get_description()
                for name, generator_class in cls._generators.items()}

    @classmethod
    def create(cls, name: str, backend: str = 'numpy', **params: Any) -> Generator:
        """
        Create a generator instance.

        Args:
            name: Family name
            backend: 'numpy' or 'numba'
            **params: Family parameters (e.g. c_real, c_imag for julia)

        Returns:
            Configured generator
        """
        generator_class = cls.get(name)
        try:
            return generator_class(backend=backend, **params)
        except TypeError as e:
            raise ValueError(f"Invalid parameters for '{name}': {e}") from e
