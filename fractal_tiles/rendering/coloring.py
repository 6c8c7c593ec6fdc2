"""
Palettes and palette functions for escape-count coloring.

A palette function maps ``(count, max_iter)`` to an RGBA color. Count 0 is
the in-set sentinel and always maps to the palette's bottom color; it never
selects a palette entry. Nonzero counts select ``colors[count % len(colors)]``.
"""

import numpy as np
from typing import Callable, Dict, List, Sequence, Tuple, Union
from dataclasses import dataclass
import logging

import matplotlib

logger = logging.getLogger(__name__)

CHANNELS = 4


@dataclass(frozen=True)
class RGB:
    """8-bit RGBA color; alpha defaults to opaque."""
    r: int
    g: int
    b: int
    a: int = 255

    def __post_init__(self):
        for component in (self.r, self.g, self.b, self.a):
            if int(component) != component or not 0 <= component <= 255:
                raise ValueError(f"Color components must be integers in 0-255, got {component}")

    def to_tuple(self) -> Tuple[int, int, int, int]:
        return (self.r, self.g, self.b, self.a)

    def tween(self, progress: int, to: 'RGB') -> 'RGB':
        """
        Integer blend toward ``to``.

        Args:
            progress: Blend position in 0-255
            to: Target color
        """
        def one(a: int, b: int) -> int:
            return a + (b - a) * progress // 255 if b >= a else a - (a - b) * progress // 255
        return RGB(one(self.r, to.r), one(self.g, to.g), one(self.b, to.b))


BOTTOM = RGB(0, 0, 0)

PaletteFunction = Callable[[int, int], RGB]


def build_palette(gradients: Sequence[Tuple[RGB, RGB]], steps_per_gradient: int) -> List[RGB]:
    """
    Expand color pairs into a stepped palette.

    Args:
        gradients: Sequence of (from, to) color pairs
        steps_per_gradient: Colors generated for each pair

    Returns:
        List of ``len(gradients) * steps_per_gradient`` colors
    """
    if steps_per_gradient <= 0:
        raise ValueError("steps_per_gradient must be positive")
    colors = []
    for start, end in gradients:
        for step in range(steps_per_gradient):
            progress = step * 255 // steps_per_gradient
            colors.append(start.tween(progress, end))
    return colors


class Palette:
    """Indexed color palette with a fixed bottom color for in-set points."""

    def __init__(self, colors: Sequence[Union[RGB, Tuple[int, int, int]]],
                 name: str = "Custom", bottom: RGB = BOTTOM):
        """
        Initialize color palette.

        Args:
            colors: Palette entries, at least one
            name: Human-readable name for the palette
            bottom: Color for points that never escaped
        """
        self.name = name
        self.bottom = bottom
        self.colors: List[RGB] = []

        for color in colors:
            if isinstance(color, RGB):
                self.colors.append(color)
            elif isinstance(color, (tuple, list)) and len(color) in (3, 4):
                self.colors.append(RGB(*color))
            else:
                raise ValueError(f"Invalid color format: {color}")

        if not self.colors:
            raise ValueError("Palette must contain at least 1 color")

        self._table = np.array([c.to_tuple() for c in self.colors], dtype=np.uint8)
        self._bottom = np.array(bottom.to_tuple(), dtype=np.uint8)

    def __len__(self) -> int:
        return len(self.colors)

    def color_for(self, count: int) -> RGB:
        """Color of a single escape count."""
        if count == 0:
            return self.bottom
        return self.colors[count % len(self.colors)]

    def __call__(self, count: int, max_iter: int) -> RGB:
        return self.color_for(count)

    def colorize(self, counts: np.ndarray) -> np.ndarray:
        """
        Vectorised coloring of a count array.

        Args:
            counts: uint64 escape counts of any shape

        Returns:
            uint8 array of shape ``counts.shape + (4,)``
        """
        counts = np.asarray(counts, dtype=np.uint64)
        index = (counts % np.uint64(len(self.colors))).astype(np.intp)
        rgba = self._table[index]
        rgba[counts == 0] = self._bottom
        return rgba

    @classmethod
    def from_gradients(cls, gradients: Sequence[Tuple[RGB, RGB]], steps_per_gradient: int,
                       name: str = "Custom", bottom: RGB = BOTTOM) -> 'Palette':
        return cls(build_palette(gradients, steps_per_gradient), name=name, bottom=bottom)

    @classmethod
    def from_matplotlib(cls, cmap_name: str, n_samples: int = 32) -> 'Palette':
        """Create palette by sampling a matplotlib colormap."""
        cmap = matplotlib.colormaps[cmap_name]
        rgba = cmap(np.linspace(0, 1, n_samples), bytes=True)
        colors = [RGB(int(r), int(g), int(b)) for r, g, b, _ in rgba]
        return cls(colors, name=f"From_{cmap_name}")


def colorize_with(palette: PaletteFunction, counts: np.ndarray, max_iter: int,
                  bottom: RGB = BOTTOM) -> np.ndarray:
    """
    Color a count array with an arbitrary palette function.

    Palette objects take the vectorised path. Other callables are invoked
    once per distinct nonzero count; count 0 is always ``bottom``.
    """
    if isinstance(palette, Palette):
        return palette.colorize(counts)

    counts = np.asarray(counts, dtype=np.uint64)
    rgba = np.empty(counts.shape + (CHANNELS,), dtype=np.uint8)
    rgba[...] = bottom.to_tuple()
    for value in np.unique(counts):
        if value == 0:
            continue
        rgba[counts == value] = palette(int(value), max_iter).to_tuple()
    return rgba


class ColoringEngine:
    """Registry of named palettes."""

    def __init__(self):
        self.palettes = self._create_builtin_palettes()

    def _create_builtin_palettes(self) -> Dict[str, Palette]:
        """Create built-in color palettes."""
        palettes = {}

        black = RGB(0, 0, 0)
        white = RGB(255, 255, 255)
        blue = RGB(0, 183, 255)
        orange = RGB(255, 128, 0)

        palettes['classic'] = Palette.from_gradients([
            (black, blue),
            (blue, white),
            (white, orange),
            (orange, black),
        ], 4, name="Classic")

        palettes['hot'] = Palette.from_gradients([
            (black, RGB(255, 0, 0)),
            (RGB(255, 0, 0), RGB(255, 255, 0)),
            (RGB(255, 255, 0), white),
        ], 8, name="Hot")

        palettes['cool'] = Palette.from_gradients([
            (black, RGB(0, 0, 255)),
            (RGB(0, 0, 255), RGB(0, 255, 255)),
            (RGB(0, 255, 255), white),
        ], 8, name="Cool")

        palettes['gray'] = Palette.from_gradients([
            (RGB(32, 32, 32), white),
            (white, RGB(32, 32, 32)),
        ], 16, name="Grayscale")

        palettes['fire'] = Palette.from_gradients([
            (RGB(128, 0, 0), RGB(255, 0, 0)),
            (RGB(255, 0, 0), orange),
            (orange, RGB(255, 255, 0)),
            (RGB(255, 255, 0), white),
            (white, RGB(128, 0, 0)),
        ], 6, name="Fire")

        palettes['ocean'] = Palette.from_gradients([
            (RGB(0, 0, 51), RGB(0, 0, 204)),
            (RGB(0, 0, 204), RGB(0, 128, 255)),
            (RGB(0, 128, 255), RGB(0, 255, 255)),
            (RGB(0, 255, 255), white),
            (white, RGB(0, 0, 51)),
        ], 6, name="Ocean")

        for name in ('viridis', 'plasma', 'inferno', 'magma'):
            palettes[name] = Palette.from_matplotlib(name, 32)

        return palettes

    def add_palette(self, name: str, palette: Palette) -> None:
        """Add a custom color palette."""
        self.palettes[name] = palette
        logger.info(f"Added color palette: {name}")

    def get_palette(self, name: str) -> Palette:
        """Get color palette by name."""
        if name not in self.palettes:
            available = ', '.join(self.palettes.keys())
            raise ValueError(f"Unknown color palette '{name}'. Available: {available}")
        return self.palettes[name]

    def list_palettes(self) -> List[str]:
        """Get list of available color palettes."""
        return list(self.palettes.keys())
