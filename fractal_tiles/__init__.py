"""
Tile-based Mandelbrot-family rendering.

This library renders an explorable escape-time fractal plane from a
viewport into an RGBA pixel buffer. Fractal data is split into
content-addressed tiles that are generated once and reused across frames
and overlapping viewports.

Key Features:
- Mandelbrot, Julia and Burning Ship generators with NumPy and Numba backends
- Thread-safe tile cache with single-flight generation and optional LRU budget
- Concurrent tile prefetching
- Indexed palettes built from gradients or matplotlib colormaps
- Explorer sessions addressed by integer handles

Example usage:
    >>> from fractal_tiles import FractalRenderer, RenderConfig
    >>> renderer = FractalRenderer(RenderConfig(width=4, height=4, max_iterations=50))
    >>> len(renderer.render_bytes())
    64
"""

__version__ = "1.0.0"
__author__ = "Fractal Tiles Team"

from fractal_tiles.core.spaces import (ComplexSpace, Point, SampleSpace, TileSpace, Viewport,
                                       ViewportError)
from fractal_tiles.core.fractal_types import (Generator, GeneratorRegistry, MandelbrotGenerator,
                                              JuliaGenerator, BurningShipGenerator, Tile)
from fractal_tiles.core.cache import CacheStats, InMemoryTileCache, LRUTileCache, TileCache
from fractal_tiles.rendering.coloring import RGB, ColoringEngine, Palette, build_palette
from fractal_tiles.rendering.renderer import TileRenderer
from fractal_tiles.io.config import ConfigManager

# Main API classes
from fractal_tiles.api import (FractalRenderer, RenderConfig, ExplorerSession, SessionRegistry,
                               InvalidHandleError)

__all__ = [
    "FractalRenderer",
    "RenderConfig",
    "ExplorerSession",
    "SessionRegistry",
    "InvalidHandleError",
    "Point",
    "TileSpace",
    "ComplexSpace",
    "SampleSpace",
    "Viewport",
    "ViewportError",
    "Generator",
    "GeneratorRegistry",
    "MandelbrotGenerator",
    "JuliaGenerator",
    "BurningShipGenerator",
    "Tile",
    "TileCache",
    "InMemoryTileCache",
    "LRUTileCache",
    "CacheStats",
    "RGB",
    "Palette",
    "ColoringEngine",
    "build_palette",
    "TileRenderer",
    "ConfigManager",
]
