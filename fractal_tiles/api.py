"""
Main API classes for tile-based fractal rendering.

This module wires the backend components into easy-to-use classes:
``FractalRenderer`` is the composition root that owns one generator, one
tile cache and one renderer; ``ExplorerSession`` is a single interactive
view onto a renderer; ``SessionRegistry`` hands out integer handles for
sessions so external callers never hold session objects directly.
"""

import itertools
import math
import threading
import numpy as np
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field, replace
import logging

from .acceleration.parallel import ParallelTilePrefetcher
from .core.cache import CacheStats, InMemoryTileCache, LRUTileCache, TileCache
from .core.fractal_types import BACKENDS, Generator, GeneratorRegistry
from .core.spaces import ComplexSpace, Point, Viewport
from .rendering.coloring import ColoringEngine, Palette
from .rendering.renderer import TileRenderer

logger = logging.getLogger(__name__)


class InvalidHandleError(LookupError):
    """Raised when a session handle is unknown or already closed."""


@dataclass
class RenderConfig:
    """Configuration for tile rendering."""

    # Output and initial view
    width: int = 800
    height: int = 600
    center_re: float = -0.5
    center_im: float = 0.0
    viewport_width: float = 3.0

    # Fractal parameters
    max_iterations: int = 100
    fractal: str = 'mandelbrot'
    fractal_params: Dict[str, Any] = field(default_factory=dict)

    # Coloring
    palette: str = 'classic'

    # Tiles and cache
    tile_size: int = 256
    cache_max_mb: Optional[float] = None  # None keeps every tile

    # Performance
    backend: str = 'numpy'
    parallel: bool = False
    num_workers: Optional[int] = None

    def validate(self):
        """Validate configuration parameters."""
        if self.width <= 0 or self.height <= 0:
            raise ValueError("Width and height must be positive")

        if not (math.isfinite(self.center_re) and math.isfinite(self.center_im)):
            raise ValueError("center must be finite")

        if not (math.isfinite(self.viewport_width) and self.viewport_width > 0):
            raise ValueError("viewport_width must be positive and finite")

        if not isinstance(self.max_iterations, int) or self.max_iterations <= 0:
            raise ValueError("max_iterations must be a positive integer")

        if self.tile_size <= 0:
            raise ValueError("tile_size must be positive")

        if self.cache_max_mb is not None and self.cache_max_mb <= 0:
            raise ValueError("cache_max_mb must be positive")

        if self.backend not in BACKENDS:
            raise ValueError(f"backend must be one of {', '.join(BACKENDS)}")

        if self.num_workers is not None and self.num_workers < 1:
            raise ValueError("num_workers must be >= 1")

    def initial_viewport(self) -> Viewport:
        return Viewport(ComplexSpace(float(self.center_re), float(self.center_im)),
                        float(self.viewport_width), Point(int(self.width), int(self.height)))


class FractalRenderer:
    """Composition root: one generator, one shared tile cache, one renderer."""

    def __init__(self, config: Optional[RenderConfig] = None):
        """
        Initialize fractal renderer.

        Args:
            config: Rendering configuration (uses defaults if None)
        """
        self.config = config or RenderConfig()
        self.config.validate()

        self.coloring_engine = ColoringEngine()
        self.palette = self.coloring_engine.get_palette(self.config.palette)
        self.generator: Generator = GeneratorRegistry.create(
            self.config.fractal, backend=self.config.backend, **self.config.fractal_params
        )
        self.cache = self._create_cache(self.generator)

        self.prefetcher = None
        if self.config.parallel:
            self.prefetcher = ParallelTilePrefetcher(self.config.num_workers)

        tile_size = Point(self.config.tile_size, self.config.tile_size)
        self.tile_renderer = TileRenderer(self.cache, tile_size, prefetcher=self.prefetcher)

        logger.info(f"FractalRenderer initialized: {self.generator.name}, "
                    f"backend={self.config.backend}, tile={tile_size.x}x{tile_size.y}, "
                    f"cache={'unbounded' if self.config.cache_max_mb is None else f'{self.config.cache_max_mb}MB'}")

    def _create_cache(self, generator: Generator) -> TileCache:
        if self.config.cache_max_mb is None:
            return InMemoryTileCache(generator)
        return LRUTileCache(generator, max_size_mb=self.config.cache_max_mb)

    @classmethod
    def from_config_file(cls, path, preset: Optional[str] = None) -> 'FractalRenderer':
        """Create a renderer from a YAML or JSON configuration file."""
        from .io.config import ConfigManager

        manager = ConfigManager()
        return cls(manager.create_render_config(manager.load_config(path), preset))

    def initial_viewport(self) -> Viewport:
        return self.config.initial_viewport()

    def render(self, viewport: Optional[Viewport] = None, palette: Optional[str] = None,
               max_iter: Optional[int] = None) -> np.ndarray:
        """
        Render a viewport.

        Args:
            viewport: Window to render (the configured initial view if None)
            palette: Palette name (the configured palette if None)
            max_iter: Iteration budget (the configured budget if None)

        Returns:
            uint8 RGBA array shaped (height, width, 4)
        """
        viewport = viewport or self.initial_viewport()
        palette_obj = self.palette if palette is None else self.coloring_engine.get_palette(palette)
        max_iter = self.config.max_iterations if max_iter is None else max_iter
        return self.tile_renderer.render(viewport, palette_obj, max_iter)

    def render_bytes(self, viewport: Optional[Viewport] = None, palette: Optional[str] = None,
                     max_iter: Optional[int] = None) -> bytes:
        """Render a viewport as a flat RGBA byte buffer."""
        return self.render(viewport, palette, max_iter).tobytes()

    def add_palette(self, name: str, palette: Palette) -> None:
        self.coloring_engine.add_palette(name, palette)

    def cache_stats(self) -> CacheStats:
        return self.cache.stats()

    def clear_cache(self) -> None:
        self.cache.clear()

    def get_info(self) -> Dict[str, Any]:
        """Describe the renderer's configuration and cache state."""
        stats = self.cache.stats()
        return {
            'fractal': self.generator.name,
            'description': self.generator.get_description(),
            'backend': self.config.backend,
            'tile_size': self.config.tile_size,
            'palettes': self.coloring_engine.list_palettes(),
            'cache_entries': stats.entries,
            'cache_size_mb': stats.size_mb,
            'cache_hit_rate': stats.hit_rate,
        }

    def close(self) -> None:
        if self.prefetcher is not None:
            self.prefetcher.shutdown()
            self.prefetcher = None
            self.tile_renderer.prefetcher = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()


class ExplorerSession:
    """Interactive exploration of one view with pan, zoom and history."""

    def __init__(self, renderer: FractalRenderer, viewport: Optional[Viewport] = None,
                 max_iterations: Optional[int] = None, palette: Optional[str] = None):
        """
        Initialize explorer session.

        Args:
            renderer: Shared renderer; its tile cache is shared with every
                other session on the same renderer
            viewport: Initial view (the renderer's configured view if None)
            max_iterations: Iteration budget (the renderer's if None)
            palette: Palette name (the renderer's if None)
        """
        self.renderer = renderer
        self.viewport = viewport or renderer.initial_viewport()
        self.viewport.validate()
        self.max_iterations = renderer.config.max_iterations
        self.palette = renderer.config.palette
        if max_iterations is not None:
            self.set_max_iterations(max_iterations)
        if palette is not None:
            self.set_palette(palette)
        self.history: List[Dict[str, Any]] = []
        self.current_image: Optional[np.ndarray] = None

    def render(self) -> np.ndarray:
        """Render the current view."""
        self.current_image = self.renderer.render(self.viewport, self.palette, self.max_iterations)
        return self.current_image

    def _push_history(self):
        self.history.append({'viewport': self.viewport, 'max_iterations': self.max_iterations})

    def pan(self, du: float, dv: float):
        """
        Pan the view.

        Args:
            du: Horizontal offset as a fraction of the viewport width
            dv: Vertical offset as a fraction of the viewport height
        """
        self._push_history()
        self.viewport = self.viewport.translate(du, dv * self.viewport.aspect_ratio)

    def zoom(self, factor: float, u: float = 0.5, v: float = 0.5):
        """
        Zoom around a normalized point of the view.

        Args:
            factor: Width is multiplied by ``1 + factor``; negative zooms in
            u, v: Normalized position kept fixed (0.5, 0.5 is the center)
        """
        viewport = self.viewport.zoom(factor, u, v)
        viewport.validate()
        self._push_history()
        self.viewport = viewport
        logger.debug(f"Zoomed to width {viewport.width:.6g} around "
                     f"({viewport.center.re:.10g}, {viewport.center.im:.10g})")

    def zoom_to_pixel(self, x: float, y: float, factor: float):
        """Zoom keeping output pixel (x, y) fixed."""
        w, h = self.viewport.output_size
        self.zoom(factor, x / w, y / h)

    def resize(self, width: int, height: int):
        viewport = self.viewport.resize(width, height)
        viewport.validate()
        self.viewport = viewport

    def set_max_iterations(self, max_iterations: int):
        """Adjust maximum iterations."""
        if not isinstance(max_iterations, int) or max_iterations <= 0:
            raise ValueError("Iterations must be a positive integer")
        self.max_iterations = max_iterations
        logger.info(f"Set max iterations to {max_iterations}")

    def set_palette(self, palette_name: str):
        """Change color palette."""
        self.renderer.coloring_engine.get_palette(palette_name)
        self.palette = palette_name
        logger.info(f"Changed palette to {palette_name}")

    def go_back(self) -> bool:
        """Return to the previous view; False if there is none."""
        if not self.history:
            logger.warning("No history available")
            return False

        previous_state = self.history.pop()
        self.viewport = replace(previous_state['viewport'], output_size=self.viewport.output_size)
        self.max_iterations = previous_state['max_iterations']
        return True

    def reset_view(self):
        """Reset to the renderer's configured view."""
        self.viewport = self.renderer.initial_viewport().resize(*self.viewport.output_size)
        self.max_iterations = self.renderer.config.max_iterations
        self.history = []
        logger.info("Reset to default view")

    def get_exploration_info(self) -> Dict[str, Any]:
        """Get current exploration state information."""
        return {
            'fractal': self.renderer.generator.name,
            'center': (self.viewport.center.re, self.viewport.center.im),
            'width': self.viewport.width,
            'zoom_level': self.viewport.zoom_level,
            'tile_zoom': self.renderer.tile_renderer.tile_zoom(self.viewport),
            'output_size': tuple(self.viewport.output_size),
            'max_iterations': self.max_iterations,
            'palette': self.palette,
            'history_depth': len(self.history),
        }


def _is_handle(handle) -> bool:
    return isinstance(handle, int) and not isinstance(handle, bool)


class SessionRegistry:
    """
    Table of explorer sessions addressed by opaque integer handles.

    Handles increase monotonically and are never reused, so a stale handle
    can never reach a newer session.
    """

    def __init__(self, renderer: Optional[FractalRenderer] = None):
        self.renderer = renderer or FractalRenderer()
        self._sessions: Dict[int, ExplorerSession] = {}
        self._next_handle = itertools.count(1)
        self._lock = threading.Lock()

    def create(self, viewport: Optional[Viewport] = None, max_iterations: Optional[int] = None,
               palette: Optional[str] = None) -> int:
        """
        Open a session.

        Returns:
            Handle for the new session
        """
        session = ExplorerSession(self.renderer, viewport, max_iterations, palette)
        with self._lock:
            handle = next(self._next_handle)
            self._sessions[handle] = session
        logger.info(f"Opened session {handle}")
        return handle

    def get(self, handle: int) -> ExplorerSession:
        with self._lock:
            session = self._sessions.get(handle) if _is_handle(handle) else None
        if session is None:
            raise InvalidHandleError(f"Invalid session handle: {handle!r}")
        return session

    def close(self, handle: int) -> None:
        with self._lock:
            session = self._sessions.pop(handle, None) if _is_handle(handle) else None
        if session is None:
            raise InvalidHandleError(f"Invalid session handle: {handle!r}")
        logger.info(f"Closed session {handle}")

    def render(self, handle: int) -> bytes:
        """Render a session's current view as a flat RGBA byte buffer."""
        return self.get(handle).render().tobytes()

    def handles(self) -> List[int]:
        with self._lock:
            return list(self._sessions)

    def __contains__(self, handle) -> bool:
        with self._lock:
            return handle in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
