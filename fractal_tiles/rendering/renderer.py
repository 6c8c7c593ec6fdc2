"""
Viewport renderer backed by the tile cache.

For each output pixel the renderer finds its complex coordinate, locates the
owning tile and in-tile offset at the viewport's tile zoom, fetches the tile
from the cache (generating it on a miss), samples the stored count and maps
it through the palette. Pixels are grouped by owning tile so every tile is
fetched once per frame; the output is identical to walking pixel by pixel.
"""

import time
import numpy as np
from typing import Optional, Set
import logging

from ..core.cache import TileCache
from ..core.precision import check_zoom_precision
from ..core.spaces import (Point, TileSpace, Viewport, complex_to_sample_arrays,
                           pixel_grid, tile_zoom_for, viewport_to_tilewidth)
from .coloring import BOTTOM, PaletteFunction, colorize_with

logger = logging.getLogger(__name__)


class TileRenderer:
    """Render viewports into RGBA pixel buffers from cached tiles."""

    def __init__(self, cache: TileCache, tile_pixel_size: Point = Point(256, 256),
                 prefetcher=None):
        """
        Initialize renderer.

        Args:
            cache: Tile cache shared across frames
            tile_pixel_size: Samples per tile (width, height)
            prefetcher: Optional ParallelTilePrefetcher that generates a
                frame's missing tiles concurrently before sampling
        """
        w, h = tile_pixel_size
        if int(w) != w or int(h) != h or w <= 0 or h <= 0:
            raise ValueError(f"Tile pixel size must be positive integers, got {tuple(tile_pixel_size)}")
        self.cache = cache
        self.tile_pixel_size = Point(int(w), int(h))
        self.prefetcher = prefetcher

    @property
    def generator(self):
        return self.cache.generator

    def tile_zoom(self, viewport: Viewport) -> int:
        return tile_zoom_for(viewport, self.tile_pixel_size.x)

    def sample_counts(self, viewport: Viewport, max_iter: int) -> np.ndarray:
        """
        Escape counts for every output pixel.

        Args:
            viewport: Validated viewport
            max_iter: Iteration budget

        Returns:
            uint64 array shaped (height, width)
        """
        zoom = self.tile_zoom(viewport)
        check_zoom_precision(viewport.center, zoom, self.tile_pixel_size.x)

        re, im = pixel_grid(viewport)
        ix, iy, fx, fy = complex_to_sample_arrays(re, im, zoom)

        pairs = np.stack([ix.ravel(), iy.ravel()], axis=1)
        unique, inverse = np.unique(pairs, axis=0, return_inverse=True)
        inverse = inverse.reshape(-1)
        tiles = [TileSpace(Point(int(x), int(y)), zoom) for x, y in unique]

        tile_width = viewport_to_tilewidth(1.0, zoom)
        logger.debug(f"Viewport width {viewport.width:.6g} spans {viewport.width / tile_width:.3g} "
                     f"tiles of width {tile_width:.6g} at zoom {zoom}; {len(tiles)} tiles touched")

        if self.prefetcher is not None:
            fetched = self.prefetcher.prefetch(self.cache, tiles, self.tile_pixel_size, max_iter)
        else:
            fetched = None

        counts = np.empty(pairs.shape[0], dtype=np.uint64)
        flat_fx = fx.ravel()
        flat_fy = fy.ravel()
        order = np.argsort(inverse, kind='stable')
        bounds = np.searchsorted(inverse[order], np.arange(len(tiles) + 1))
        for i, tile_space in enumerate(tiles):
            members = order[bounds[i]:bounds[i + 1]]
            if fetched is not None:
                tile = fetched[i]
            else:
                tile = self.cache.get_or_generate(tile_space, self.tile_pixel_size, max_iter)
            counts[members] = self.generator.sample_many(tile, flat_fx[members], flat_fy[members])

        return counts.reshape(re.shape)

    def render(self, viewport: Viewport, palette: PaletteFunction, max_iter: int,
               output_size: Optional[Point] = None) -> np.ndarray:
        """
        Render one frame.

        Args:
            viewport: Visible window; validated before any work is done
            palette: Palette function ``(count, max_iter) -> RGB``
            max_iter: Iteration budget
            output_size: Overrides the viewport's output size when given

        Returns:
            uint8 RGBA array shaped (height, width, 4), row-major
        """
        if output_size is not None:
            viewport = viewport.resize(*output_size)
        viewport.validate()

        start_time = time.time()
        counts = self.sample_counts(viewport, max_iter)
        rgba = colorize_with(palette, counts, max_iter, getattr(palette, 'bottom', BOTTOM))

        logger.debug(f"Rendered {viewport.output_size.x}x{viewport.output_size.y} frame "
                     f"in {time.time() - start_time:.3f}s")
        return rgba

    def render_bytes(self, viewport: Viewport, palette: PaletteFunction, max_iter: int,
                     output_size: Optional[Point] = None) -> bytes:
        """Render one frame as a flat RGBA byte buffer of ``w * h * 4`` bytes."""
        return self.render(viewport, palette, max_iter, output_size).tobytes()


def touched_tiles(viewport: Viewport, tile_pixel_width: int) -> Set[TileSpace]:
    """Tiles a viewport samples from at its tile zoom."""
    viewport.validate()
    zoom = tile_zoom_for(viewport, tile_pixel_width)
    re, im = pixel_grid(viewport)
    ix, iy, _, _ = complex_to_sample_arrays(re, im, zoom)
    return {TileSpace(Point(int(x), int(y)), zoom) for x, y in zip(ix.ravel(), iy.ravel())}

