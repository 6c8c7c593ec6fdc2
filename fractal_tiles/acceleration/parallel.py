"""
Concurrent tile generation.

Tile generation is independent per tile, so the tiles a frame needs can be
produced on a worker pool before the renderer samples them. Workers go
through the shared cache, which guarantees a single generation per key even
when two frames or two workers ask for the same tile.
"""

import os
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Iterable, List, Optional
import logging

from ..core.cache import TileCache
from ..core.fractal_types import Tile
from ..core.spaces import Point, TileSpace

logger = logging.getLogger(__name__)


def get_optimal_worker_count() -> int:
    """Get optimal number of workers for tile generation."""
    cpu_count = os.cpu_count() or 1

    # Leave one core for the caller
    return max(1, cpu_count - 1)


class ParallelTilePrefetcher:
    """Generate missing tiles concurrently through a shared cache."""

    def __init__(self, num_workers: Optional[int] = None):
        """
        Initialize prefetcher.

        Args:
            num_workers: Number of worker threads (None for an automatic count)
        """
        if num_workers is None:
            self.num_workers = get_optimal_worker_count()
        else:
            self.num_workers = max(1, num_workers)
        self._executor = ThreadPoolExecutor(max_workers=self.num_workers,
                                            thread_name_prefix='tile-worker')
        logger.info(f"Tile prefetcher: {self.num_workers} workers")

    def prefetch(self, cache: TileCache, tiles: Iterable[TileSpace],
                 tile_pixel_size: Point, max_iter: int) -> List[Tile]:
        """
        Make sure every tile in ``tiles`` is cached.

        Args:
            cache: Shared tile cache
            tiles: Tile addresses needed by the caller
            tile_pixel_size: Samples per tile
            max_iter: Iteration budget

        Returns:
            The tiles, in the order given
        """
        tiles = list(tiles)
        if not tiles:
            return []

        missing = [i for i, t in enumerate(tiles)
                   if cache.generator.key(t, tile_pixel_size, max_iter) not in cache]
        results: List[Optional[Tile]] = [None] * len(tiles)

        # cached tiles are taken before any generation can evict them
        pending = set(missing)
        for i, tile in enumerate(tiles):
            if i not in pending:
                results[i] = cache.get_or_generate(tile, tile_pixel_size, max_iter)

        start_time = time.time()
        future_to_index = {
            self._executor.submit(cache.get_or_generate, tiles[i], tile_pixel_size, max_iter): i
            for i in missing
        }

        for future in as_completed(future_to_index):
            results[future_to_index[future]] = future.result()

        if missing:
            logger.debug(f"Prefetched {len(missing)}/{len(tiles)} tiles "
                         f"in {time.time() - start_time:.3f}s")

        return results

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.shutdown()
