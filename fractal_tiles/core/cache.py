"""
Content-addressable tile cache.

Tiles are keyed by the generator's tile key, so two requests with the same
parameters always resolve to the same entry. A miss generates the tile and
inserts it; a hit returns the stored tile without recomputation.

The caches are safe to share between threads. At most one generation runs
per key: the first caller generates, later callers for the same key wait on
the in-flight result. A tile is inserted only once generation has finished,
and a generation that raises leaves nothing behind.
"""

import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Dict, Optional
import logging

from .fractal_types import Generator, Tile
from .spaces import Point, TileSpace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheStats:
    """Snapshot of cache counters."""
    entries: int
    hits: int
    misses: int
    generations: int
    evictions: int
    size_bytes: int

    @property
    def requests(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        return self.hits / self.requests if self.requests else 0.0

    @property
    def size_mb(self) -> float:
        return self.size_bytes / (1024 * 1024)


class TileCache(ABC):
    """Interface shared by all tile caches."""

    def __init__(self, generator: Generator):
        self.generator = generator

    @abstractmethod
    def get_or_generate(self, tile: TileSpace, tile_pixel_size: Point, max_iter: int) -> Tile:
        """
        Return the tile for a request, generating it on a miss.

        Args:
            tile: Tile address
            tile_pixel_size: Samples per tile (width, height)
            max_iter: Iteration budget

        Returns:
            The cached, read-only Tile
        """

    @abstractmethod
    def __contains__(self, key: str) -> bool:
        ...

    @abstractmethod
    def __len__(self) -> int:
        ...

    @abstractmethod
    def stats(self) -> CacheStats:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...


class InMemoryTileCache(TileCache):
    """
    Unbounded in-memory cache.

    Entries are never evicted; memory grows with the number of distinct
    tiles requested during the session.
    """

    def __init__(self, generator: Generator):
        super().__init__(generator)
        self._tiles: Dict[str, Tile] = self._new_store()
        self._in_flight: Dict[str, Future] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._generations = 0
        self._evictions = 0
        self._size_bytes = 0

    def _new_store(self) -> Dict[str, Tile]:
        return {}

    def _lookup(self, key: str) -> Optional[Tile]:
        return self._tiles.get(key)

    def _store(self, key: str, tile: Tile) -> None:
        self._tiles[key] = tile
        self._size_bytes += tile.nbytes

    def get_or_generate(self, tile: TileSpace, tile_pixel_size: Point, max_iter: int) -> Tile:
        key = self.generator.key(tile, tile_pixel_size, max_iter)

        with self._lock:
            cached = self._lookup(key)
            if cached is not None:
                self._hits += 1
                return cached
            future = self._in_flight.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._in_flight[key] = future
                self._misses += 1
            else:
                self._hits += 1

        if not owner:
            logger.debug(f"Waiting for in-flight tile {key}")
            return future.result()

        try:
            generated = self.generator.generate(tile, tile_pixel_size, max_iter)
        except BaseException as e:
            with self._lock:
                del self._in_flight[key]
            future.set_exception(e)
            raise

        with self._lock:
            self._store(key, generated)
            self._generations += 1
            del self._in_flight[key]
        future.set_result(generated)
        return generated

    def get(self, key: str) -> Optional[Tile]:
        """Cached tile for ``key`` without generating."""
        with self._lock:
            return self._lookup(key)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._tiles

    def __len__(self) -> int:
        with self._lock:
            return len(self._tiles)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(entries=len(self._tiles), hits=self._hits, misses=self._misses,
                              generations=self._generations, evictions=self._evictions,
                              size_bytes=self._size_bytes)

    def clear(self) -> None:
        """Drop all cached tiles; in-flight generations still complete and insert."""
        with self._lock:
            self._tiles.clear()
            self._size_bytes = 0
        logger.info("Tile cache cleared")


class LRUTileCache(InMemoryTileCache):
    """
    Bounded cache that evicts the least recently used tiles.

    Same contract as InMemoryTileCache except that evicted tiles are
    regenerated on their next request.
    """

    def __init__(self, generator: Generator, max_size_mb: float = 256):
        """
        Initialize LRU cache.

        Args:
            generator: Tile generator
            max_size_mb: Byte budget for tile data, in megabytes
        """
        if max_size_mb <= 0:
            raise ValueError("max_size_mb must be positive")
        self.max_size_bytes = int(max_size_mb * 1024 * 1024)
        super().__init__(generator)

    def _new_store(self) -> Dict[str, Tile]:
        return OrderedDict()

    def _lookup(self, key: str) -> Optional[Tile]:
        tile = self._tiles.get(key)
        if tile is not None:
            self._tiles.move_to_end(key)
        return tile

    def _store(self, key: str, tile: Tile) -> None:
        while self._tiles and self._size_bytes + tile.nbytes > self.max_size_bytes:
            evicted_key, evicted = self._tiles.popitem(last=False)
            self._size_bytes -= evicted.nbytes
            self._evictions += 1
            logger.debug(f"Evicted tile {evicted_key}")
        super()._store(key, tile)
