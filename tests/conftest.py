import threading

import pytest

from fractal_tiles.core.cache import InMemoryTileCache
from fractal_tiles.core.fractal_types import MandelbrotGenerator
from fractal_tiles.core.spaces import ComplexSpace, Point, Viewport


class CountingGenerator(MandelbrotGenerator):
    """Mandelbrot generator that records every generate call."""

    def __init__(self, delay_event=None, fail_times=0):
        super().__init__()
        self.calls = []
        self.delay_event = delay_event
        self.fail_times = fail_times
        self._lock = threading.Lock()

    def generate(self, tile, tile_pixel_size, max_iter):
        with self._lock:
            self.calls.append((tile, tuple(tile_pixel_size), max_iter))
            fail = self.fail_times > 0
            if fail:
                self.fail_times -= 1
        if self.delay_event is not None:
            self.delay_event.wait(timeout=5)
        if fail:
            raise RuntimeError("generation failed")
        return super().generate(tile, tile_pixel_size, max_iter)


@pytest.fixture
def counting_generator():
    return CountingGenerator()


@pytest.fixture
def cache(counting_generator):
    return InMemoryTileCache(counting_generator)


@pytest.fixture
def small_tile():
    return Point(16, 16)


@pytest.fixture
def default_viewport():
    return Viewport(ComplexSpace(-0.5, 0.0), 3.0, Point(4, 4))


@pytest.fixture
def generator_factory():
    return CountingGenerator
