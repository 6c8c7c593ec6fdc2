import numpy as np
import pytest

from fractal_tiles.acceleration.parallel import ParallelTilePrefetcher
from fractal_tiles.core.cache import InMemoryTileCache, LRUTileCache
from fractal_tiles.core.fractal_types import MandelbrotGenerator
from fractal_tiles.core.math_functions import mandel_iter
from fractal_tiles.core.spaces import (ComplexSpace, Point, TileSpace, Viewport, ViewportError,
                                       complex_to_sample, pixel_to_complex)
from fractal_tiles.rendering.coloring import RGB, ColoringEngine, Palette
from fractal_tiles.rendering.renderer import TileRenderer, touched_tiles


@pytest.fixture
def palette():
    return ColoringEngine().get_palette('classic')


class TestRender:
    def test_small_frame(self, cache, default_viewport, palette):
        renderer = TileRenderer(cache, Point(64, 64))
        data = renderer.render_bytes(default_viewport, palette, 50)
        assert isinstance(data, bytes)
        assert len(data) == 4 * 4 * 4
        assert all(0 <= b <= 255 for b in data)

    def test_rgba_array_shape(self, cache, palette):
        renderer = TileRenderer(cache, Point(32, 32))
        viewport = Viewport(ComplexSpace(-0.5, 0.0), 3.0, Point(20, 10))
        rgba = renderer.render(viewport, palette, 40)
        assert rgba.shape == (10, 20, 4)
        assert rgba.dtype == np.uint8
        assert (rgba[..., 3] == 255).all()

    def test_pixels_match_owning_tile_samples(self, cache, counting_generator):
        tile_size = Point(32, 32)
        renderer = TileRenderer(cache, tile_size)
        viewport = Viewport(ComplexSpace(-0.75, 0.1), 0.5, Point(24, 18))
        counts = renderer.sample_counts(viewport, 60)
        zoom = renderer.tile_zoom(viewport)
        for py in range(0, 18, 5):
            for px in range(0, 24, 5):
                sample = complex_to_sample(pixel_to_complex(viewport, px, py), zoom)
                tile = cache.get_or_generate(sample.tile, tile_size, 60)
                assert counts[py, px] == counting_generator.sample(tile, sample.coord)

    def test_fine_tiles_match_direct_iteration(self, generator_factory):
        # tile samples align with pixels when tile zoom equals viewport resolution
        cache = InMemoryTileCache(generator_factory())
        renderer = TileRenderer(cache, Point(16, 16))
        viewport = Viewport(ComplexSpace(-0.5, 0.0), 2.0, Point(32, 32))
        counts = renderer.sample_counts(viewport, 50)
        for py in range(0, 32, 4):
            for px in range(0, 32, 4):
                c = pixel_to_complex(viewport, px, py)
                assert counts[py, px] == mandel_iter(50, c.to_complex())

    def test_second_frame_hits_cache(self, cache, counting_generator, default_viewport, palette):
        renderer = TileRenderer(cache, Point(64, 64))
        first = renderer.render(default_viewport, palette, 50)
        generated = len(counting_generator.calls)
        second = renderer.render(default_viewport, palette, 50)
        np.testing.assert_array_equal(first, second)
        assert len(counting_generator.calls) == generated
        assert generated == len(touched_tiles(default_viewport, 64))

    def test_overlapping_viewports_share_tiles(self, cache, counting_generator, palette):
        renderer = TileRenderer(cache, Point(64, 64))
        viewport = Viewport(ComplexSpace(-0.5, 0.0), 3.0, Point(40, 40))
        renderer.render(viewport, palette, 30)
        generated = len(counting_generator.calls)
        renderer.render(viewport.translate(0.01, 0.0), palette, 30)
        assert len(counting_generator.calls) - generated < generated

    def test_output_size_override(self, cache, default_viewport, palette):
        renderer = TileRenderer(cache, Point(64, 64))
        rgba = renderer.render(default_viewport, palette, 20, output_size=Point(6, 3))
        assert rgba.shape == (3, 6, 4)

    def test_in_set_center_uses_bottom_color(self, cache):
        renderer = TileRenderer(cache, Point(64, 64))
        palette = Palette([RGB(255, 255, 255)], bottom=RGB(0, 0, 0))
        viewport = Viewport(ComplexSpace(-0.1, 0.0), 0.01, Point(3, 3))
        rgba = renderer.render(viewport, palette, 100)
        assert tuple(rgba[1, 1]) == (0, 0, 0, 255)

    @pytest.mark.parametrize('viewport', [
        Viewport(ComplexSpace(float('nan'), 0.0), 3.0, Point(4, 4)),
        Viewport(ComplexSpace(0.0, 0.0), 0.0, Point(4, 4)),
        Viewport(ComplexSpace(0.0, 0.0), 3.0, Point(0, 4)),
    ])
    def test_invalid_viewport(self, cache, counting_generator, palette, viewport):
        renderer = TileRenderer(cache, Point(64, 64))
        with pytest.raises(ViewportError):
            renderer.render(viewport, palette, 50)
        assert counting_generator.calls == []

    def test_invalid_tile_size(self, cache):
        with pytest.raises(ValueError):
            TileRenderer(cache, Point(0, 64))

    def test_custom_palette_function(self, cache, default_viewport):
        renderer = TileRenderer(cache, Point(64, 64))
        rgba = renderer.render(default_viewport, lambda n, m: RGB(n % 256, 0, 0), 50)
        assert rgba.shape == (4, 4, 4)
        assert (rgba[..., 1] == 0).all()


class TestPrefetch:
    def test_prefetcher_gives_same_frame(self, generator_factory, palette):
        viewport = Viewport(ComplexSpace(-0.7, 0.2), 0.8, Point(48, 36))

        serial = TileRenderer(InMemoryTileCache(generator_factory()), Point(16, 16))
        expected = serial.render(viewport, palette, 60)

        generator = generator_factory()
        with ParallelTilePrefetcher(num_workers=4) as prefetcher:
            parallel = TileRenderer(InMemoryTileCache(generator), Point(16, 16), prefetcher=prefetcher)
            actual = parallel.render(viewport, palette, 60)

        np.testing.assert_array_equal(actual, expected)
        assert len(generator.calls) == len({call[0] for call in generator.calls})

    def test_prefetch_returns_tiles_in_order(self, cache, small_tile):
        tiles = [TileSpace(Point(i, -i), 1) for i in range(5)]
        with ParallelTilePrefetcher(num_workers=2) as prefetcher:
            result = prefetcher.prefetch(cache, tiles, small_tile, 20)
            assert prefetcher.prefetch(cache, [], small_tile, 20) == []
        assert [t.key for t in result] == [cache.generator.key(t, small_tile, 20) for t in tiles]

    def test_prefetch_with_small_lru_generates_each_tile_once(self, generator_factory, palette):
        viewport = Viewport(ComplexSpace(-0.7, 0.2), 0.8, Point(48, 36))
        tile_size = Point(16, 16)
        tile_mb = tile_size.x * tile_size.y * 8 / (1024 * 1024)

        generator = generator_factory()
        cache = LRUTileCache(generator, max_size_mb=2 * tile_mb)
        with ParallelTilePrefetcher(num_workers=4) as prefetcher:
            renderer = TileRenderer(cache, tile_size, prefetcher=prefetcher)
            actual = renderer.render(viewport, palette, 60)

        tiles = [call[0] for call in generator.calls]
        assert len(tiles) == len(set(tiles))
        assert len(tiles) == len(touched_tiles(viewport, tile_size.x))

        serial = TileRenderer(InMemoryTileCache(generator_factory()), tile_size)
        np.testing.assert_array_equal(actual, serial.render(viewport, palette, 60))

    def test_prefetch_keeps_tiles_already_cached(self, generator_factory, small_tile):
        generator = generator_factory()
        tile_mb = small_tile.x * small_tile.y * 8 / (1024 * 1024)
        cache = LRUTileCache(generator, max_size_mb=2 * tile_mb)
        cached = TileSpace(Point(0, 0), 1)
        cache.get_or_generate(cached, small_tile, 20)

        tiles = [cached] + [TileSpace(Point(i, 1), 1) for i in range(4)]
        with ParallelTilePrefetcher(num_workers=2) as prefetcher:
            result = prefetcher.prefetch(cache, tiles, small_tile, 20)

        assert len(generator.calls) == len(tiles)
        assert result[0].key == generator.key(cached, small_tile, 20)


class TestIndexRange:
    def test_deep_viewport_raises_before_generation(self, cache, counting_generator, palette):
        renderer = TileRenderer(cache, Point(256, 256))
        viewport = Viewport(ComplexSpace(-1.5, 0.0), 1e-22, Point(4, 4))
        with pytest.raises(ViewportError):
            renderer.render(viewport, palette, 50)
        assert counting_generator.calls == []
