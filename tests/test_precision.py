import logging

from fractal_tiles.core.precision import check_zoom_precision, float_spacing, max_resolvable_zoom
from fractal_tiles.core.spaces import ComplexSpace


def test_float_spacing():
    assert float_spacing(1.0) == 2.0 ** -52
    assert float_spacing(-1.0) == 2.0 ** -52


def test_max_resolvable_zoom():
    # spacing near 1.0 is 2**-52; 256 samples per tile leaves 2**-44
    assert max_resolvable_zoom(ComplexSpace(1.0, 0.5), 256) == 44
    assert max_resolvable_zoom(ComplexSpace(0.0, 0.0), 256) > 1000


def test_shallow_zoom_is_fine(caplog):
    with caplog.at_level(logging.WARNING):
        assert check_zoom_precision(ComplexSpace(-0.5, 0.0), 10, 256)
    assert not caplog.records


def test_deep_zoom_warns_once(caplog):
    center = ComplexSpace(-1.75, 0.0)
    with caplog.at_level(logging.WARNING, logger='fractal_tiles.core.precision'):
        assert not check_zoom_precision(center, 60, 256)
        assert not check_zoom_precision(center, 61, 256)
    assert len([r for r in caplog.records if 'exceeds float64' in r.getMessage()]) <= 1
