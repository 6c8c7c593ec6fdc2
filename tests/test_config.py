import json

import pytest
import yaml

from fractal_tiles import FractalRenderer, RenderConfig
from fractal_tiles.core.fractal_types import GeneratorRegistry, MandelbrotGenerator
from fractal_tiles.io.config import ConfigManager, load_config_from_args


@pytest.fixture
def manager():
    return ConfigManager(use_environment=False)


@pytest.fixture
def yaml_file(tmp_path):
    path = tmp_path / 'view.yaml'
    path.write_text(yaml.safe_dump({
        'width': 64,
        'height': 48,
        'max_iterations': 200,
        'fractal': 'julia',
        'fractal_params': {'c_real': -0.8, 'c_imag': 0.156},
        'palette': 'hot',
        'presets': {'deep': {'max_iterations': 2000, 'cache_max_mb': 128}},
    }))
    return path


class TestLoadConfig:
    def test_yaml(self, manager, yaml_file):
        data = manager.load_config(yaml_file)
        assert data['width'] == 64
        assert data['fractal_params'] == {'c_real': -0.8, 'c_imag': 0.156}

    def test_json(self, manager, tmp_path):
        path = tmp_path / 'view.json'
        path.write_text(json.dumps({'width': 10, 'backend': 'numpy'}))
        assert manager.load_config(path) == {'width': 10, 'backend': 'numpy'}

    def test_empty_yaml(self, manager, tmp_path):
        path = tmp_path / 'empty.yml'
        path.write_text('')
        assert manager.load_config(path) == {}

    def test_missing_file(self, manager, tmp_path):
        with pytest.raises(FileNotFoundError):
            manager.load_config(tmp_path / 'missing.yaml')

    def test_unsupported_format(self, manager, tmp_path):
        path = tmp_path / 'view.toml'
        path.write_text('width = 3')
        with pytest.raises(ValueError):
            manager.load_config(path)

    def test_non_mapping(self, manager, tmp_path):
        path = tmp_path / 'list.yaml'
        path.write_text('- 1\n- 2\n')
        with pytest.raises(ValueError):
            manager.load_config(path)


class TestCreateRenderConfig:
    def test_from_file(self, manager, yaml_file):
        config = manager.create_render_config(manager.load_config(yaml_file))
        assert isinstance(config, RenderConfig)
        assert (config.width, config.height) == (64, 48)
        assert config.fractal == 'julia'
        assert config.center_re == -0.5
        assert config.cache_max_mb is None

    def test_preset(self, manager, yaml_file):
        config = manager.create_render_config(manager.load_config(yaml_file), preset='deep')
        assert config.max_iterations == 2000
        assert config.cache_max_mb == 128

    def test_unknown_preset(self, manager, yaml_file):
        with pytest.raises(ValueError, match='Unknown preset'):
            manager.create_render_config(manager.load_config(yaml_file), preset='shallow')

    def test_invalid_values(self, manager):
        with pytest.raises(ValueError, match='Invalid configuration'):
            manager.create_render_config({'width': -5, 'fractal': 'newton'})

    def test_environment_overrides(self, yaml_file, monkeypatch):
        monkeypatch.setenv('FRACTAL_TILES_MAX_ITER', '321')
        monkeypatch.setenv('FRACTAL_TILES_PALETTE', 'gray')
        manager = ConfigManager()
        config = manager.create_render_config(manager.load_config(yaml_file))
        assert config.max_iterations == 321
        assert config.palette == 'gray'

    def test_bad_environment_value(self, monkeypatch):
        monkeypatch.setenv('FRACTAL_TILES_MAX_ITER', 'lots')
        with pytest.raises(ValueError):
            ConfigManager().create_render_config({})

    def test_load_config_from_args(self, yaml_file, monkeypatch):
        monkeypatch.delenv('FRACTAL_TILES_MAX_ITER', raising=False)
        monkeypatch.delenv('FRACTAL_TILES_BACKEND', raising=False)
        config = load_config_from_args(yaml_file, width=16, height=None)
        assert config.width == 16
        assert config.height == 48


class TestValidateConfig:
    def test_valid(self, manager):
        assert manager.validate_config(manager.resolve({})) == []

    def test_reports_every_problem(self, manager):
        errors = manager.validate_config({'width': 0, 'max_iterations': -1, 'backend': 'gpu'})
        assert len(errors) == 3

    def test_type_errors(self, manager):
        errors = manager.validate_config({'width': 'wide', 'parallel': 'yes', 'mystery': 1})
        assert any('width' in e for e in errors)
        assert any('parallel' in e for e in errors)
        assert any('mystery' in e for e in errors)

    def test_ints_accepted_for_floats(self, manager):
        assert manager.validate_config({'viewport_width': 3, 'center_re': -1}) == []

    def test_fractal_names_checked_without_building_generators(self, manager, monkeypatch):
        class ExponentGenerator(MandelbrotGenerator):
            def __init__(self, exponent, backend='numpy'):
                raise AssertionError('generator should not be constructed')

        monkeypatch.setitem(GeneratorRegistry._generators, 'exponent', ExponentGenerator)
        assert manager.validate_config(manager.resolve({})) == []
        assert manager.validate_config({'fractal': 'Exponent'}) == []
        errors = manager.validate_config({'fractal': 'newton'})
        assert len(errors) == 1 and 'exponent' in errors[0]


class TestTemplate:
    def test_template_round_trip(self, manager, tmp_path):
        path = tmp_path / 'template.yaml'
        manager.export_config_template(path)
        data = manager.load_config(path)
        assert set(manager.list_presets(data)) == {'julia', 'deep'}
        config = manager.create_render_config(data, preset='julia')
        assert config.fractal == 'julia'

    def test_renderer_from_config_file(self, yaml_file, monkeypatch):
        for name in ('MAX_ITER', 'BACKEND', 'PALETTE', 'CACHE_MAX_MB'):
            monkeypatch.delenv(f'FRACTAL_TILES_{name}', raising=False)
        renderer = FractalRenderer.from_config_file(yaml_file)
        assert renderer.generator.name == 'julia'
        assert renderer.render().shape == (48, 64, 4)
