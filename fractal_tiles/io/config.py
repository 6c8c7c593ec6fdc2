"""
Configuration loading for the tile renderer.

Configuration files are YAML or JSON mappings whose keys mirror the fields
of :class:`fractal_tiles.api.RenderConfig`. A file may also carry a
``presets`` section of named partial configurations, selected with the
``preset`` argument of :meth:`ConfigManager.create_render_config`.

Example YAML::

    width: 800
    height: 600
    center_re: -0.5
    viewport_width: 3.0
    max_iterations: 256
    fractal: julia
    fractal_params:
      c_real: -0.8
      c_imag: 0.156
    presets:
      deep:
        max_iterations: 2000
        cache_max_mb: 512
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union
import logging

import yaml

from ..core.fractal_types import BACKENDS, GeneratorRegistry

logger = logging.getLogger(__name__)

ENV_PREFIX = 'FRACTAL_TILES_'

# Field name -> (type, default). Kept in step with RenderConfig.
CONFIG_FIELDS: Dict[str, Tuple[type, Any]] = {
    'width': (int, 800),
    'height': (int, 600),
    'center_re': (float, -0.5),
    'center_im': (float, 0.0),
    'viewport_width': (float, 3.0),
    'max_iterations': (int, 100),
    'fractal': (str, 'mandelbrot'),
    'fractal_params': (dict, {}),
    'palette': (str, 'classic'),
    'tile_size': (int, 256),
    'cache_max_mb': (float, None),
    'backend': (str, 'numpy'),
    'parallel': (bool, False),
    'num_workers': (int, None),
}

ENV_OVERRIDES = {
    'MAX_ITER': 'max_iterations',
    'BACKEND': 'backend',
    'PALETTE': 'palette',
    'CACHE_MAX_MB': 'cache_max_mb',
}


class ConfigManager:
    """Load, validate and convert renderer configuration files."""

    def __init__(self, use_environment: bool = True):
        """
        Initialize configuration manager.

        Args:
            use_environment: Apply ``FRACTAL_TILES_*`` environment overrides
        """
        self.use_environment = use_environment

    def load_config(self, path: Union[str, Path]) -> Dict[str, Any]:
        """
        Load a configuration file.

        Args:
            path: ``.yaml``, ``.yml`` or ``.json`` file

        Returns:
            Configuration dictionary
        """
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"Config file not found: {path}")

        suffix = path.suffix.lower()
        with path.open('r', encoding='utf-8') as f:
            if suffix in ('.yaml', '.yml'):
                data = yaml.safe_load(f)
            elif suffix == '.json':
                data = json.load(f)
            else:
                raise ValueError(f"Unsupported config format: {suffix}")

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file must contain a mapping, got {type(data).__name__}")

        logger.info(f"Loaded configuration from {path}")
        return data

    def save_config(self, config: Dict[str, Any], path: Union[str, Path]) -> None:
        """Write a configuration dictionary as YAML or JSON based on suffix."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open('w', encoding='utf-8') as f:
            if path.suffix.lower() == '.json':
                json.dump(config, f, indent=2)
            else:
                yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False)
        logger.info(f"Saved configuration to {path}")

    def list_presets(self, config: Dict[str, Any]) -> List[str]:
        return list((config.get('presets') or {}).keys())

    def resolve(self, config: Dict[str, Any], preset: Optional[str] = None) -> Dict[str, Any]:
        """
        Flatten a configuration: defaults, then file values, then preset,
        then environment overrides.
        """
        resolved = {name: default for name, (_, default) in CONFIG_FIELDS.items()}
        resolved['fractal_params'] = {}
        resolved.update({k: v for k, v in config.items() if k in CONFIG_FIELDS})

        if preset is not None:
            presets = config.get('presets') or {}
            if preset not in presets:
                available = ', '.join(presets.keys()) or 'none'
                raise ValueError(f"Unknown preset '{preset}'. Available: {available}")
            resolved.update({k: v for k, v in presets[preset].items() if k in CONFIG_FIELDS})

        if self.use_environment:
            resolved.update(self._environment_overrides())

        return resolved

    def _environment_overrides(self) -> Dict[str, Any]:
        overrides = {}
        for suffix, field_name in ENV_OVERRIDES.items():
            raw = os.environ.get(ENV_PREFIX + suffix)
            if raw is None:
                continue
            field_type = CONFIG_FIELDS[field_name][0]
            try:
                overrides[field_name] = field_type(raw)
            except ValueError:
                raise ValueError(f"Invalid value for {ENV_PREFIX + suffix}: {raw!r}")
            logger.debug(f"Environment override {field_name}={overrides[field_name]!r}")
        return overrides

    def validate_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Check a resolved configuration.

        Returns:
            List of error messages; empty when the configuration is valid
        """
        errors = []

        unknown = [k for k in config if k not in CONFIG_FIELDS and k != 'presets']
        if unknown:
            errors.append(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        for name, (field_type, default) in CONFIG_FIELDS.items():
            if name not in config:
                continue
            value = config[name]
            if value is None and default is None:
                continue
            if field_type is float and isinstance(value, (int, float)) and not isinstance(value, bool):
                continue
            if field_type is int and isinstance(value, bool):
                errors.append(f"{name} must be {field_type.__name__}, got bool")
                continue
            if not isinstance(value, field_type):
                errors.append(f"{name} must be {field_type.__name__}, got {type(value).__name__}")

        if errors:
            return errors

        for name in ('width', 'height', 'max_iterations', 'tile_size'):
            if name in config and config[name] <= 0:
                errors.append(f"{name} must be positive")

        if 'viewport_width' in config and not config['viewport_width'] > 0:
            errors.append("viewport_width must be positive")

        if config.get('cache_max_mb') is not None and config['cache_max_mb'] <= 0:
            errors.append("cache_max_mb must be positive")

        if config.get('num_workers') is not None and config['num_workers'] < 1:
            errors.append("num_workers must be >= 1")

        if 'backend' in config and config['backend'] not in BACKENDS:
            errors.append(f"backend must be one of {', '.join(BACKENDS)}")

        if 'fractal' in config and config['fractal'].lower() not in GeneratorRegistry.names():
            available = ', '.join(GeneratorRegistry.names())
            errors.append(f"Unknown fractal '{config['fractal']}'. Available: {available}")

        return errors

    def create_render_config(self, config: Dict[str, Any], preset: Optional[str] = None):
        """
        Build a validated RenderConfig from a configuration dictionary.

        Args:
            config: Raw dictionary as returned by :meth:`load_config`
            preset: Optional preset name from the ``presets`` section

        Returns:
            RenderConfig instance
        """
        from ..api import RenderConfig

        resolved = self.resolve(config, preset)
        errors = self.validate_config(resolved)
        if errors:
            raise ValueError("Invalid configuration: " + "; ".join(errors))

        render_config = RenderConfig(**resolved)
        render_config.validate()
        return render_config

    def export_config_template(self, path: Union[str, Path]) -> None:
        """Write a template file with every field at its default value."""
        template = {name: default for name, (_, default) in CONFIG_FIELDS.items()}
        template['fractal_params'] = {}
        template['presets'] = {
            'julia': {'fractal': 'julia', 'fractal_params': {'c_real': -0.75, 'c_imag': 0.1}},
            'deep': {'max_iterations': 2000, 'cache_max_mb': 512.0},
        }
        self.save_config(template, path)


def load_config_from_args(config_file: Optional[Union[str, Path]] = None,
                          preset: Optional[str] = None, **overrides: Any):
    """
    Build a RenderConfig from an optional file plus keyword overrides.

    Keyword overrides whose value is None are ignored, so callers can pass
    unset command-line options straight through.
    """
    manager = ConfigManager()
    config = manager.load_config(config_file) if config_file else {}
    config = dict(config)
    config.update({k: v for k, v in overrides.items() if v is not None})
    return manager.create_render_config(config, preset)
