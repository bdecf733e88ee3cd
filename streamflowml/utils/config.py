"""
Configuration management for streamflowml
"""

import copy
import logging
import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import structlog

logger = structlog.get_logger()

# Default configuration
DEFAULT_CONFIG = {
    'seed': 123,
    'n_jobs': 1,
    'logging': {
        'level': 'INFO',
        'format': 'console'
    },
    'data': {
        'data_dir': './data',
        'pattern': '*.txt',
        'delimiter': None,
        'key_column': 'gauge_id',
        'outcome': 'q_mean',
        'coordinate_columns': ['gauge_lon', 'gauge_lat'],
        'missing_threshold': 0.3,
        'strict_predictors': True,
        'expected_predictors': [
            'p_mean', 'pet_mean', 'aridity', 'frac_snow',
            'high_prec_freq', 'low_prec_freq', 'elev_mean',
            'slope_mean', 'area_gages2', 'frac_forest',
        ]
    },
    'split': {
        'prop': 0.8
    },
    'resampling': {
        'folds': 10
    },
    'tuning': {
        'grid_size': 25,
        'folds': 10,
        'metric': 'mae',
        'min_n': [2, 40],
        'trees': 500
    },
    'output': {
        'output_dir': './output',
        'save_figures': True
    }
}


ENV_OVERRIDES = {
    'STREAMFLOWML_LOG_LEVEL': ('logging.level', str),
    'STREAMFLOWML_DATA_DIR': ('data.data_dir', str),
    'STREAMFLOWML_OUTPUT_DIR': ('output.output_dir', str),
    'STREAMFLOWML_SEED': ('seed', int),
    'STREAMFLOWML_N_JOBS': ('n_jobs', int),
}


class Config:
    """
    Analysis settings

    Layered as ``DEFAULT_CONFIG``, then an optional YAML file, then the
    ``STREAMFLOWML_*`` environment variables. Nested sections are read and
    written with dotted keys such as ``tuning.grid_size``.
    """

    def __init__(self, config_path: Optional[str] = None):
        """
        Parameters
        ----------
        config_path : str, optional
            YAML file whose sections override the defaults key by key
        """
        self._config = copy.deepcopy(DEFAULT_CONFIG)
        self.config_path = config_path

        if config_path:
            self.load_from_file(config_path)

        self._load_from_env()
        self._expand_paths()

    def get(self, key: str, default: Any = None) -> Any:
        """Value at dotted ``key`` (e.g. 'data.outcome'), ``default`` if any level is absent"""
        node = self._config
        for part in key.split('.'):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def set(self, key: str, value: Any):
        """Set dotted ``key``, creating missing sections"""
        *sections, leaf = key.split('.')
        node = self._config
        for part in sections:
            node = node.setdefault(part, {})
        node[leaf] = value

    def load_from_file(self, config_path: str):
        """Merge a YAML mapping into the current settings"""
        config_file = Path(config_path).expanduser()
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_file}")

        with open(config_file, 'r') as f:
            file_config = yaml.safe_load(f)

        if file_config:
            if not isinstance(file_config, dict):
                raise ValueError(f"Configuration file must contain a mapping: {config_file}")
            self._merge_config(file_config)
        logger.info("Configuration loaded from file", path=str(config_file))

    def save_to_file(self, config_path: str):
        """Write the effective settings as YAML, so a run can be repeated"""
        config_file = Path(config_path).expanduser()
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w') as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False)

        logger.info("Configuration saved to file", path=str(config_file))

    def _load_from_env(self):
        for env_var, (key, converter) in ENV_OVERRIDES.items():
            env_value = os.getenv(env_var)
            if env_value is None:
                continue
            try:
                self.set(key, converter(env_value))
            except (ValueError, TypeError) as e:
                logger.warning("Invalid environment variable value", var=env_var, value=env_value, error=str(e))

    def _expand_paths(self):
        for key in ['data.data_dir', 'output.output_dir']:
            value = self.get(key)
            if isinstance(value, str):
                self.set(key, str(Path(value).expanduser()))

    def _merge_config(self, new_config: Dict[str, Any]):
        """Merge ``new_config`` section by section; non-mapping values replace"""
        def merge_dict(base: Dict[str, Any], update: Dict[str, Any]):
            for key, value in update.items():
                if isinstance(base.get(key), dict) and isinstance(value, dict):
                    merge_dict(base[key], value)
                else:
                    base[key] = value

        merge_dict(self._config, new_config)

    def to_dict(self) -> Dict[str, Any]:
        """Deep copy of the effective settings"""
        return copy.deepcopy(self._config)

    def create_directories(self):
        """Create ``output.output_dir`` for tables and figures"""
        output_dir = self.get('output.output_dir')
        if output_dir:
            Path(output_dir).mkdir(parents=True, exist_ok=True)
            logger.debug("Created output directory", path=output_dir)


def configure_logging(level: str = 'INFO', fmt: str = 'console'):
    """
    Configure structlog rendering and level filtering

    Parameters
    ----------
    level : str
        Minimum level name ('DEBUG', 'INFO', ...)
    fmt : str
        'console' for human readable output, 'json' for one JSON object per line
    """
    numeric_level = logging.getLevelName(str(level).upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    if fmt == 'json':
        renderer = structlog.processors.JSONRenderer()
    elif fmt == 'console':
        renderer = structlog.dev.ConsoleRenderer()
    else:
        raise ValueError(f"Unknown log format: {fmt}")

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        cache_logger_on_first_use=False,
    )


# Global configuration instance
_global_config = None


def get_config() -> Config:
    """Get global configuration instance"""
    global _global_config

    if _global_config is None:
        config_paths = [
            os.getenv('STREAMFLOWML_CONFIG'),
            './streamflowml.yaml',
            './config.yaml'
        ]

        config_file = None
        for path in config_paths:
            if path and Path(path).expanduser().exists():
                config_file = path
                break

        _global_config = Config(config_file)

    return _global_config


def set_config(config: Config):
    """Set global configuration instance"""
    global _global_config
    _global_config = config
