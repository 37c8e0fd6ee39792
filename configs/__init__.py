"""Configuration loading for desim runs."""

from pathlib import Path
from typing import Callable, Mapping, Optional

import yaml

DEFAULT_CONFIG = Path(__file__).parent / "default.yaml"


def load_config(config_path: str) -> dict:
    """Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        Configuration dictionary
    """
    with open(config_path, 'r') as f:
        return yaml.safe_load(f) or {}


def merge_configs(base_config: dict, override_config: dict) -> dict:
    """Merge two configuration dictionaries.

    Args:
        base_config: Base configuration
        override_config: Override configuration

    Returns:
        Merged configuration
    """
    merged = base_config.copy()
    for key, value in override_config.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_configs(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_run_config(config_path: Optional[str], registry: Mapping[str, Callable]):
    """Load a run configuration on top of the defaults.

    Args:
        config_path: YAML file overriding ``default.yaml``, or None
        registry: Process body names -> generator functions

    Returns:
        Tuple of the ``RunConfig`` and the full merged configuration
    """
    from desim.manager.run_config import RunConfig

    config = load_config(DEFAULT_CONFIG)
    if config_path is not None:
        config = merge_configs(config, load_config(config_path))
    return RunConfig.from_dict(config.get('simulation', {}), registry), config
