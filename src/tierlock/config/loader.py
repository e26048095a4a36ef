"""Configuration loading from YAML.

User files are layered over the bundled ``defaults.yaml``, so a scenario file
only needs the keys it changes. Dot-path overrides (``"lock.penalty.base_penalty"``)
are applied last.
"""

import copy
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .schema import Config

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"


def _read_yaml(path) -> Dict[str, Any]:
    with open(path, 'r') as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def merge_dicts(base: Dict[str, Any], update: Mapping[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``update`` into a copy of ``base``. Lists are replaced, not merged."""
    merged = copy.deepcopy(base)
    for key, value in update.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = merge_dicts(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def apply_overrides(data: Dict[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Apply dot-notation overrides to a config dictionary.

    Args:
        data: Configuration dictionary
        overrides: e.g. ``{"simulation.steps": 10}``

    Returns:
        New dictionary with the overrides applied
    """
    result = copy.deepcopy(data)
    for path, value in overrides.items():
        parts = path.split('.')
        node = result
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                raise KeyError(f"unknown config section '{part}' in override '{path}'")
            node = child
        node[parts[-1]] = value
    return result


def load_config(
    yaml_path: str = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> Config:
    """
    Load configuration from YAML.

    Args:
        yaml_path: File layered over the defaults (defaults only if None)
        overrides: Dot-notation overrides applied last

    Returns:
        Config object
    """
    data = _read_yaml(DEFAULTS_PATH)
    if yaml_path is not None:
        data = merge_dicts(data, _read_yaml(yaml_path))
    if overrides:
        data = apply_overrides(data, overrides)

    return Config.from_dict(data)


def config_from_dict(data: Dict[str, Any]) -> Config:
    """
    Create config from dictionary.

    Args:
        data: Configuration dictionary

    Returns:
        Config object
    """
    return Config.from_dict(data)


def save_config(config: Config, yaml_path: str) -> None:
    """Write a complete config to YAML."""
    with open(yaml_path, 'w') as f:
        yaml.safe_dump(config.to_dict(), f, sort_keys=False)
