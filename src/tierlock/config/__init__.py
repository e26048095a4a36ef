"""Configuration schema and loading."""

from .loader import apply_overrides, config_from_dict, load_config, merge_dicts, save_config
from .schema import Config, LockPolicy, PenaltyParams, Simulation, Tier

__all__ = [
    "Config",
    "LockPolicy",
    "PenaltyParams",
    "Simulation",
    "Tier",
    "apply_overrides",
    "config_from_dict",
    "load_config",
    "merge_dicts",
    "save_config",
]
