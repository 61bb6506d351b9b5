"""netguard configuration — loading, validation, and defaults."""

from netguard.config.defaults import DEFAULT_CONFIG
from netguard.config.loader import load_config, load_config_from_dict
from netguard.config.schema import NetGuardConfig

__all__ = [
    "load_config",
    "load_config_from_dict",
    "NetGuardConfig",
    "DEFAULT_CONFIG",
]
