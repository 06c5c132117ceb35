from .config_parser import apply_env_overrides, load_config, parse_config
from .config_schema import DiscoveryConfig, FoglightConfig, TransportConfig
from .logging_config import init_logging

__all__ = [
    "DiscoveryConfig",
    "FoglightConfig",
    "TransportConfig",
    "apply_env_overrides",
    "init_logging",
    "load_config",
    "parse_config",
]
