"""Configuration models and loader."""

from gatedag.kernel.config.loader import ConfigLoader, get_default_config, load_config
from gatedag.kernel.config.models import (
    EnvironmentConfig,
    GateDAGConfig,
    LoggingConfig,
    SchedulerConfig,
    TagStoreConfig,
)

__all__ = [
    "ConfigLoader",
    "EnvironmentConfig",
    "GateDAGConfig",
    "LoggingConfig",
    "SchedulerConfig",
    "TagStoreConfig",
    "get_default_config",
    "load_config",
]
