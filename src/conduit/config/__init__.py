"""Configuration module."""

from conduit.config.loader import load_config
from conduit.config.models import (
    BackgroundConfig,
    ConduitConfig,
    LongRunningCapabilityConfig,
    ModelConfig,
    ProviderConfig,
    ServerSpecConfig,
    SessionConfig,
    TelegramConfig,
)
from conduit.config.paths import get_conduit_home, get_config_path
from conduit.errors import ConfigError

__all__ = [
    "BackgroundConfig",
    "ConduitConfig",
    "ConfigError",
    "LongRunningCapabilityConfig",
    "ModelConfig",
    "ProviderConfig",
    "ServerSpecConfig",
    "SessionConfig",
    "TelegramConfig",
    "get_conduit_home",
    "get_config_path",
    "load_config",
]
