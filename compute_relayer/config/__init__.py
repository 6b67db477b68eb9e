"""Configuration utilities for the relayer."""

from .loader import (
    ChainConfig,
    ConfigError,
    DatabaseConfig,
    RelayConfig,
    RelayerConfig,
    SequencerConfig,
    load_config,
    parse_config,
)

__all__ = [
    "ChainConfig",
    "ConfigError",
    "DatabaseConfig",
    "RelayConfig",
    "RelayerConfig",
    "SequencerConfig",
    "load_config",
    "parse_config",
]
