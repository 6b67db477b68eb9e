"""Config loader for the compute relayer."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, MutableMapping, Optional

from web3 import Web3


class ConfigError(ValueError):
    """Raised when configuration data is invalid or missing."""


def _require_keys(data: Mapping[str, Any], keys: Iterable[str], context: str) -> None:
    if not isinstance(data, Mapping):
        raise ConfigError(f"{context} must be an object")
    missing = [key for key in keys if key not in data]
    if missing:
        raise ConfigError(f"{context} missing required keys: {', '.join(missing)}")


def _to_checksum(value: str, *, field_name: str) -> str:
    try:
        return Web3.to_checksum_address(value)
    except Exception as exc:  # web3 raises ValueError for malformed inputs
        raise ConfigError(f"Invalid address for {field_name}: {value}") from exc


def _positive(value: Any, *, field_name: str, cast=float):
    try:
        number = cast(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{field_name} must be a number, got {value!r}") from exc
    if number <= 0:
        raise ConfigError(f"{field_name} must be positive")
    return number


@dataclass(frozen=True)
class ChainConfig:
    """Configuration for the chain hosting the registry contract."""

    chain_id: int
    rpc_url: str
    receipt_timeout: float = 120.0


@dataclass(frozen=True)
class SequencerConfig:
    """Sequencer JSON-RPC endpoint."""

    rpc_url: str
    timeout: float = 30.0


@dataclass(frozen=True)
class DatabaseConfig:
    """Location of the relayer's key-value store."""

    path: str


@dataclass(frozen=True)
class RelayConfig:
    """Periodic relay parameters."""

    interval_seconds: float = 10.0
    batch_size: int = 10
    retry_failed: bool = False


@dataclass(frozen=True)
class RelayerConfig:
    """Typed wrapper around the relayer configuration."""

    contract_address: str
    chain: ChainConfig
    sequencer: SequencerConfig
    database: DatabaseConfig
    relay: RelayConfig
    raw: Mapping[str, Any] = field(repr=False, default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Return the original configuration mapping."""
        return dict(self.raw)


def _load_json(path: Path) -> MutableMapping[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Config file contains invalid JSON: {path}") from exc


def parse_config(data: Mapping[str, Any], *, base_dir: Optional[Path] = None) -> RelayerConfig:
    """Validate a configuration mapping."""
    _require_keys(data, ["contract_address", "chain", "sequencer", "database"], "config")

    chain_data = data["chain"]
    _require_keys(chain_data, ["chain_id", "rpc_url"], "chain")
    chain = ChainConfig(
        chain_id=int(_positive(chain_data["chain_id"], field_name="chain.chain_id", cast=int)),
        rpc_url=str(chain_data["rpc_url"]),
        receipt_timeout=_positive(chain_data.get("receipt_timeout", 120), field_name="chain.receipt_timeout"),
    )
    if not chain.rpc_url:
        raise ConfigError("chain.rpc_url cannot be empty")

    sequencer_data = data["sequencer"]
    _require_keys(sequencer_data, ["rpc_url"], "sequencer")
    sequencer = SequencerConfig(
        rpc_url=str(sequencer_data["rpc_url"]),
        timeout=_positive(sequencer_data.get("timeout", 30), field_name="sequencer.timeout"),
    )
    if not sequencer.rpc_url:
        raise ConfigError("sequencer.rpc_url cannot be empty")

    database_data = data["database"]
    _require_keys(database_data, ["path"], "database")
    db_path = str(database_data["path"])
    if not db_path:
        raise ConfigError("database.path cannot be empty")
    if db_path != ":memory:" and base_dir is not None and not Path(db_path).is_absolute():
        db_path = str(base_dir / db_path)

    relay_data = data.get("relay", {})
    if not isinstance(relay_data, Mapping):
        raise ConfigError("relay must be an object")
    retry_failed = relay_data.get("retry_failed", False)
    if not isinstance(retry_failed, bool):
        raise ConfigError("relay.retry_failed must be a boolean")
    relay = RelayConfig(
        interval_seconds=_positive(relay_data.get("interval_seconds", 10), field_name="relay.interval_seconds"),
        batch_size=_positive(relay_data.get("batch_size", 10), field_name="relay.batch_size", cast=int),
        retry_failed=retry_failed,
    )

    return RelayerConfig(
        contract_address=_to_checksum(data["contract_address"], field_name="contract_address"),
        chain=chain,
        sequencer=sequencer,
        database=DatabaseConfig(path=db_path),
        relay=relay,
        raw=data,
    )


def load_config(config_path: Optional[Path] = None) -> RelayerConfig:
    """Load and validate relayer configuration data.

    Relative ``database.path`` values are resolved against the config file's
    directory.
    """
    config_path = Path(config_path or "config.json")
    data = _load_json(config_path)
    return parse_config(data, base_dir=config_path.resolve().parent)


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
