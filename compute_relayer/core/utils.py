"""Utility helpers shared across relayer core modules."""

from __future__ import annotations

import logging
from typing import Optional

from web3 import Web3

U64_MAX = 2**64 - 1


def get_logger(name: str = "compute_relayer") -> logging.Logger:
    """Return a configured logger that prints to stdout."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    return logger


def set_log_level(level: str) -> None:
    """Apply ``level`` to every relayer logger created so far."""
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level: {level}")
    for name, logger in list(logging.root.manager.loggerDict.items()):
        if name.startswith("compute_relayer") and isinstance(logger, logging.Logger):
            logger.setLevel(numeric)


def ensure_web3_connected(web3: Web3, *, expected_chain_id: Optional[int] = None) -> None:
    """Validate that ``web3`` is connected and optionally matches the expected chain id."""
    if not web3.is_connected():
        raise ConnectionError("Failed to connect to the configured RPC endpoint")
    if expected_chain_id is not None and web3.eth.chain_id != expected_chain_id:
        raise ValueError(f"RPC chain ID mismatch: expected {expected_chain_id}, got {web3.eth.chain_id}")


def hex_to_bytes(data: str) -> bytes:
    """Convert a hex string (with or without ``0x``) to bytes."""
    data = data[2:] if data.startswith("0x") else data
    return bytes.fromhex(data)


def is_u64(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= U64_MAX


__all__ = [
    "U64_MAX",
    "ensure_web3_connected",
    "get_logger",
    "hex_to_bytes",
    "is_u64",
    "set_log_level",
]
