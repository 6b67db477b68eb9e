"""Error taxonomy for the relay engine."""

from __future__ import annotations


class RelayerError(Exception):
    """Base class for errors raised by relayer components."""


class TransportError(RelayerError):
    """Network or RPC failure reaching the sequencer or the chain node."""


class TransactionDecodeError(TransportError):
    """The sequencer returned a payload that could not be decoded."""


class NotFoundError(RelayerError):
    """The sequencer has no record for the requested key yet."""


class ChainRejection(RelayerError):
    """The chain declined a submission (revert or failed receipt)."""


class StoreError(RelayerError):
    """The persistent store failed to read or write."""


class CredentialError(RelayerError):
    """The signer credential is missing or malformed."""


__all__ = [
    "ChainRejection",
    "CredentialError",
    "NotFoundError",
    "RelayerError",
    "StoreError",
    "TransactionDecodeError",
    "TransportError",
]
