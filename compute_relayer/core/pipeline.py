"""Per-sequence-number submission state machine.

``attempt(seq)`` resolves a compute result into its commitment and verification
transactions and mirrors them on-chain in causal order:

    1. fetch the compute result (missing -> NOT_READY)
    2. no verification hashes yet -> NOT_READY, nothing submitted
    3. commitment first, then each verification in sequencer order
    4. per transaction: ``exists`` check, then submit only when absent
    5. all delivered -> SUBMITTED; any relayer error -> FAILED

A re-attempt repeats the whole list; the ``exists`` check turns already
delivered transactions into no-ops.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from compute_relayer.core.chain import ChainGateway
from compute_relayer.core.errors import NotFoundError, RelayerError
from compute_relayer.core.sequencer import SequencerGateway
from compute_relayer.core.txs import (
    ComputeAssignment,
    ComputeCommitment,
    ComputeRequest,
    ComputeScores,
    ComputeVerification,
    GenericBody,
    Transaction,
    TxRef,
)
from compute_relayer.core.utils import get_logger

LOGGER = get_logger("compute_relayer.pipeline")


class OutcomeStatus(str, Enum):
    SUBMITTED = "submitted"
    NOT_READY = "not_ready"
    FAILED = "failed"


@dataclass(frozen=True)
class AttemptOutcome:
    """Terminal outcome of one ``attempt``."""

    seq_number: int
    status: OutcomeStatus
    reason: Optional[str] = None

    @classmethod
    def submitted(cls, seq_number: int) -> "AttemptOutcome":
        return cls(seq_number, OutcomeStatus.SUBMITTED)

    @classmethod
    def not_ready(cls, seq_number: int, reason: Optional[str] = None) -> "AttemptOutcome":
        return cls(seq_number, OutcomeStatus.NOT_READY, reason)

    @classmethod
    def failed(cls, seq_number: int, reason: str) -> "AttemptOutcome":
        return cls(seq_number, OutcomeStatus.FAILED, reason)


class SubmissionPipeline:
    """Mirrors sequencer compute records into the registry contract."""

    def __init__(self, sequencer: SequencerGateway, chain: ChainGateway) -> None:
        self.sequencer = sequencer
        self.chain = chain

    def attempt(self, seq_number: int) -> AttemptOutcome:
        """Try to deliver every transaction of ``seq_number``; never raises relayer errors."""
        try:
            result = self.sequencer.fetch_compute_result(seq_number)
        except NotFoundError as exc:
            LOGGER.debug("Compute result %s not available yet: %s", seq_number, exc)
            return AttemptOutcome.not_ready(seq_number, "compute result not found")
        except RelayerError as exc:
            return self._failed(seq_number, exc)

        if not result.is_verified:
            LOGGER.info("Compute result %s has no verification yet, deferring", seq_number)
            return AttemptOutcome.not_ready(seq_number, "no verification transactions")

        refs = result.submission_refs()
        try:
            txs = self.sequencer.fetch_transactions(refs)
            for tx in txs:
                self.submit_transaction(tx)
        except RelayerError as exc:
            return self._failed(seq_number, exc)

        LOGGER.info("Compute result %s delivered (%s transactions)", seq_number, len(refs))
        return AttemptOutcome.submitted(seq_number)

    def submit_reference(self, ref: TxRef) -> bool:
        """Fetch one transaction by reference and submit it; errors propagate."""
        tx = self.sequencer.fetch_transaction(ref)
        return self.submit_transaction(tx)

    def submit_transaction(self, tx: Transaction) -> bool:
        """Submit ``tx`` unless it is already on-chain.

        Returns True when a chain submission was made, False when the
        transaction was already present or is of a kind that is never mirrored.
        """
        body = tx.body
        if isinstance(body, (ComputeRequest, ComputeAssignment, ComputeScores, GenericBody)):
            LOGGER.debug("Skipping non-submittable %s transaction %s", tx.kind.value, tx.tx_hash)
            return False
        if not isinstance(body, (ComputeCommitment, ComputeVerification)):
            raise TypeError(f"Unsupported transaction body: {type(body).__name__}")

        if self.chain.exists(tx.tx_hash):
            LOGGER.info("%s %s already on-chain", tx.kind.value, tx.tx_hash)
            return False

        if isinstance(body, ComputeCommitment):
            self.chain.submit_compute_commitment(
                body.assignment_tx_hash,
                tx.tx_hash,
                body.compute_root_hash,
                tx.signature,
            )
        else:
            self.chain.submit_compute_verification(
                tx.tx_hash,
                body.assignment_tx_hash,
                tx.signature,
            )
        LOGGER.info("Posted %s %s on-chain", tx.kind.value, tx.tx_hash)
        return True

    @staticmethod
    def _failed(seq_number: int, exc: RelayerError) -> AttemptOutcome:
        LOGGER.warning("Compute result %s failed: %s", seq_number, exc)
        return AttemptOutcome.failed(seq_number, f"{type(exc).__name__}: {exc}")


__all__ = ["AttemptOutcome", "OutcomeStatus", "SubmissionPipeline"]
