"""Shared fakes for relay engine tests. No network calls."""

from typing import Dict, List, Optional, Sequence, Set, Tuple, Union

import pytest

from compute_relayer.core.chain import SubmissionReceipt
from compute_relayer.core.errors import NotFoundError
from compute_relayer.core.pipeline import SubmissionPipeline
from compute_relayer.core.store import MemoryKeyValueStore, SequenceStore
from compute_relayer.core.txs import (
    ComputeCommitment,
    ComputeRequest,
    ComputeResult,
    ComputeVerification,
    Signature,
    Transaction,
    TxHash,
    TxRef,
)

ASSIGNMENT_HASH = TxHash(bytes.fromhex("43924aa0eb3f5df644b1d3b7d755190840d44d7b89f1df471280d4f1d957c819"))
SAMPLE_SIGNATURE = Signature(r=b"\x01" * 32, s=b"\x02" * 32, r_id=1)


def tx_hash(n: int) -> TxHash:
    return TxHash(n.to_bytes(32, "big"))


def commitment_tx(hash_: TxHash) -> Transaction:
    return Transaction(
        tx_hash=hash_,
        body=ComputeCommitment(assignment_tx_hash=ASSIGNMENT_HASH, compute_root_hash=tx_hash(0xC0FFEE)),
        signature=SAMPLE_SIGNATURE,
    )


def verification_tx(hash_: TxHash) -> Transaction:
    return Transaction(
        tx_hash=hash_,
        body=ComputeVerification(assignment_tx_hash=ASSIGNMENT_HASH, verification_result=True),
        signature=SAMPLE_SIGNATURE,
    )


def request_tx(hash_: TxHash) -> Transaction:
    return Transaction(tx_hash=hash_, body=ComputeRequest(), signature=SAMPLE_SIGNATURE)


class FakeSequencer:
    """In-memory ``SequencerGateway``.

    ``results`` values may be an exception instance to raise for that seq.
    """

    def __init__(self) -> None:
        self.results: Dict[int, Union[ComputeResult, Exception]] = {}
        self.txs: Dict[TxHash, Transaction] = {}
        self.tx_errors: Dict[TxHash, Exception] = {}
        self.result_calls: List[int] = []

    def add_record(self, seq: int, *, verifications: int = 1, base: Optional[int] = None) -> ComputeResult:
        base = base if base is not None else seq * 100
        commitment = commitment_tx(tx_hash(base))
        verification_txs = [verification_tx(tx_hash(base + i + 1)) for i in range(verifications)]
        self.txs[commitment.tx_hash] = commitment
        for tx in verification_txs:
            self.txs[tx.tx_hash] = tx
        result = ComputeResult(
            seq_number=seq,
            commitment_tx_hash=commitment.tx_hash,
            verification_tx_hashes=tuple(tx.tx_hash for tx in verification_txs),
        )
        self.results[seq] = result
        return result

    def fetch_compute_result(self, seq_number: int) -> ComputeResult:
        self.result_calls.append(seq_number)
        result = self.results.get(seq_number)
        if result is None:
            raise NotFoundError(f"no compute result for {seq_number}")
        if isinstance(result, Exception):
            raise result
        return result

    def fetch_transaction(self, ref: TxRef) -> Transaction:
        if ref.tx_hash in self.tx_errors:
            raise self.tx_errors[ref.tx_hash]
        try:
            return self.txs[ref.tx_hash]
        except KeyError:
            raise NotFoundError(f"no transaction {ref}") from None

    def fetch_transactions(self, refs: Sequence[TxRef]) -> List[Transaction]:
        return [self.fetch_transaction(ref) for ref in refs]


class FakeChain:
    """In-memory ``ChainGateway`` recording every call in order."""

    def __init__(self) -> None:
        self.onchain: Set[TxHash] = set()
        self.calls: List[Tuple[str, TxHash]] = []
        self.submit_errors: Dict[TxHash, Exception] = {}
        self.exists_errors: Dict[TxHash, Exception] = {}

    @property
    def submit_calls(self) -> List[Tuple[str, TxHash]]:
        return [call for call in self.calls if call[0] != "exists"]

    def exists(self, tx_hash: TxHash) -> bool:
        self.calls.append(("exists", tx_hash))
        if tx_hash in self.exists_errors:
            raise self.exists_errors[tx_hash]
        return tx_hash in self.onchain

    def _submit(self, label: str, tx_hash: TxHash) -> SubmissionReceipt:
        self.calls.append((label, tx_hash))
        if tx_hash in self.submit_errors:
            raise self.submit_errors[tx_hash]
        self.onchain.add(tx_hash)
        return SubmissionReceipt(tx_hash="0x" + tx_hash.hex(), block_number=len(self.onchain), gas_used=21_000)

    def submit_compute_commitment(self, assignment_tx_hash, commitment_tx_hash, compute_root_hash, signature):
        return self._submit("commitment", commitment_tx_hash)

    def submit_compute_verification(self, verification_tx_hash, assignment_tx_hash, signature):
        return self._submit("verification", verification_tx_hash)


@pytest.fixture
def sequencer() -> FakeSequencer:
    return FakeSequencer()


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def pipeline(sequencer: FakeSequencer, chain: FakeChain) -> SubmissionPipeline:
    return SubmissionPipeline(sequencer, chain)


@pytest.fixture
def store() -> SequenceStore:
    return SequenceStore(MemoryKeyValueStore())
