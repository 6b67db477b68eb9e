"""Sequencer transaction model.

The sequencer serializes transactions as JSON with an externally tagged body,
for example ``{"body": {"ComputeCommitment": {...}}, "signature": {...}}``.
Hashes arrive either as hex strings or as arrays of byte values; both are
accepted.

Only two body variants are ever mirrored on-chain: ``ComputeCommitment`` and
``ComputeVerification``. Every other variant is carried so the relayer can
recognise it and treat it as already present.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

from compute_relayer.core.errors import TransactionDecodeError
from compute_relayer.core.utils import hex_to_bytes, is_u64

HASH_LENGTH = 32


class Kind(str, Enum):
    """Logical kind tags used by the sequencer to namespace transactions."""

    TRUST_UPDATE = "trust_update"
    SEED_UPDATE = "seed_update"
    COMPUTE_REQUEST = "compute_request"
    COMPUTE_ASSIGNMENT = "compute_assignment"
    COMPUTE_SCORES = "compute_scores"
    COMPUTE_COMMITMENT = "compute_commitment"
    COMPUTE_VERIFICATION = "compute_verification"
    COMPUTE_RESULT = "compute_result"

    @classmethod
    def from_prefix(cls, prefix: str) -> "Kind":
        try:
            return cls(prefix)
        except ValueError as exc:
            raise ValueError(f"Unknown transaction kind prefix: {prefix!r}") from exc


@dataclass(frozen=True)
class TxHash:
    """32-byte transaction hash."""

    value: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.value, (bytes, bytearray)) or len(self.value) != HASH_LENGTH:
            raise ValueError(f"TxHash must be {HASH_LENGTH} bytes")
        object.__setattr__(self, "value", bytes(self.value))

    @classmethod
    def from_hex(cls, data: str) -> "TxHash":
        try:
            raw = hex_to_bytes(data)
        except ValueError as exc:
            raise ValueError(f"Invalid hex for TxHash: {data!r}") from exc
        return cls(raw)

    def hex(self) -> str:
        return self.value.hex()

    def __str__(self) -> str:
        return "0x" + self.hex()


@dataclass(frozen=True)
class TxRef:
    """Reference to a sequencer transaction by kind prefix and hash."""

    kind: Kind
    tx_hash: TxHash

    @classmethod
    def parse(cls, text: str) -> "TxRef":
        """Parse the ``<prefix>:<hex hash>`` form used on the command line."""
        prefix, sep, hash_hex = text.partition(":")
        if not sep or not prefix or not hash_hex:
            raise ValueError(f"Transaction reference must look like '<prefix>:<hash>', got {text!r}")
        return cls(kind=Kind.from_prefix(prefix), tx_hash=TxHash.from_hex(hash_hex))

    def to_rpc(self) -> Tuple[str, str]:
        return (self.kind.value, self.tx_hash.hex())

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.tx_hash.hex()}"


@dataclass(frozen=True)
class Signature:
    """Recoverable ECDSA signature carried by every sequencer transaction."""

    r: bytes
    s: bytes
    r_id: int

    def as_contract_tuple(self) -> Tuple[bytes, bytes, int]:
        """Return the ``(s, r, r_id)`` tuple expected by ``ComputeManager``."""
        return (self.s, self.r, self.r_id)


@dataclass(frozen=True)
class ComputeRequest:
    user: str = ""
    trust_id: str = ""
    seed_id: str = ""


@dataclass(frozen=True)
class ComputeAssignment:
    request_tx_hash: TxHash
    assigned_compute_node: str = ""
    assigned_verifier_node: str = ""


@dataclass(frozen=True)
class ComputeScores:
    scores: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class ComputeCommitment:
    assignment_tx_hash: TxHash
    compute_root_hash: TxHash
    lt_root_hash: Optional[TxHash] = None
    scores_tx_hashes: Tuple[TxHash, ...] = ()


@dataclass(frozen=True)
class ComputeVerification:
    assignment_tx_hash: TxHash
    verification_result: bool


@dataclass(frozen=True)
class GenericBody:
    """Body of a kind the relayer never submits (trust/seed updates, results...)."""

    kind: Kind
    payload: Mapping[str, Any] = field(default_factory=dict, repr=False)


Body = Union[ComputeRequest, ComputeAssignment, ComputeScores, ComputeCommitment, ComputeVerification, GenericBody]

_BODY_TAGS: Dict[str, Kind] = {
    "TrustUpdate": Kind.TRUST_UPDATE,
    "SeedUpdate": Kind.SEED_UPDATE,
    "ComputeRequest": Kind.COMPUTE_REQUEST,
    "ComputeAssignment": Kind.COMPUTE_ASSIGNMENT,
    "ComputeScores": Kind.COMPUTE_SCORES,
    "ComputeCommitment": Kind.COMPUTE_COMMITMENT,
    "ComputeVerification": Kind.COMPUTE_VERIFICATION,
    "ComputeResult": Kind.COMPUTE_RESULT,
}


def body_kind(body: Body) -> Kind:
    """Return the kind tag of ``body``."""
    if isinstance(body, ComputeCommitment):
        return Kind.COMPUTE_COMMITMENT
    if isinstance(body, ComputeVerification):
        return Kind.COMPUTE_VERIFICATION
    if isinstance(body, ComputeRequest):
        return Kind.COMPUTE_REQUEST
    if isinstance(body, ComputeAssignment):
        return Kind.COMPUTE_ASSIGNMENT
    if isinstance(body, ComputeScores):
        return Kind.COMPUTE_SCORES
    if isinstance(body, GenericBody):
        return body.kind
    raise TypeError(f"Unsupported transaction body: {type(body).__name__}")


@dataclass(frozen=True)
class Transaction:
    """A signed sequencer transaction."""

    tx_hash: TxHash
    body: Body
    signature: Signature
    nonce: int = 0
    from_address: str = ""
    to_address: str = ""
    sequence_number: Optional[int] = None

    @property
    def kind(self) -> Kind:
        return body_kind(self.body)

    @property
    def ref(self) -> TxRef:
        return TxRef(kind=self.kind, tx_hash=self.tx_hash)

    @classmethod
    def from_rpc(cls, payload: Any, *, tx_hash: Optional[TxHash] = None) -> "Transaction":
        """Decode a sequencer ``Tx`` payload.

        The sequencer does not echo the hash it was asked for, so callers pass
        the requested ``tx_hash``; an explicit ``hash`` field wins when present.
        """
        if not isinstance(payload, Mapping):
            raise TransactionDecodeError(f"Transaction payload must be an object, got {type(payload).__name__}")
        try:
            if "hash" in payload:
                tx_hash = decode_hash(payload["hash"])
            if tx_hash is None:
                raise TransactionDecodeError("Transaction payload carries no hash")
            body = _decode_body(payload["body"])
            signature = _decode_signature(payload["signature"])
            sequence_number = payload.get("sequence_number")
            if sequence_number is not None and not is_u64(sequence_number):
                raise TransactionDecodeError(f"Invalid sequence_number: {sequence_number!r}")
            return cls(
                tx_hash=tx_hash,
                body=body,
                signature=signature,
                nonce=int(payload.get("nonce", 0)),
                from_address=str(payload.get("from", "")),
                to_address=str(payload.get("to", "")),
                sequence_number=sequence_number,
            )
        except KeyError as exc:
            raise TransactionDecodeError(f"Transaction payload missing field {exc}") from exc
        except (TypeError, ValueError) as exc:
            raise TransactionDecodeError(f"Malformed transaction payload: {exc}") from exc


@dataclass(frozen=True)
class ComputeResult:
    """Links a sequence number to its commitment and verification transactions."""

    seq_number: int
    commitment_tx_hash: TxHash
    verification_tx_hashes: Tuple[TxHash, ...] = ()
    request_tx_hash: Optional[TxHash] = None

    @property
    def is_verified(self) -> bool:
        return bool(self.verification_tx_hashes)

    def submission_refs(self) -> Tuple[TxRef, ...]:
        """Commitment first, then each verification in sequencer order."""
        refs = [TxRef(Kind.COMPUTE_COMMITMENT, self.commitment_tx_hash)]
        refs.extend(TxRef(Kind.COMPUTE_VERIFICATION, h) for h in self.verification_tx_hashes)
        return tuple(refs)

    @classmethod
    def from_rpc(cls, payload: Any, *, seq_number: int) -> "ComputeResult":
        if not isinstance(payload, Mapping):
            raise TransactionDecodeError(f"Compute result must be an object, got {type(payload).__name__}")
        try:
            request_hash = payload.get("compute_request_tx_hash")
            return cls(
                seq_number=int(payload.get("seq_number", seq_number)),
                commitment_tx_hash=decode_hash(payload["compute_commitment_tx_hash"]),
                verification_tx_hashes=tuple(
                    decode_hash(item) for item in payload.get("compute_verification_tx_hashes") or ()
                ),
                request_tx_hash=decode_hash(request_hash) if request_hash is not None else None,
            )
        except KeyError as exc:
            raise TransactionDecodeError(f"Compute result missing field {exc}") from exc
        except (TypeError, ValueError) as exc:
            raise TransactionDecodeError(f"Malformed compute result: {exc}") from exc


def decode_hash(value: Any) -> TxHash:
    """Decode a hash given as hex text or as a sequence of byte values."""
    if isinstance(value, TxHash):
        return value
    if isinstance(value, str):
        return TxHash.from_hex(value)
    if isinstance(value, Sequence):
        return TxHash(bytes(value))
    raise ValueError(f"Cannot decode hash from {type(value).__name__}")


def _decode_bytes32(value: Any) -> bytes:
    return decode_hash(value).value


def _decode_signature(payload: Any) -> Signature:
    if not isinstance(payload, Mapping):
        raise ValueError("signature must be an object")
    r_id = payload["r_id"]
    if not isinstance(r_id, int) or not 0 <= r_id <= 255:
        raise ValueError(f"signature r_id out of range: {r_id!r}")
    return Signature(r=_decode_bytes32(payload["r"]), s=_decode_bytes32(payload["s"]), r_id=r_id)


def _decode_body(payload: Any) -> Body:
    if isinstance(payload, str):
        tag, inner = payload, {}
    elif isinstance(payload, Mapping) and len(payload) == 1:
        tag, inner = next(iter(payload.items()))
    else:
        raise ValueError("body must be a single-key tagged object")
    if tag not in _BODY_TAGS:
        raise ValueError(f"unknown body tag {tag!r}")
    inner = inner or {}

    if tag == "ComputeCommitment":
        lt_root = inner.get("lt_root_hash")
        return ComputeCommitment(
            assignment_tx_hash=decode_hash(inner["assignment_tx_hash"]),
            compute_root_hash=decode_hash(inner["compute_root_hash"]),
            lt_root_hash=decode_hash(lt_root) if lt_root is not None else None,
            scores_tx_hashes=tuple(decode_hash(h) for h in inner.get("scores_tx_hashes") or ()),
        )
    if tag == "ComputeVerification":
        return ComputeVerification(
            assignment_tx_hash=decode_hash(inner["assignment_tx_hash"]),
            verification_result=bool(inner["verification_result"]),
        )
    if tag == "ComputeRequest":
        return ComputeRequest(
            user=str(inner.get("user", "")),
            trust_id=str(inner.get("trust_id", "")),
            seed_id=str(inner.get("seed_id", "")),
        )
    if tag == "ComputeAssignment":
        return ComputeAssignment(
            request_tx_hash=decode_hash(inner["request_tx_hash"]),
            assigned_compute_node=str(inner.get("assigned_compute_node", "")),
            assigned_verifier_node=str(inner.get("assigned_verifier_node", "")),
        )
    if tag == "ComputeScores":
        return ComputeScores(scores=tuple(inner.get("scores_entries") or ()))
    return GenericBody(kind=_BODY_TAGS[tag], payload=dict(inner))


__all__ = [
    "Body",
    "ComputeAssignment",
    "ComputeCommitment",
    "ComputeRequest",
    "ComputeResult",
    "ComputeScores",
    "ComputeVerification",
    "GenericBody",
    "HASH_LENGTH",
    "Kind",
    "Signature",
    "Transaction",
    "TxHash",
    "TxRef",
    "body_kind",
    "decode_hash",
]
