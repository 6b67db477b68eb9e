"""JSON-RPC access to the compute sequencer."""

from __future__ import annotations

import itertools
from typing import Any, List, Optional, Protocol, Sequence

import requests

from compute_relayer.core.errors import NotFoundError, TransactionDecodeError, TransportError
from compute_relayer.core.txs import ComputeResult, Transaction, TxRef
from compute_relayer.core.utils import get_logger

LOGGER = get_logger("compute_relayer.sequencer")

NOT_FOUND_CODE = -32001


class SequencerGateway(Protocol):
    """Read-only view of the sequencer used by the submission pipeline."""

    def fetch_compute_result(self, seq_number: int) -> ComputeResult:
        ...

    def fetch_transaction(self, ref: TxRef) -> Transaction:
        ...

    def fetch_transactions(self, refs: Sequence[TxRef]) -> List[Transaction]:
        ...


class SequencerClient:
    """``SequencerGateway`` over the sequencer's JSON-RPC HTTP endpoint."""

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.timeout = timeout
        self._session = session or requests.Session()
        self._ids = itertools.count(1)

    def fetch_compute_result(self, seq_number: int) -> ComputeResult:
        payload = self._call("sequencer_get_compute_result", [seq_number])
        return ComputeResult.from_rpc(payload, seq_number=seq_number)

    def fetch_transaction(self, ref: TxRef) -> Transaction:
        payload = self._call("sequencer_get_tx", list(ref.to_rpc()))
        return Transaction.from_rpc(payload, tx_hash=ref.tx_hash)

    def fetch_transactions(self, refs: Sequence[TxRef]) -> List[Transaction]:
        if not refs:
            return []
        payload = self._call("sequencer_get_txs", [[list(ref.to_rpc()) for ref in refs]])
        if not isinstance(payload, list) or len(payload) != len(refs):
            raise TransactionDecodeError(
                f"sequencer_get_txs returned {_describe(payload)} for {len(refs)} references"
            )
        return [Transaction.from_rpc(item, tx_hash=ref.tx_hash) for ref, item in zip(refs, payload)]

    def _call(self, method: str, params: List[Any]) -> Any:
        request = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        LOGGER.debug("Sequencer call %s params=%s", method, params)
        try:
            response = self._session.post(self.rpc_url, json=request, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except requests.RequestException as exc:
            raise TransportError(f"Sequencer call {method} to {self.rpc_url} failed: {exc}") from exc
        except ValueError as exc:
            raise TransportError(f"Sequencer call {method} returned invalid JSON") from exc

        if not isinstance(body, dict):
            raise TransportError(f"Sequencer call {method} returned {_describe(body)}")

        error = body.get("error")
        if error is not None:
            code = error.get("code") if isinstance(error, dict) else None
            message = str(error.get("message", "")) if isinstance(error, dict) else str(error)
            if code == NOT_FOUND_CODE or "not found" in message.lower():
                raise NotFoundError(f"{method}{tuple(params)}: {message or 'not found'}")
            raise TransportError(f"Sequencer call {method} failed with code {code}: {message}")

        result = body.get("result")
        if result is None:
            raise NotFoundError(f"{method}{tuple(params)} returned no result")
        return result


def _describe(value: Any) -> str:
    if isinstance(value, list):
        return f"a list of {len(value)} items"
    return type(value).__name__


__all__ = ["NOT_FOUND_CODE", "SequencerClient", "SequencerGateway"]
