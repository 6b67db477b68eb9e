"""On-chain access to the ``ComputeManager`` registry contract."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol

import requests
from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.contract import Contract
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from compute_relayer.contracts import COMPUTE_MANAGER_ABI, load_contract_abi
from compute_relayer.core.errors import ChainRejection, CredentialError, TransportError
from compute_relayer.core.txs import Signature, TxHash
from compute_relayer.core.utils import ensure_web3_connected, get_logger, hex_to_bytes

LOGGER = get_logger("compute_relayer.chain")

GAS_BUFFER_NUMERATOR = 11
GAS_BUFFER_DENOMINATOR = 10


@dataclass(frozen=True)
class SubmissionReceipt:
    """Confirmation details of a mined submission."""

    tx_hash: str
    block_number: int
    gas_used: int


class ChainGateway(Protocol):
    """The registry contract surface the relayer depends on."""

    def exists(self, tx_hash: TxHash) -> bool:
        ...

    def submit_compute_commitment(
        self,
        assignment_tx_hash: TxHash,
        commitment_tx_hash: TxHash,
        compute_root_hash: TxHash,
        signature: Signature,
    ) -> SubmissionReceipt:
        ...

    def submit_compute_verification(
        self,
        verification_tx_hash: TxHash,
        assignment_tx_hash: TxHash,
        signature: Signature,
    ) -> SubmissionReceipt:
        ...


def load_signer(secret_key_hex: Optional[str]) -> LocalAccount:
    """Build the relayer signing account from a hex secret key."""
    secret = (secret_key_hex or "").strip()
    if not secret:
        raise CredentialError("Signer secret key is not set")
    try:
        return Account.from_key(hex_to_bytes(secret))
    except Exception as exc:  # eth_keys raises its own ValidationError for bad keys
        raise CredentialError("Signer secret key is not a valid secp256k1 private key") from exc


class ComputeManagerClient:
    """``ChainGateway`` backed by a web3 contract instance.

    Each submit builds an EIP-1559 transaction from the signer's pending nonce,
    signs it locally, broadcasts it and blocks until the receipt is available.
    """

    def __init__(
        self,
        *,
        web3: Web3,
        contract_address: str,
        account: LocalAccount,
        chain_id: int,
        receipt_timeout: float = 120,
    ) -> None:
        try:
            ensure_web3_connected(web3, expected_chain_id=chain_id)
        except ConnectionError as exc:
            raise TransportError(str(exc)) from exc

        self.web3 = web3
        self.account = account
        self.address = account.address
        self.chain_id = chain_id
        self.receipt_timeout = receipt_timeout
        self.contract: Contract = web3.eth.contract(
            address=Web3.to_checksum_address(contract_address),
            abi=load_contract_abi(COMPUTE_MANAGER_ABI),
        )
        LOGGER.info("Connected to chain %s as %s (contract %s)", chain_id, self.address, self.contract.address)

    @classmethod
    def connect(
        cls,
        *,
        rpc_url: str,
        contract_address: str,
        account: LocalAccount,
        chain_id: int,
        receipt_timeout: float = 120,
        web3_factory: Callable[[str], Web3] = lambda url: Web3(Web3.HTTPProvider(url)),
    ) -> "ComputeManagerClient":
        return cls(
            web3=web3_factory(rpc_url),
            contract_address=contract_address,
            account=account,
            chain_id=chain_id,
            receipt_timeout=receipt_timeout,
        )

    def exists(self, tx_hash: TxHash) -> bool:
        try:
            return bool(self.contract.functions.hasTx(tx_hash.value).call())
        except ContractLogicError as exc:
            raise ChainRejection(f"hasTx({tx_hash}) reverted: {exc}") from exc
        except (requests.RequestException, ConnectionError, Web3Exception, ValueError) as exc:
            # web3 6.x raises JSON-RPC error responses from eth_call as ValueError.
            raise TransportError(f"hasTx({tx_hash}) failed: {exc}") from exc

    def submit_compute_commitment(
        self,
        assignment_tx_hash: TxHash,
        commitment_tx_hash: TxHash,
        compute_root_hash: TxHash,
        signature: Signature,
    ) -> SubmissionReceipt:
        call = self.contract.functions.submitComputeCommitment(
            assignment_tx_hash.value,
            commitment_tx_hash.value,
            compute_root_hash.value,
            signature.as_contract_tuple(),
        )
        return self._send(call, label=f"submitComputeCommitment({commitment_tx_hash})")

    def submit_compute_verification(
        self,
        verification_tx_hash: TxHash,
        assignment_tx_hash: TxHash,
        signature: Signature,
    ) -> SubmissionReceipt:
        call = self.contract.functions.submitComputeVerification(
            verification_tx_hash.value,
            assignment_tx_hash.value,
            signature.as_contract_tuple(),
        )
        return self._send(call, label=f"submitComputeVerification({verification_tx_hash})")

    def _send(self, call: Any, *, label: str) -> SubmissionReceipt:
        try:
            tx = self._build_transaction(call)
            signed = self.account.sign_transaction(tx)
            tx_hash = self.web3.eth.send_raw_transaction(signed.raw_transaction)
            LOGGER.info("%s broadcast as %s", label, tx_hash.hex())
            receipt = self.web3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        except ContractLogicError as exc:
            raise ChainRejection(f"{label} would revert: {exc}") from exc
        except TimeExhausted as exc:
            raise TransportError(f"{label} not mined within {self.receipt_timeout}s") from exc
        except (requests.RequestException, ConnectionError) as exc:
            raise TransportError(f"{label} failed: {exc}") from exc
        except ValueError as exc:
            # Older web3 releases surface node-side rejections as ValueError.
            raise ChainRejection(f"{label} rejected by node: {exc}") from exc
        except Web3Exception as exc:
            raise TransportError(f"{label} failed: {exc}") from exc

        if receipt["status"] != 1:
            raise ChainRejection(f"{label} failed on-chain in block {receipt['blockNumber']}")

        LOGGER.info(
            "%s confirmed in block %s (gasUsed=%s)", label, receipt["blockNumber"], receipt["gasUsed"]
        )
        return SubmissionReceipt(
            tx_hash=tx_hash.hex(),
            block_number=int(receipt["blockNumber"]),
            gas_used=int(receipt["gasUsed"]),
        )

    def _build_transaction(self, call: Any) -> Dict[str, Any]:
        gas_estimate = call.estimate_gas({"from": self.address})
        gas_price = self.web3.eth.gas_price
        max_priority_fee = getattr(self.web3.eth, "max_priority_fee", gas_price)
        nonce = self.web3.eth.get_transaction_count(self.address, "pending")
        return call.build_transaction(
            {
                "from": self.address,
                "gas": gas_estimate * GAS_BUFFER_NUMERATOR // GAS_BUFFER_DENOMINATOR,
                "maxFeePerGas": gas_price + max_priority_fee,
                "maxPriorityFeePerGas": max_priority_fee,
                "nonce": nonce,
                "chainId": self.chain_id,
            }
        )


__all__ = [
    "ChainGateway",
    "ComputeManagerClient",
    "SubmissionReceipt",
    "load_signer",
]
