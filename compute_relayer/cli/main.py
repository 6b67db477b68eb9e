"""CLI entrypoint for relaying sequencer compute records on-chain."""

from __future__ import annotations

import argparse
import os
import signal
import sys
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from dotenv import load_dotenv
from web3 import Web3

from compute_relayer.config import ConfigError, RelayerConfig, load_config
from compute_relayer.core.chain import ComputeManagerClient, load_signer
from compute_relayer.core.errors import RelayerError
from compute_relayer.core.pipeline import SubmissionPipeline
from compute_relayer.core.scheduler import RelayScheduler
from compute_relayer.core.sequencer import SequencerClient
from compute_relayer.core.store import SequenceStore, SqliteKeyValueStore
from compute_relayer.core.txs import TxRef
from compute_relayer.core.utils import get_logger, set_log_level

LOGGER = get_logger("compute_relayer.cli")

SECRET_KEY_ENV = "SC_CLIENT_WALLET_SECRET_KEY"

load_dotenv()


@dataclass
class Relayer:
    """Fully wired relay components."""

    config: RelayerConfig
    store: SequenceStore
    pipeline: SubmissionPipeline
    scheduler: RelayScheduler


def open_store(config: RelayerConfig) -> SequenceStore:
    return SequenceStore(SqliteKeyValueStore(config.database.path))


def build_relayer(
    config: RelayerConfig,
    *,
    secret_key: Optional[str],
    web3_factory: Callable[[str], Web3] = lambda url: Web3(Web3.HTTPProvider(url)),
) -> Relayer:
    """Wire the store, gateways, pipeline and scheduler from ``config``.

    Credential, store and chain connectivity errors surface here, before any
    scheduling starts.
    """
    account = load_signer(secret_key)
    store = open_store(config)
    chain = ComputeManagerClient.connect(
        rpc_url=config.chain.rpc_url,
        contract_address=config.contract_address,
        account=account,
        chain_id=config.chain.chain_id,
        receipt_timeout=config.chain.receipt_timeout,
        web3_factory=web3_factory,
    )
    sequencer = SequencerClient(config.sequencer.rpc_url, timeout=config.sequencer.timeout)
    pipeline = SubmissionPipeline(sequencer, chain)
    scheduler = RelayScheduler(
        store=store,
        pipeline=pipeline,
        batch_size=config.relay.batch_size,
        interval_seconds=config.relay.interval_seconds,
        retry_failed=config.relay.retry_failed,
    )
    return Relayer(config=config, store=store, pipeline=pipeline, scheduler=scheduler)


def post_tx_on_chain(relayer: Relayer, reference: str) -> bool:
    """Submit the transaction named by ``<prefix>:<hash>``; errors propagate."""
    ref = TxRef.parse(reference)
    submitted = relayer.pipeline.submit_reference(ref)
    if submitted:
        LOGGER.info("Posted %s on-chain", ref)
    else:
        LOGGER.info("Nothing to post for %s (already on-chain or not submittable)", ref)
    return submitted


def start_interval_submit(relayer: Relayer, *, once: bool = False) -> int:
    """Run the periodic relay until SIGINT/SIGTERM (or a single tick with ``once``)."""
    stop_event = threading.Event()

    def _stop(signum, _frame) -> None:
        LOGGER.info("Received signal %s, stopping after current tick", signum)
        stop_event.set()

    previous = {sig: signal.signal(sig, _stop) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        return relayer.scheduler.run_forever(stop_event, max_ticks=1 if once else None)
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def print_status(store: SequenceStore) -> None:
    cursor = store.load_cursor()
    retry_set = sorted(store.load_retry_set())
    print(f"Cursor: {cursor}")
    print(f"Retry set ({len(retry_set)}): {', '.join(str(seq) for seq in retry_set) or '-'}")


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Relay sequencer compute records into the ComputeManager contract")
    parser.add_argument("--config", type=Path, default=Path("config.json"), help="Path to config JSON")
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING...)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    post = subparsers.add_parser("post-tx", help="Post one sequencer transaction on-chain")
    post.add_argument("tx_id", help="Transaction reference as <kind prefix>:<hex hash>")

    run = subparsers.add_parser("run", help="Post compute records on-chain at a fixed interval")
    run.add_argument("--once", action="store_true", help="Run a single tick and exit")

    subparsers.add_parser("status", help="Show the stored cursor and retry set")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = _parse_args(argv)

    try:
        set_log_level(args.log_level)
        config = load_config(args.config)
        if args.command == "status":
            print_status(open_store(config))
            return

        relayer = build_relayer(config, secret_key=os.getenv(SECRET_KEY_ENV))
        if args.command == "post-tx":
            post_tx_on_chain(relayer, args.tx_id)
        else:
            start_interval_submit(relayer, once=args.once)
    except (ConfigError, RelayerError, ValueError) as exc:
        print(f"\n❌ Error: {exc}")
        sys.exit(1)


if __name__ == "__main__":  # pragma: no cover - CLI entry
    main()
