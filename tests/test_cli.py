"""Tests for the CLI entry points. Chain and sequencer are replaced by fakes."""

import json
from pathlib import Path

import pytest

from compute_relayer.cli import main as cli
from compute_relayer.config import parse_config
from compute_relayer.core.errors import NotFoundError
from compute_relayer.core.pipeline import SubmissionPipeline
from compute_relayer.core.scheduler import RelayScheduler
from compute_relayer.core.store import MemoryKeyValueStore, SequenceStore, SqliteKeyValueStore
from compute_relayer.core.txs import Kind, TxRef

from conftest import FakeChain, FakeSequencer

CONFIG = {
    "contract_address": "0x5fbdb2315678afecb367f032d93f642f64180aa3",
    "chain": {"chain_id": 31337, "rpc_url": "http://127.0.0.1:8545"},
    "sequencer": {"rpc_url": "http://127.0.0.1:60000"},
    "database": {"path": "db/relayer.sqlite3"},
    "relay": {"interval_seconds": 0.01, "batch_size": 2},
}


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    path = tmp_path / "config.json"
    path.write_text(json.dumps(CONFIG), encoding="utf-8")
    return path


@pytest.fixture
def fake_relayer():
    sequencer, chain = FakeSequencer(), FakeChain()
    store = SequenceStore(MemoryKeyValueStore())
    pipeline = SubmissionPipeline(sequencer, chain)
    scheduler = RelayScheduler(store=store, pipeline=pipeline, batch_size=2, interval_seconds=0)
    relayer = cli.Relayer(config=parse_config(CONFIG), store=store, pipeline=pipeline, scheduler=scheduler)
    return relayer, sequencer, chain


def test_status_prints_cursor_and_retry_set(config_path: Path, capsys) -> None:
    store = SequenceStore(SqliteKeyValueStore(config_path.parent / "db" / "relayer.sqlite3"))
    store.store_cursor(12)
    store.store_retry_set({4, 2})

    cli.main(["--config", str(config_path), "status"])

    out = capsys.readouterr().out
    assert "Cursor: 12" in out
    assert "Retry set (2): 2, 4" in out


def test_missing_credential_exits_before_scheduling(config_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.delenv(cli.SECRET_KEY_ENV, raising=False)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--config", str(config_path), "run", "--once"])

    assert excinfo.value.code == 1
    assert "Signer secret key is not set" in capsys.readouterr().out


def test_bad_config_exits(tmp_path: Path, capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--config", str(tmp_path / "nope.json"), "status"])

    assert excinfo.value.code == 1
    assert "Config file not found" in capsys.readouterr().out


def test_post_tx_on_chain_submits_reference(fake_relayer) -> None:
    relayer, sequencer, chain = fake_relayer
    result = sequencer.add_record(1)

    submitted = cli.post_tx_on_chain(relayer, f"compute_commitment:{result.commitment_tx_hash.hex()}")

    assert submitted is True
    assert chain.submit_calls == [("commitment", result.commitment_tx_hash)]


def test_post_tx_on_chain_surfaces_errors(fake_relayer) -> None:
    relayer, _, _ = fake_relayer

    with pytest.raises(NotFoundError):
        cli.post_tx_on_chain(relayer, "compute_commitment:" + "ab" * 32)


def test_post_tx_on_chain_rejects_malformed_reference(fake_relayer) -> None:
    relayer, _, _ = fake_relayer

    with pytest.raises(ValueError):
        cli.post_tx_on_chain(relayer, "not-a-reference")


def test_start_interval_submit_once(fake_relayer) -> None:
    relayer, sequencer, _ = fake_relayer
    sequencer.add_record(0)

    ticks = cli.start_interval_submit(relayer, once=True)

    assert ticks == 1
    assert relayer.store.load_cursor() == 2
    assert relayer.store.load_retry_set() == {1}


def test_post_tx_command_wires_relayer(config_path: Path, monkeypatch, fake_relayer) -> None:
    relayer, sequencer, chain = fake_relayer
    result = sequencer.add_record(3)
    captured = {}

    def fake_build(config, *, secret_key):
        captured["secret_key"] = secret_key
        return relayer

    monkeypatch.setenv(cli.SECRET_KEY_ENV, "deadbeef")
    monkeypatch.setattr(cli, "build_relayer", fake_build)

    ref = TxRef(Kind.COMPUTE_VERIFICATION, result.verification_tx_hashes[0])
    cli.main(["--config", str(config_path), "post-tx", str(ref)])

    assert captured["secret_key"] == "deadbeef"
    assert chain.submit_calls == [("verification", ref.tx_hash)]
