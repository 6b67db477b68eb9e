"""Core relay engine."""

from .chain import ChainGateway, ComputeManagerClient, SubmissionReceipt, load_signer
from .pipeline import AttemptOutcome, OutcomeStatus, SubmissionPipeline
from .scheduler import RelayScheduler, TickReport
from .sequencer import SequencerClient, SequencerGateway
from .store import MemoryKeyValueStore, SequenceStore, SqliteKeyValueStore

__all__ = [
    "AttemptOutcome",
    "ChainGateway",
    "ComputeManagerClient",
    "MemoryKeyValueStore",
    "OutcomeStatus",
    "RelayScheduler",
    "SequenceStore",
    "SequencerClient",
    "SequencerGateway",
    "SqliteKeyValueStore",
    "SubmissionPipeline",
    "SubmissionReceipt",
    "TickReport",
    "load_signer",
]
