"""Ledger module: batch store, lifecycle transitions and replay."""

from frostchain.ledger.batch_store import BatchStore
from frostchain.ledger.transitions import (
    ReplayedState,
    derive_handover_status,
    rebuild_batch,
    replay,
)

__all__ = [
    "BatchStore",
    "ReplayedState",
    "derive_handover_status",
    "rebuild_batch",
    "replay",
]
