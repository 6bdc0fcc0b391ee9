"""Batch store: current state per batch.

Ids are assigned from 1 upward and never reused. Batches are never
deleted. The store does no authorization of its own; the service checks
roles and ownership before it calls in.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from frostchain.errors import NotFound
from frostchain.models.batch import Batch


class BatchStore:
    """In-memory batch records keyed by id.

    Thread-safety: this class is not thread-safe. The caller must
    synchronise access if used from multiple threads.
    """

    def __init__(self, batches: Optional[dict[int, Batch]] = None, next_id: int = 1) -> None:
        self._batches: dict[int, Batch] = dict(batches or {})
        highest = max(self._batches, default=0)
        self._next_id = max(next_id, highest + 1)

    @property
    def next_id(self) -> int:
        """The id the next created batch will receive."""
        return self._next_id

    @property
    def count(self) -> int:
        return len(self._batches)

    def exists(self, batch_id: int) -> bool:
        return batch_id in self._batches

    def get(self, batch_id: int) -> Optional[Batch]:
        return self._batches.get(batch_id)

    def require(self, batch_id: int) -> Batch:
        """Return the batch or raise NotFound."""
        batch = self._batches.get(batch_id)
        if batch is None:
            raise NotFound("Batch does not exist")
        return batch

    def all_batches(self) -> list[Batch]:
        return [self._batches[i] for i in sorted(self._batches)]

    def insert(
        self,
        product_label: str,
        details: str,
        originator: str,
        created_utc: datetime,
    ) -> Batch:
        """Create a batch under the next id."""
        batch = Batch(
            batch_id=self._next_id,
            product_label=product_label,
            details=details,
            originator=originator,
            current_owner=originator,
            created_utc=created_utc,
        )
        self._batches[batch.batch_id] = batch
        self._next_id += 1
        return batch

    def put(self, batch: Batch) -> None:
        """Store a batch rebuilt elsewhere under its own id.

        The id counter moves past it so the id is never handed out again.
        """
        self._batches[batch.batch_id] = batch
        self._next_id = max(self._next_id, batch.batch_id + 1)
