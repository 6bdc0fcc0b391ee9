"""Lifecycle transitions and audit replay.

Pure computation. Three jobs:
- derive_handover_status: what status a batch takes when custody moves.
- replay: rebuild a batch's (owner, status, compromised) projection from
  its audit entries alone.
- rebuild_batch: recreate a whole batch record from its entries, for
  restarts where the state snapshot is missing or stale.

Replay rules, applied in entry order:
    CREATED         initial state: owner = originator, CREATED, not compromised
    OBSERVATION     no change
    BREACH          compromised; status COMPROMISED unless the reading
                    itself was safe and only inherited the latch
    HANDOVER        owner = recipient; status = recorded resulting status
    ADMIN_OVERRIDE  compromised; status COMPROMISED
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Sequence

from frostchain.access.registry import RoleRegistry
from frostchain.models.batch import Batch, BatchStatus
from frostchain.persistence.event_log import AuditEntry, EntryKind
from frostchain.policy.resolver import RolePolicy


@dataclass(frozen=True)
class ReplayedState:
    """Projection rebuilt from audit entries."""
    owner: str
    status: BatchStatus
    compromised: bool

    def matches(self, batch: Batch) -> bool:
        return (
            self.owner == batch.current_owner
            and self.status == batch.status
            and self.compromised == batch.compromised
        )

    def apply_to(self, batch: Batch) -> None:
        batch.current_owner = self.owner
        batch.status = self.status
        batch.compromised = self.compromised


def derive_handover_status(
    registry: RoleRegistry,
    roles: RolePolicy,
    new_owner: str,
    current: BatchStatus,
) -> BatchStatus:
    """Carrier-class recipient → IN_TRANSIT; retailer-class → DELIVERED.

    Carrier wins when the recipient holds both. A recipient in neither
    class leaves the status as it was.
    """
    if registry.has_any(new_owner, roles.carrier_class):
        return BatchStatus.IN_TRANSIT
    if registry.has_any(new_owner, roles.retailer_class):
        return BatchStatus.DELIVERED
    return current


def replay(entries: Sequence[AuditEntry]) -> ReplayedState:
    """Fold a batch's audit entries into its projected state.

    Raises ValueError if the sequence does not start with CREATED or
    mixes batch ids.
    """
    if not entries:
        raise ValueError("Cannot replay an empty entry sequence")
    first = entries[0]
    if first.kind != EntryKind.CREATED:
        raise ValueError(
            f"Replay must start with CREATED, got {first.kind.value} ({first.entry_id})"
        )

    owner = first.payload.get("originator", first.actor)
    status = BatchStatus.CREATED
    compromised = False

    for entry in entries[1:]:
        if entry.batch_id != first.batch_id:
            raise ValueError(
                f"Entry {entry.entry_id} belongs to batch {entry.batch_id}, "
                f"not {first.batch_id}"
            )
        if entry.kind == EntryKind.CREATED:
            raise ValueError(f"Duplicate CREATED entry: {entry.entry_id}")
        if entry.kind == EntryKind.BREACH:
            compromised = True
            if entry.payload.get("breached", True):
                status = BatchStatus.COMPROMISED
        elif entry.kind == EntryKind.ADMIN_OVERRIDE:
            compromised = True
            status = BatchStatus.COMPROMISED
        elif entry.kind == EntryKind.HANDOVER:
            owner = entry.payload["to"]
            status = BatchStatus(entry.payload["status"])

    return ReplayedState(owner=owner, status=status, compromised=compromised)


def rebuild_batch(entries: Sequence[AuditEntry]) -> Batch:
    """Recreate a batch record from its audit entries.

    Label, details and originator come from the CREATED payload; the
    CREATED entry's timestamp is the creation time.
    """
    state = replay(entries)
    created = entries[0]
    return Batch(
        batch_id=created.batch_id,
        product_label=created.payload.get("product_label", ""),
        details=created.payload.get("details", ""),
        originator=created.payload.get("originator", created.actor),
        current_owner=state.owner,
        created_utc=datetime.strptime(
            created.timestamp_utc, "%Y-%m-%dT%H:%M:%SZ"
        ).replace(tzinfo=timezone.utc),
        status=state.status,
        compromised=state.compromised,
    )
