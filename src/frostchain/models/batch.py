"""Batch data models: lifecycle status, mutable batch record, snapshots.

A batch moves CREATED → IN_TRANSIT → DELIVERED as custody changes hands.
COMPROMISED is a side-state reachable from any of the three via a safety
breach or an admin override.

Two fields look alike but behave differently:
- status: overwritten by later transfers (a compromised batch handed to a
  carrier reads IN_TRANSIT again).
- compromised: a one-way latch. Nothing in the normal lifecycle clears it.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


class BatchStatus(str, enum.Enum):
    """Lifecycle status of a batch."""
    CREATED = "CREATED"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    COMPROMISED = "COMPROMISED"


@dataclass
class Batch:
    """Current-state record for one batch.

    This is a projection of the audit log: owner, status and the
    compromised flag must always be reproducible by replaying the batch's
    audit entries in order.
    """
    batch_id: int
    product_label: str
    details: str
    originator: str
    current_owner: str
    created_utc: datetime
    status: BatchStatus = BatchStatus.CREATED
    compromised: bool = False

    def mark_compromised(self) -> None:
        """Latch the compromised flag and overwrite status."""
        self.compromised = True
        self.status = BatchStatus.COMPROMISED

    def snapshot(self) -> BatchSnapshot:
        return BatchSnapshot(
            batch_id=self.batch_id,
            product_label=self.product_label,
            details=self.details,
            originator=self.originator,
            current_owner=self.current_owner,
            created_utc=self.created_utc,
            status=self.status,
            compromised=self.compromised,
        )


@dataclass(frozen=True)
class BatchSnapshot:
    """Read-only view of a batch handed to collaborators."""
    batch_id: int
    product_label: str
    details: str
    originator: str
    current_owner: str
    created_utc: datetime
    status: BatchStatus
    compromised: bool


def canonical_account(account: Optional[str]) -> Optional[str]:
    """Strip an account id; return None for the null account.

    The null account is None or a blank string. It can never hold a role
    or own a batch.
    """
    if account is None:
        return None
    stripped = account.strip()
    return stripped or None
