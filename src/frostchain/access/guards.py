"""Authorization guards for ledger operations.

One guard per authorization shape. Each either returns silently or
raises Unauthorized with a message that tells role-based denials apart
from ownership denials.
"""

from __future__ import annotations

from frostchain.access.registry import RoleRegistry
from frostchain.errors import Unauthorized
from frostchain.models.batch import Batch, canonical_account
from frostchain.models.roles import RoleTag, role_tag


def require_role(registry: RoleRegistry, role: RoleTag, caller: str) -> None:
    """Caller must hold role."""
    if not registry.has(role, caller):
        raise Unauthorized(f"Account {caller} is missing role {role_tag(role)}")


def require_owner(batch: Batch, caller: str) -> None:
    """Caller must be the batch's current owner."""
    if canonical_account(caller) != batch.current_owner:
        raise Unauthorized("Only the current owner can transfer")


def require_owner_or_role(
    registry: RoleRegistry, batch: Batch, role: RoleTag, caller: str,
) -> None:
    """Caller must own the batch or hold role."""
    if canonical_account(caller) == batch.current_owner:
        return
    if registry.has(role, caller):
        return
    raise Unauthorized("Caller is not owner or an authorized observer")
