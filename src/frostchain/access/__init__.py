"""Access module: role registry and authorization guards."""

from frostchain.access.guards import require_owner, require_owner_or_role, require_role
from frostchain.access.registry import RoleRegistry

__all__ = [
    "RoleRegistry",
    "require_owner",
    "require_owner_or_role",
    "require_role",
]
