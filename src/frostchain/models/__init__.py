"""Data models: batches and role tags."""

from frostchain.models.batch import Batch, BatchSnapshot, BatchStatus, canonical_account
from frostchain.models.roles import Role, RoleTag, role_tag

__all__ = [
    "Batch",
    "BatchSnapshot",
    "BatchStatus",
    "canonical_account",
    "Role",
    "RoleTag",
    "role_tag",
]
