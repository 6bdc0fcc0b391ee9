"""FrostChain: permissioned custody ledger for perishable-goods batches."""

from frostchain.errors import ErrorKind, InvalidArgument, LedgerError, NotFound, Unauthorized
from frostchain.models.batch import BatchSnapshot, BatchStatus
from frostchain.models.roles import Role
from frostchain.persistence.event_log import AuditEntry, AuditLog, EntryKind
from frostchain.policy.resolver import PolicyResolver
from frostchain.service import ServiceResult, TraceabilityService

__version__ = "0.1.0"

__all__ = [
    "AuditEntry",
    "AuditLog",
    "BatchSnapshot",
    "BatchStatus",
    "EntryKind",
    "ErrorKind",
    "InvalidArgument",
    "LedgerError",
    "NotFound",
    "PolicyResolver",
    "Role",
    "ServiceResult",
    "TraceabilityService",
    "Unauthorized",
]
