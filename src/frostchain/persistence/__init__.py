"""Persistence layer: audit log and state storage."""

from frostchain.persistence.event_log import AuditEntry, AuditLog, EntryKind
from frostchain.persistence.state_store import StateStore

__all__ = ["AuditEntry", "AuditLog", "EntryKind", "StateStore"]
