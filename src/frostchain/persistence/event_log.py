"""Append-only audit log: the canonical record of every batch mutation.

Every successful lifecycle operation produces audit entries appended to
the log. Entries are immutable once written. The log serves as:
1. The historical record shown to carriers, retailers and auditors.
2. The source of truth for state reconstruction: replaying a batch's
   entries in order yields its current owner, status and compromised flag.

A failed operation never reaches the log. An operation that emits several
entries (sensor ingestion) appends them in a single all-or-nothing call.
"""

from __future__ import annotations

import enum
import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional

logger = logging.getLogger(__name__)


class EntryKind(str, enum.Enum):
    """Classification of audit entries."""
    CREATED = "CREATED"
    OBSERVATION = "OBSERVATION"
    BREACH = "BREACH"
    HANDOVER = "HANDOVER"
    ADMIN_OVERRIDE = "ADMIN_OVERRIDE"


def _canonical_hash(
    entry_id: str,
    batch_id: int,
    kind: str,
    timestamp_utc: str,
    actor: str,
    details: str,
    reading: Optional[float],
    payload: dict[str, Any],
) -> str:
    canonical = json.dumps(
        {
            "entry_id": entry_id,
            "batch_id": batch_id,
            "kind": kind,
            "timestamp_utc": timestamp_utc,
            "actor": actor,
            "details": details,
            "reading": reading,
            "payload": payload,
        },
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"


@dataclass(frozen=True)
class AuditEntry:
    """A single immutable audit entry.

    reading is None for entries with no physical measurement
    (creation, handover, admin override).
    """
    entry_id: str
    batch_id: int
    kind: EntryKind
    timestamp_utc: str
    actor: str
    details: str
    reading: Optional[float]
    payload: dict[str, Any] = field(default_factory=dict)
    entry_hash: str = ""

    @staticmethod
    def create(
        entry_id: str,
        batch_id: int,
        kind: EntryKind,
        actor: str,
        details: str,
        reading: Optional[float] = None,
        payload: Optional[dict[str, Any]] = None,
        timestamp_utc: Optional[datetime] = None,
    ) -> AuditEntry:
        """Create a new audit entry with computed hash."""
        ts = timestamp_utc or datetime.now(timezone.utc)
        ts_str = ts.strftime("%Y-%m-%dT%H:%M:%SZ")
        data = dict(payload or {})
        return AuditEntry(
            entry_id=entry_id,
            batch_id=batch_id,
            kind=kind,
            timestamp_utc=ts_str,
            actor=actor,
            details=details,
            reading=reading,
            payload=data,
            entry_hash=_canonical_hash(
                entry_id, batch_id, kind.value, ts_str, actor, details, reading, data,
            ),
        )

    def to_wire(self) -> dict[str, Any]:
        """Return the shape external collaborators consume."""
        return {
            "batch_id": self.batch_id,
            "actor": self.actor,
            "timestamp": self.timestamp_utc,
            "kind": self.kind.value,
            "details": self.details,
            "reading": self.reading,
        }

    def to_record(self) -> dict[str, Any]:
        """Return the full persisted form, hash included."""
        return {
            "entry_id": self.entry_id,
            "batch_id": self.batch_id,
            "kind": self.kind.value,
            "timestamp_utc": self.timestamp_utc,
            "actor": self.actor,
            "details": self.details,
            "reading": self.reading,
            "payload": self.payload,
            "entry_hash": self.entry_hash,
        }


class AuditLog:
    """Append-only audit log with optional file persistence.

    Entries can only be appended, never modified or deleted.
    The log can be persisted to a JSONL file (one JSON object per line)
    and loaded back for recovery.
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._entries: list[AuditEntry] = []
        self._by_batch: dict[int, list[AuditEntry]] = {}
        self._entry_ids: set[str] = set()
        self._storage_path = storage_path

        if storage_path and storage_path.exists():
            self._load_from_file(storage_path)

    def append(self, entry: AuditEntry) -> None:
        """Append an entry to the log.

        Raises ValueError if entry_id is a duplicate (replay protection).
        """
        self.append_many([entry])

    def append_many(self, entries: Iterable[AuditEntry]) -> None:
        """Append several entries as one unit.

        Either every entry lands or none does. Validation and the file
        write both happen before the in-memory log changes.
        """
        batch = list(entries)
        seen: set[str] = set()
        for entry in batch:
            if entry.entry_id in self._entry_ids or entry.entry_id in seen:
                raise ValueError(f"Duplicate entry ID: {entry.entry_id}")
            seen.add(entry.entry_id)

        if self._storage_path:
            self._append_to_file(batch)

        for entry in batch:
            self._entries.append(entry)
            self._by_batch.setdefault(entry.batch_id, []).append(entry)
            self._entry_ids.add(entry.entry_id)

    def entries_for(self, batch_id: int) -> list[AuditEntry]:
        """Return a batch's entries in creation order."""
        return list(self._by_batch.get(batch_id, []))

    def entries(self, kind: Optional[EntryKind] = None) -> list[AuditEntry]:
        """Return entries, optionally filtered by kind."""
        if kind is None:
            return list(self._entries)
        return [e for e in self._entries if e.kind == kind]

    def batch_ids(self) -> list[int]:
        """Return every batch id that has at least one entry, ascending."""
        return sorted(self._by_batch)

    @property
    def count(self) -> int:
        return len(self._entries)

    def _append_to_file(self, entries: list[AuditEntry]) -> None:
        """Write all entries' JSONL lines in a single write."""
        lines = "".join(
            json.dumps(e.to_record(), sort_keys=True, ensure_ascii=False) + "\n"
            for e in entries
        )
        with self._storage_path.open("a", encoding="utf-8") as f:
            f.write(lines)

    def _load_from_file(self, path: Path) -> None:
        """Load entries from a JSONL file with integrity verification.

        Fail-closed: rejects tampered records (hash mismatch) and
        duplicate entry IDs (replay protection on recovery).
        """
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                data = json.loads(line)

                entry_id = data["entry_id"]
                if entry_id in self._entry_ids:
                    raise ValueError(
                        f"Duplicate entry ID on recovery (line {line_num}): {entry_id}"
                    )

                expected_hash = _canonical_hash(
                    data["entry_id"],
                    data["batch_id"],
                    data["kind"],
                    data["timestamp_utc"],
                    data["actor"],
                    data["details"],
                    data["reading"],
                    data["payload"],
                )
                if data["entry_hash"] != expected_hash:
                    raise ValueError(
                        f"Integrity check failed (line {line_num}): entry {entry_id} "
                        f"stored hash {data['entry_hash']} != computed {expected_hash}"
                    )

                entry = AuditEntry(
                    entry_id=entry_id,
                    batch_id=data["batch_id"],
                    kind=EntryKind(data["kind"]),
                    timestamp_utc=data["timestamp_utc"],
                    actor=data["actor"],
                    details=data["details"],
                    reading=data["reading"],
                    payload=data["payload"],
                    entry_hash=data["entry_hash"],
                )
                self._entries.append(entry)
                self._by_batch.setdefault(entry.batch_id, []).append(entry)
                self._entry_ids.add(entry.entry_id)

        logger.info("Loaded %d audit entries from %s", len(self._entries), path)
