"""State store: JSON-based persistence for FrostChain runtime state.

Stores and recovers:
- Role memberships (role tag → accounts)
- Batch records (owner, status, compromised flag, creation data)
- The next batch id, so ids are never reused across restarts

This is a simple file-based store suitable for single-node deployment.
The audit log remains the source of truth: every batch written here can
be re-derived by replaying its entries.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from frostchain.access.registry import RoleRegistry
from frostchain.ledger.batch_store import BatchStore
from frostchain.models.batch import Batch, BatchStatus


class StateStore:
    """JSON file-based state persistence.

    Usage:
        store = StateStore(Path("data/frostchain_state.json"))
        store.save_roles(registry)
        store.save_batches(batch_store)

        # On recovery:
        registry = store.load_roles()
        batch_store = store.load_batches()
    """

    def __init__(self, storage_path: Path) -> None:
        self._path = storage_path
        self._state: dict[str, Any] = {}
        if storage_path.exists():
            self._load()

    @property
    def has_state(self) -> bool:
        return bool(self._state)

    def _load(self) -> None:
        with self._path.open("r", encoding="utf-8") as f:
            self._state = json.load(f)

    def _save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("w", encoding="utf-8") as f:
            json.dump(self._state, f, indent=2, sort_keys=True, ensure_ascii=False)

    # ------------------------------------------------------------------
    # Role persistence
    # ------------------------------------------------------------------

    def save_roles(self, registry: RoleRegistry) -> None:
        """Serialize role memberships to state."""
        self._state["roles"] = {
            "admin_role": registry.admin_role,
            "members": {
                tag: sorted(accounts)
                for tag, accounts in registry.all_roles().items()
            },
        }
        self._save()

    def load_roles(self) -> RoleRegistry:
        """Deserialize role memberships from state."""
        data = self._state.get("roles", {})
        return RoleRegistry.from_memberships(
            data.get("members", {}),
            admin_role=data.get("admin_role", "ADMIN"),
        )

    # ------------------------------------------------------------------
    # Batch persistence
    # ------------------------------------------------------------------

    def save_batches(self, store: BatchStore) -> None:
        """Serialize batch records and the id counter to state."""
        entries = []
        for batch in store.all_batches():
            entries.append({
                "batch_id": batch.batch_id,
                "product_label": batch.product_label,
                "details": batch.details,
                "originator": batch.originator,
                "current_owner": batch.current_owner,
                "created_utc": batch.created_utc.strftime("%Y-%m-%dT%H:%M:%SZ"),
                "status": batch.status.value,
                "compromised": batch.compromised,
            })
        self._state["batches"] = entries
        self._state["next_batch_id"] = store.next_id
        self._save()

    def load_batches(self) -> BatchStore:
        """Deserialize batch records from state."""
        batches: dict[int, Batch] = {}
        for data in self._state.get("batches", []):
            batch = Batch(
                batch_id=data["batch_id"],
                product_label=data["product_label"],
                details=data["details"],
                originator=data["originator"],
                current_owner=data["current_owner"],
                created_utc=datetime.strptime(
                    data["created_utc"], "%Y-%m-%dT%H:%M:%SZ"
                ).replace(tzinfo=timezone.utc),
                status=BatchStatus(data["status"]),
                compromised=data["compromised"],
            )
            batches[batch.batch_id] = batch
        return BatchStore(batches, next_id=self._state.get("next_batch_id", 1))
