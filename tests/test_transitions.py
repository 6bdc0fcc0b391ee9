"""Tests for handover status derivation, audit replay and batch rebuilds."""

import pytest
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from frostchain.access.registry import RoleRegistry
from frostchain.models.batch import Batch, BatchStatus
from frostchain.models.roles import Role
from frostchain.ledger.batch_store import BatchStore
from frostchain.ledger.transitions import (
    ReplayedState,
    derive_handover_status,
    rebuild_batch,
    replay,
)
from frostchain.persistence.event_log import AuditEntry, EntryKind
from frostchain.policy.resolver import PolicyResolver, RolePolicy

CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"
TS = datetime(2026, 2, 14, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def roles() -> RolePolicy:
    return PolicyResolver.from_config_dir(CONFIG_DIR).role_policy()


@pytest.fixture
def registry() -> RoleRegistry:
    registry = RoleRegistry.seeded("admin")
    registry.grant("admin", Role.CARRIER, "truck")
    registry.grant("admin", Role.RETAILER, "shop")
    registry.grant_many("admin", "hub", [Role.CARRIER, Role.RETAILER])
    return registry


class _Entries:
    """Builds a batch's entry sequence with sequential ids."""

    def __init__(self, batch_id: int = 1) -> None:
        self.batch_id = batch_id
        self.items: list[AuditEntry] = []

    def add(self, kind: EntryKind, actor: str = "alice",
            reading: Optional[float] = None, **payload) -> "_Entries":
        self.items.append(AuditEntry.create(
            entry_id=f"EVT-{len(self.items) + 1:08d}",
            batch_id=self.batch_id,
            kind=kind,
            actor=actor,
            details="",
            reading=reading,
            payload=payload,
            timestamp_utc=TS,
        ))
        return self


# =====================================================================
# Handover status
# =====================================================================


class TestHandoverStatus:
    def test_carrier_means_in_transit(self, registry: RoleRegistry, roles: RolePolicy) -> None:
        assert derive_handover_status(
            registry, roles, "truck", BatchStatus.CREATED,
        ) == BatchStatus.IN_TRANSIT

    def test_retailer_means_delivered(self, registry: RoleRegistry, roles: RolePolicy) -> None:
        assert derive_handover_status(
            registry, roles, "shop", BatchStatus.IN_TRANSIT,
        ) == BatchStatus.DELIVERED

    def test_carrier_wins_over_retailer(self, registry: RoleRegistry, roles: RolePolicy) -> None:
        assert derive_handover_status(
            registry, roles, "hub", BatchStatus.CREATED,
        ) == BatchStatus.IN_TRANSIT

    def test_unclassified_recipient_keeps_status(
        self, registry: RoleRegistry, roles: RolePolicy,
    ) -> None:
        for status in BatchStatus:
            assert derive_handover_status(registry, roles, "stranger", status) == status

    def test_compromised_batch_to_carrier_reads_in_transit(
        self, registry: RoleRegistry, roles: RolePolicy,
    ) -> None:
        assert derive_handover_status(
            registry, roles, "truck", BatchStatus.COMPROMISED,
        ) == BatchStatus.IN_TRANSIT


# =====================================================================
# Replay
# =====================================================================


class TestReplay:
    def test_created_only(self) -> None:
        state = replay(_Entries().add(EntryKind.CREATED, originator="alice").items)
        assert state == ReplayedState("alice", BatchStatus.CREATED, False)

    def test_observation_changes_nothing(self) -> None:
        entries = (
            _Entries()
            .add(EntryKind.CREATED, originator="alice")
            .add(EntryKind.OBSERVATION, reading=-20, breached=False)
        )
        assert replay(entries.items) == ReplayedState("alice", BatchStatus.CREATED, False)

    def test_breach_latches(self) -> None:
        entries = (
            _Entries()
            .add(EntryKind.CREATED, originator="alice")
            .add(EntryKind.BREACH, reading=-10, breached=True)
        )
        assert replay(entries.items) == ReplayedState("alice", BatchStatus.COMPROMISED, True)

    def test_handover_uses_recorded_status(self) -> None:
        entries = (
            _Entries()
            .add(EntryKind.CREATED, originator="alice")
            .add(EntryKind.HANDOVER, **{"from": "alice", "to": "truck", "status": "IN_TRANSIT"})
        )
        assert replay(entries.items) == ReplayedState("truck", BatchStatus.IN_TRANSIT, False)

    def test_handover_after_breach_keeps_latch(self) -> None:
        entries = (
            _Entries()
            .add(EntryKind.CREATED, originator="alice")
            .add(EntryKind.BREACH, reading=-10, breached=True)
            .add(EntryKind.HANDOVER, **{"from": "alice", "to": "truck", "status": "IN_TRANSIT"})
        )
        assert replay(entries.items) == ReplayedState("truck", BatchStatus.IN_TRANSIT, True)

    def test_inherited_breach_tag_keeps_status(self) -> None:
        """A safe reading tagged BREACH only because of an earlier latch."""
        entries = (
            _Entries()
            .add(EntryKind.CREATED, originator="alice")
            .add(EntryKind.BREACH, reading=-10, breached=True)
            .add(EntryKind.HANDOVER, **{"from": "alice", "to": "truck", "status": "IN_TRANSIT"})
            .add(EntryKind.BREACH, actor="sensor", reading=-25, breached=False)
        )
        assert replay(entries.items) == ReplayedState("truck", BatchStatus.IN_TRANSIT, True)

    def test_admin_override(self) -> None:
        entries = (
            _Entries()
            .add(EntryKind.CREATED, originator="alice")
            .add(EntryKind.ADMIN_OVERRIDE, actor="admin", reason="recall")
        )
        assert replay(entries.items) == ReplayedState("alice", BatchStatus.COMPROMISED, True)

    def test_must_start_with_created(self) -> None:
        entries = _Entries().add(EntryKind.OBSERVATION, reading=-20)
        with pytest.raises(ValueError, match="must start with CREATED"):
            replay(entries.items)

    def test_empty_rejected(self) -> None:
        with pytest.raises(ValueError, match="empty"):
            replay([])

    def test_mixed_batches_rejected(self) -> None:
        first = _Entries(1).add(EntryKind.CREATED, originator="alice").items
        other = [
            AuditEntry.create("EVT-X", 2, EntryKind.OBSERVATION, "bob", "", -20, {}, TS),
        ]
        with pytest.raises(ValueError, match="belongs to batch 2"):
            replay(first + other)

    def test_matches_batch(self) -> None:
        batch = Batch(
            batch_id=1, product_label="P", details="", originator="alice",
            current_owner="truck", created_utc=TS,
            status=BatchStatus.IN_TRANSIT, compromised=True,
        )
        assert ReplayedState("truck", BatchStatus.IN_TRANSIT, True).matches(batch)
        assert not ReplayedState("truck", BatchStatus.IN_TRANSIT, False).matches(batch)

    def test_apply_to_batch(self) -> None:
        batch = Batch(
            batch_id=1, product_label="P", details="", originator="alice",
            current_owner="alice", created_utc=TS,
        )
        ReplayedState("shop", BatchStatus.DELIVERED, True).apply_to(batch)
        assert batch.current_owner == "shop"
        assert batch.status == BatchStatus.DELIVERED
        assert batch.compromised is True


# =====================================================================
# Rebuilding batches from entries
# =====================================================================


class TestRebuildBatch:
    def test_rebuild_from_created_payload(self) -> None:
        entries = (
            _Entries(4)
            .add(EntryKind.CREATED, originator="alice",
                 product_label="Frozen Peas", details="Grade A")
            .add(EntryKind.HANDOVER, **{"from": "alice", "to": "truck", "status": "IN_TRANSIT"})
            .add(EntryKind.BREACH, actor="truck", reading=-10, breached=True)
        )
        batch = rebuild_batch(entries.items)
        assert batch.batch_id == 4
        assert batch.product_label == "Frozen Peas"
        assert batch.details == "Grade A"
        assert batch.originator == "alice"
        assert batch.current_owner == "truck"
        assert batch.status == BatchStatus.COMPROMISED
        assert batch.compromised is True
        assert batch.created_utc == TS

    def test_rebuilt_batch_matches_replay(self) -> None:
        entries = _Entries().add(EntryKind.CREATED, originator="alice").items
        assert replay(entries).matches(rebuild_batch(entries))

    def test_rebuild_rejects_headless_history(self) -> None:
        entries = _Entries().add(EntryKind.OBSERVATION, reading=-20).items
        with pytest.raises(ValueError, match="must start with CREATED"):
            rebuild_batch(entries)


class TestBatchStorePut:
    def test_put_moves_id_counter_past_batch(self) -> None:
        entries = _Entries(5).add(EntryKind.CREATED, originator="alice").items
        store = BatchStore()
        store.put(rebuild_batch(entries))
        assert store.exists(5)
        assert store.next_id == 6
        assert store.insert("Next", "", "alice", TS).batch_id == 6

    def test_put_below_counter_keeps_counter(self) -> None:
        store = BatchStore()
        for _ in range(3):
            store.insert("P", "", "alice", TS)
        store.put(rebuild_batch(_Entries(2).add(EntryKind.CREATED, originator="bob").items))
        assert store.next_id == 4
        assert store.get(2).originator == "bob"
