"""FrostChain service: unified facade for the batch lifecycle engine.

This is the primary interface for programmatic access to FrostChain.
It orchestrates all subsystems:
- Role management (grant, revoke, grant many, renounce)
- Batch lifecycle (create, observe, transfer custody, sensor ingestion,
  admin override)
- Breach detection (threshold classification of every reading)
- Audit log (one entry per mutation, one per ingested reading)
- Persistence (audit log file, state store)

Every mutating operation validates in a fixed order (existence →
authorization → argument shape), plans the full transition and its audit
entries, and only then commits. The audit append is the commit point:
if it fails, nothing changes. A failed call never writes an entry.

All mutating operations return a ServiceResult. Read-only queries return
values directly and raise NotFound for unknown batch ids.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional, Sequence

from frostchain.access.guards import require_owner, require_owner_or_role, require_role
from frostchain.access.registry import RoleRegistry
from frostchain.errors import ErrorKind, InvalidArgument, LedgerError
from frostchain.ledger.batch_store import BatchStore
from frostchain.ledger.transitions import derive_handover_status, rebuild_batch, replay
from frostchain.models.batch import BatchSnapshot, canonical_account
from frostchain.models.roles import RoleTag
from frostchain.persistence.event_log import AuditEntry, AuditLog, EntryKind
from frostchain.persistence.state_store import StateStore
from frostchain.policy.resolver import PolicyResolver
from frostchain.safety.monitor import BreachMonitor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)
    error_kind: Optional[ErrorKind] = None

    @classmethod
    def failure(cls, exc: LedgerError) -> ServiceResult:
        return cls(success=False, errors=[exc.message], error_kind=exc.kind)


@dataclass(frozen=True)
class _PlannedEntry:
    """An audit entry before it has been assigned an id."""
    batch_id: int
    kind: EntryKind
    actor: str
    details: str
    reading: Optional[float] = None
    payload: dict[str, Any] = field(default_factory=dict)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_reading(value: Any) -> float:
    """Return a sensor value as a finite float or raise InvalidArgument."""
    if isinstance(value, (bool, str, bytes)):
        raise InvalidArgument(f"Reading must be a number, got {value!r}")
    try:
        reading = float(value)
    except (TypeError, ValueError):
        raise InvalidArgument(f"Reading must be a number, got {value!r}") from None
    if not math.isfinite(reading):
        raise InvalidArgument(f"Reading must be finite, got {value!r}")
    return reading


class TraceabilityService:
    """Permissioned custody ledger facade.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        service = TraceabilityService(resolver, initializer="admin")

        service.grant_role("admin", Role.CARRIER, "truck-7")
        result = service.create_batch("admin", "Frozen Peas", "Grade A")
        batch_id = result.data["batch_id"]
        service.record_observation("admin", batch_id, "Plant", -21)
        service.transfer_custody("admin", batch_id, "truck-7", "Dispatched")

        service.get_batch(batch_id).status     # BatchStatus.IN_TRANSIT
        service.entries_for(batch_id)          # CREATED, OBSERVATION, HANDOVER

    Persistence (optional):
        service = TraceabilityService(
            resolver, initializer="admin",
            audit_log=AuditLog(Path("data/audit.jsonl")),
            state_store=StateStore(Path("data/state.json")),
        )
        # State is persisted on each mutation and loaded on construction.
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        initializer: Optional[str] = None,
        registry: Optional[RoleRegistry] = None,
        audit_log: Optional[AuditLog] = None,
        state_store: Optional[StateStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._resolver = resolver
        self._roles = resolver.role_policy()
        self._monitor = BreachMonitor(resolver)
        self._clock = clock or _utc_now

        self._audit_log = audit_log if audit_log is not None else AuditLog()
        self._state_store = state_store

        # Load persisted state or start fresh
        if state_store is not None and state_store.has_state:
            self._registry = state_store.load_roles()
            self._batches = state_store.load_batches()
        else:
            if registry is not None:
                self._registry = registry
            elif initializer is not None:
                self._registry = RoleRegistry.seeded(
                    initializer,
                    admin_role=self._roles.admin,
                    creator_role=self._roles.creator,
                )
            else:
                raise ValueError("An initializer account or a role registry is required")
            self._batches = BatchStore()

        # The audit log outranks the snapshot: rebuild what it is missing
        self._reconcile_with_log()

        # Continue entry ids from the persisted log
        self._entry_counter = self._audit_log.count

        # Set when a StateStore write fails after the audit log has been
        # written. In-memory state matches the audit log; the StateStore
        # is stale until the next successful persist.
        self._persistence_degraded: bool = False

    @property
    def persistence_degraded(self) -> bool:
        return self._persistence_degraded

    @property
    def registry(self) -> RoleRegistry:
        return self._registry

    @property
    def safety_threshold(self) -> float:
        return self._monitor.threshold

    # ------------------------------------------------------------------
    # Role management
    # ------------------------------------------------------------------

    def grant_role(self, caller: str, role: RoleTag, account: str) -> ServiceResult:
        """Grant a role. ADMIN only; granting a held role succeeds silently."""
        return self._mutate_roles(lambda: self._registry.grant(caller, role, account))

    def revoke_role(self, caller: str, role: RoleTag, account: str) -> ServiceResult:
        """Revoke a role. ADMIN only; revoking an unheld role succeeds silently."""
        return self._mutate_roles(lambda: self._registry.revoke(caller, role, account))

    def grant_roles(
        self, caller: str, account: Optional[str], roles: Iterable[RoleTag],
    ) -> ServiceResult:
        """Grant several roles at once. ADMIN only; null account rejected."""
        role_list = list(roles)
        return self._mutate_roles(
            lambda: self._registry.grant_many(caller, account, role_list),
        )

    def renounce_role(self, caller: str, role: RoleTag, account: str) -> ServiceResult:
        """Drop the caller's own membership in a role."""
        return self._mutate_roles(lambda: self._registry.renounce(caller, role, account))

    def has_role(self, role: RoleTag, account: Optional[str]) -> bool:
        return self._registry.has(role, account)

    def has_any_supply_chain_role(self, account: Optional[str]) -> bool:
        """True if account holds any creator/carrier/retailer/observer role."""
        return self._registry.has_any(account, self._roles.supply_chain)

    # ------------------------------------------------------------------
    # Batch lifecycle
    # ------------------------------------------------------------------

    def create_batch(
        self, caller: str, product_label: str, details: str = "",
    ) -> ServiceResult:
        """Create a batch owned by the caller. Requires the creator role."""
        try:
            require_role(self._registry, self._roles.creator, caller)
        except LedgerError as e:
            return self._reject("create_batch", caller, e)

        actor = canonical_account(caller)
        batch_id = self._batches.next_id
        now = self._clock()
        planned = _PlannedEntry(
            batch_id=batch_id,
            kind=EntryKind.CREATED,
            actor=actor,
            details=f"Product: {product_label} | Details: {details}",
            payload={
                "originator": actor,
                "product_label": product_label,
                "details": details,
            },
        )

        def _apply() -> None:
            self._batches.insert(product_label, details, actor, now)

        err = self._commit([planned], now, _apply)
        if err:
            return ServiceResult(success=False, errors=[err])

        logger.info("Batch %d created by %s (%s)", batch_id, actor, product_label)
        return self._success({"batch_id": batch_id})

    def record_observation(
        self,
        caller: str,
        batch_id: int,
        location: str,
        reading: float,
        notes: str = "",
    ) -> ServiceResult:
        """Record one temperature reading. Owner or observer only.

        A reading strictly above the threshold latches the batch
        compromised and appends BREACH; otherwise OBSERVATION.
        """
        try:
            batch = self._batches.require(batch_id)
            require_owner_or_role(self._registry, batch, self._roles.observer, caller)
            reading = _as_reading(reading)
        except LedgerError as e:
            return self._reject("record_observation", caller, e)

        breached = self._monitor.is_breach(reading)
        planned = _PlannedEntry(
            batch_id=batch_id,
            kind=EntryKind.BREACH if breached else EntryKind.OBSERVATION,
            actor=canonical_account(caller),
            details=f"Location: {location} | Notes: {notes}",
            reading=reading,
            payload={"location": location, "breached": breached},
        )

        def _apply() -> None:
            if breached:
                batch.mark_compromised()

        err = self._commit([planned], self._clock(), _apply)
        if err:
            return ServiceResult(success=False, errors=[err])

        if breached:
            logger.warning(
                "Batch %d breached: reading %s > threshold %s at %s",
                batch_id, reading, self._monitor.threshold, location,
            )
        return self._success({"breach": breached, "status": batch.status.value})

    def transfer_custody(
        self,
        caller: str,
        batch_id: int,
        new_owner: Optional[str],
        notes: str = "",
    ) -> ServiceResult:
        """Hand a batch to a new owner. Current owner only.

        Status follows the recipient's role class; the compromised flag
        is never touched.
        """
        try:
            batch = self._batches.require(batch_id)
            require_owner(batch, caller)
            recipient = canonical_account(new_owner)
            if recipient is None:
                raise InvalidArgument("New owner cannot be the null account")
            if recipient == batch.current_owner:
                raise InvalidArgument("Cannot transfer to yourself")
        except LedgerError as e:
            return self._reject("transfer_custody", caller, e)

        previous_owner = batch.current_owner
        new_status = derive_handover_status(
            self._registry, self._roles, recipient, batch.status,
        )
        planned = _PlannedEntry(
            batch_id=batch_id,
            kind=EntryKind.HANDOVER,
            actor=previous_owner,
            details=f"From: {previous_owner} | To: {recipient} | Notes: {notes}",
            payload={"from": previous_owner, "to": recipient, "status": new_status.value},
        )

        def _apply() -> None:
            batch.current_owner = recipient
            batch.status = new_status

        err = self._commit([planned], self._clock(), _apply)
        if err:
            return ServiceResult(success=False, errors=[err])

        logger.info(
            "Batch %d handed from %s to %s (%s)",
            batch_id, previous_owner, recipient, new_status.value,
        )
        return self._success({
            "from": previous_owner,
            "to": recipient,
            "status": new_status.value,
            "compromised": batch.compromised,
        })

    def ingest_observations(
        self,
        caller: str,
        batch_id: int,
        readings: Sequence[float],
        locations: Sequence[str],
        timestamps: Sequence[int],
    ) -> ServiceResult:
        """Record a run of automated sensor readings in one call.

        Observer role only. Produces one entry per reading. The first
        breach latches the batch compromised, and every entry from then
        on is tagged BREACH.
        """
        try:
            batch = self._batches.require(batch_id)
            require_role(self._registry, self._roles.observer, caller)
            if not (len(readings) == len(locations) == len(timestamps)):
                raise InvalidArgument("Array lengths must match")
            if len(readings) == 0:
                raise InvalidArgument("Must provide at least one reading")
            readings = [_as_reading(r) for r in readings]
        except LedgerError as e:
            return self._reject("ingest_observations", caller, e)

        actor = canonical_account(caller)
        verdict = self._monitor.classify_series(readings, batch.compromised)
        planned = [
            _PlannedEntry(
                batch_id=batch_id,
                kind=kind,
                actor=actor,
                details=(
                    f"Location: {location} | Sensor time: {sensor_time} "
                    f"| Notes: automated reading"
                ),
                reading=reading,
                payload={
                    "location": location,
                    "sensor_time": sensor_time,
                    "breached": breached,
                },
            )
            for reading, location, sensor_time, kind, breached in zip(
                readings, locations, timestamps, verdict.kinds, verdict.breaches,
            )
        ]

        def _apply() -> None:
            if verdict.any_breach:
                batch.mark_compromised()

        err = self._commit(planned, self._clock(), _apply)
        if err:
            return ServiceResult(success=False, errors=[err])

        if verdict.any_breach:
            logger.warning(
                "Batch %d breached during ingestion at reading %d of %d",
                batch_id, verdict.first_breach_index + 1, len(readings),
            )
        else:
            logger.info("Batch %d ingested %d readings", batch_id, len(readings))
        return self._success({
            "entries": len(planned),
            "breach_index": verdict.first_breach_index,
            "status": batch.status.value,
        })

    def admin_override(self, caller: str, batch_id: int, reason: str) -> ServiceResult:
        """Mark a batch compromised without a measurement. ADMIN only."""
        try:
            batch = self._batches.require(batch_id)
            require_role(self._registry, self._roles.admin, caller)
        except LedgerError as e:
            return self._reject("admin_override", caller, e)

        planned = _PlannedEntry(
            batch_id=batch_id,
            kind=EntryKind.ADMIN_OVERRIDE,
            actor=canonical_account(caller),
            details=f"Reason: {reason}",
            payload={"reason": reason},
        )

        err = self._commit([planned], self._clock(), batch.mark_compromised)
        if err:
            return ServiceResult(success=False, errors=[err])

        logger.warning("Batch %d compromised by admin override: %s", batch_id, reason)
        return self._success({"status": batch.status.value})

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_batch(self, batch_id: int) -> BatchSnapshot:
        """Return a read-only snapshot. Raises NotFound."""
        return self._batches.require(batch_id).snapshot()

    def get_batch_count(self) -> int:
        return self._batches.count

    def list_batches(self) -> list[BatchSnapshot]:
        """Return snapshots of every batch, ordered by id."""
        return [b.snapshot() for b in self._batches.all_batches()]

    def is_compromised(self, batch_id: int) -> bool:
        return self._batches.require(batch_id).compromised

    def entries_for(self, batch_id: int) -> list[AuditEntry]:
        """Return a batch's audit entries in order. Raises NotFound."""
        self._batches.require(batch_id)
        return self._audit_log.entries_for(batch_id)

    def verify_batch(self, batch_id: int) -> bool:
        """True if replaying the batch's entries reproduces its current state."""
        batch = self._batches.require(batch_id)
        return replay(self._audit_log.entries_for(batch_id)).matches(batch)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _reconcile_with_log(self) -> None:
        """Bring the batch store in line with the audit log.

        Batches the snapshot lacks (log-only setup, or entries committed
        after the last good save) are rebuilt from their entries. Batches
        whose snapshot disagrees with replay take the replayed fields.
        Raises ValueError if a batch's entries cannot be replayed.
        """
        restored = refreshed = 0
        for batch_id in self._audit_log.batch_ids():
            entries = self._audit_log.entries_for(batch_id)
            if not self._batches.exists(batch_id):
                self._batches.put(rebuild_batch(entries))
                restored += 1
                continue
            state = replay(entries)
            batch = self._batches.require(batch_id)
            if not state.matches(batch):
                state.apply_to(batch)
                refreshed += 1

        if restored or refreshed:
            logger.warning(
                "Reconciled batch store with audit log: %d restored, %d refreshed",
                restored, refreshed,
            )

    def _commit(
        self,
        planned: list[_PlannedEntry],
        timestamp: datetime,
        apply: Callable[[], None],
    ) -> Optional[str]:
        """Append planned entries, then apply the state change.

        Returns an error string if the audit append fails, in which case
        nothing has changed. Once the append succeeds the change is
        applied and cannot fail.
        """
        entries = [
            AuditEntry.create(
                entry_id=f"EVT-{self._entry_counter + i:08d}",
                batch_id=p.batch_id,
                kind=p.kind,
                actor=p.actor,
                details=p.details,
                reading=p.reading,
                payload=p.payload,
                timestamp_utc=timestamp,
            )
            for i, p in enumerate(planned, 1)
        ]
        try:
            self._audit_log.append_many(entries)
        except (ValueError, OSError) as e:
            logger.error("Audit log append failed: %s", e)
            return f"Audit log failure: {e}"

        self._entry_counter += len(entries)
        apply()
        return None

    def _mutate_roles(self, action: Callable[[], None]) -> ServiceResult:
        """Run a registry mutation, persisting with rollback on failure."""
        before = self._registry.all_roles()
        try:
            action()
        except LedgerError as e:
            logger.debug("Role change rejected: %s", e)
            return ServiceResult.failure(e)

        err = self._safe_persist(on_rollback=lambda: self._registry.restore(before))
        if err:
            return ServiceResult(success=False, errors=[err])
        return ServiceResult(success=True)

    def _reject(self, operation: str, caller: str, exc: LedgerError) -> ServiceResult:
        logger.debug("%s rejected for %s: %s", operation, caller, exc)
        return ServiceResult.failure(exc)

    def _success(self, data: dict[str, Any]) -> ServiceResult:
        # Audit entries are committed, so in-memory state stays
        warning = self._safe_persist_post_audit()
        if warning:
            data["warning"] = warning
        return ServiceResult(success=True, data=data)

    def _persist_state(self) -> None:
        """Persist current state to the state store (if wired).

        NOTE: This method can raise OSError. Callers should use
        _safe_persist() or _safe_persist_post_audit() instead.
        """
        if self._state_store is None:
            return
        self._state_store.save_roles(self._registry)
        self._state_store.save_batches(self._batches)

    def _safe_persist(
        self,
        on_rollback: Optional[Callable[[], None]] = None,
    ) -> Optional[str]:
        """Persist state with fail-closed error handling (no audit entry).

        On failure, runs the rollback callback to undo in-memory
        mutations and returns an error string. On success, returns None.
        """
        try:
            self._persist_state()
            return None
        except OSError as e:
            if on_rollback is not None:
                on_rollback()
            logger.error("Persistence failure, change rolled back: %s", e)
            return f"Persistence failure: {e}"

    def _safe_persist_post_audit(self) -> Optional[str]:
        """Persist state after audit entries have been committed.

        MUST NOT rollback in-memory state: the audit log is already
        written. If persist fails, in-memory state remains correct
        (aligned with the audit log) but the StateStore is stale.
        """
        try:
            self._persist_state()
            return None
        except OSError as e:
            self._persistence_degraded = True
            logger.warning("Persistence degraded: %s", e)
            return f"Persistence degraded: {e}; state committed in audit log but StateStore is stale"
