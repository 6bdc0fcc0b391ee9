"""Role registry: who may perform which ledger action.

The registry maps an opaque role tag to the set of accounts holding it.
An account may hold any number of roles at once. Memberships never
expire; they change only through explicit grant/revoke/renounce calls.

Invariants enforced:
- Only ADMIN holders can grant or revoke membership in any role,
  ADMIN itself included.
- Any account may renounce its own membership; nobody may renounce on
  another account's behalf.
- grant and revoke are idempotent: granting a held role or revoking an
  unheld one succeeds with no change.
- grant_many applies every role or none.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from frostchain.errors import InvalidArgument, Unauthorized
from frostchain.models.batch import canonical_account
from frostchain.models.roles import Role, RoleTag, role_tag

logger = logging.getLogger(__name__)


class RoleRegistry:
    """Set-membership registry for ledger roles.

    Thread-safety: this class is not thread-safe. The caller must
    synchronise access if used from multiple threads.
    """

    def __init__(self, admin_role: RoleTag = Role.ADMIN) -> None:
        self._admin_role = role_tag(admin_role)
        self._members: dict[str, set[str]] = {}

    @classmethod
    def seeded(
        cls,
        initializer: str,
        admin_role: RoleTag = Role.ADMIN,
        creator_role: RoleTag = Role.CREATOR,
    ) -> RoleRegistry:
        """Create a registry whose initializer holds ADMIN and CREATOR."""
        account = canonical_account(initializer)
        if account is None:
            raise InvalidArgument("Initializer cannot be the null account")
        registry = cls(admin_role)
        registry._add(registry._admin_role, account)
        registry._add(role_tag(creator_role), account)
        return registry

    @classmethod
    def from_memberships(
        cls,
        memberships: dict[str, Iterable[str]],
        admin_role: RoleTag = Role.ADMIN,
    ) -> RoleRegistry:
        """Rebuild a registry from persisted role → accounts data."""
        registry = cls(admin_role)
        for tag, accounts in memberships.items():
            for account in accounts:
                canonical = canonical_account(account)
                if canonical is not None:
                    registry._add(tag, canonical)
        return registry

    @property
    def admin_role(self) -> str:
        return self._admin_role

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has(self, role: RoleTag, account: Optional[str]) -> bool:
        """Return True if account holds role. Never fails."""
        canonical = canonical_account(account)
        if canonical is None:
            return False
        return canonical in self._members.get(role_tag(role), set())

    def has_any(self, account: Optional[str], roles: Iterable[RoleTag]) -> bool:
        """Return True if account holds at least one of roles."""
        return any(self.has(r, account) for r in roles)

    def members(self, role: RoleTag) -> frozenset[str]:
        return frozenset(self._members.get(role_tag(role), set()))

    def roles_of(self, account: Optional[str]) -> frozenset[str]:
        canonical = canonical_account(account)
        if canonical is None:
            return frozenset()
        return frozenset(
            tag for tag, accounts in self._members.items() if canonical in accounts
        )

    def all_roles(self) -> dict[str, frozenset[str]]:
        """Return every non-empty role with its members."""
        return {
            tag: frozenset(accounts)
            for tag, accounts in self._members.items()
            if accounts
        }

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def grant(self, caller: str, role: RoleTag, account: Optional[str]) -> None:
        """Grant role to account. Requires caller to hold ADMIN.

        The null account can never hold a role, so granting to it is a
        no-op rather than an error.
        """
        self._require_admin(caller)
        target = canonical_account(account)
        if target is None:
            logger.debug("Ignoring grant of %s to the null account", role_tag(role))
            return
        self._add(role_tag(role), target)
        logger.info("Role %s granted to %s by %s", role_tag(role), target, caller)

    def revoke(self, caller: str, role: RoleTag, account: Optional[str]) -> None:
        """Revoke role from account. Requires caller to hold ADMIN."""
        self._require_admin(caller)
        target = canonical_account(account)
        if target is None:
            return
        self._discard(role_tag(role), target)
        logger.info("Role %s revoked from %s by %s", role_tag(role), target, caller)

    def grant_many(
        self, caller: str, account: Optional[str], roles: Iterable[RoleTag],
    ) -> None:
        """Grant every role in roles to account, atomically."""
        self._require_admin(caller)
        target = canonical_account(account)
        if target is None:
            raise InvalidArgument("Cannot grant roles to the null account")
        tags = [role_tag(r) for r in roles]
        for tag in tags:
            self._add(tag, target)
        logger.info("Roles %s granted to %s by %s", tags, target, caller)

    def renounce(self, caller: str, role: RoleTag, account: str) -> None:
        """Drop caller's own membership in role."""
        self_id = canonical_account(caller)
        if self_id is None or self_id != canonical_account(account):
            raise Unauthorized("Accounts can only renounce roles for themselves")
        self._discard(role_tag(role), self_id)
        logger.info("Role %s renounced by %s", role_tag(role), self_id)

    def restore(self, memberships: dict[str, frozenset[str]]) -> None:
        """Replace every membership with a snapshot taken by all_roles()."""
        self._members = {tag: set(accounts) for tag, accounts in memberships.items()}

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_admin(self, caller: str) -> None:
        if not self.has(self._admin_role, caller):
            raise Unauthorized(
                f"Account {caller} is missing role {self._admin_role}"
            )

    def _add(self, tag: str, account: str) -> None:
        self._members.setdefault(tag, set()).add(account)

    def _discard(self, tag: str, account: str) -> None:
        accounts = self._members.get(tag)
        if accounts is not None:
            accounts.discard(account)
