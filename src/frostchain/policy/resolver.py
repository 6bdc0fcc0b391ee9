"""Policy resolver: loads ledger_policy.json and exposes every runtime
decision (safety threshold, which roles gate which operations, which
roles drive handover status) as a typed method call.

No magic. No defaults. If a value is missing from the config, it fails loud.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class RolePolicy:
    """Resolved role wiring."""
    admin: str
    creator: str
    observer: str
    carrier_class: frozenset[str]
    retailer_class: frozenset[str]
    supply_chain: frozenset[str]


class PolicyResolver:
    """Loads and resolves ledger policy.

    Usage:
        resolver = PolicyResolver.from_config_dir(Path("config"))
        threshold = resolver.safety_threshold()
        roles = resolver.role_policy()
    """

    def __init__(self, policy: dict[str, Any]) -> None:
        self._policy = policy
        self._validate()

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> PolicyResolver:
        """Load from the canonical config directory."""
        return cls(_load_json(config_dir / "ledger_policy.json"))

    def _validate(self) -> None:
        if "version" not in self._policy:
            raise ValueError("ledger_policy.json missing version")
        for section in ("safety", "roles"):
            if section not in self._policy:
                raise ValueError(f"ledger_policy.json missing section: {section}")
        threshold = self._policy["safety"].get("threshold")
        if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
            raise ValueError(f"safety.threshold must be numeric, got {threshold!r}")
        roles = self._policy["roles"]
        for key in ("admin", "creator", "observer",
                    "carrier_class", "retailer_class", "supply_chain"):
            if key not in roles:
                raise ValueError(f"ledger_policy.json missing roles.{key}")

    # ------------------------------------------------------------------
    # Safety
    # ------------------------------------------------------------------

    def safety_threshold(self) -> float:
        """Return the breach threshold. A reading strictly above it breaches."""
        return self._policy["safety"]["threshold"]

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def role_policy(self) -> RolePolicy:
        """Return the full role wiring."""
        r = self._policy["roles"]
        return RolePolicy(
            admin=r["admin"],
            creator=r["creator"],
            observer=r["observer"],
            carrier_class=frozenset(r["carrier_class"]),
            retailer_class=frozenset(r["retailer_class"]),
            supply_chain=frozenset(r["supply_chain"]),
        )


def _load_json(path: Path) -> dict[str, Any]:
    """Load a JSON file or raise with clear path."""
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)
