"""Policy layer: configuration loading and resolution."""

from frostchain.policy.resolver import PolicyResolver, RolePolicy

__all__ = ["PolicyResolver", "RolePolicy"]
