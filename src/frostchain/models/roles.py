"""Well-known role tags.

Role tags are opaque strings: the registry accepts any tag. These are the
ones the shipped policy wires to ledger operations.
"""

from __future__ import annotations

import enum
from typing import Union


class Role(str, enum.Enum):
    """Standard supply-chain roles."""
    ADMIN = "ADMIN"
    CREATOR = "CREATOR"
    CARRIER = "CARRIER"
    RETAILER = "RETAILER"
    OBSERVER = "OBSERVER"


RoleTag = Union[Role, str]


def role_tag(role: RoleTag) -> str:
    """Normalise a Role member or raw string to its plain tag."""
    if isinstance(role, Role):
        return role.value
    return role
