"""
Permission Core - role and ownership guards.
"""

from src.kernel.permissions.guards import (
    Guard,
    enforce,
    has_role,
    is_self,
    require_role,
    require_self_or_role,
)

__all__ = [
    "Guard",
    "enforce",
    "has_role",
    "is_self",
    "require_role",
    "require_self_or_role",
]
