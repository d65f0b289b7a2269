"""
Stable Kernel Layer

Foundational components the route layer builds on:
- Identity Core (token issuing, authentication gate, user cache, revocation)
- Permission Core (role and ownership guards)
- Schema migrations (versioned units with a ledger table)

Invariants:
- Password hashes never leave IdentityService
- Any write to a user record is followed by a user cache invalidation
- A migration unit is either fully applied or not applied at all
"""

from src.kernel.models import User, UserRole

__all__ = [
    "User",
    "UserRole",
]
