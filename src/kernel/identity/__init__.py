"""
Identity Core - Authentication, identity caching and token revocation.
"""

from src.kernel.identity.audit import AuthAuditLogger
from src.kernel.identity.gate import Authentication, AuthenticationGate, CredentialStore
from src.kernel.identity.identity_service import IdentityService
from src.kernel.identity.jwt import AccessTokenPayload, IssuedToken, TokenIssuer, token_fingerprint
from src.kernel.identity.maintenance import AuthComponents, CacheMaintenance
from src.kernel.identity.password import hash_password, verify_password
from src.kernel.identity.records import Identity, UserRecord
from src.kernel.identity.revocation import RevocationRegistry
from src.kernel.identity.user_cache import UserCache

__all__ = [
    "AuthAuditLogger",
    "Authentication",
    "AuthenticationGate",
    "CredentialStore",
    "IdentityService",
    "AccessTokenPayload",
    "IssuedToken",
    "TokenIssuer",
    "token_fingerprint",
    "AuthComponents",
    "CacheMaintenance",
    "hash_password",
    "verify_password",
    "Identity",
    "UserRecord",
    "RevocationRegistry",
    "UserCache",
]
