"""
Typed authentication and authorization failures.

Every failure the gate or a guard can produce is an ``AuthError`` subclass
carrying its wire code and HTTP status, so route code never builds auth
error responses by hand.
"""

from enum import Enum
from typing import Any, Dict, Optional

from fastapi import status


class AuthErrorKind(str, Enum):
    """Wire codes for auth failures."""
    MISSING_CREDENTIAL = "MISSING_AUTH_TOKEN"
    REVOKED_CREDENTIAL = "REVOKED_TOKEN"
    EXPIRED = "TOKEN_EXPIRED"
    MALFORMED = "INVALID_TOKEN"
    NOT_YET_VALID = "TOKEN_NOT_ACTIVE"
    IDENTITY_NOT_FOUND = "USER_NOT_FOUND"
    IDENTITY_INACTIVE = "USER_INACTIVE"
    INSUFFICIENT_ROLE = "INSUFFICIENT_ROLE"
    ACCESS_DENIED = "ACCESS_DENIED"
    INTERNAL = "INTERNAL_AUTH_ERROR"


class AuthError(Exception):
    """Base class for all gate and guard failures."""

    kind: AuthErrorKind = AuthErrorKind.INTERNAL
    status_code: int = status.HTTP_401_UNAUTHORIZED
    default_message: str = "Authentication failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def is_server_fault(self) -> bool:
        return self.status_code >= 500

    def audit_context(self) -> Dict[str, Any]:
        """Fields recorded alongside the failure in the security log."""
        return {}


class MissingCredentialError(AuthError):
    kind = AuthErrorKind.MISSING_CREDENTIAL
    default_message = "Access token required"


class RevokedCredentialError(AuthError):
    kind = AuthErrorKind.REVOKED_CREDENTIAL
    default_message = "Token is invalid or has been revoked"


class TokenExpiredError(AuthError):
    kind = AuthErrorKind.EXPIRED
    default_message = "Token has expired"


class TokenMalformedError(AuthError):
    kind = AuthErrorKind.MALFORMED
    default_message = "Invalid token"


class TokenNotYetValidError(AuthError):
    kind = AuthErrorKind.NOT_YET_VALID
    default_message = "Token is not yet valid"


class IdentityNotFoundError(AuthError):
    kind = AuthErrorKind.IDENTITY_NOT_FOUND
    default_message = "User not found"


class IdentityInactiveError(AuthError):
    kind = AuthErrorKind.IDENTITY_INACTIVE
    default_message = "User account is inactive"


class InsufficientRoleError(AuthError):
    kind = AuthErrorKind.INSUFFICIENT_ROLE
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Insufficient role"

    def __init__(self, required: str, actual: str):
        self.required = required
        self.actual = actual
        super().__init__(f"Access denied. Role '{required}' required, current role is '{actual}'.")

    def audit_context(self) -> Dict[str, Any]:
        return {"required_role": self.required, "actual_role": self.actual}


class AccessDeniedError(AuthError):
    kind = AuthErrorKind.ACCESS_DENIED
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied. You can only access your own resources."

    def __init__(
        self,
        required_subject: Optional[str] = None,
        actual_subject: Optional[str] = None,
        required_role: Optional[str] = None,
    ):
        self.required_subject = required_subject
        self.actual_subject = actual_subject
        self.required_role = required_role
        super().__init__()

    def audit_context(self) -> Dict[str, Any]:
        return {
            "required_subject": self.required_subject,
            "actual_subject": self.actual_subject,
            "required_role": self.required_role,
        }


class InternalAuthError(AuthError):
    """Backing store or unexpected failure while authenticating (never a 401)."""

    kind = AuthErrorKind.INTERNAL
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal authentication error"
