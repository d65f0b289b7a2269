"""
Request authentication gate.

Steps run strictly in this order and stop at the first failure:

1. bearer header present
2. fingerprint not revoked
3. signature and time claims verify
4. subject resolves (cache, then credential store)
5. subject is active
"""

import time
import uuid
from dataclasses import dataclass
from typing import Optional, Protocol

from src.kernel.identity.audit import AuthAuditLogger
from src.kernel.identity.errors import (
    AuthError,
    IdentityInactiveError,
    IdentityNotFoundError,
    InternalAuthError,
    MissingCredentialError,
    RevokedCredentialError,
    TokenExpiredError,
)
from src.kernel.identity.jwt import AccessTokenPayload, TokenIssuer
from src.kernel.identity.records import Identity, UserRecord
from src.kernel.identity.revocation import RevocationRegistry
from src.kernel.identity.user_cache import UserCache
from src.logging_config import get_logger

logger = get_logger(__name__)


class CredentialStore(Protocol):
    async def find_identity(self, user_id: uuid.UUID) -> Optional[UserRecord]: ...


@dataclass(frozen=True)
class Authentication:
    """Successful gate outcome."""

    identity: Identity
    token: str
    claims: AccessTokenPayload


def extract_bearer_token(authorization: Optional[str]) -> str:
    """Pull the token out of an ``Authorization: Bearer <token>`` value."""
    if not authorization:
        raise MissingCredentialError()
    scheme, _, token = authorization.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise MissingCredentialError()
    return token


class AuthenticationGate:
    """
    Validates a presented bearer token and resolves its identity.

    Shared by all requests in the process; the cache and registry it holds
    are the process-wide instances.
    """

    def __init__(
        self,
        issuer: TokenIssuer,
        cache: UserCache,
        revocations: RevocationRegistry,
        audit: Optional[AuthAuditLogger] = None,
    ):
        self.issuer = issuer
        self.cache = cache
        self.revocations = revocations
        self.audit = audit or AuthAuditLogger()

    async def authenticate(
        self,
        authorization: Optional[str],
        store: CredentialStore,
        *,
        client_ip: Optional[str] = None,
    ) -> Authentication:
        """
        Run the gate for one request.

        Raises:
            AuthError: the matching subclass for the first failed step
        """
        start = time.perf_counter()

        try:
            token = extract_bearer_token(authorization)
        except MissingCredentialError as exc:
            self.audit.record_security_event(
                "missing_auth_token", reason=exc.kind.value, client_ip=client_ip
            )
            raise

        if self.revocations.is_revoked(token):
            self.audit.record_security_event(
                "revoked_token_used",
                reason=RevokedCredentialError.kind.value,
                client_ip=client_ip,
                token=token,
            )
            raise RevokedCredentialError()

        claims = self._verify(token, client_ip)
        user = await self._resolve(claims.sub, store)

        if user is None:
            self.audit.record_security_event(
                "user_not_found",
                reason=IdentityNotFoundError.kind.value,
                client_ip=client_ip,
                token=token,
                subject_id=claims.sub,
            )
            raise IdentityNotFoundError()

        if not user.is_active:
            # A snapshot cached while the user was active must not outlive this
            self.cache.invalidate(user.id)
            self.audit.record_security_event(
                "inactive_user_access",
                reason=IdentityInactiveError.kind.value,
                client_ip=client_ip,
                token=token,
                subject_id=user.id,
            )
            raise IdentityInactiveError()

        self.audit.record_auth_event(
            "auth_success",
            subject_id=user.id,
            duration_ms=(time.perf_counter() - start) * 1000,
            client_ip=client_ip,
        )
        return Authentication(identity=user.to_identity(), token=token, claims=claims)

    def _verify(self, token: str, client_ip: Optional[str]) -> AccessTokenPayload:
        try:
            return self.issuer.verify(token)
        except TokenExpiredError as exc:
            self.audit.record_auth_event(
                "token_expired", outcome=exc.kind.value, client_ip=client_ip
            )
            raise
        except AuthError as exc:
            self.audit.record_security_event(
                "invalid_token", reason=exc.kind.value, client_ip=client_ip, token=token, detail=exc.message
            )
            raise
        except Exception as exc:
            logger.exception("Unexpected error while verifying token")
            raise InternalAuthError() from exc

    async def _resolve(self, user_id: uuid.UUID, store: CredentialStore) -> Optional[UserRecord]:
        cached = self.cache.get(user_id)
        if cached is not None:
            return cached

        try:
            user = await store.find_identity(user_id)
        except Exception as exc:
            logger.exception("Credential store lookup failed", extra={"user_id": str(user_id)})
            raise InternalAuthError() from exc

        if user is not None:
            self.cache.put(user.id, user)
        return user
