"""
JWT access token issuing and verification.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import BaseModel

from src.kernel.identity.errors import (
    TokenExpiredError,
    TokenMalformedError,
    TokenNotYetValidError,
)
from src.kernel.models.user import UserRole


class AccessTokenPayload(BaseModel):
    """Verified access token claims."""

    sub: uuid.UUID  # User ID
    email: str
    role: UserRole
    exp: datetime
    iat: datetime
    jti: str
    nbf: Optional[datetime] = None


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: datetime
    jti: str

    @property
    def expires_in(self) -> int:
        """Seconds until expiry, measured now."""
        return max(0, int((self.expires_at - datetime.now(timezone.utc)).total_seconds()))


def token_fingerprint(token: str) -> Optional[str]:
    """
    Signature segment of a compact JWT, used as the revocation key.

    Returns None when the token does not have the three-part structure.
    """
    parts = token.split(".")
    if len(parts) != 3 or not parts[2]:
        return None
    return parts[2]


def _timestamp(value: int | float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


class TokenIssuer:
    """
    Signs and verifies time-bound bearer tokens.

    Stateless apart from its key material; one instance per process.
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        access_token_expire_minutes: int = 1440,
    ):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.access_token_expire_minutes = access_token_expire_minutes

    def issue(
        self,
        user_id: uuid.UUID,
        email: str,
        role: UserRole,
        ttl: Optional[timedelta] = None,
        not_before: Optional[datetime] = None,
    ) -> IssuedToken:
        """
        Create a signed access token.

        Args:
            user_id: Subject identifier
            email: Subject email
            role: Subject role (validated by the UserRole type)
            ttl: Lifetime, defaults to access_token_expire_minutes
            not_before: Optional activation time

        Returns:
            IssuedToken with the encoded value, expiry and token id
        """
        role = UserRole(role)
        now = datetime.now(timezone.utc)
        expire = now + (ttl if ttl is not None else timedelta(minutes=self.access_token_expire_minutes))
        jti = str(uuid.uuid4())

        payload = {
            "sub": str(user_id),
            "email": email,
            "role": role.value,
            "exp": expire,
            "iat": now,
            "jti": jti,
            "type": "access",
        }
        if not_before is not None:
            payload["nbf"] = not_before

        token = jwt.encode(payload, self.secret_key, algorithm=self.algorithm)
        return IssuedToken(token=token, expires_at=expire, jti=jti)

    def verify(self, token: str) -> AccessTokenPayload:
        """
        Verify and decode an access token.

        Raises:
            TokenExpiredError: past its exp claim
            TokenNotYetValidError: nbf claim is in the future
            TokenMalformedError: bad structure, bad signature or bad claims
        """
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"verify_nbf": False},
            )
        except ExpiredSignatureError:
            raise TokenExpiredError()
        except JWTError as exc:
            raise TokenMalformedError(f"Invalid token: {exc}")

        if payload.get("type") != "access":
            raise TokenMalformedError("Invalid token type")

        nbf = payload.get("nbf")
        if nbf is not None:
            if not isinstance(nbf, (int, float)):
                raise TokenMalformedError("Invalid nbf claim")
            if _timestamp(nbf) > datetime.now(timezone.utc):
                raise TokenNotYetValidError()

        try:
            return AccessTokenPayload(
                sub=uuid.UUID(payload["sub"]),
                email=payload["email"],
                role=UserRole(payload["role"]),
                exp=_timestamp(payload["exp"]),
                iat=_timestamp(payload["iat"]),
                jti=payload["jti"],
                nbf=_timestamp(nbf) if nbf is not None else None,
            )
        except (KeyError, TypeError, ValueError):
            raise TokenMalformedError("Token claims are incomplete or invalid")

    @staticmethod
    def unverified_expiry(token: str) -> Optional[datetime]:
        """Read the exp claim without checking the signature."""
        try:
            exp = jwt.get_unverified_claims(token).get("exp")
        except JWTError:
            return None
        if not isinstance(exp, (int, float)):
            return None
        return _timestamp(exp)
