"""
Authentication audit trail.

Every gate decision is written to the security logger. Calls are plain
logging calls: they never raise into the caller and never await.
"""

import logging
import uuid
from typing import Any, Optional

from src.logging_config import SECURITY_LOGGER, get_logger

TOKEN_PREFIX_LENGTH = 20


def redact_token(token: Optional[str]) -> Optional[str]:
    """Keep only a short prefix of a token for incident review."""
    if not token:
        return None
    return token[:TOKEN_PREFIX_LENGTH] + "..."


class AuthAuditLogger:
    """Records authentication and security events."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or get_logger(SECURITY_LOGGER)

    def record_auth_event(
        self,
        event: str,
        *,
        subject_id: Optional[uuid.UUID] = None,
        outcome: str = "success",
        duration_ms: Optional[float] = None,
        client_ip: Optional[str] = None,
        **details: Any,
    ) -> None:
        level = logging.WARNING if ("failed" in event or "blocked" in event) else logging.INFO
        self.logger.log(
            level,
            "Auth event: %s",
            event,
            extra={
                "event_type": event,
                "outcome": outcome,
                "user_id": str(subject_id) if subject_id else None,
                "duration_ms": round(duration_ms, 2) if duration_ms is not None else None,
                "client_ip": client_ip,
                **details,
            },
        )

    def record_security_event(
        self,
        event: str,
        *,
        reason: str,
        client_ip: Optional[str] = None,
        token: Optional[str] = None,
        subject_id: Optional[uuid.UUID] = None,
        **details: Any,
    ) -> None:
        self.logger.warning(
            "Security event: %s",
            event,
            extra={
                "event_type": event,
                "reason": reason,
                "client_ip": client_ip,
                "token_prefix": redact_token(token),
                "user_id": str(subject_id) if subject_id else None,
                **details,
            },
        )
