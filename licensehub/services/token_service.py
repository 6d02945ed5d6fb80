"""
Token service — signed access & refresh tokens.

Handles:
- Minting an access/refresh pair bound to user + session + role + timezone
- Verifying tokens (fail closed: any problem → None, never an exception)

Access and refresh tokens are signed with different keys so one can
never be replayed as the other.  Expiry is checked against the injected
clock rather than the wall clock so the whole kernel agrees on "now".
"""

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from jose import JWTError, jwt
from pydantic import ValidationError

from licensehub.core.config import settings
from licensehub.models.base import utcnow
from licensehub.models.user import UserRole
from licensehub.snapshots import Claims, IssuedTokens

logger = logging.getLogger(__name__)

ACCESS = "access"
REFRESH = "refresh"


class TokenSubject(Protocol):
    id: uuid.UUID
    role: UserRole
    timezone: str


class TokenService:
    def __init__(
        self,
        *,
        secret_key: str | None = None,
        refresh_secret_key: str | None = None,
        algorithm: str | None = None,
        access_ttl: int | None = None,
        refresh_ttl: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._secret = secret_key or settings.SECRET_KEY
        self._refresh_secret = refresh_secret_key or settings.REFRESH_SECRET_KEY
        self._algorithm = algorithm or settings.JWT_ALGORITHM
        self.access_ttl = timedelta(seconds=access_ttl or settings.ACCESS_TOKEN_EXPIRE_SECONDS)
        self.refresh_ttl = timedelta(seconds=refresh_ttl or settings.REFRESH_TOKEN_EXPIRE_SECONDS)
        self._clock = clock

    # ── Minting ──────────────────────────────────────────────────────

    def _encode(self, payload: dict[str, Any], key: str) -> str:
        return jwt.encode(payload, key, algorithm=self._algorithm)

    def issue(
        self,
        user: TokenSubject,
        session_id: uuid.UUID,
        *,
        timezone_name: str | None = None,
    ) -> IssuedTokens:
        now = self._clock()
        access_exp = now + self.access_ttl
        refresh_exp = now + self.refresh_ttl
        base = {
            "sub": str(user.id),
            "role": UserRole(user.role).value,
            "session_id": str(session_id),
            "timezone": timezone_name or user.timezone,
            "iat": int(now.timestamp()),
        }
        access = self._encode(
            {**base, "type": ACCESS, "exp": int(access_exp.timestamp()), "jti": uuid.uuid4().hex},
            self._secret,
        )
        refresh = self._encode(
            {**base, "type": REFRESH, "exp": int(refresh_exp.timestamp()), "jti": uuid.uuid4().hex},
            self._refresh_secret,
        )
        return IssuedTokens(
            access_token=access,
            refresh_token=refresh,
            access_expires_at=access_exp,
            refresh_expires_at=refresh_exp,
        )

    # ── Verification ─────────────────────────────────────────────────

    def _decode(self, token: str, key: str, expected_type: str) -> Claims | None:
        if not token or not isinstance(token, str):
            return None
        try:
            payload = jwt.decode(
                token,
                key,
                algorithms=[self._algorithm],
                options={"verify_exp": False},
            )
        except JWTError:
            return None

        if payload.get("type") != expected_type:
            return None
        try:
            return Claims(
                user_id=payload["sub"],
                role=payload["role"],
                session_id=payload["session_id"],
                timezone=payload.get("timezone") or "UTC",
                token_type=expected_type,
                expires_at=datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc),
            )
        except (KeyError, TypeError, ValueError, ValidationError):
            logger.debug("Rejected token with malformed payload")
            return None

    def verify(self, token: str) -> Claims | None:
        """Verify an access token.  Returns None for anything invalid or expired."""
        claims = self._decode(token, self._secret, ACCESS)
        if claims is None or self._clock() >= claims.expires_at:
            return None
        return claims

    def verify_refresh(self, token: str, *, check_expiry: bool = True) -> Claims | None:
        """
        Verify a refresh token's signature and shape.

        The refresh flow passes ``check_expiry=False`` so an elapsed token
        still resolves to its session, which is then terminated eagerly.
        """
        claims = self._decode(token, self._refresh_secret, REFRESH)
        if claims is None:
            return None
        if check_expiry and self._clock() >= claims.expires_at:
            return None
        return claims
