"""
Password hashing, token hashing & collaborator interfaces.

- Passwords are hashed with bcrypt directly (passlib is unmaintained
  and broken with bcrypt>=4.1).
- Refresh tokens and reset codes are stored as SHA-256 hashes, never
  in clear.
- `PasswordHasher`, `Notifier` and `IdentityProvider` are the seams the
  kernel depends on; concrete implementations are injected at wiring
  time (see `licensehub.kernel`).
"""

import hashlib
import hmac
import secrets
from dataclasses import dataclass
from typing import Any, Protocol

import bcrypt

from licensehub.core.config import settings

# ── Collaborator interfaces ─────────────────────────────────────────


class PasswordHasher(Protocol):
    def hash(self, plain: str) -> str: ...

    def verify(self, plain: str, hashed: str) -> bool: ...


class Notifier(Protocol):
    async def send(self, recipient: str, template_key: str, params: dict[str, Any]) -> None: ...


@dataclass(frozen=True)
class FederatedIdentity:
    """Verified identity returned by an external provider."""

    email: str
    display_name: str
    external_id: str


class IdentityProvider(Protocol):
    async def exchange(self, grant: str) -> FederatedIdentity: ...


# ── Password hashing ────────────────────────────────────────────────


class BcryptPasswordHasher:
    def __init__(self, rounds: int | None = None) -> None:
        self.rounds = rounds or settings.BCRYPT_ROUNDS

    def hash(self, plain: str) -> str:
        return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(self.rounds)).decode("utf-8")

    def verify(self, plain: str, hashed: str) -> bool:
        try:
            return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            # malformed stored hash
            return False


# ── Token hashing ───────────────────────────────────────────────────


def hash_token(token: str) -> str:
    """SHA-256 hash, suitable for high-entropy tokens like JWTs."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def tokens_match(token: str, stored_hash: str) -> bool:
    return hmac.compare_digest(hash_token(token), stored_hash)


def generate_reset_code() -> str:
    """Six-digit numeric verification code."""
    return f"{secrets.randbelow(1_000_000):06d}"
