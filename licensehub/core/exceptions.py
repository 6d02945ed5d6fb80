"""
Kernel error taxonomy.

Every business-rule violation the kernel can report is a subclass of
`KernelError` with a stable `code`.  Services raise these; the HTTP
layer maps them to status codes in one place
(`licensehub.controllers.errors`).  Nothing in here knows about HTTP.
"""

from typing import Any


class KernelError(Exception):
    """Base class; carries a machine-readable code and a safe message."""

    code: str = "kernel_error"
    default_message: str = "Request could not be completed"

    def __init__(self, message: str | None = None, **details: Any) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


# ── Authentication ───────────────────────────────────────────────────
class InvalidCredentials(KernelError):
    code = "invalid_credentials"
    # Deliberately generic: never reveal whether email or password was wrong.
    default_message = "Invalid email or password"


class AccountDisabled(KernelError):
    code = "account_disabled"
    default_message = "Account is disabled"


class InvalidPlatform(KernelError):
    code = "invalid_platform"

    def __init__(self, platform: object) -> None:
        super().__init__(f"Invalid platform: {platform}", platform=str(platform))
        self.platform = platform


class SessionNotFound(KernelError):
    code = "session_not_found"
    default_message = "Session not found"


class SessionExpired(KernelError):
    code = "session_expired"
    default_message = "Session expired or revoked, please log in again"


class TokenInvalid(KernelError):
    code = "token_invalid"
    default_message = "Invalid or expired token"


class EmailAlreadyRegistered(KernelError):
    code = "email_already_registered"
    default_message = "A user with this email already exists"


class InvalidResetCode(KernelError):
    code = "invalid_reset_code"
    default_message = "Verification code is invalid or expired"


class TooManyRequests(KernelError):
    code = "too_many_requests"
    default_message = "Please wait before trying again"


# ── Users / administration ───────────────────────────────────────────
class UserNotFound(KernelError):
    code = "user_not_found"
    default_message = "User not found"


class ProtectedAccount(KernelError):
    code = "protected_account"
    default_message = "Superadministrator accounts cannot be modified"


# ── Licensing ────────────────────────────────────────────────────────
class LicenseExpired(KernelError):
    code = "license_expired"
    default_message = "License is invalid or expired, please renew"


class LicenseAlreadyActive(KernelError):
    code = "license_already_active"
    default_message = "User already holds a valid license"


class SeatLimitReached(KernelError):
    code = "seat_limit_reached"
    default_message = "Member limit reached"


class PendingRequestExists(KernelError):
    code = "pending_request_exists"
    default_message = "Cancel the pending license request before submitting a new one"


class NoPendingRequest(KernelError):
    code = "no_pending_request"
    default_message = "There is no pending license request"


class RequestNotFound(KernelError):
    code = "request_not_found"
    default_message = "License request not found"


class RequestAlreadyProcessed(KernelError):
    code = "request_already_processed"
    default_message = "License request has already been processed"


# ── Roster / permissions ─────────────────────────────────────────────
class MemberNotFound(KernelError):
    code = "member_not_found"
    default_message = "Member does not exist or is not active"


class NotInRoster(KernelError):
    code = "not_in_roster"
    default_message = "Member is not in any roster"


class AlreadyInOtherRoster(KernelError):
    code = "already_in_other_roster"
    default_message = "User already belongs to an active roster"


class UnknownPermission(KernelError):
    code = "unknown_permission"

    def __init__(self, key: object) -> None:
        super().__init__(f"Unknown permission: {key}", permission=str(key))
        self.key = key


# ── Generic ──────────────────────────────────────────────────────────
class ValidationFailed(KernelError):
    code = "validation_failed"
    default_message = "Invalid input"


class StorageError(KernelError):
    """Wraps datastore / cache connectivity failures.  Never retried here."""

    code = "storage_error"
    default_message = "Storage backend unavailable"
