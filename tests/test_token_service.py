from __future__ import annotations

import uuid
from dataclasses import dataclass

from jose import jwt

from licensehub.models.user import UserRole
from licensehub.services.token_service import TokenService


@dataclass
class Subject:
    id: uuid.UUID
    role: UserRole = UserRole.USER
    timezone: str = "Europe/Berlin"


def _service(clock) -> TokenService:
    return TokenService(
        secret_key="access-secret",
        refresh_secret_key="refresh-secret",
        algorithm="HS256",
        access_ttl=60,
        refresh_ttl=600,
        clock=clock,
    )


def test_issued_access_token_carries_session_claims(clock) -> None:
    tokens = _service(clock)
    user = Subject(id=uuid.uuid4(), role=UserRole.ADMIN)
    session_id = uuid.uuid4()

    issued = tokens.issue(user, session_id)
    claims = tokens.verify(issued.access_token)

    assert claims is not None
    assert claims.user_id == user.id
    assert claims.session_id == session_id
    assert claims.role == UserRole.ADMIN
    assert claims.timezone == "Europe/Berlin"
    assert claims.token_type == "access"


def test_timezone_override_is_embedded(clock) -> None:
    tokens = _service(clock)
    issued = tokens.issue(Subject(id=uuid.uuid4()), uuid.uuid4(), timezone_name="Asia/Kolkata")
    assert tokens.verify(issued.access_token).timezone == "Asia/Kolkata"


def test_access_token_expires_against_injected_clock(clock) -> None:
    tokens = _service(clock)
    issued = tokens.issue(Subject(id=uuid.uuid4()), uuid.uuid4())

    clock.advance(seconds=59)
    assert tokens.verify(issued.access_token) is not None
    clock.advance(seconds=2)
    assert tokens.verify(issued.access_token) is None


def test_access_and_refresh_tokens_are_not_interchangeable(clock) -> None:
    tokens = _service(clock)
    issued = tokens.issue(Subject(id=uuid.uuid4()), uuid.uuid4())

    assert tokens.verify(issued.refresh_token) is None
    assert tokens.verify_refresh(issued.access_token) is None
    assert tokens.verify_refresh(issued.refresh_token) is not None


def test_expired_refresh_token_still_decodes_without_expiry_check(clock) -> None:
    tokens = _service(clock)
    issued = tokens.issue(Subject(id=uuid.uuid4()), uuid.uuid4())
    clock.advance(seconds=601)

    assert tokens.verify_refresh(issued.refresh_token) is None
    assert tokens.verify_refresh(issued.refresh_token, check_expiry=False) is not None


def test_garbage_and_foreign_tokens_fail_closed(clock) -> None:
    tokens = _service(clock)
    forged = jwt.encode(
        {"sub": str(uuid.uuid4()), "role": "admin", "session_id": str(uuid.uuid4()), "type": "access", "exp": 9999999999},
        "someone-elses-secret",
        algorithm="HS256",
    )
    missing_claims = jwt.encode({"type": "access", "exp": 9999999999}, "access-secret", algorithm="HS256")

    assert tokens.verify("") is None
    assert tokens.verify("not.a.jwt") is None
    assert tokens.verify(forged) is None
    assert tokens.verify(missing_claims) is None


def test_every_issue_yields_distinct_tokens(clock) -> None:
    tokens = _service(clock)
    user = Subject(id=uuid.uuid4())
    session_id = uuid.uuid4()
    first = tokens.issue(user, session_id)
    second = tokens.issue(user, session_id)
    assert first.access_token != second.access_token
    assert first.refresh_token != second.refresh_token
