"""
Auth controller — registration, login, refresh, logout, sessions,
password reset and the caller's own account.

Register / login / refresh / password-reset routes are PUBLIC.
Everything else requires a valid session.  The client platform is read
from the `X-Platform` header.
"""

from fastapi import APIRouter, Depends, Header, Request, status

from licensehub.kernel import Kernel
from licensehub.models.session import Platform
from licensehub.rbac.dependencies import get_current_principal, get_kernel
from licensehub.schemas import (
    DeactivateRequest,
    FederatedLoginRequest,
    LoginRequest,
    MessageResponse,
    PasswordResetConfirm,
    PasswordResetRequest,
    PlatformSessionsOut,
    RefreshTokenRequest,
    RegisterRequest,
    SessionOut,
    TokenResponse,
    UpdateProfileRequest,
    UserOut,
)
from licensehub.snapshots import Principal

router = APIRouter(prefix="/api/auth", tags=["Auth"])


def get_platform(x_platform: str | None = Header(default=None, alias="X-Platform")) -> Platform:
    return Platform.parse(x_platform)


def client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


@router.post("/register", response_model=UserOut, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, kernel: Kernel = Depends(get_kernel)):
    user = await kernel.credentials.register(body.email, body.password, body.full_name, body.timezone)
    return UserOut.from_identity(user)


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    request: Request,
    platform: Platform = Depends(get_platform),
    kernel: Kernel = Depends(get_kernel),
):
    """Authenticate with email + password → receive a token pair for this platform."""
    result = await kernel.auth.login(
        body.email,
        body.password,
        platform,
        device_info=body.device_info or request.headers.get("user-agent"),
        ip=client_ip(request),
        timezone=body.timezone,
    )
    return TokenResponse.from_result(result)


@router.post("/login/federated", response_model=TokenResponse)
async def login_federated(
    body: FederatedLoginRequest,
    request: Request,
    platform: Platform = Depends(get_platform),
    kernel: Kernel = Depends(get_kernel),
):
    result = await kernel.auth.login_federated(
        body.grant,
        platform,
        device_info=body.device_info or request.headers.get("user-agent"),
        ip=client_ip(request),
        timezone=body.timezone,
    )
    return TokenResponse.from_result(result)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(body: RefreshTokenRequest, request: Request, kernel: Kernel = Depends(get_kernel)):
    """Exchange a valid refresh token for a new access + refresh pair."""
    result = await kernel.auth.refresh(body.refresh_token, ip=client_ip(request))
    return TokenResponse.from_result(result)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    platform: Platform = Depends(get_platform),
    principal: Principal = Depends(get_current_principal),
    kernel: Kernel = Depends(get_kernel),
):
    """Sign out of the declared platform; other platforms stay signed in."""
    await kernel.auth.logout(principal, platform)
    return MessageResponse(detail="Logged out successfully")


@router.get("/sessions", response_model=list[PlatformSessionsOut])
async def list_sessions(
    principal: Principal = Depends(get_current_principal),
    kernel: Kernel = Depends(get_kernel),
):
    grouped = await kernel.auth.list_sessions(principal)
    return [
        PlatformSessionsOut(
            platform=g.platform.value,
            sessions=[SessionOut.from_snapshot(s, principal.session_id) for s in g.sessions],
        )
        for g in grouped
    ]


# ── Password reset ───────────────────────────────────────────────────


@router.post("/password/forgot", response_model=MessageResponse)
async def forgot_password(body: PasswordResetRequest, kernel: Kernel = Depends(get_kernel)):
    await kernel.auth.request_password_reset(body.email)
    return MessageResponse(detail="If the address is registered, a verification code has been sent")


@router.post("/password/reset", response_model=MessageResponse)
async def reset_password(body: PasswordResetConfirm, kernel: Kernel = Depends(get_kernel)):
    await kernel.auth.reset_password(body.email, body.code, body.new_password)
    return MessageResponse(detail="Password reset; all sessions have been signed out")


# ── Own account ──────────────────────────────────────────────────────


@router.get("/me", response_model=UserOut)
async def me(principal: Principal = Depends(get_current_principal), kernel: Kernel = Depends(get_kernel)):
    return UserOut.from_identity(await kernel.credentials.get_identity(principal.user_id))


@router.patch("/me", response_model=UserOut)
async def update_me(
    body: UpdateProfileRequest,
    principal: Principal = Depends(get_current_principal),
    kernel: Kernel = Depends(get_kernel),
):
    user = await kernel.credentials.update_profile(
        principal.user_id, full_name=body.full_name, timezone=body.timezone
    )
    return UserOut.from_identity(user)


@router.post("/deactivate", response_model=MessageResponse)
async def deactivate(
    body: DeactivateRequest,
    principal: Principal = Depends(get_current_principal),
    kernel: Kernel = Depends(get_kernel),
):
    await kernel.auth.deactivate_account(principal.user_id, body.reason)
    return MessageResponse(detail="Account deactivated")
