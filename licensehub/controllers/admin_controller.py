"""
Admin controller — user management, session management, statistics.

Every route uses `Depends(require_admin)`.
Controllers are THIN: they delegate to the kernel and return schemas.
"""

import uuid

from fastapi import APIRouter, Depends, Query

from licensehub.kernel import Kernel
from licensehub.rbac.dependencies import get_kernel, require_admin
from licensehub.schemas import (
    AdminDeleteRequest,
    MessageResponse,
    PageOut,
    RoleChangeRequest,
    SessionOut,
    UserOut,
)
from licensehub.snapshots import Principal

router = APIRouter(prefix="/api/admin", tags=["Admin"])


# ── Users ────────────────────────────────────────────────────────────
@router.get("/users", response_model=PageOut)
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: str | None = Query(None),
    _: Principal = Depends(require_admin),
    kernel: Kernel = Depends(get_kernel),
):
    result = await kernel.admin.list_users(page, limit, search)
    return PageOut(
        items=[UserOut.from_identity(u) for u in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
    )


@router.post("/users/{user_id}/enable", response_model=UserOut)
async def enable_user(user_id: uuid.UUID, _: Principal = Depends(require_admin), kernel: Kernel = Depends(get_kernel)):
    return UserOut.from_identity(await kernel.admin.set_enabled(user_id, True))


@router.post("/users/{user_id}/disable", response_model=UserOut)
async def disable_user(user_id: uuid.UUID, _: Principal = Depends(require_admin), kernel: Kernel = Depends(get_kernel)):
    """Disable the account and sign it out everywhere."""
    return UserOut.from_identity(await kernel.admin.set_enabled(user_id, False))


@router.patch("/users/{user_id}/role", response_model=UserOut)
async def change_role(
    user_id: uuid.UUID,
    body: RoleChangeRequest,
    _: Principal = Depends(require_admin),
    kernel: Kernel = Depends(get_kernel),
):
    return UserOut.from_identity(await kernel.admin.change_role(user_id, body.role))


@router.post("/users/{user_id}/delete", response_model=UserOut)
async def delete_user(
    user_id: uuid.UUID,
    body: AdminDeleteRequest,
    _: Principal = Depends(require_admin),
    kernel: Kernel = Depends(get_kernel),
):
    """Soft-delete: the row is kept, its email is released."""
    return UserOut.from_identity(await kernel.admin.delete_user(user_id, body.reason))


@router.get("/users/{user_id}/login-logs", response_model=PageOut)
async def login_logs(
    user_id: uuid.UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    _: Principal = Depends(require_admin),
    kernel: Kernel = Depends(get_kernel),
):
    result = await kernel.audit.list_for_user(user_id, page, limit)
    return PageOut(
        items=[e.model_dump(mode="json") for e in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
    )


# ── Sessions ─────────────────────────────────────────────────────────
@router.get("/sessions", response_model=PageOut)
async def list_sessions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    _: Principal = Depends(require_admin),
    kernel: Kernel = Depends(get_kernel),
):
    result = await kernel.admin.list_sessions(page, limit)
    return PageOut(
        items=[SessionOut.from_snapshot(s) for s in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
    )


@router.delete("/sessions/{session_id}", response_model=SessionOut)
async def terminate_session(
    session_id: uuid.UUID,
    _: Principal = Depends(require_admin),
    kernel: Kernel = Depends(get_kernel),
):
    return SessionOut.from_snapshot(await kernel.admin.terminate_session(session_id))


@router.delete("/users/{user_id}/sessions", response_model=MessageResponse)
async def terminate_user_sessions(
    user_id: uuid.UUID,
    _: Principal = Depends(require_admin),
    kernel: Kernel = Depends(get_kernel),
):
    count = await kernel.admin.terminate_user_sessions(user_id)
    return MessageResponse(detail=f"{count} session(s) terminated")


# ── Stats ────────────────────────────────────────────────────────────
@router.get("/stats")
async def stats(_: Principal = Depends(require_admin), kernel: Kernel = Depends(get_kernel)):
    return await kernel.admin.stats()
