"""
Manage controller — a subscriber's roster and member permissions.

The caller always acts on their OWN subscription: the subscriber id is
the authenticated user id, never a path parameter.
Controllers are THIN: they delegate to the kernel and return schemas.
"""

import uuid

from fastapi import APIRouter, Depends, status

from licensehub.kernel import Kernel
from licensehub.rbac.context_resolver import resolve_subscription_scope
from licensehub.rbac.dependencies import get_current_principal, get_kernel
from licensehub.schemas import (
    AddMemberRequest,
    BatchPermissions,
    MemberOut,
    MemberPermissionsOut,
    PermissionChange,
    ScopeOut,
)
from licensehub.snapshots import Principal

router = APIRouter(prefix="/api/manage", tags=["Manage"])


# ── Members ──────────────────────────────────────────────────────────
@router.post("/members", response_model=MemberOut, status_code=status.HTTP_201_CREATED)
async def add_member(
    body: AddMemberRequest,
    principal: Principal = Depends(get_current_principal),
    kernel: Kernel = Depends(get_kernel),
):
    """Add an email to the roster; consumes one seat."""
    return MemberOut.from_snapshot(await kernel.roster.add_member(principal.user_id, body.email))


@router.get("/members", response_model=list[MemberOut])
async def list_members(principal: Principal = Depends(get_current_principal), kernel: Kernel = Depends(get_kernel)):
    return [MemberOut.from_snapshot(m) for m in await kernel.roster.get_members(principal.user_id)]


@router.delete("/members/{member_id}", response_model=MemberOut)
async def remove_member(
    member_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    kernel: Kernel = Depends(get_kernel),
):
    """Remove a member by user id (or roster record id for pending invites)."""
    return MemberOut.from_snapshot(await kernel.roster.remove_member(principal.user_id, member_id))


# ── Permissions ──────────────────────────────────────────────────────
@router.post("/permissions/grant", response_model=MemberPermissionsOut)
async def grant_permission(
    body: PermissionChange,
    principal: Principal = Depends(get_current_principal),
    kernel: Kernel = Depends(get_kernel),
):
    codes = await kernel.permissions.grant(principal.user_id, body.member_id, body.permission)
    return MemberPermissionsOut(member_id=body.member_id, permissions=codes)


@router.post("/permissions/revoke", response_model=MemberPermissionsOut)
async def revoke_permission(
    body: PermissionChange,
    principal: Principal = Depends(get_current_principal),
    kernel: Kernel = Depends(get_kernel),
):
    codes = await kernel.permissions.revoke(principal.user_id, body.member_id, body.permission)
    return MemberPermissionsOut(member_id=body.member_id, permissions=codes)


@router.put("/permissions", response_model=MemberPermissionsOut)
async def set_permissions(
    body: BatchPermissions,
    principal: Principal = Depends(get_current_principal),
    kernel: Kernel = Depends(get_kernel),
):
    """Replace a member's whole permission set (all-or-nothing)."""
    codes = await kernel.permissions.batch_set(principal.user_id, body.member_id, body.permissions)
    return MemberPermissionsOut(member_id=body.member_id, permissions=codes)


@router.get("/permissions", response_model=list[MemberPermissionsOut])
async def list_permissions(principal: Principal = Depends(get_current_principal), kernel: Kernel = Depends(get_kernel)):
    rows = await kernel.permissions.get_for_all_members(principal.user_id)
    return [MemberPermissionsOut(member_id=r.member_id, email=r.email, permissions=r.permissions) for r in rows]


@router.get("/permissions/{member_id}", response_model=MemberPermissionsOut)
async def member_permissions(
    member_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    kernel: Kernel = Depends(get_kernel),
):
    codes = await kernel.permissions.get_for_member(principal.user_id, member_id)
    return MemberPermissionsOut(member_id=member_id, permissions=codes)


# ── Scope ────────────────────────────────────────────────────────────
@router.get("/scope", response_model=ScopeOut)
async def my_scope(principal: Principal = Depends(get_current_principal), kernel: Kernel = Depends(get_kernel)):
    """Which subscription the caller acts for, and with what codes."""
    scope = await resolve_subscription_scope(
        principal.user_id,
        ledger=kernel.ledger,
        roster=kernel.roster,
        permissions=kernel.permissions,
    )
    return ScopeOut(subscriber_id=scope.subscriber_id, is_owner=scope.is_owner, permissions=sorted(scope.permissions))
