"""
License controller — the caller's own license, trial, license requests
and leaving a roster.

Every route requires a valid session.  Subscriber-side only; request
processing lives under /api/system.
"""

from fastapi import APIRouter, Depends, status

from licensehub.kernel import Kernel
from licensehub.rbac.dependencies import get_current_principal, get_kernel
from licensehub.schemas import (
    LicenseOut,
    LicenseRequestCreate,
    LicenseRequestOut,
    MemberOut,
    StartTrialRequest,
)
from licensehub.snapshots import Principal

router = APIRouter(prefix="/api/license", tags=["License"])


@router.get("", response_model=LicenseOut | None)
async def license_status(principal: Principal = Depends(get_current_principal), kernel: Kernel = Depends(get_kernel)):
    """Current license of the caller, or null when they never had one."""
    lic = await kernel.ledger.check_status(principal.user_id)
    if lic is None:
        return None
    return LicenseOut.from_snapshot(lic, kernel.ledger.now())


@router.post("/trial", response_model=LicenseOut, status_code=status.HTTP_201_CREATED)
async def start_trial(
    body: StartTrialRequest,
    principal: Principal = Depends(get_current_principal),
    kernel: Kernel = Depends(get_kernel),
):
    lic = await kernel.ledger.start_trial(principal.user_id, body.seats)
    return LicenseOut.from_snapshot(lic, kernel.ledger.now())


# ── Requests ─────────────────────────────────────────────────────────


@router.post("/requests", response_model=LicenseRequestOut, status_code=status.HTTP_201_CREATED)
async def submit_request(
    body: LicenseRequestCreate,
    principal: Principal = Depends(get_current_principal),
    kernel: Kernel = Depends(get_kernel),
):
    """Ask the operator for a new license, a renewal, or more seats."""
    request = await kernel.license_requests.submit(
        principal.user_id, body.requested_members, body.duration, body.request_type
    )
    return LicenseRequestOut.from_snapshot(request)


@router.get("/requests/pending", response_model=LicenseRequestOut | None)
async def pending_request(principal: Principal = Depends(get_current_principal), kernel: Kernel = Depends(get_kernel)):
    request = await kernel.license_requests.get_pending(principal.user_id)
    return LicenseRequestOut.from_snapshot(request) if request else None


@router.delete("/requests/pending", response_model=LicenseRequestOut)
async def cancel_pending_request(
    principal: Principal = Depends(get_current_principal),
    kernel: Kernel = Depends(get_kernel),
):
    return LicenseRequestOut.from_snapshot(await kernel.license_requests.cancel_pending(principal.user_id))


# ── Membership ───────────────────────────────────────────────────────


@router.post("/leave", response_model=MemberOut)
async def leave_roster(principal: Principal = Depends(get_current_principal), kernel: Kernel = Depends(get_kernel)):
    """Leave the subscription the caller is a member of."""
    return MemberOut.from_snapshot(await kernel.roster.leave(principal.user_id))
