"""
System controller — superadministrator license operations.

Every route requires `require_superadmin`.
"""

import uuid

from fastapi import APIRouter, Depends, Query

from licensehub.kernel import Kernel
from licensehub.rbac.dependencies import get_kernel, require_superadmin
from licensehub.schemas import LicenseOut, LicenseRequestOut, PageOut, ProcessRequestBody
from licensehub.snapshots import Principal

router = APIRouter(prefix="/api/system", tags=["System"])


@router.get("/license-requests", response_model=PageOut)
async def list_license_requests(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: str | None = Query(None),
    _: Principal = Depends(require_superadmin),
    kernel: Kernel = Depends(get_kernel),
):
    result = await kernel.license_requests.list_requests(page, limit, status)
    return PageOut(
        items=[LicenseRequestOut.from_snapshot(r) for r in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
    )


@router.post("/license-requests/{request_id}", response_model=LicenseRequestOut)
async def process_license_request(
    request_id: uuid.UUID,
    body: ProcessRequestBody,
    admin: Principal = Depends(require_superadmin),
    kernel: Kernel = Depends(get_kernel),
):
    """Approve or reject a pending request; approval applies it to the ledger."""
    request = await kernel.license_requests.process(request_id, body.action, admin.user_id)
    return LicenseRequestOut.from_snapshot(request)


@router.post("/licenses/{subscriber_id}/reconcile", response_model=LicenseOut)
async def reconcile_seats(
    subscriber_id: uuid.UUID,
    _: Principal = Depends(require_superadmin),
    kernel: Kernel = Depends(get_kernel),
):
    """Recount occupied seats from the active roster."""
    lic = await kernel.ledger.reconcile_seats(subscriber_id)
    return LicenseOut.from_snapshot(lic, kernel.ledger.now())
