"""
Kernel error → HTTP response mapping.

The only place that knows which status code a kernel error kind gets.
Authentication failures stay generic; authorization failures carry
their specific message because the caller has to act on them.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from licensehub.core import exceptions as exc

logger = logging.getLogger(__name__)

STATUS_BY_ERROR: dict[type[exc.KernelError], int] = {
    # 401: re-authenticate
    exc.InvalidCredentials: status.HTTP_401_UNAUTHORIZED,
    exc.TokenInvalid: status.HTTP_401_UNAUTHORIZED,
    exc.SessionExpired: status.HTTP_401_UNAUTHORIZED,
    exc.SessionNotFound: status.HTTP_401_UNAUTHORIZED,
    # 403: operational state the caller must fix
    exc.AccountDisabled: status.HTTP_403_FORBIDDEN,
    exc.LicenseExpired: status.HTTP_403_FORBIDDEN,
    exc.SeatLimitReached: status.HTTP_403_FORBIDDEN,
    exc.ProtectedAccount: status.HTTP_403_FORBIDDEN,
    # 404
    exc.MemberNotFound: status.HTTP_404_NOT_FOUND,
    exc.UserNotFound: status.HTTP_404_NOT_FOUND,
    exc.RequestNotFound: status.HTTP_404_NOT_FOUND,
    exc.NoPendingRequest: status.HTTP_404_NOT_FOUND,
    # 409
    exc.AlreadyInOtherRoster: status.HTTP_409_CONFLICT,
    exc.PendingRequestExists: status.HTTP_409_CONFLICT,
    exc.EmailAlreadyRegistered: status.HTTP_409_CONFLICT,
    exc.LicenseAlreadyActive: status.HTTP_409_CONFLICT,
    exc.RequestAlreadyProcessed: status.HTTP_409_CONFLICT,
    # 400
    exc.InvalidPlatform: status.HTTP_400_BAD_REQUEST,
    exc.UnknownPermission: status.HTTP_400_BAD_REQUEST,
    exc.NotInRoster: status.HTTP_400_BAD_REQUEST,
    exc.ValidationFailed: status.HTTP_400_BAD_REQUEST,
    exc.InvalidResetCode: status.HTTP_400_BAD_REQUEST,
    # 429 / 503
    exc.TooManyRequests: status.HTTP_429_TOO_MANY_REQUESTS,
    exc.StorageError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_for(error: exc.KernelError) -> int:
    for cls in type(error).__mro__:
        if cls in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[cls]
    return status.HTTP_400_BAD_REQUEST


async def kernel_error_handler(request: Request, error: exc.KernelError) -> JSONResponse:
    code = status_for(error)
    if code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, error.code)
    headers = {"WWW-Authenticate": "Bearer"} if code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(
        status_code=code,
        content={"detail": error.message, "code": error.code},
        headers=headers,
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(exc.KernelError, kernel_error_handler)
