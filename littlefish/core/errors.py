"""
Error taxonomy shared by the API and the client SDK.

Every error carries a stable ``code`` so a caller can render a distinct message
for each failure instead of a generic one. The HTTP body is always::

    {"message": "...", "code": "...", "errors": {"field": "reason"}}

``errors`` is only present for validation failures.
"""

from typing import Dict, Optional, Type

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class AppError(HTTPException):
    """Base class for errors rendered with the app error body."""

    status_code_default: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "server_error"
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, errors: Optional[Dict[str, str]] = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(status_code=self.status_code_default, detail=self.message)

    def to_dict(self) -> dict:
        body = {"message": self.message, "code": self.code}
        if self.errors:
            body["errors"] = self.errors
        return body


class ValidationError(AppError):
    status_code_default = status.HTTP_400_BAD_REQUEST
    code = "validation_error"
    default_message = "Invalid request"


class InvalidChallenge(AppError):
    status_code_default = status.HTTP_400_BAD_REQUEST
    code = "invalid_challenge"
    default_message = "Challenge is unknown, expired or already used"


class InvalidSignature(AppError):
    status_code_default = status.HTTP_400_BAD_REQUEST
    code = "invalid_signature"
    default_message = "Signature verification failed"


class Unauthorized(AppError):
    status_code_default = status.HTTP_401_UNAUTHORIZED
    code = "unauthorized"
    default_message = "Authentication required"


class NotFound(AppError):
    status_code_default = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_message = "Not found"


class Conflict(AppError):
    status_code_default = status.HTTP_409_CONFLICT
    code = "conflict"
    default_message = "Resource already exists"


class WalletAlreadyLinked(Conflict):
    code = "wallet_already_linked"
    default_message = "Wallet is already linked to another account"


class ServiceMisconfigured(AppError):
    status_code_default = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "service_misconfigured"
    default_message = "Service is not configured"


class ServerError(AppError):
    pass


ERRORS_BY_CODE: Dict[str, Type[AppError]] = {
    cls.code: cls
    for cls in (
        ValidationError,
        InvalidChallenge,
        InvalidSignature,
        Unauthorized,
        NotFound,
        Conflict,
        WalletAlreadyLinked,
        ServiceMisconfigured,
        ServerError,
    )
}


def error_from_body(status_code: int, body: dict) -> AppError:
    """Rebuild an AppError from a response body (used by the client SDK)."""
    cls = ERRORS_BY_CODE.get(body.get("code", ""), None)
    if cls is None:
        cls = ServerError
    err = cls(body.get("message") or body.get("detail"), body.get("errors"))
    err.status_code = status_code
    return err


def _field_name(loc: tuple) -> str:
    parts = [str(p) for p in loc if p not in ("body", "query", "path")]
    return ".".join(parts) or "body"


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors: Dict[str, str] = {}
    for item in exc.errors():
        errors.setdefault(_field_name(tuple(item.get("loc", ()))), item.get("msg", "Invalid value"))
    err = ValidationError("Invalid request", errors)
    return JSONResponse(status_code=err.status_code, content=err.to_dict())
