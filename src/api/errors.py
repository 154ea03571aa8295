"""Domain error to HTTP response mapping."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from domain.model.errors import (
    AccountLockedError,
    DomainError,
    DuplicateError,
    EmailNotVerifiedError,
    InvalidCredentialsError,
    InvalidOrExpiredTokenError,
    NotFoundError,
    NotifierUnavailableError,
    StoreUnavailableError,
    UseAlternateProviderError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Most specific first; DuplicateError also covers DuplicateAccountError
_STATUS_BY_ERROR: list[tuple[type[DomainError], int]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (InvalidOrExpiredTokenError, status.HTTP_400_BAD_REQUEST),
    (UseAlternateProviderError, status.HTTP_400_BAD_REQUEST),
    (InvalidCredentialsError, status.HTTP_401_UNAUTHORIZED),
    (EmailNotVerifiedError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (DuplicateError, status.HTTP_409_CONFLICT),
    (AccountLockedError, status.HTTP_423_LOCKED),
    (StoreUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (NotifierUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_for(error: DomainError) -> int:
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_body(error: DomainError) -> dict:
    body: dict = {"success": False, "detail": str(error)}
    if isinstance(error, AccountLockedError) and error.lock_until:
        body["lock_until"] = error.lock_until.isoformat()
    elif isinstance(error, EmailNotVerifiedError):
        body["requires_verification"] = True
    elif isinstance(error, UseAlternateProviderError):
        body["providers"] = error.providers
        body["requires_password_setup"] = error.requires_password_setup
    return body


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    code = status_for(exc)
    if code >= 500:
        logger.error(
            "Request failed",
            extra={"path": request.url.path, "error": type(exc).__name__, "message": str(exc)[:200]},
        )
    return JSONResponse(status_code=code, content=error_body(exc))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
