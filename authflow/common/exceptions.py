"""
Unified exception hierarchy.

- **HTTP exceptions**: `AppException(HTTPException)` separates `status_code` (HTTP) from `code`
  (business/error code) and carries extra details in `data`. Used by the JSON endpoints.
- **Callback errors**: `CallbackError` carries an `ErrorCode` from the sign-in error taxonomy. It
  never reaches the transport layer; the callback orchestrator turns it into a redirect.
- **Global handlers**: `register_exception_handlers` wires FastAPI handlers that render the
  `authflow.common.response.error_response` envelope.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError as PydanticValidationError

from authflow.common.response import error_response


class ErrorCode(str, Enum):
    """Internal sign-in failure codes."""

    MISSING_PARAMETERS = "MissingParameters"
    BAD_SIGNATURE = "BadSignature"
    NONCE_MISMATCH = "NonceMismatch"
    INCOMPLETE_PROFILE = "IncompleteProfile"
    PROVIDER_ERROR = "ProviderError"
    NO_PROFILE = "NoProfile"
    CONFIGURATION = "ConfigurationError"
    ACCESS_DENIED = "AccessDenied"
    VERIFICATION_FAILED = "VerificationFailed"
    ACCOUNT_CONFLICT = "AccountConflict"
    USER_CREATION_FAILED = "UserCreationFailed"
    INVALID_CREDENTIALS = "InvalidCredentials"
    INTERNAL_ERROR = "InternalError"


# Outward `error` query values. Signature, nonce and profile checks share the
# generic "Callback" value so the redirect does not reveal which check failed.
PUBLIC_ERROR_CODES: Dict[ErrorCode, str] = {
    ErrorCode.MISSING_PARAMETERS: "Callback",
    ErrorCode.BAD_SIGNATURE: "Callback",
    ErrorCode.NONCE_MISMATCH: "Callback",
    ErrorCode.INCOMPLETE_PROFILE: "Callback",
    ErrorCode.PROVIDER_ERROR: "OAuthCallback",
    ErrorCode.CONFIGURATION: "Configuration",
    ErrorCode.ACCESS_DENIED: "AccessDenied",
    ErrorCode.VERIFICATION_FAILED: "Verification",
    ErrorCode.ACCOUNT_CONFLICT: "OAuthAccountNotLinked",
    ErrorCode.USER_CREATION_FAILED: "OAuthCreateAccount",
    ErrorCode.INVALID_CREDENTIALS: "CredentialsSignin",
    ErrorCode.INTERNAL_ERROR: "Callback",
}


def public_error_code(code: ErrorCode, provider_kind: Optional[str] = None) -> str:
    """Map an internal code to the value exposed in the error redirect."""
    if code is ErrorCode.USER_CREATION_FAILED and provider_kind == "email":
        return "EmailCreateAccount"
    return PUBLIC_ERROR_CODES.get(code, "Callback")


class CallbackError(Exception):
    """Raised anywhere in the callback pipeline; converted into a redirect by the orchestrator."""

    def __init__(self, code: ErrorCode, message: Optional[str] = None):
        super().__init__(message or code.value)
        self.code = code
        self.message = message or code.value


class AccountNotLinkedError(Exception):
    """Adapter signal: the identity is already linked to a different user."""


class CreateUserError(Exception):
    """Adapter signal: the user record could not be created."""


class AppException(HTTPException):
    """Base application exception for the JSON endpoints."""

    code: int
    data: Any

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        message: str = "Internal Server Error",
        *,
        code: int | None = None,
        data: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(status_code=status_code, detail=message, headers=headers)
        self.code = status_code if code is None else code
        self.data = data


class NotFoundException(AppException):
    """Resource not found (404)."""

    def __init__(self, message: str = "Resource not found", *, code: int | None = None, data: Any = None):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, message=message, code=code, data=data)


class BadRequestException(AppException):
    """Bad request (400)."""

    def __init__(self, message: str = "Bad request", *, code: int | None = None, data: Any = None):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, message=message, code=code, data=data)


def create_error_response(*, status_code: int, code: int, message: str, data: Any = None) -> Response:
    """Build a JSON error response using the shared envelope."""
    return JSONResponse(
        status_code=status_code,
        content=error_response(message=message, code=code, data=data),
    )


async def app_exception_handler(request: Request, exc: AppException) -> Response:
    return create_error_response(
        status_code=exc.status_code,
        code=getattr(exc, "code", exc.status_code),
        message=str(exc.detail),
        data=getattr(exc, "data", None),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> Response:
    return create_error_response(
        status_code=exc.status_code,
        code=exc.status_code,
        message=str(exc.detail),
        data=getattr(exc, "data", None),
    )


def _format_validation_errors(errors: Iterable[Mapping[str, Any]]) -> List[dict[str, Any]]:
    formatted: List[dict[str, Any]] = []
    for err in errors:
        loc = err.get("loc", ())
        formatted.append(
            {
                "field": ".".join(str(x) for x in loc),
                "message": err.get("msg"),
                "type": err.get("type"),
            }
        )
    return formatted


async def request_validation_exception_handler(request: Request, exc: Exception) -> Response:
    errors: List[dict[str, Any]] = []
    if isinstance(exc, (RequestValidationError, PydanticValidationError)):
        errors = _format_validation_errors(exc.errors())

    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message="Request parameter validation failed",
        data={"validation_errors": errors} if errors else None,
    )


async def general_exception_handler(request: Request, exc: Exception) -> Response:
    """Uncaught exceptions (500). Details are only exposed in debug mode."""
    from loguru import logger

    from authflow.core.settings import get_settings

    logger.exception("Unhandled exception: {}", exc)
    debug = bool(get_settings().debug)

    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message=str(exc) if debug else "Internal Server Error",
        data={"error_type": type(exc).__name__} if debug else None,
    )


def register_exception_handlers(app: Any) -> None:
    """Register the exception handlers on a FastAPI app."""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(PydanticValidationError, request_validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
