import asyncio
from fastapi import FastAPI, HTTPException, Request,status
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from phonegate import logger
from phonegate.common.utils import build_error, json_error
from phonegate.common.constants import request_id_ctx
from metrics.custom_instrumentator import record_auth_outcome


class AuthError(Exception):
    """Base for every categorical auth failure: a stable code plus a readable message."""

    code = "AUTH_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Authentication error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class PhoneInvalid(AuthError):
    code = "PHONE_INVALID"
    default_message = "Phone must be E.164 (e.g., +14155552671)"


class RateLimitExceeded(AuthError):
    code = "RATE_LIMIT_EXCEEDED"
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many verification requests. Please try again later."


class SmsSendFailed(AuthError):
    code = "SMS_SEND_FAILED"
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Failed to send verification code"


class OtpNotFound(AuthError):
    code = "OTP_NOT_FOUND"
    default_message = "No verification code found. Please request a new one."


class OtpExpired(AuthError):
    code = "OTP_EXPIRED"
    default_message = "Verification code has expired. Please request a new one."


class OtpAttemptsExceeded(AuthError):
    code = "OTP_ATTEMPTS_EXCEEDED"
    default_message = "Too many attempts. Please request a new code."


class InvalidOtp(AuthError):
    code = "INVALID_OTP"
    default_message = "Invalid verification code"


class InvalidToken(AuthError):
    code = "INVALID_TOKEN"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid or expired token"


class TokenExpired(AuthError):
    code = "TOKEN_EXPIRED"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Token has expired"


class TokenMalformed(AuthError):
    code = "TOKEN_MALFORMED"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Malformed token"


class TokenBadSignature(AuthError):
    code = "TOKEN_BAD_SIGNATURE"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid token signature"


class TokenUnsupportedKind(AuthError):
    code = "TOKEN_UNSUPPORTED_KIND"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unsupported token"


class InvalidRefreshToken(AuthError):
    code = "INVALID_REFRESH_TOKEN"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid refresh token"


class RefreshTokenExpired(AuthError):
    code = "REFRESH_TOKEN_EXPIRED"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Refresh token has expired"


class UserNotFound(AuthError):
    code = "USER_NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "User not found"


class MissingAuthHeader(AuthError):
    code = "MISSING_AUTH_HEADER"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authorization header is required"


def is_storage_fault(exc: BaseException) -> bool:
    """True for connection loss / timeouts in the store, as opposed to auth outcomes."""
    if isinstance(exc, asyncio.CancelledError):
        return False
    if isinstance(exc, (TimeoutError, ConnectionError, OperationalError, InterfaceError)):
        return True
    if isinstance(exc, DBAPIError):
        # SQLAlchemy's DBAPIError has connection_invalidated when connections dropped
        if getattr(exc, "connection_invalidated", False):
            return True
        orig = getattr(exc, "orig", None)
        if orig is not None:
            name = type(orig).__name__.lower()
            if any(k in name for k in ("timeout", "connection", "brokenpipe", "connectionrefused", "connectionreset")):
                return True
    return False


async def auth_error_handler(request: Request, exc: AuthError):
    rid = request_id_ctx.get(None)
    record_auth_outcome(request.url.path.rsplit("/", 1)[-1], exc.code)
    payload = build_error(code=exc.code, details={"message": exc.message}, request_id=rid)
    return json_error(payload, status_code=exc.status_code)


async def fallback_handler(request: Request, exc: Exception):

    rid = request_id_ctx.get(None)

    if is_storage_fault(exc):
        logger.error(
            "storage.unavailable",
            extra={"path": request.url.path, "method": request.method, "request_id": rid},
            exc_info=exc,
        )
        payload = build_error(code="STORAGE_UNAVAILABLE", details={"message": "Service temporarily unavailable"}, request_id=rid)
        return json_error(payload, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)

    logger.error(
        "unexpected.exception",
        extra={
            "path": request.url.path,
            "method": request.method,
            "request_id": rid,
        },
        exc_info=exc,
    )

    payload = build_error(code="SERVER_ERROR", details={"message": "Internal Server Error"}, request_id=rid)
    return json_error(payload, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    rid = request_id_ctx.get(None)
    logger.warning(
        "request.validation_failed",
        extra={
            "errors": exc.errors(),
            "path": request.url.path,
            "request_id": rid,
        },
    )

    payload = build_error(code="UNPROCESSABLE_ENTITY", details={"message":"invalid request"}, request_id=rid)
    return json_error(payload, status_code=status.HTTP_422_UNPROCESSABLE_ENTITY)


async def http_exception_handler(request: Request, exc: HTTPException):

    rid = request_id_ctx.get(None)

    payload = build_error(code=f"HTTP_{exc.status_code}", details={"message":exc.detail}, request_id=rid)
    return json_error(payload, status_code=exc.status_code)


def register_all_exceptions(app: FastAPI):

    app.add_exception_handler(
        Exception, # catch all unidentified/unhandled exceptions
        fallback_handler
    )

    app.add_exception_handler(
        RequestValidationError,
        validation_exception_handler
    )

    app.add_exception_handler(
        HTTPException,
        http_exception_handler
    )

    app.add_exception_handler(
        AuthError,
        auth_error_handler
    )
