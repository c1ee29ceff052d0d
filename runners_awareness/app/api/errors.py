# runners_awareness/app/api/errors.py
"""
Error envelope shared by every endpoint: {"success": false, "message": ...}.

Business-rule failures (AuthError) keep their message. Unexpected
exceptions are logged with their traceback and answered with a fixed,
operation-specific 500 message so internals never reach the client.
"""
import logging
from typing import Awaitable, TypeVar, Union

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from runners_awareness.app.core.rate_limit import TOO_MANY_REQUESTS
from runners_awareness.app.services.auth_service import AuthError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def error_response(message: str, status_code: int = status.HTTP_400_BAD_REQUEST, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message},
        headers=headers,
    )


async def run_operation(operation: Awaitable[T], failure_message: str) -> Union[T, JSONResponse]:
    try:
        return await operation
    except AuthError as exc:
        return error_response(exc.message, exc.status_code)
    except Exception:
        logger.exception(failure_message)
        return error_response(failure_message, status.HTTP_500_INTERNAL_SERVER_ERROR)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return error_response(str(exc.detail), exc.status_code, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "Invalid request."
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        text = str(first.get("msg", "")).removeprefix("Value error, ")
        message = f"{field}: {text}" if field else text
    return error_response(message)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("Rate limit %s exceeded by %s on %s", exc.detail, get_remote_address(request), request.url.path)
    return error_response(TOO_MANY_REQUESTS, status.HTTP_429_TOO_MANY_REQUESTS)
