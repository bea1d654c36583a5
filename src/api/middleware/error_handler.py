"""Error envelope for the chat API.

Every failure leaving a route is rendered as an ``ErrorResponse`` body.
Participant checks raise ``APIError`` subclasses, FastAPI dependencies raise
``HTTPException`` (e.g. a bad bearer token), and the chat gateway raises
``ChatError`` when Supabase rejects or does not answer in time.
"""

import logging
import traceback
from typing import Any, Callable

from fastapi import HTTPException, Request, Response, status
from fastapi.responses import JSONResponse

from src.schemas.common import ErrorResponse
from src.services.chat_errors import ChatError, OperationTimeoutError

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Error reported to the client with its own status and message.

    Subclasses pin ``status_code`` and ``error_type``; the message may be
    overridden per raise.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_type: str = "api_error"
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None, details: list[dict[str, Any]] | None = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class NotFoundError(APIError):
    """The requested conversation does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    error_type = "not_found"
    default_message = "Resource not found"


class AuthorizationError(APIError):
    """The caller is neither the buyer nor the seller of the conversation."""

    status_code = status.HTTP_403_FORBIDDEN
    error_type = "authorization_error"
    default_message = "Access denied"


def chat_error_status(error: ChatError) -> tuple[str, int]:
    """Map a chat gateway failure to an error code and HTTP status.

    A deadline expiry is a 504; any other Supabase failure is a 502.
    """
    if isinstance(error, OperationTimeoutError):
        return "backend_timeout", status.HTTP_504_GATEWAY_TIMEOUT
    return "backend_error", status.HTTP_502_BAD_GATEWAY


def create_error_response(
    error_type: str,
    message: str,
    status_code: int,
    details: list[dict[str, Any]] | None = None,
    request_id: str | None = None,
) -> JSONResponse:
    """Render an ``ErrorResponse`` with the given status."""
    body = ErrorResponse.from_exception(
        error_type=error_type,
        message=message,
        details=details,
        request_id=request_id,
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", exclude_none=True),
    )


async def error_handler_middleware(request: Request, call_next: Callable[[Request], Any]) -> Response:
    """Render any exception escaping a chat route as the error envelope.

    Expected failures are logged at warning with the request id. Anything
    else is logged with its traceback and answered with a generic 500 so
    no internals reach the client.

    Args:
        request: The incoming request.
        call_next: Next middleware or route handler.

    Returns:
        Response: The route's response, or the error envelope.
    """
    request_id = request.headers.get("X-Request-ID")

    try:
        return await call_next(request)

    except APIError as e:
        logger.warning(
            "Request refused (%s): %s",
            e.error_type,
            e.message,
            extra={"request_id": request_id, "status_code": e.status_code},
        )
        return create_error_response(
            error_type=e.error_type,
            message=e.message,
            status_code=e.status_code,
            details=e.details,
            request_id=request_id,
        )

    except HTTPException as e:
        logger.warning("HTTP %s on %s: %s", e.status_code, request.url.path, e.detail, extra={"request_id": request_id})
        return create_error_response(
            error_type="http_error",
            message=str(e.detail),
            status_code=e.status_code,
            request_id=request_id,
        )

    except ChatError as e:
        error_type, status_code = chat_error_status(e)
        logger.warning("Supabase call failed on %s: %s", request.url.path, e, extra={"request_id": request_id})
        return create_error_response(
            error_type=error_type,
            message=str(e),
            status_code=status_code,
            request_id=request_id,
        )

    except Exception as e:
        logger.error(
            "Unhandled exception on %s: %s\n%s",
            request.url.path,
            e,
            traceback.format_exc(),
            extra={"request_id": request_id},
        )
        return create_error_response(
            error_type="internal_error",
            message="An unexpected error occurred",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            request_id=request_id,
        )
