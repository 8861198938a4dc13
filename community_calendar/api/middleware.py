"""Request middleware: correlation ids and error-to-JSON mapping.

Correlation ids let every log line emitted while serving a request be tied
back to that request; the id is echoed in the ``X-Request-ID`` response
header.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable
from contextvars import ContextVar
from typing import Optional

import pydantic
from aiohttp import web

from ..exceptions import CommunityError, UnauthorizedError

logger = logging.getLogger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

# Context variable for storing request correlation ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


@web.middleware
async def correlation_id_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Extract or generate a correlation ID for request tracking.

    Priority: X-Request-ID, then X-Correlation-ID, then a new UUID.
    """
    correlation_id = (
        request.headers.get("X-Request-ID")
        or request.headers.get("X-Correlation-ID")
        or str(uuid.uuid4())
    )
    token = request_id_var.set(correlation_id)
    request["correlation_id"] = correlation_id
    try:
        response = await handler(request)
    finally:
        request_id_var.reset(token)
    response.headers["X-Request-ID"] = correlation_id
    return response


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Map application errors onto JSON error bodies.

    ``CommunityError`` subclasses carry their own status and code; pydantic
    validation failures become 400; anything unexpected is logged and
    returned as 500 without internal details.
    """
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except CommunityError as e:
        level = logging.WARNING if e.http_status >= 500 else logging.INFO
        logger.log(level, "%s %s -> %s: %s", request.method, request.path, e.code, e.message)
        return web.json_response(e.to_dict(), status=e.http_status)
    except pydantic.ValidationError as e:
        logger.info("%s %s -> invalid payload: %d errors", request.method, request.path, e.error_count())
        return web.json_response(
            {
                "error": "BAD_REQUEST",
                "message": "Invalid request payload",
                "details": e.errors(include_url=False, include_context=False),
            },
            status=400,
        )
    except Exception:
        logger.exception("Unhandled error serving %s %s", request.method, request.path)
        return web.json_response(
            {"error": "INTERNAL_SERVER_ERROR", "message": "Internal server error"}, status=500
        )


def get_request_id() -> str:
    """Get current request correlation ID from context.

    Returns:
        Current request correlation ID, or "no-request-id" if not set
    """
    request_id = request_id_var.get()
    return request_id if request_id else "no-request-id"


def check_bearer_token(request: web.Request, required_token: Optional[str]) -> None:
    """Require ``Authorization: Bearer <token>`` when a token is configured.

    Raises:
        UnauthorizedError: If the header is missing or carries another token
    """
    if required_token is None:
        return
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer ") or auth_header[7:] != required_token:
        raise UnauthorizedError("Missing or invalid bearer token")


def acting_user_id(request: web.Request) -> str:
    """Return the acting user id from the ``X-User-Id`` header.

    Raises:
        UnauthorizedError: If the header is absent
    """
    user_id = request.headers.get("X-User-Id", "").strip()
    if not user_id:
        raise UnauthorizedError("X-User-Id header is required")
    return user_id
