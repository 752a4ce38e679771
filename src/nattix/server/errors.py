"""Error handling pipeline for nattix requests.

Maps HTTPError exceptions and unexpected failures to Response objects,
using registered error handlers or sensible defaults. This is the only
place errors are presented; everything below raises.
"""

import inspect
import logging
from collections.abc import Callable
from typing import Any

from nattix.errors import HTTPError
from nattix.http.request import Request
from nattix.http.response import Response
from nattix.server.negotiation import negotiate

logger = logging.getLogger("nattix.server")


async def call_error_handler(
    handler: Callable[..., Any],
    request: Request,
    exc: Exception,
) -> Response:
    """Invoke a user-registered error handler with introspected arguments.

    Error handlers may accept zero, one (request), or two (request, exc) args.
    Supports both sync and async error handlers.
    """
    params = list(inspect.signature(handler).parameters.values())

    if len(params) >= 2:
        result = handler(request, exc)
    elif len(params) == 1:
        result = handler(request)
    else:
        result = handler()

    if inspect.isawaitable(result):
        result = await result
    return negotiate(result)


def _lookup(
    error_handlers: dict[int | type, Callable[..., Any]], exc: Exception, status: int
) -> Callable[..., Any] | None:
    """Exact exception type, then status code, then base classes."""
    handler = error_handlers.get(type(exc)) or error_handlers.get(status)
    if handler is None:
        for cls in type(exc).__mro__[1:]:
            if cls in error_handlers:
                return error_handlers[cls]
    return handler


async def handle_http_error(
    exc: HTTPError,
    request: Request,
    error_handlers: dict[int | type, Callable[..., Any]],
    debug: bool,
) -> Response:
    """Map an HTTPError to a Response using registered error handlers."""
    logger.debug("%d %s %s: %s", exc.status, request.method, request.path, exc.detail)

    handler = _lookup(error_handlers, exc, exc.status)
    if handler is not None:
        response = await call_error_handler(handler, request, exc)
        # Keep the exception's status unless the handler chose its own
        if response.status == 200:
            response = response.with_status(exc.status)
        return response

    detail = exc.detail or f"Error {exc.status}"
    if debug and exc.detail:
        detail = f"{exc.status}: {exc.detail}"
    response = Response(body=detail, content_type="text/plain; charset=utf-8")
    return response.with_status(exc.status).with_headers(dict(exc.headers))


async def handle_internal_error(
    exc: Exception,
    request: Request,
    error_handlers: dict[int | type, Callable[..., Any]],
    debug: bool,
) -> Response:
    """Handle unexpected exceptions as 500 errors.

    The exception is always logged with its traceback, whether or not a
    handler or the debug page presents it.
    """
    logger.exception("500 %s %s", request.method, request.path)

    handler = _lookup(error_handlers, exc, 500)
    if handler is not None:
        response = await call_error_handler(handler, request, exc)
        if response.status == 200:
            response = response.with_status(500)
        return response

    if debug:
        from nattix.server.debug_page import render_debug_page

        return Response(body=render_debug_page(exc, request), status=500)

    return Response(body="Internal Server Error", status=500)
