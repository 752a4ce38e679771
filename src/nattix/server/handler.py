"""ASGI handler: translates ASGI scope/messages to nattix types.

The only component that touches raw ASGI directly. Converts scope dicts
to typed Request objects, dispatches through middleware and routing,
and sends the Response back through ASGI send().
"""

from collections.abc import Callable
from typing import Any

from nattix._internal.asgi import Receive, Scope, Send
from nattix.errors import HTTPError
from nattix.http.request import Request
from nattix.http.response import Response
from nattix.middleware.protocol import Next
from nattix.routing.router import Router
from nattix.server.errors import handle_http_error, handle_internal_error
from nattix.server.negotiation import negotiate
from nattix.server.sender import send_response


async def handle_request(
    scope: Scope,
    receive: Receive,
    send: Send,
    *,
    router: Router,
    middleware: tuple[Callable[..., Any], ...],
    error_handlers: dict[int | type, Callable[..., Any]],
    debug: bool,
) -> None:
    """Process a single HTTP request through the full pipeline."""
    if scope["type"] != "http":
        return

    request = Request.from_asgi(scope, receive)

    try:
        # _method in a url-encoded POST body decides the effective method
        request = await request.resolve_method()

        async def dispatch(req: Request) -> Response:
            result = await router.resolve(req, Response())
            return negotiate(result)

        # Wrap middleware around the dispatch
        handler: Next = dispatch
        for mw in reversed(middleware):

            async def make_next(req: Request, _mw: Any = mw, _next: Next = handler) -> Response:
                return await _mw(req, _next)

            handler = make_next

        response = await handler(request)

    except HTTPError as exc:
        response = await handle_http_error(exc, request, error_handlers, debug)
    except Exception as exc:
        response = await handle_internal_error(exc, request, error_handlers, debug)

    await send_response(response, send)
