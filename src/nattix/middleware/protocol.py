"""Middleware shapes.

Two kinds of middleware run around a request:

App-wide middleware wraps the whole pipeline and receives the next
handler::

    async def timing(request: Request, next: Next) -> Response:
        start = time.monotonic()
        response = await next(request)
        return response.with_header("X-Time", f"{time.monotonic() - start:.3f}")

Route middleware runs after a route matched and before its action. It
receives the request and the response being built, and either passes
(returns ``None``) or blocks (returns a ``Response`` or raises
``HTTPError``)::

    class AuthMiddleware:
        def execute(self, request: Request, response: Response) -> Response | None:
            if "user" not in get_session():
                return Redirect("/login")
            return None

No base class required. The framework checks the shape, not the lineage.
"""

from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

from nattix.http.request import Request
from nattix.http.response import Response

# The next handler in the app-wide middleware chain
type Next = Callable[[Request], Awaitable[Response]]


class Middleware(Protocol):
    """App-wide middleware: functions or callable objects."""

    async def __call__(self, request: Request, next: Next) -> Response: ...


@runtime_checkable
class RouteMiddleware(Protocol):
    """Per-route middleware object with an ``execute`` hook.

    ``execute`` may be sync or async. Plain callables taking
    ``(request, response)`` are accepted wherever a RouteMiddleware is.
    """

    def execute(self, request: Request, response: Response) -> Any: ...
