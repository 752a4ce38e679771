"""Middleware: protocol-based, no inheritance required.

App-wide middleware is any callable matching::

    async def mw(request: Request, next: Next) -> Response

Route middleware is an object with ``execute(request, response)`` or a
plain ``(request, response)`` callable; returning anything but ``None``
blocks the route.

Built-in middleware:
    SessionMiddleware -- Signed cookie sessions (requires itsdangerous)
"""

from nattix.middleware.protocol import Middleware, Next, RouteMiddleware
from nattix.middleware.sessions import Session, SessionConfig, SessionMiddleware, get_session

__all__ = [
    "Middleware",
    "Next",
    "RouteMiddleware",
    "Session",
    "SessionConfig",
    "SessionMiddleware",
    "get_session",
]
