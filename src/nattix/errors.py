"""Nattix exception hierarchy.

Shared across Router, App, handler, and middleware so every module
raises and catches the same types. Errors are plain values: building
one never logs, renders, or stops the process. Presentation happens
once, at the request boundary (``nattix.server.errors``).
"""

from dataclasses import dataclass


class NattixError(Exception):
    """Base for all nattix-specific errors."""


class ConfigurationError(NattixError):
    """Raised when app configuration is invalid.

    Typically surfaces during setup (route registration, ``App._freeze()``).
    """


@dataclass(frozen=True, slots=True)
class HTTPError(NattixError):
    """An error that maps directly to an HTTP status code.

    Raised by the router, middleware, or handlers. The ASGI handler
    catches these and dispatches to the matching ``@app.error()`` handler.
    """

    status: int
    detail: str = ""
    headers: tuple[tuple[str, str], ...] = ()

    def __str__(self) -> str:
        if self.detail:
            return f"{self.status}: {self.detail}"
        return str(self.status)


class NotFound(HTTPError):  # noqa: N818
    """404: no route matched the request method and path."""

    def __init__(self, detail: str = "Not Found") -> None:
        super().__init__(status=404, detail=detail)


class ActionNotFound(NattixError):
    """A route points at a controller action that does not exist."""

    def __init__(self, controller: str, action: str) -> None:
        self.controller = controller
        self.action = action
        super().__init__(f"[{controller}] - [{action}] Method Not Found")
