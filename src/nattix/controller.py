"""Controller base class.

Controllers are registered with ``@app.controller`` and referenced from
routes as ``"UserController@show"`` or ``(UserController, "show")``.
One instance is built per matched request through the app container,
so constructor parameters with class annotations are injected::

    @app.controller
    class UserController(Controller):
        def __init__(self, view: Xview, db: Database) -> None:
            super().__init__(view)
            self.db = db

        def on_construct(self) -> None:
            self.register_middleware("auth")

        async def show(self, request: Request, response: Response):
            user = await self.db.select_one("users", conditions={"id": request.param("id")})
            self.view.assign("user", user)
            return self.view.render("users/show")
"""

from collections.abc import Mapping
from typing import Any

from nattix.http.response import Response, json_response
from nattix.view import Xview

# Sent with every Controller.json_response(). Callers may override the
# origin; the method and header allowances are always set.
CORS_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
}
CORS_FIXED_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


class Controller:
    """Base class for application controllers."""

    def __init__(self, view: Xview) -> None:
        self.view = view
        self.action = ""
        self.current_user: Any = None
        self.middlewares: list[Any] = []
        self.on_construct()

    def on_construct(self) -> None:
        """Hook run at the end of ``__init__``. Override instead of ``__init__``."""

    def register_middleware(self, middleware: Any) -> None:
        """Run *middleware* before any action of this controller.

        Accepts a registered middleware name, a middleware class or
        instance with ``execute()``, or a ``(request, response)`` callable.
        """
        self.middlewares.append(middleware)

    def set_current_user(self, user: Any) -> None:
        self.current_user = user

    def json_response(
        self,
        data: Any,
        status: int = 200,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        """JSON response with permissive CORS headers."""
        merged = {**CORS_HEADERS, **(headers or {}), **CORS_FIXED_HEADERS}
        return json_response(data, status, merged)

    def json_error_response(self, message: str, status: int = 500) -> Response:
        return self.json_response({"error": True, "message": message}, status)
