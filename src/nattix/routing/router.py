"""Ordered route tables with placeholder patterns.

Routes are stored per HTTP method, then per literal path, in
registration order. Matching tries the literal path first, then scans
the method's patterns in registration order; the first full match wins.

Placeholders::

    /users/{id}              -> id matches \\w+
    /posts/{slug:[a-z0-9-]+} -> slug matches the given regex
"""

import logging
import re
from collections.abc import Callable, Iterable, Iterator
from typing import Any

from nattix._internal.invoke import invoke
from nattix.container import Container
from nattix.errors import ActionNotFound, ConfigurationError, NotFound
from nattix.http.request import Request
from nattix.http.response import Response
from nattix.routing.route import Callback, ControllerAction, Route, RouteMatch

logger = logging.getLogger("nattix.routing")

PLACEHOLDER = re.compile(r"\{(\w+)(?::([^}]+))?\}")
DEFAULT_PARAM_PATTERN = r"\w+"

HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")

# (suffix, method, action) for resource()
RESOURCE_ROUTES: tuple[tuple[str, str, str], ...] = (
    ("", "GET", "index"),
    ("/create", "GET", "create"),
    ("", "POST", "store"),
    ("/{id}", "GET", "show"),
    ("/{id}/edit", "GET", "edit"),
    ("/{id}", "PUT", "update"),
    ("/{id}", "DELETE", "destroy"),
)


def compile_path(path: str) -> tuple[re.Pattern[str] | None, tuple[str, ...]]:
    """Compile a route path into an anchored regex and its placeholder names.

    Slashes are trimmed first. Literal text is matched verbatim;
    ``{name}`` becomes ``(\\w+)`` and ``{name:regex}`` becomes ``(regex)``.
    The root path compiles to ``None``.

    Examples::

        compile_path("/users/{id}")
        # (re.compile('^users/(?P<p0>\\w+)$'), ('id',))

    Groups are named by position (``p0``, ``p1``, ...) so any ``\\w+``
    placeholder name works, including ones like ``{1}``.
    """
    trimmed = path.strip("/")
    if not trimmed:
        return None, ()

    names: list[str] = []
    parts: list[str] = []
    position = 0
    for found in PLACEHOLDER.finditer(trimmed):
        name, pattern = found.group(1), found.group(2) or DEFAULT_PARAM_PATTERN
        if name in names:
            msg = f"Duplicate placeholder {{{name}}} in route {path!r}"
            raise ConfigurationError(msg)
        names.append(name)
        parts.append(re.escape(trimmed[position : found.start()]))
        parts.append(f"(?P<p{len(names) - 1}>{pattern})")
        position = found.end()
    parts.append(re.escape(trimmed[position:]))

    try:
        regex = re.compile(f"^{''.join(parts)}$")
    except re.error as exc:
        msg = f"Invalid placeholder pattern in route {path!r}: {exc}"
        raise ConfigurationError(msg) from exc
    return regex, tuple(names)


def middleware_class_name(name: str) -> str:
    """Conventional class name for a middleware alias.

    ``"auth"`` -> ``"AuthMiddleware"``, ``"rate-limit"`` -> ``"RateLimitMiddleware"``.
    """
    words = re.split(r"[-_\s]+", name.strip())
    return "".join(word[:1].upper() + word[1:] for word in words if word) + "Middleware"


class Router:
    """Per-method route tables plus controller and middleware registries.

    Usage::

        router = Router(container)
        router.register_controller(UserController)
        router.get("/users/{id}", "UserController@show")
        match = router.match("GET", "/users/42")
        match.path_params  # {"id": "42"}
    """

    __slots__ = ("_container", "_controllers", "_frozen", "_middlewares", "_routes")

    def __init__(self, container: Container | None = None) -> None:
        self._container = container if container is not None else Container()
        self._routes: dict[str, dict[str, Route]] = {}
        self._controllers: dict[str, type] = {}
        self._middlewares: dict[str, Any] = {}
        self._frozen = False

    # -- Registries --

    def register_controller(self, cls: type, name: str | None = None) -> type:
        """Make *cls* addressable as ``"Name@action"``."""
        self._controllers[name or cls.__name__] = cls
        return cls

    def register_middleware(self, middleware: Any, name: str | None = None) -> Any:
        """Make *middleware* addressable by name.

        Classes register under their class name, so ``"auth"`` finds
        ``AuthMiddleware``. Instances and plain callables need *name*.
        """
        key = name or getattr(middleware, "__name__", None)
        if not key:
            msg = f"Middleware {middleware!r} needs an explicit name"
            raise ConfigurationError(msg)
        self._middlewares[key] = middleware
        return middleware

    def controller(self, name: str) -> type | None:
        return self._controllers.get(name)

    # -- Registration --

    def add(
        self,
        method: str,
        path: str,
        callback: Any,
        middlewares: Iterable[Any] = (),
    ) -> Route:
        """Register *callback* for *method* and *path*.

        Registering the same method and path again replaces the callback
        but keeps the original position in the table.
        """
        if self._frozen:
            msg = (
                f"Cannot register {method} {path!r}: routes are frozen once "
                "the app starts handling requests."
            )
            raise ConfigurationError(msg)
        method = method.upper()
        pattern, names = compile_path(path)
        route = Route(
            method=method,
            path=path,
            callback=self._resolve_callback(callback),
            middlewares=tuple(self._resolve_middleware(m) for m in middlewares),
            pattern=pattern,
            param_names=names,
        )
        self._routes.setdefault(method, {})[path] = route
        logger.debug("Registered %s %s -> %s", method, path, route.callback)
        return route

    def get(self, path: str, callback: Any, middlewares: Iterable[Any] = ()) -> Route:
        return self.add("GET", path, callback, middlewares)

    def post(self, path: str, callback: Any, middlewares: Iterable[Any] = ()) -> Route:
        return self.add("POST", path, callback, middlewares)

    def put(self, path: str, callback: Any, middlewares: Iterable[Any] = ()) -> Route:
        return self.add("PUT", path, callback, middlewares)

    def patch(self, path: str, callback: Any, middlewares: Iterable[Any] = ()) -> Route:
        return self.add("PATCH", path, callback, middlewares)

    def delete(self, path: str, callback: Any, middlewares: Iterable[Any] = ()) -> Route:
        return self.add("DELETE", path, callback, middlewares)

    def resource(
        self,
        path: str,
        controller: str | type,
        middlewares: Iterable[Any] = (),
    ) -> list[Route]:
        """Register the seven CRUD routes for *controller*.

        ``index``, ``create``, ``store``, ``show``, ``edit``, ``update``
        and ``destroy``; member routes take an ``{id}`` parameter.
        """
        base = path.rstrip("/")
        middlewares = tuple(middlewares)
        return [
            self.add(method, f"{base}{suffix}" or "/", (controller, action), middlewares)
            for suffix, method, action in RESOURCE_ROUTES
        ]

    def freeze(self) -> None:
        self._frozen = True

    @property
    def routes(self) -> list[Route]:
        return list(self)

    def __iter__(self) -> Iterator[Route]:
        for table in self._routes.values():
            yield from table.values()

    def __len__(self) -> int:
        return sum(len(table) for table in self._routes.values())

    # -- Matching --

    def match(self, method: str, path: str) -> RouteMatch:
        """Find the route for *method* and *path*.

        Raises ``NotFound`` when nothing matches.
        """
        method = method.upper()
        table = self._routes.get(method, {})
        trimmed = path.strip("/")

        for literal in (path, trimmed):
            route = table.get(literal)
            if route is not None:
                return RouteMatch(route=route, path_params={})

        for route in table.values():
            if route.pattern is None:
                continue
            found = route.pattern.match(trimmed)
            if found is not None:
                params = {
                    name: found.group(f"p{index}") for index, name in enumerate(route.param_names)
                }
                return RouteMatch(route=route, path_params=params)

        raise NotFound(f"Callback - [ Method: {method}, Path: {path} ] - Not Found")

    async def resolve(self, request: Request, response: Response) -> Any:
        """Match *request* and run its route.

        Route middleware runs first, then the controller's own
        middleware. The first one that returns something other than
        ``None`` short-circuits, and its result is returned instead of
        the action's.
        """
        found = self.match(request.method, request.path)
        request = request.with_path_params(found.path_params)
        callback = found.route.callback
        middlewares: list[Any] = list(found.route.middlewares)

        if isinstance(callback, ControllerAction):
            controller = self._container.make(callback.controller)
            controller.action = callback.action
            middlewares.extend(
                self._resolve_middleware(m) for m in getattr(controller, "middlewares", ())
            )
            target: Callable[..., Any] = getattr(controller, callback.action)
        else:
            target = callback

        for middleware in middlewares:
            blocked = await self._run_middleware(middleware, request, response)
            if blocked is not None:
                return blocked
        return await invoke(target, request, response)

    # -- Internals --

    def _resolve_callback(self, callback: Any) -> Callback:
        if isinstance(callback, ControllerAction):
            return callback
        if isinstance(callback, str):
            controller_name, sep, action = callback.partition("@")
            if not sep or not controller_name or not action:
                msg = f"Route callback {callback!r} must look like 'Controller@action'"
                raise ConfigurationError(msg)
            controller = self._controllers.get(controller_name)
            if controller is None:
                raise ActionNotFound(controller_name, action)
            return self._controller_action(controller, action)
        if isinstance(callback, tuple):
            if len(callback) != 2:
                msg = f"Route callback tuple must be (Controller, 'action'), got {callback!r}"
                raise ConfigurationError(msg)
            controller, action = callback
            if isinstance(controller, str):
                return self._resolve_callback(f"{controller}@{action}")
            return self._controller_action(controller, action)
        if callable(callback):
            return callback
        msg = f"Route callback {callback!r} is not callable"
        raise ConfigurationError(msg)

    @staticmethod
    def _controller_action(controller: type, action: str) -> ControllerAction:
        if not callable(getattr(controller, action, None)) or action.startswith("_"):
            raise ActionNotFound(controller.__name__, action)
        return ControllerAction(controller, action)

    def _resolve_middleware(self, middleware: Any) -> Any:
        if not isinstance(middleware, str):
            return middleware
        for key in (middleware, middleware_class_name(middleware)):
            if key in self._middlewares:
                return self._middlewares[key]
        msg = (
            f"Unknown middleware {middleware!r}: register "
            f"{middleware_class_name(middleware)} with app.middleware()"
        )
        raise ConfigurationError(msg)

    async def _run_middleware(self, middleware: Any, request: Request, response: Response) -> Any:
        if isinstance(middleware, type):
            middleware = self._container.make(middleware)
        execute = getattr(middleware, "execute", None)
        if execute is not None:
            return await invoke(execute, request, response)
        return await invoke(middleware, request, response)
