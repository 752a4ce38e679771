"""Nattix application class.

Mutable during setup (routes, controllers, middleware, plugins).
Frozen at runtime when app.run() or __call__() is first invoked.
"""

import importlib
import importlib.util
import inspect
import threading
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from types import ModuleType
from typing import Any

from kida import Environment

from nattix._internal.asgi import Receive, Scope, Send
from nattix.config import AppConfig, Config
from nattix.container import Container
from nattix.data.database import Database
from nattix.errors import ConfigurationError
from nattix.hooks import Hooks
from nattix.http.cookies import EncryptedCookies
from nattix.middleware.protocol import Middleware
from nattix.paths import PathResolver
from nattix.plugins import Plugin
from nattix.routing.route import Route
from nattix.routing.router import HTTP_METHODS, Router
from nattix.server.handler import handle_request
from nattix.view import Xview, create_environment

STARTUP_HOOK = "app.startup"
SHUTDOWN_HOOK = "app.shutdown"


class App:
    """The nattix application kernel.

    Owns the configuration, the service container, the router, the
    optional database, the hook registry and the template environment,
    and serves them as an ASGI 3.0 application::

        app = App(AppConfig(root_dir=".", database_url="sqlite:///app.db"))

        @app.controller
        class SiteController(Controller):
            def index(self, request, response):
                return self.view.render("home")

        app.get("/", "SiteController@index")
        app.load_plugins()

    Thread safety:
        The setup phase is single-threaded (decorators at import time).
        The freeze transition uses a Lock + double-check so exactly one
        thread compiles the app, even when several ASGI workers call
        ``__call__()`` concurrently on the first request.
    """

    __slots__ = (
        "_db",
        "_error_handlers",
        "_freeze_lock",
        "_frozen",
        "_kida_env",
        "_log_handlers",
        "_middleware",
        "_middleware_list",
        "_shutdown_hooks",
        "_startup_hooks",
        "_template_dirs",
        "_template_filters",
        "_template_globals",
        "config",
        "container",
        "hooks",
        "paths",
        "plugins",
        "router",
        "settings",
    )

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        db: Database | str | None = None,
        settings: Mapping[str, Any] | None = None,
        kida_env: Environment | None = None,
    ) -> None:
        self.config: AppConfig = config or AppConfig()
        root = self.config.path(".")
        self.paths = PathResolver(root)
        self.settings = Config.merge(Config.from_root(root), settings or {})
        self.container = Container()
        self.router = Router(self.container)
        self.hooks = Hooks()
        self.plugins: list[Plugin] = []

        self._middleware_list: list[Middleware] = []
        self._middleware: tuple[Middleware, ...] = ()
        self._error_handlers: dict[int | type, Callable[..., Any]] = {}
        self._startup_hooks: list[Callable[..., Any]] = []
        self._shutdown_hooks: list[Callable[..., Any]] = []
        self._template_dirs: list[Path] = []
        self._template_filters: dict[str, Callable[..., Any]] = {}
        self._template_globals: dict[str, Any] = {}
        self._kida_env: Environment | None = kida_env
        self._log_handlers: list[Any] = []
        self._frozen = False
        self._freeze_lock = threading.Lock()

        # Database: an instance, a URL, or config.database_url
        url = db if isinstance(db, str) else self.config.database_url
        if isinstance(db, Database):
            self._db: Database | None = db
        elif url:
            self._db = Database(url, echo=self.config.db_echo)
        else:
            self._db = None

        self._register_services()

    def _register_services(self) -> None:
        c = self.container
        c.instance(App, self)
        c.instance(AppConfig, self.config)
        c.instance(Config, self.settings)
        c.instance(Container, c)
        c.instance(Router, self.router)
        c.instance(Hooks, self.hooks)
        c.instance(PathResolver, self.paths)
        c.alias(App, "app")
        c.alias(Config, "config")
        c.alias(Router, "router")
        c.alias(Hooks, "hooks")
        c.bind(Environment, lambda _: self.kida_env)
        # A fresh view per controller: view state is per request
        c.bind(Xview, lambda _: Xview.from_config(self.kida_env, self.config))
        c.singleton(EncryptedCookies, lambda _: EncryptedCookies(self.config.cookie_secret))
        c.alias(EncryptedCookies, "cookies")
        if self._db is not None:
            c.instance(Database, self._db)
            c.alias(Database, "Database")
            c.alias(Database, "db")

    # -- Services --

    @property
    def db(self) -> Database:
        """The database instance, if configured.

        Raises ``ConfigurationError`` if no database was configured.
        """
        if self._db is None:
            msg = (
                "No database configured. Pass db= to App() or set "
                "AppConfig(database_url=...)."
            )
            raise ConfigurationError(msg)
        return self._db

    @property
    def cookies(self) -> EncryptedCookies:
        """Encrypted cookie helper keyed by ``config.cookie_secret``."""
        return self.container.make(EncryptedCookies)

    @property
    def kida_env(self) -> Environment:
        """The kida environment, built on first use."""
        if self._kida_env is None:
            self._kida_env = create_environment(
                self.config,
                self._template_dirs,
                self._template_filters,
                self._template_globals,
            )
        return self._kida_env

    def view(self) -> Xview:
        return self.container.make(Xview)

    # -- Route registration --

    def get(self, path: str, callback: Any, middlewares: Iterable[Any] = ()) -> Route:
        return self.router.get(path, callback, middlewares)

    def post(self, path: str, callback: Any, middlewares: Iterable[Any] = ()) -> Route:
        return self.router.post(path, callback, middlewares)

    def put(self, path: str, callback: Any, middlewares: Iterable[Any] = ()) -> Route:
        return self.router.put(path, callback, middlewares)

    def patch(self, path: str, callback: Any, middlewares: Iterable[Any] = ()) -> Route:
        return self.router.patch(path, callback, middlewares)

    def delete(self, path: str, callback: Any, middlewares: Iterable[Any] = ()) -> Route:
        return self.router.delete(path, callback, middlewares)

    def resource(
        self, path: str, controller: str | type, middlewares: Iterable[Any] = ()
    ) -> list[Route]:
        return self.router.resource(path, controller, middlewares)

    def route(
        self,
        path: str,
        *,
        methods: Iterable[str] = ("GET",),
        middlewares: Iterable[Any] = (),
    ) -> Callable[[Any], Any]:
        """Register a function handler via decorator.

        The handler receives ``(request, response)``::

            @app.route("/users/{id}", methods=["GET", "POST"])
            async def user(request, response):
                return {"id": request.param("id")}
        """
        method_list = [m.upper() for m in methods]
        for method in method_list:
            if method not in HTTP_METHODS:
                msg = f"Unsupported HTTP method {method!r} for route {path!r}"
                raise ConfigurationError(msg)
        middleware_list = tuple(middlewares)

        def decorator(func: Any) -> Any:
            for method in method_list:
                self.router.add(method, path, func, middleware_list)
            return func

        return decorator

    def include_routes(self, source: str | Path | ModuleType) -> None:
        """Run the ``routes(app)`` function of a routes module.

        *source* is a module, a dotted module name, or a ``.py`` file
        path (relative paths resolve against the project root).
        """
        if isinstance(source, ModuleType):
            module = source
        elif isinstance(source, Path) or str(source).endswith(".py"):
            path = self.config.path(source)
            spec = importlib.util.spec_from_file_location(f"nattix_routes_{path.stem}", path)
            if spec is None or spec.loader is None or not path.is_file():
                msg = f"Routes file not found: {path}"
                raise ConfigurationError(msg)
            module = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(module)
        else:
            module = importlib.import_module(str(source))

        define = getattr(module, "routes", None)
        if not callable(define):
            msg = f"Routes module {module.__name__!r} must define routes(app)"
            raise ConfigurationError(msg)
        define(self)

    # -- Registries --

    def controller(self, cls: Any = None, /, *, name: str | None = None) -> Any:
        """Register a controller class for ``"Name@action"`` routes.

        Works bare (``@app.controller``) or with a name
        (``@app.controller(name="Site")``).
        """

        def decorator(target: type) -> type:
            self._check_not_frozen()
            return self.router.register_controller(target, name)

        if cls is None:
            return decorator
        return decorator(cls)

    def middleware(self, obj: Any = None, /, *, name: str | None = None) -> Any:
        """Register route middleware for use by name.

        Classes are found by alias: ``AuthMiddleware`` is reachable as
        ``"auth"``. Functions and instances need *name*.
        """

        def decorator(target: Any) -> Any:
            self._check_not_frozen()
            return self.router.register_middleware(target, name)

        if obj is None:
            return decorator
        return decorator(obj)

    def add_middleware(self, middleware: Middleware) -> None:
        """Add an app-wide middleware to the pipeline."""
        self._check_not_frozen()
        self._middleware_list.append(middleware)

    # -- Error handlers --

    def error(self, code_or_exception: int | type[Exception]) -> Callable[[Any], Any]:
        """Register an error handler via decorator."""

        def decorator(func: Any) -> Any:
            self._check_not_frozen()
            self._error_handlers[code_or_exception] = func
            return func

        return decorator

    # -- Templates --

    def add_template_dir(self, path: str | Path) -> None:
        """Search *path* for templates after the app's own directory."""
        self._check_not_frozen()
        self._template_dirs.append(self.config.path(path))
        self._kida_env = None

    def template_filter(self, name: str | None = None) -> Callable[[Any], Any]:
        """Register a kida template filter."""

        def decorator(func: Any) -> Any:
            self._check_not_frozen()
            self._template_filters[name or func.__name__] = func
            self._kida_env = None
            return func

        return decorator

    def template_global(self, name: str | None = None) -> Callable[[Any], Any]:
        """Register a kida template global."""

        def decorator(func: Any) -> Any:
            self._check_not_frozen()
            self._template_globals[name or func.__name__] = func
            self._kida_env = None
            return func

        return decorator

    # -- Plugins --

    def load_plugins(
        self,
        plugins_dir: str | Path | None = None,
        *,
        required_folders: Iterable[str] = (),
        filter: Callable[[Path], bool] | None = None,  # noqa: A002
    ) -> list[Plugin]:
        """Load every active plugin under ``config.plugins_dir``.

        A plugin's ``templates/`` folder, when present, joins the
        template search path.
        """
        from nattix.plugins import load_plugins

        self._check_not_frozen()
        directory = self.config.path(plugins_dir or self.config.plugins_dir)
        loaded = load_plugins(
            directory, self, filter=filter, required_folders=required_folders
        )
        for plugin in loaded:
            templates = plugin.folder / "templates"
            if templates.is_dir():
                self.add_template_dir(templates)
        self.plugins.extend(loaded)
        return loaded

    # -- Lifecycle hooks --

    def on_startup(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Register an async or sync startup hook via decorator.

        Hooks run in registration order during ASGI lifespan startup,
        after the database connects.
        """
        self._check_not_frozen()
        self._startup_hooks.append(func)
        return func

    def on_shutdown(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Register an async or sync shutdown hook via decorator.

        Hooks run in registration order during ASGI lifespan shutdown,
        before the database disconnects.
        """
        self._check_not_frozen()
        self._shutdown_hooks.append(func)
        return func

    async def startup(self) -> None:
        self._ensure_frozen()
        self._attach_logs()
        if self._db is not None:
            await self._db.connect()
        for hook in self._startup_hooks:
            result = hook()
            if inspect.isawaitable(result):
                await result
        await self.hooks.do_action(STARTUP_HOOK, self)

    async def shutdown(self) -> None:
        await self.hooks.do_action(SHUTDOWN_HOOK, self)
        for hook in self._shutdown_hooks:
            result = hook()
            if inspect.isawaitable(result):
                await result
        if self._db is not None:
            await self._db.disconnect()
        if self._log_handlers:
            from nattix.logs import remove_handlers

            remove_handlers(self._log_handlers)
            self._log_handlers = []

    def _attach_logs(self) -> None:
        """Attach the error log files once per start; shutdown detaches them."""
        if self.config.log_dir is None or self._log_handlers:
            return
        from nattix.logs import configure_error_logs

        self._log_handlers = configure_error_logs(self.config.path(self.config.log_dir))

    # -- Serving --

    def run(self, host: str | None = None, port: int | None = None) -> None:
        """Start a pounce server (``pip install nattix[server]``).

        Reloads on file changes when ``config.debug`` is set.
        """
        self._ensure_frozen()

        from nattix.server.dev import run_dev_server

        run_dev_server(
            self,
            host or self.config.host,
            port or self.config.port,
            reload=self.config.debug,
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI 3.0 entry point."""
        if scope["type"] == "lifespan":
            await self._handle_lifespan(receive, send)
            return

        self._ensure_frozen()

        await handle_request(
            scope,
            receive,
            send,
            router=self.router,
            middleware=self._middleware,
            error_handlers=self._error_handlers,
            debug=self.config.debug,
        )

    async def _handle_lifespan(self, receive: Receive, send: Send) -> None:
        """Run the ASGI lifespan protocol."""
        while True:
            message = await receive()
            msg_type = message["type"]

            if msg_type == "lifespan.startup":
                try:
                    await self.startup()
                except Exception as exc:
                    await send({"type": "lifespan.startup.failed", "message": str(exc)})
                    return
                await send({"type": "lifespan.startup.complete"})

            elif msg_type == "lifespan.shutdown":
                await self.shutdown()
                await send({"type": "lifespan.shutdown.complete"})
                return

    # -- Internal --

    def _ensure_frozen(self) -> None:
        """Thread-safe freeze with double-check locking."""
        if self._frozen:
            return
        with self._freeze_lock:
            if self._frozen:
                return
            self._freeze()

    def _freeze(self) -> None:
        """Compile the app into its frozen runtime state.

        MUST only be called while holding _freeze_lock.
        """
        self.router.freeze()
        self._middleware = tuple(self._middleware_list)

        self._attach_logs()

        # Build the template environment now rather than on the first render
        _ = self.kida_env
        self._frozen = True

    def _check_not_frozen(self) -> None:
        if self._frozen:
            msg = (
                "Cannot modify the app after it has started serving requests. "
                "Register routes, controllers, middleware, and plugins before app.run()."
            )
            raise ConfigurationError(msg)
