"""Nattix: a small MVC web framework served over ASGI.

Routing with per-route middleware, controllers, an async database layer
with a fluent query builder, a service container, views with layouts,
and folder-based plugins.

Basic usage::

    from nattix import App, AppConfig, Controller

    app = App(AppConfig(database_url="sqlite:///app.db"))

    @app.controller
    class SiteController(Controller):
        def index(self, request, response):
            self.view.assign("title", "Home")
            return self.view.render("home")

    app.get("/", "SiteController@index")
    app.run()
"""

__version__ = "0.1.0.dev0"
__all__ = [
    "ActionNotFound",
    "App",
    "AppConfig",
    "Config",
    "ConfigurationError",
    "Container",
    "Controller",
    "Database",
    "EncryptedCookies",
    "HTTPError",
    "Hooks",
    "Middleware",
    "NattixError",
    "Next",
    "NotFound",
    "Redirect",
    "Request",
    "Response",
    "Router",
    "Session",
    "XQueryBuilder",
    "Xview",
    "json_response",
]


def __getattr__(name: str) -> object:
    """Lazy imports for public API.

    Keeps ``import nattix`` fast while providing a clean top-level API.
    """
    if name == "App":
        from nattix.app import App

        return App

    if name in ("AppConfig", "Config"):
        from nattix import config as _config

        return getattr(_config, name)

    if name == "Container":
        from nattix.container import Container

        return Container

    if name == "Controller":
        from nattix.controller import Controller

        return Controller

    if name in ("Database", "XQueryBuilder"):
        from nattix import data as _data

        return getattr(_data, name)

    if name == "Hooks":
        from nattix.hooks import Hooks

        return Hooks

    if name == "Request":
        from nattix.http.request import Request

        return Request

    if name in ("Response", "Redirect", "json_response"):
        from nattix.http import response as _resp

        return getattr(_resp, name)

    if name == "EncryptedCookies":
        from nattix.http.cookies import EncryptedCookies

        return EncryptedCookies

    if name in ("Middleware", "Next", "Session"):
        from nattix import middleware as _mw

        return getattr(_mw, name)

    if name == "Router":
        from nattix.routing import Router

        return Router

    if name == "Xview":
        from nattix.view import Xview

        return Xview

    if name in ("ActionNotFound", "ConfigurationError", "HTTPError", "NattixError", "NotFound"):
        from nattix import errors as _errors

        return getattr(_errors, name)

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
