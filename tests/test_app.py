"""Tests for nattix.app: the kernel end to end through TestClient."""

import logging
from typing import Any

import pytest

from nattix import App, AppConfig, Controller, Database, Redirect, Response
from nattix.app import SHUTDOWN_HOOK, STARTUP_HOOK
from nattix.config import Config
from nattix.container import Container
from nattix.errors import ConfigurationError, HTTPError, NotFound
from nattix.hooks import Hooks
from nattix.http.cookies import EncryptedCookies
from nattix.view import Xview
from nattix.testing import TestClient, set_cookies


class UserController(Controller):
    def __init__(self, view: Xview, db: Database) -> None:
        super().__init__(view)
        self.db = db

    async def show(self, request, response):
        user = await self.db.select_one("users", conditions={"id": request.param("id")})
        if user is None:
            raise NotFound(f"User {request.param('id')} not found")
        self.view.assign("user", user["name"])
        return self.view.render("users/show")

    async def index(self, request, response):
        return self.json_response(await self.db.select("users", "name", order_by="id"))

    async def store(self, request, response):
        await self.db.insert("users", {"name": request.input("name")})
        return Redirect(f"/users/{self.db.last_insert_id}")

    async def update(self, request, response):
        await self.db.update("users", {"name": request.post("name")}, {"id": request.param("id")})
        return ("updated", 200)

    async def destroy(self, request, response):
        await self.db.delete("users", {"id": request.param("id")})
        return None

    def create(self, request, response):
        return "form"

    def edit(self, request, response):
        return "edit form"


@pytest.fixture
def app(project, tmp_path):
    app = App(AppConfig(root_dir=project, database_url=f"sqlite:///{tmp_path / 'app.db'}"))

    @app.on_startup
    async def schema() -> None:
        await app.db.execute_script(
            "CREATE TABLE IF NOT EXISTS users (id INTEGER PRIMARY KEY, name TEXT NOT NULL);"
        )
        await app.db.insert("users", {"name": "Alice"})

    app.controller(UserController)
    app.resource("/users", "UserController")
    return app


class TestFunctionRoutes:
    async def test_route_decorator(self) -> None:
        app = App()

        @app.route("/hello/{name}")
        def hello(request, response):
            return f"Hello, {request.param('name')}!"

        async with TestClient(app) as client:
            response = await client.get("/hello/world")
        assert response.status == 200
        assert response.text == "Hello, world!"
        assert response.content_type.startswith("text/html")

    async def test_multiple_methods(self) -> None:
        app = App()

        @app.route("/echo", methods=["GET", "POST"])
        async def echo(request, response):
            return {"method": request.method}

        async with TestClient(app) as client:
            assert (await client.get("/echo")).json() == {"method": "GET"}
            assert (await client.post("/echo")).json() == {"method": "POST"}

    def test_unsupported_method(self) -> None:
        with pytest.raises(ConfigurationError, match="Unsupported HTTP method"):
            App().route("/x", methods=["TRACE"])

    async def test_query_and_json_body(self) -> None:
        app = App()

        @app.route("/search", methods=["POST"])
        async def search(request, response):
            body = await request.json()
            return {"q": request.query.get("q"), "body": body}

        async with TestClient(app) as client:
            response = await client.post("/search?q=cats", json={"page": 2})
        assert response.json() == {"q": "cats", "body": {"page": 2}}

    async def test_response_passthrough_with_headers(self) -> None:
        app = App()
        app.get("/raw", lambda request, response: response.with_body("raw").with_header("X-A", "1"))

        async with TestClient(app) as client:
            response = await client.get("/raw")
        assert response.text == "raw"
        assert ("x-a", "1") in response.headers

    async def test_not_found(self) -> None:
        async with TestClient(App()) as client:
            response = await client.get("/missing")
        assert response.status == 404
        assert "Method: GET, Path: /missing" in response.text


class TestControllers:
    async def test_show_renders_view_in_layout(self, app) -> None:
        async with TestClient(app) as client:
            response = await client.get("/users/1")
        assert response.status == 200
        assert "<p>Alice</p>" in response.text
        assert response.text.startswith("<html>")

    async def test_http_error_from_action(self, app) -> None:
        async with TestClient(app) as client:
            response = await client.get("/users/99")
        assert response.status == 404
        assert response.text == "User 99 not found"

    async def test_json_index(self, app) -> None:
        async with TestClient(app) as client:
            response = await client.get("/users")
        assert response.json() == [{"name": "Alice"}]
        assert ("access-control-allow-origin", "*") in response.headers

    async def test_store_redirects(self, app) -> None:
        async with TestClient(app) as client:
            response = await client.post("/users", form={"name": "<Bob>"})
            assert response.status == 302
            assert ("location", "/users/2") in response.headers
            stored = await app.db.fetch_value("SELECT name FROM users WHERE id = 2")
        assert stored == "&lt;Bob&gt;"

    async def test_method_override_put(self, app) -> None:
        async with TestClient(app) as client:
            response = await client.post("/users/1", form={"_method": "PUT", "name": "Alicia"})
            assert response.text == "updated"
            assert await app.db.fetch_value("SELECT name FROM users WHERE id = 1") == "Alicia"

    async def test_method_override_delete(self, app) -> None:
        async with TestClient(app) as client:
            response = await client.post("/users/1", form={"_method": "DELETE"})
            assert response.status == 204
            assert await app.db.count_rows("users") == 0

    async def test_create_not_captured_by_show(self, app) -> None:
        async with TestClient(app) as client:
            assert (await client.get("/users/create")).text == "form"
            assert (await client.get("/users/1/edit")).text == "edit form"


class TestRouteMiddleware:
    async def test_named_middleware_blocks(self) -> None:
        app = App()

        @app.middleware
        class AuthMiddleware:
            def execute(self, request, response):
                if request.headers.get("authorization") != "yes":
                    return Response("denied", status=401)
                return None

        app.get("/secret", lambda request, response: "secret", ["auth"])

        async with TestClient(app) as client:
            denied = await client.get("/secret")
            allowed = await client.get("/secret", headers={"Authorization": "yes"})
        assert denied.status == 401
        assert denied.text == "denied"
        assert allowed.text == "secret"

    async def test_middleware_can_raise_http_error(self) -> None:
        app = App()

        @app.middleware(name="forbid")
        def forbid(request, response):
            raise HTTPError(403, "Forbidden")

        app.get("/x", lambda request, response: "never", ["forbid"])
        async with TestClient(app) as client:
            response = await client.get("/x")
        assert response.status == 403

    async def test_controller_middleware(self) -> None:
        app = App()

        @app.middleware
        class TeapotMiddleware:
            async def execute(self, request, response):
                return ("short and stout", 418)

        @app.controller
        class PotController(Controller):
            def on_construct(self) -> None:
                self.register_middleware("teapot")

            def brew(self, request, response):
                return "coffee"

        app.get("/brew", "PotController@brew")
        async with TestClient(app) as client:
            response = await client.get("/brew")
        assert response.status == 418


class TestAppMiddleware:
    async def test_wraps_in_order(self) -> None:
        app = App()
        order: list[str] = []

        async def outer(request, next):
            order.append("outer")
            response = await next(request)
            return response.with_header("X-Outer", "1")

        async def inner(request, next):
            order.append("inner")
            return await next(request)

        app.add_middleware(outer)
        app.add_middleware(inner)
        app.get("/", lambda request, response: order.append("handler") or "ok")

        async with TestClient(app) as client:
            response = await client.get("/")
        assert order == ["outer", "inner", "handler"]
        assert ("x-outer", "1") in response.headers

    async def test_sees_overridden_method(self) -> None:
        app = App()
        seen: list[str] = []

        async def record(request, next):
            seen.append(request.method)
            return await next(request)

        app.add_middleware(record)
        app.delete("/item", lambda request, response: "gone")
        async with TestClient(app) as client:
            await client.post("/item", form={"_method": "DELETE"})
        assert seen == ["DELETE"]


class TestErrorHandlers:
    async def test_status_handler(self) -> None:
        app = App()

        @app.error(404)
        def not_found(request):
            return f"No page at {request.path}"

        async with TestClient(app) as client:
            response = await client.get("/nowhere")
        assert response.status == 404
        assert response.text == "No page at /nowhere"

    async def test_exception_type_handler(self) -> None:
        app = App()

        @app.error(ValueError)
        def bad_value(request, exc):
            return ({"error": str(exc)}, 422)

        @app.route("/boom")
        def boom(request, response):
            raise ValueError("bad input")

        async with TestClient(app) as client:
            response = await client.get("/boom")
        assert response.status == 422
        assert response.json() == {"error": "bad input"}

    async def test_handler_for_base_class(self) -> None:
        app = App()

        @app.error(LookupError)
        def lookup(request, exc):
            return "lookup failed"

        app.get("/k", lambda request, response: {}["missing"])
        async with TestClient(app) as client:
            response = await client.get("/k")
        assert response.status == 500
        assert response.text == "lookup failed"

    async def test_internal_error_hidden_without_debug(self, caplog) -> None:
        app = App()

        @app.route("/crash")
        def crash(request, response):
            raise RuntimeError("secret detail")

        async with TestClient(app) as client:
            response = await client.get("/crash")
        assert response.status == 500
        assert response.text == "Internal Server Error"
        assert "secret detail" not in response.text
        assert any("500 GET /crash" in r.getMessage() for r in caplog.records)

    async def test_debug_page(self) -> None:
        app = App(AppConfig(debug=True))

        @app.route("/crash")
        def crash(request, response):
            raise RuntimeError("<detail>")

        async with TestClient(app) as client:
            response = await client.get("/crash")
        assert response.status == 500
        assert "<title>Nattix Error</title>" in response.text
        assert "RuntimeError: &lt;detail&gt;" in response.text
        assert "<strong>error:</strong>" in response.text
        assert "test_app.py" in response.text
        assert "GET /crash" in response.text

    async def test_bad_return_value_is_internal_error(self) -> None:
        app = App()
        app.get("/n", lambda request, response: 42)
        async with TestClient(app) as client:
            response = await client.get("/n")
        assert response.status == 500


class TestServices:
    def test_container_bindings(self, tmp_path) -> None:
        app = App(AppConfig(root_dir=tmp_path), db="sqlite:///:memory:")
        c = app.container
        assert c.make("app") is app
        assert c.make(AppConfig) is app.config
        assert c.make("config") is app.settings
        assert isinstance(c.make(Config), Config)
        assert c.make(Container) is c
        assert c.make("hooks") is app.hooks
        assert c.make("db") is app.db
        assert c.make("Database") is app.db
        assert c.make(Xview) is not c.make(Xview)

    def test_no_database(self) -> None:
        app = App()
        with pytest.raises(ConfigurationError, match="No database configured"):
            _ = app.db
        assert not app.container.has("db")

    def test_database_instance(self) -> None:
        db = Database("sqlite:///:memory:")
        assert App(db=db).db is db

    def test_cookies_need_secret(self) -> None:
        with pytest.raises(ConfigurationError, match="COOKIE_SECRET"):
            _ = App().cookies

    async def test_encrypted_cookie_roundtrip(self) -> None:
        app = App(AppConfig(cookie_secret="c00kie"))

        @app.route("/set")
        def set_cookie(request, response):
            return app.cookies.set(response.with_body("set"), "remember", "42")

        @app.route("/get")
        def get_cookie(request, response):
            return app.container.make(EncryptedCookies).get(request, "remember") or "none"

        async with TestClient(app) as client:
            cookies = set_cookies(await client.get("/set"))
            assert cookies["remember"] != "42"
            response = await client.get("/get", cookies=cookies)
        assert response.text == "42"

    def test_settings_merge(self, tmp_path) -> None:
        (tmp_path / "configs").mkdir()
        (tmp_path / "configs" / "config.json").write_text('{"A": 1, "B": 1}', encoding="utf-8")
        app = App(AppConfig(root_dir=tmp_path), settings={"B": 2})
        assert app.settings["A"] == 1
        assert app.settings["B"] == 2

    def test_paths(self, tmp_path) -> None:
        app = App(AppConfig(root_dir=tmp_path))
        assert app.paths.routes_path().startswith(str(tmp_path))


class TestIncludeRoutes:
    async def test_routes_file(self, tmp_path) -> None:
        (tmp_path / "routes").mkdir()
        (tmp_path / "routes" / "web.py").write_text(
            "def routes(app):\n    app.get('/about', lambda request, response: 'about')\n",
            encoding="utf-8",
        )
        app = App(AppConfig(root_dir=tmp_path))
        app.include_routes("routes/web.py")
        async with TestClient(app) as client:
            assert (await client.get("/about")).text == "about"

    def test_missing_routes_function(self, tmp_path) -> None:
        (tmp_path / "empty.py").write_text("x = 1\n", encoding="utf-8")
        app = App(AppConfig(root_dir=tmp_path))
        with pytest.raises(ConfigurationError, match="must define routes"):
            app.include_routes("empty.py")

    def test_missing_file(self, tmp_path) -> None:
        app = App(AppConfig(root_dir=tmp_path))
        with pytest.raises(ConfigurationError, match="Routes file not found"):
            app.include_routes("nope.py")


class TestLifecycle:
    async def test_startup_and_shutdown_order(self, tmp_path) -> None:
        app = App(AppConfig(root_dir=tmp_path), db=f"sqlite:///{tmp_path / 'x.db'}")
        events: list[str] = []

        @app.on_startup
        def started() -> None:
            events.append(f"startup connected={app.db.connected}")

        @app.on_shutdown
        async def stopping() -> None:
            events.append(f"shutdown connected={app.db.connected}")

        app.hooks.add_action(STARTUP_HOOK, lambda a: events.append("action startup"))
        app.hooks.add_action(SHUTDOWN_HOOK, lambda a: events.append("action shutdown"))

        async with TestClient(app):
            events.append("serving")
        assert events == [
            "startup connected=True",
            "action startup",
            "serving",
            "action shutdown",
            "shutdown connected=True",
        ]
        assert not app.db.connected

    async def test_error_logs_detached_on_shutdown(self, tmp_path) -> None:
        logger = logging.getLogger("nattix")
        level = logger.level
        before = list(logger.handlers)
        app = App(AppConfig(root_dir=tmp_path, log_dir="logs"))
        try:
            async with TestClient(app):
                attached = [h for h in logger.handlers if h not in before]
                assert len(attached) == 7
                assert (tmp_path / "logs" / "error" / "error.log").is_file()
            assert logger.handlers == before

            # A second start attaches a fresh set without duplicates.
            async with TestClient(app):
                assert len([h for h in logger.handlers if h not in before]) == 7
            assert logger.handlers == before
        finally:
            logger.setLevel(level)

    async def test_frozen_after_start(self) -> None:
        app = App()
        async with TestClient(app):
            pass
        with pytest.raises(ConfigurationError, match="Cannot modify the app"):
            app.controller(UserController)
        with pytest.raises(ConfigurationError, match="frozen"):
            app.get("/late", lambda request, response: "late")

    async def test_lifespan_protocol(self) -> None:
        app = App()
        started: list[bool] = []
        app.on_startup(lambda: started.append(True))
        messages = iter([{"type": "lifespan.startup"}, {"type": "lifespan.shutdown"}])
        sent: list[dict[str, Any]] = []

        async def receive() -> dict[str, Any]:
            return next(messages)

        async def send(message: dict[str, Any]) -> None:
            sent.append(message)

        await app({"type": "lifespan"}, receive, send)
        assert [m["type"] for m in sent] == [
            "lifespan.startup.complete",
            "lifespan.shutdown.complete",
        ]
        assert started == [True]

    async def test_lifespan_startup_failure(self) -> None:
        app = App()

        @app.on_startup
        def fail() -> None:
            raise RuntimeError("no database")

        sent: list[dict[str, Any]] = []

        async def receive() -> dict[str, Any]:
            return {"type": "lifespan.startup"}

        async def send(message: dict[str, Any]) -> None:
            sent.append(message)

        await app({"type": "lifespan"}, receive, send)
        assert sent == [{"type": "lifespan.startup.failed", "message": "no database"}]

    def test_hooks_instance(self) -> None:
        assert isinstance(App().hooks, Hooks)
