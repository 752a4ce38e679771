"""Shared fixtures for nattix tests."""

from collections.abc import Mapping
from typing import Any

import pytest

from nattix.data import Database
from nattix.http.request import Request


def make_request(
    method: str = "GET",
    path: str = "/",
    *,
    query: str = "",
    headers: Mapping[str, str] | None = None,
    body: bytes = b"",
) -> Request:
    """Build a Request from a synthetic ASGI scope."""
    sent = False

    async def receive() -> dict[str, Any]:
        nonlocal sent
        if sent:
            return {"type": "http.disconnect"}
        sent = True
        return {"type": "http.request", "body": body, "more_body": False}

    scope = {
        "type": "http",
        "method": method,
        "path": path,
        "query_string": query.encode("latin-1"),
        "headers": [
            (k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in (headers or {}).items()
        ],
        "http_version": "1.1",
        "server": ("testserver", 80),
        "client": ("127.0.0.1", 1234),
    }
    return Request.from_asgi(scope, receive)


@pytest.fixture
async def db(tmp_path):
    """A connected SQLite database with a users table."""
    database = Database(f"sqlite:///{tmp_path / 'test.db'}")
    await database.connect()
    await database.execute_script(
        "CREATE TABLE users ("
        "  id INTEGER PRIMARY KEY AUTOINCREMENT,"
        "  name TEXT NOT NULL UNIQUE,"
        "  email TEXT,"
        "  age INTEGER"
        ");"
        "CREATE TABLE posts ("
        "  id INTEGER PRIMARY KEY AUTOINCREMENT,"
        "  user_id INTEGER NOT NULL,"
        "  title TEXT NOT NULL"
        ");"
    )
    yield database
    await database.disconnect()


@pytest.fixture
async def seeded_db(db):
    """Database with three users and a few posts."""
    await db.insert("users", {"name": "Alice", "email": "alice@test.com", "age": 30})
    await db.insert("users", {"name": "Bob", "email": "bob@test.com", "age": 25})
    await db.insert("users", {"name": "Carol", "email": None, "age": 35})
    await db.insert("posts", {"user_id": 1, "title": "Hello"})
    await db.insert("posts", {"user_id": 1, "title": "Again"})
    await db.insert("posts", {"user_id": 2, "title": "Bob's post"})
    return db


@pytest.fixture
def project(tmp_path):
    """A project root with templates and a default layout."""
    templates = tmp_path / "templates"
    (templates / "layouts").mkdir(parents=True)
    (templates / "users").mkdir()
    (templates / "home.html").write_text("<h1>{{ title }}</h1>", encoding="utf-8")
    (templates / "users" / "show.html").write_text(
        "<p>{{ user }}</p>", encoding="utf-8"
    )
    (templates / "layouts" / "default.html").write_text(
        "<html><head>{{stylesheets}}</head>"
        "<body>{{header}}{{content}}{{scripts}}</body></html>",
        encoding="utf-8",
    )
    return tmp_path
