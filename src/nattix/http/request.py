"""Immutable HTTP request.

Frozen metadata with async body access. Route parameters are attached
by the router with ``with_path_params()``; the HTML form method override
(``_method``) is applied by ``resolve_method()`` before routing.
"""

from __future__ import annotations

import html
import json
from collections.abc import AsyncGenerator, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from nattix._internal.asgi import Receive
from nattix.http.cookies import parse_cookies
from nattix.http.forms import FormData, is_urlencoded, parse_form
from nattix.http.headers import Headers
from nattix.http.query import QueryParams

# Methods an HTML form may tunnel through POST with a ``_method`` field.
OVERRIDABLE_METHODS = frozenset({"PUT", "PATCH", "DELETE"})


def sanitize(value: str) -> str:
    """HTML-escape *value*, quotes included."""
    return html.escape(value, quote=True)


@dataclass(frozen=True, slots=True)
class Request:
    """An immutable HTTP request.

    Metadata (method, path, headers, etc.) is frozen at creation.
    Body is accessed asynchronously via ``.body()``, ``.json()``, ``.form()``.
    ``input()``, ``post()`` and ``all()`` return HTML-escaped values
    from the query string or the already-parsed form.
    """

    method: str
    path: str
    headers: Headers
    query: QueryParams
    path_params: dict[str, str]
    http_version: str
    server: tuple[str, int] | None
    client: tuple[str, int] | None
    cookies: Mapping[str, str]

    # Private: ASGI receive callable for body streaming
    _receive: Receive

    # Private: body and parsed form cache, shared by copies made with replace()
    _cache: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    # -- Computed properties --

    @property
    def content_type(self) -> str | None:
        return self.headers.get("content-type")

    @property
    def url(self) -> str:
        """Full request URL (path + query string)."""
        qs = self.query.raw
        if qs:
            return f"{self.path}?{qs.decode('latin-1')}"
        return self.path

    def is_get(self) -> bool:
        return self.method == "GET"

    def is_post(self) -> bool:
        return self.method == "POST"

    def is_put(self) -> bool:
        return self.method == "PUT"

    def is_patch(self) -> bool:
        return self.method == "PATCH"

    def is_delete(self) -> bool:
        return self.method == "DELETE"

    # -- Route parameters --

    def param(self, name: str, default: str | None = None) -> str | None:
        """A captured route parameter, e.g. ``id`` for ``/users/{id}``."""
        return self.path_params.get(name, default)

    def with_path_params(self, path_params: Mapping[str, str]) -> Request:
        return replace(self, path_params=dict(path_params))

    # -- Sanitized input --

    @property
    def _parsed_form(self) -> FormData:
        return self._cache.get("_form") or FormData()

    def input(self, key: str, default: Any = "") -> Any:
        """Escaped value of *key*: query string for GET, form body otherwise."""
        source = self.query if self.is_get() else self._parsed_form
        value = source.get(key)
        return default if value is None else sanitize(value)

    def post(self, key: str, default: Any = "") -> Any:
        """Escaped value of *key* from the url-encoded form body."""
        value = self._parsed_form.get(key)
        return default if value is None else sanitize(value)

    def all(self) -> dict[str, str]:
        """Every query and form value, escaped. Form values win on clashes."""
        merged: dict[str, str] = {}
        for source in (self.query, self._parsed_form):
            for key in source:
                value = source.get(key)
                if value is not None:
                    merged[key] = sanitize(value)
        return merged

    # -- Async body access --

    async def body(self) -> bytes:
        """Read the full request body.

        Result is cached: the ASGI receive is consumed once, then
        the same bytes are returned on subsequent calls.
        """
        if "_body" in self._cache:
            return self._cache["_body"]
        chunks = [chunk async for chunk in self.stream()]
        result = b"".join(chunks)
        self._cache["_body"] = result
        return result

    async def stream(self) -> AsyncGenerator[bytes]:
        while True:
            message = await self._receive()
            body = message.get("body", b"")
            if body:
                yield body
            if not message.get("more_body", False):
                break

    async def json(self) -> Any:
        raw = await self.body()
        return json.loads(raw)

    async def text(self) -> str:
        raw = await self.body()
        return raw.decode("utf-8")

    async def form(self) -> FormData:
        """Parse the body as ``application/x-www-form-urlencoded``.

        Any other content type yields an empty ``FormData``.
        """
        if "_form" in self._cache:
            return self._cache["_form"]
        result = parse_form(await self.body(), self.content_type)
        self._cache["_form"] = result
        return result

    async def resolve_method(self) -> Request:
        """Parse a url-encoded body and apply its ``_method`` field to a POST.

        The parsed form is cached, which is what lets ``input()``,
        ``post()`` and ``all()`` read it synchronously. Returns ``self``
        when there is nothing to override.
        """
        if not is_urlencoded(self.content_type):
            return self
        form = await self.form()
        if self.method != "POST":
            return self
        override = (form.get("_method") or "").upper()
        if override in OVERRIDABLE_METHODS:
            return replace(self, method=override)
        return self

    # -- Factory --

    @classmethod
    def from_asgi(
        cls,
        scope: Mapping[str, Any],
        receive: Receive,
        path_params: dict[str, str] | None = None,
    ) -> Request:
        """Create a Request from an ASGI scope and receive callable."""
        headers = Headers(tuple(scope.get("headers", ())))
        server = scope.get("server")
        client = scope.get("client")
        return cls(
            method=scope["method"].upper(),
            path=scope["path"],
            headers=headers,
            query=QueryParams(scope.get("query_string", b"")),
            path_params=path_params or {},
            http_version=scope.get("http_version", "1.1"),
            server=tuple(server) if server else None,
            client=tuple(client) if client else None,
            cookies=parse_cookies(headers.get("cookie", "")),
            _receive=receive,
        )
