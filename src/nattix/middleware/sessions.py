"""Session middleware: signed cookie sessions.

Session data is serialized as JSON and signed using ``itsdangerous``.
The session dict lives in a ContextVar for the duration of a request,
reachable through ``get_session()`` or the ``Session`` helper from any
controller, view or middleware.
"""

from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any

from itsdangerous import BadSignature, URLSafeTimedSerializer

from nattix.errors import ConfigurationError
from nattix.http.request import Request
from nattix.http.response import Response
from nattix.middleware.protocol import Next

_session_var: ContextVar[dict[str, Any] | None] = ContextVar("nattix_session", default=None)
_destroyed_var: ContextVar[bool] = ContextVar("nattix_session_destroyed", default=False)


def get_session() -> dict[str, Any]:
    """Return the current session dict.

    Raises ``LookupError`` if called outside a request with
    ``SessionMiddleware`` active.
    """
    session = _session_var.get()
    if session is None:
        msg = (
            "No active session. Ensure SessionMiddleware is added "
            "to the app before accessing the session."
        )
        raise LookupError(msg)
    return session


class Session:
    """Static accessors over the current request's session.

    Usage::

        Session.set("user_id", 7)
        Session.get("user_id")   # 7
        Session.destroy()        # cookie expired on the response
    """

    @staticmethod
    def get(key: str, default: Any = None) -> Any:
        return get_session().get(key, default)

    @staticmethod
    def set(key: str, value: Any) -> None:
        get_session()[key] = value

    @staticmethod
    def has(key: str) -> bool:
        return key in get_session()

    @staticmethod
    def remove(key: str) -> None:
        get_session().pop(key, None)

    @staticmethod
    def destroy() -> None:
        """Clear the session and expire its cookie."""
        get_session().clear()
        _destroyed_var.set(True)

    @staticmethod
    def is_started() -> bool:
        return _session_var.get() is not None


@dataclass(frozen=True, slots=True)
class SessionConfig:
    """Session middleware configuration.

    ``secret_key`` is required: sessions are signed, not encrypted.
    The cookie defaults mirror a browser-session cookie with
    ``HttpOnly`` and ``SameSite=Lax``.
    """

    secret_key: str
    cookie_name: str = "nattix_session"
    max_age: int | None = None
    path: str = "/"
    domain: str | None = None
    secure: bool = False
    httponly: bool = True
    samesite: str = "Lax"


class SessionMiddleware:
    """Signed cookie session middleware.

    Reads the session cookie, verifies the signature, exposes the dict
    through ``get_session()``, then signs it back onto the response.

    Usage::

        app.add_middleware(SessionMiddleware(SessionConfig(secret_key="...")))
    """

    __slots__ = ("_config", "_serializer")

    def __init__(self, config: SessionConfig) -> None:
        if not config.secret_key:
            msg = "SessionConfig.secret_key must not be empty."
            raise ConfigurationError(msg)
        self._config = config
        self._serializer = URLSafeTimedSerializer(config.secret_key, salt="nattix.session")

    def _load_session(self, request: Request) -> dict[str, Any]:
        cookie_value = request.cookies.get(self._config.cookie_name)
        if not cookie_value:
            return {}
        try:
            data = self._serializer.loads(cookie_value, max_age=self._config.max_age)
        except BadSignature:
            return {}
        return data if isinstance(data, dict) else {}

    def _save_session(self, response: Response, session: dict[str, Any]) -> Response:
        cfg = self._config
        return response.with_cookie(
            cfg.cookie_name,
            self._serializer.dumps(session),
            max_age=cfg.max_age,
            path=cfg.path,
            domain=cfg.domain,
            secure=cfg.secure,
            httponly=cfg.httponly,
            samesite=cfg.samesite,
        )

    async def __call__(self, request: Request, next: Next) -> Response:
        session = self._load_session(request)
        token = _session_var.set(session)
        destroyed = _destroyed_var.set(False)
        try:
            response = await next(request)
            was_destroyed = _destroyed_var.get()
        finally:
            _session_var.reset(token)
            _destroyed_var.reset(destroyed)

        if was_destroyed and not session:
            return response.without_cookie(self._config.cookie_name, path=self._config.path)
        return self._save_session(response, session)
