"""Cookie parsing, ``Set-Cookie`` serialization, and encrypted cookies.

The read side (``parse_cookies``, used by Request) and the write side
(``SetCookie``, used by Response) live together with
``EncryptedCookies``, which stores values as
``base64(iv || AES-256-CBC(value))`` using a random 16-byte IV.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import secrets
from dataclasses import dataclass
from typing import TYPE_CHECKING

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from nattix.errors import ConfigurationError

if TYPE_CHECKING:
    from nattix.http.request import Request
    from nattix.http.response import Response


def parse_cookies(header: str) -> dict[str, str]:
    """Parse a ``Cookie`` header value into a name-value dict.

    Returns an empty dict for empty or missing headers.
    """
    if not header:
        return {}
    cookies: dict[str, str] = {}
    for pair in header.split(";"):
        name, sep, value = pair.strip().partition("=")
        if sep:
            cookies[name.strip()] = value.strip()
    return cookies


@dataclass(frozen=True, slots=True)
class SetCookie:
    """A ``Set-Cookie`` directive attached to a Response."""

    name: str
    value: str
    max_age: int | None = None
    expires: str | None = None
    path: str = "/"
    domain: str | None = None
    secure: bool = False
    httponly: bool = True
    samesite: str = "Lax"

    def to_header_value(self) -> str:
        """Serialize to a ``Set-Cookie`` header value string."""
        parts = [f"{self.name}={self.value}"]
        if self.max_age is not None:
            parts.append(f"Max-Age={self.max_age}")
        if self.expires:
            parts.append(f"Expires={self.expires}")
        if self.path:
            parts.append(f"Path={self.path}")
        if self.domain:
            parts.append(f"Domain={self.domain}")
        if self.secure:
            parts.append("Secure")
        if self.httponly:
            parts.append("HttpOnly")
        if self.samesite:
            parts.append(f"SameSite={self.samesite}")
        return "; ".join(parts)


IV_SIZE = 16


class EncryptedCookies:
    """AES-256-CBC encrypted cookie values.

    The 256-bit key is the SHA-256 digest of *secret*. Every call to
    ``encrypt`` draws a fresh IV, so the same value never produces the
    same cookie twice.

    Usage::

        cookies = EncryptedCookies(app.config.cookie_secret)
        response = cookies.set(response, "remember", user_id, max_age=3600)
        user_id = cookies.get(request, "remember")
    """

    __slots__ = ("_key",)

    def __init__(self, secret: str | bytes) -> None:
        if not secret:
            msg = "COOKIE_SECRET is not defined. Set AppConfig(cookie_secret=...)."
            raise ConfigurationError(msg)
        raw = secret.encode("utf-8") if isinstance(secret, str) else secret
        self._key = hashlib.sha256(raw).digest()

    # -- Crypto --

    def encrypt(self, value: str) -> str:
        iv = secrets.token_bytes(IV_SIZE)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(value.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return base64.urlsafe_b64encode(iv + ciphertext).decode("ascii")

    def decrypt(self, token: str) -> str | None:
        """Return the plaintext, or ``None`` if *token* is not ours."""
        try:
            combined = base64.urlsafe_b64decode(token.encode("ascii"))
        except (binascii.Error, UnicodeEncodeError):
            return None
        iv, ciphertext = combined[:IV_SIZE], combined[IV_SIZE:]
        if len(iv) != IV_SIZE or not ciphertext or len(ciphertext) % IV_SIZE:
            return None
        decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        try:
            plain = unpadder.update(padded) + unpadder.finalize()
            return plain.decode("utf-8")
        except ValueError:
            return None

    # -- Request / Response helpers --

    def get(self, request: Request, name: str) -> str | None:
        token = request.cookies.get(name)
        if token is None:
            return None
        return self.decrypt(token)

    @staticmethod
    def has(request: Request, name: str) -> bool:
        return name in request.cookies

    def set(
        self,
        response: Response,
        name: str,
        value: str,
        *,
        max_age: int | None = None,
        path: str = "/",
        domain: str | None = None,
        secure: bool = False,
        httponly: bool = True,
        samesite: str = "Lax",
    ) -> Response:
        return response.with_cookie(
            name,
            self.encrypt(value),
            max_age=max_age,
            path=path,
            domain=domain,
            secure=secure,
            httponly=httponly,
            samesite=samesite or "Lax",
        )

    @staticmethod
    def delete(response: Response, name: str, path: str = "/") -> Response:
        return response.without_cookie(name, path=path)

    @staticmethod
    def clear_all(request: Request, response: Response, path: str = "/") -> Response:
        for name in request.cookies:
            response = response.without_cookie(name, path=path)
        return response
