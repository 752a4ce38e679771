"""Tests for nattix.http.cookies: parsing and encrypted cookie values."""

import pytest

from conftest import make_request
from nattix.errors import ConfigurationError
from nattix.http.cookies import EncryptedCookies, parse_cookies
from nattix.http.response import Response


class TestParseCookies:
    def test_empty(self) -> None:
        assert parse_cookies("") == {}

    def test_pairs(self) -> None:
        assert parse_cookies("a=1; b = 2 ;c=x=y") == {"a": "1", "b": "2", "c": "x=y"}

    def test_skips_malformed(self) -> None:
        assert parse_cookies("novalue; a=1") == {"a": "1"}


class TestEncryptedCookies:
    def test_requires_secret(self) -> None:
        with pytest.raises(ConfigurationError, match="COOKIE_SECRET"):
            EncryptedCookies("")

    def test_roundtrip(self) -> None:
        cookies = EncryptedCookies("s3cret")
        token = cookies.encrypt("user:42")
        assert token != "user:42"
        assert cookies.decrypt(token) == "user:42"

    def test_fresh_iv_per_call(self) -> None:
        cookies = EncryptedCookies("s3cret")
        assert cookies.encrypt("same") != cookies.encrypt("same")

    def test_other_secret_cannot_read(self) -> None:
        token = EncryptedCookies("one").encrypt("value")
        assert EncryptedCookies("two").decrypt(token) != "value"

    @pytest.mark.parametrize("token", ["", "not-base64!!", "c2hvcnQ=", "é"])
    def test_garbage_is_none(self, token: str) -> None:
        assert EncryptedCookies("s3cret").decrypt(token) is None

    def test_set_and_get(self) -> None:
        cookies = EncryptedCookies("s3cret")
        response = cookies.set(Response(), "remember", "42", max_age=3600)
        cookie = response.cookies[0]
        assert cookie.name == "remember"
        assert cookie.max_age == 3600
        request = make_request(headers={"Cookie": f"remember={cookie.value}"})
        assert cookies.has(request, "remember")
        assert cookies.get(request, "remember") == "42"
        assert cookies.get(request, "other") is None

    def test_delete_and_clear_all(self) -> None:
        request = make_request(headers={"Cookie": "a=1; b=2"})
        response = EncryptedCookies.delete(Response(), "x")
        response = EncryptedCookies.clear_all(request, response)
        assert [(c.name, c.max_age) for c in response.cookies] == [
            ("x", 0),
            ("a", 0),
            ("b", 0),
        ]
