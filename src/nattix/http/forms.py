"""URL-encoded form bodies.

Only ``application/x-www-form-urlencoded`` is parsed. Other content
types produce an empty form so ``_method`` detection and sanitized
accessors stay safe to call on any request.
"""

from nattix.http.query import QueryParams

FORM_URLENCODED = "application/x-www-form-urlencoded"


class FormData(QueryParams):
    """Parsed form fields. Same API as ``QueryParams``."""

    __slots__ = ()

    def __repr__(self) -> str:
        return f"FormData({dict(self.items())!r})"


def is_urlencoded(content_type: str | None) -> bool:
    if not content_type:
        return False
    return content_type.split(";", 1)[0].strip().lower() == FORM_URLENCODED


def parse_form(body: bytes, content_type: str | None) -> FormData:
    if not body or not is_urlencoded(content_type):
        return FormData()
    return FormData(body)
