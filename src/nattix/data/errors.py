"""Data layer error hierarchy."""

from nattix.errors import NattixError


class DataError(NattixError):
    """Base for all nattix.data errors."""


class DriverNotInstalledError(DataError):
    """Raised when the required database driver is not installed."""


class QueryError(DataError):
    """A statement failed in the driver.

    Keeps the driver's message and chains the driver exception as
    ``__cause__``. ``category`` is ``"duplicate"``, ``"authentication"``
    or ``"generic"``.
    """

    def __init__(
        self,
        message: str,
        *,
        sql: str = "",
        params: object = None,
        category: str = "generic",
    ) -> None:
        super().__init__(message)
        self.sql = sql
        self.params = params
        self.category = category


class QueryOrderError(DataError):
    """A builder method was called from a step that does not allow it."""

    def __init__(self, method: str, step: str, allowed: frozenset[str]) -> None:
        self.method = method
        self.step = step
        self.allowed = allowed
        expected = ", ".join(sorted(allowed))
        super().__init__(
            f"Cannot call {method}() after the '{step}' step (allowed after: {expected})"
        )


class QueryArgumentError(DataError, ValueError):
    """A builder method received an invalid value."""
