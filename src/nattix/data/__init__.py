"""Async database access and a fluent query builder.

Basic usage::

    from nattix.data import Database

    db = Database("sqlite:///app.db")

    await db.insert("users", {"name": "Alice", "email": "a@example.com"})
    user = await db.select_one("users", conditions={"name": "Alice"})

    rows = await db.table("users").select().where("name", "A%").get()

SQLite works out of the box. PostgreSQL needs ``asyncpg``::

    pip install nattix[data-pg]
"""

from nattix.data.database import Database, QueryResult
from nattix.data.errors import (
    DataError,
    DriverNotInstalledError,
    QueryArgumentError,
    QueryError,
    QueryOrderError,
)
from nattix.data.query import Step, XQueryBuilder

__all__ = [
    "DataError",
    "Database",
    "DriverNotInstalledError",
    "QueryArgumentError",
    "QueryError",
    "QueryOrderError",
    "QueryResult",
    "Step",
    "XQueryBuilder",
]
