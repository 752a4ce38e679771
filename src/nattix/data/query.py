"""Fluent SQL builder with an enforced call order.

``XQueryBuilder`` accumulates one statement over one table. Every verb
is only legal after certain other verbs: ``where()`` may follow
``select()`` but ``insert()`` may not follow ``where()``. An illegal
call raises ``QueryOrderError`` before anything is changed.

Usage::

    rows = await (
        db.table("users")
        .select("id, name")
        .where("active", 1)
        .where("name", "A%")          # a % in the value switches to LIKE
        .order_by("name")
        .limit(20)
        .get()
    )

    await db.table("users").insert({"name": "Alice"}).execute()
    await db.table("users").update({"name": "Bob"}).where("id", 7).execute()

Values are always bound as ``:name`` parameters; table and column names
are interpolated as given. After execution the builder resets, so the
same instance can build the next statement for the same table.
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Mapping
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from nattix.data.errors import QueryArgumentError, QueryOrderError

if TYPE_CHECKING:
    from nattix.data.database import Database, QueryResult


class Step(StrEnum):
    INITIAL = "initial"
    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    WHERE = "where"
    JOIN = "join"
    COUNT = "count"
    ORDER = "order"
    GROUP = "group"
    HAVING = "having"
    LIMIT = "limit"
    OFFSET = "offset"
    DISTINCT = "distinct"
    TRUNCATE = "truncate"
    UNION = "union"
    RAW = "raw"
    BETWEEN = "between"
    ALIAS = "alias"
    SUBQUERY = "subquery"


# Steps that leave a readable SELECT behind.
_READS = frozenset({Step.SELECT, Step.DISTINCT, Step.COUNT, Step.SUBQUERY})
_FILTERED = frozenset({Step.WHERE, Step.BETWEEN})

ALLOWED: dict[str, frozenset[Step]] = {
    "select": frozenset({Step.INITIAL, Step.ALIAS}),
    "distinct": frozenset({Step.INITIAL, Step.ALIAS}),
    "count": frozenset({Step.INITIAL, Step.ALIAS}),
    "insert": frozenset({Step.INITIAL}),
    "update": frozenset({Step.INITIAL}),
    "delete": frozenset({Step.INITIAL}),
    "truncate": frozenset({Step.INITIAL}),
    "raw_query": frozenset({Step.INITIAL}),
    "alias": frozenset({Step.INITIAL}),
    "subquery": frozenset({Step.INITIAL}),
    "join": _READS | {Step.JOIN} | _FILTERED,
    "where": _READS | {Step.JOIN, Step.UPDATE, Step.DELETE} | _FILTERED,
    "or_where": _FILTERED,
    "group_by": _READS | {Step.JOIN} | _FILTERED,
    "having": frozenset({Step.GROUP, Step.HAVING}),
    "order_by": _READS | {Step.JOIN, Step.GROUP, Step.HAVING, Step.ORDER, Step.UNION} | _FILTERED,
    "limit": _READS
    | {Step.JOIN, Step.GROUP, Step.HAVING, Step.ORDER, Step.UNION}
    | _FILTERED,
    "offset": frozenset({Step.LIMIT}),
    "union": _READS | {Step.JOIN, Step.GROUP, Step.HAVING, Step.UNION} | _FILTERED,
}
ALLOWED["where_in"] = ALLOWED["where"]
ALLOWED["between"] = ALLOWED["where"]
ALLOWED["left_join"] = ALLOWED["right_join"] = ALLOWED["outer_join"] = ALLOWED["join"]

# Steps a fetch can run from.
_FETCHABLE = ALLOWED["limit"] | {Step.LIMIT, Step.OFFSET, Step.RAW}

OPERATORS = frozenset({"=", "!=", "<>", "<", ">", "<=", ">=", "LIKE", "NOT LIKE"})
DIRECTIONS = frozenset({"ASC", "DESC"})
_BIND = re.compile(r"(?<!:):([A-Za-z_][A-Za-z0-9_]*)")


def _positive_int(value: Any, name: str, *, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        qualifier = "a positive" if minimum > 0 else "a non-negative"
        msg = f"{name}() expects {qualifier} integer, got {value!r}"
        raise QueryArgumentError(msg)
    return value


class XQueryBuilder:
    """Fluent, order-checked statement builder over one table."""

    __slots__ = (
        "_alias",
        "_db",
        "_filtered",
        "_from_end",
        "_joins",
        "_params",
        "_sql",
        "_step",
        "table",
    )

    def __init__(self, db: Database, table: str) -> None:
        self._db = db
        self.table = table
        self._alias: str | None = None
        self.reset()

    def __repr__(self) -> str:
        return f"XQueryBuilder({self.table!r}, step={self._step.value!r})"

    def reset(self) -> XQueryBuilder:
        """Forget the current statement and its bindings."""
        self._step = Step.INITIAL
        self._sql = ""
        self._params: dict[str, Any] = {}
        self._joins: list[str] = []
        self._from_end = 0
        self._filtered = False
        self._alias = None
        return self

    @property
    def step(self) -> Step:
        return self._step

    @property
    def params(self) -> dict[str, Any]:
        """A copy of the bound values."""
        return dict(self._params)

    # -- State machine --

    def _check(self, method: str) -> None:
        allowed = ALLOWED[method]
        if self._step not in allowed:
            raise QueryOrderError(method, self._step.value, frozenset(s.value for s in allowed))

    def _check_read(self, method: str) -> None:
        """Like ``_check``, and the statement must be a SELECT."""
        self._check(method)
        if not self._from_end:
            raise QueryOrderError(method, self._step.value, frozenset(s.value for s in _READS))

    def _advance(self, method: str, step: Step) -> None:
        self._check(method)
        self._step = step

    def _bind(self, column: str, value: Any) -> str:
        """Register *value* under a name derived from *column*; return the name."""
        base = re.sub(r"\W", "_", column).strip("_") or "param"
        name, n = base, 0
        while name in self._params:
            n += 1
            name = f"{base}_{n}"
        self._params[name] = value
        return name

    def _absorb(self, sql: str, params: Mapping[str, Any]) -> str:
        """Merge another statement's bindings, renaming clashes in *sql*."""
        renames: dict[str, str] = {}
        for key, value in params.items():
            renames[key] = self._bind(key, value)
        return _BIND.sub(lambda m: ":" + renames.get(m.group(1), m.group(1)), sql)

    def _from(self) -> str:
        return f"{self.table} AS {self._alias}" if self._alias else self.table

    def _open_select(self, method: str, step: Step, head: str) -> XQueryBuilder:
        self._advance(method, step)
        self._sql = f"{head} FROM {self._from()}"
        self._from_end = len(self._sql)
        return self

    # -- Statement verbs --

    def select(self, columns: str | Iterable[str] = "*") -> XQueryBuilder:
        if not isinstance(columns, str):
            columns = ", ".join(columns)
        return self._open_select("select", Step.SELECT, f"SELECT {columns or '*'}")

    def distinct(self, columns: str | Iterable[str] = "*") -> XQueryBuilder:
        if not isinstance(columns, str):
            columns = ", ".join(columns)
        return self._open_select("distinct", Step.DISTINCT, f"SELECT DISTINCT {columns}")

    def count(self, column: str = "*") -> XQueryBuilder:
        return self._open_select("count", Step.COUNT, f"SELECT COUNT({column}) AS count")

    def sum(self, column: str) -> XQueryBuilder:
        return self.select(f"SUM({column}) AS aggregate")

    def avg(self, column: str) -> XQueryBuilder:
        return self.select(f"AVG({column}) AS aggregate")

    def max(self, column: str) -> XQueryBuilder:
        return self.select(f"MAX({column}) AS aggregate")

    def min(self, column: str) -> XQueryBuilder:
        return self.select(f"MIN({column}) AS aggregate")

    def alias(self, name: str) -> XQueryBuilder:
        """Name the table (``FROM users AS u``) for the select that follows."""
        self._advance("alias", Step.ALIAS)
        self._alias = name
        return self

    def subquery(self, builder: XQueryBuilder, alias: str) -> XQueryBuilder:
        """Select from *builder*'s statement: ``SELECT * FROM (...) AS alias``."""
        self._check("subquery")
        inner = builder.to_sql()
        if not inner:
            msg = "subquery() needs a builder with a statement"
            raise QueryArgumentError(msg)
        self._step = Step.SUBQUERY
        inner = self._absorb(inner, builder.params)
        self._sql = f"SELECT * FROM ({inner}) AS {alias}"
        self._from_end = len(self._sql)
        return self

    def insert(self, data: Mapping[str, Any]) -> XQueryBuilder:
        if not data:
            msg = "insert() needs at least one column"
            raise QueryArgumentError(msg)
        self._advance("insert", Step.INSERT)
        binds = [self._bind(column, value) for column, value in data.items()]
        columns = ", ".join(data)
        values = ", ".join(f":{name}" for name in binds)
        self._sql = f"INSERT INTO {self.table} ({columns}) VALUES ({values})"
        return self

    def update(self, data: Mapping[str, Any]) -> XQueryBuilder:
        if not data:
            msg = "update() needs at least one column"
            raise QueryArgumentError(msg)
        self._advance("update", Step.UPDATE)
        assignments = ", ".join(
            f"{column} = :{self._bind(column, value)}" for column, value in data.items()
        )
        self._sql = f"UPDATE {self.table} SET {assignments}"
        return self

    def delete(self) -> XQueryBuilder:
        self._advance("delete", Step.DELETE)
        self._sql = f"DELETE FROM {self.table}"
        return self

    def truncate(self) -> XQueryBuilder:
        self._advance("truncate", Step.TRUNCATE)
        if self._db.driver == "sqlite":
            self._sql = f"DELETE FROM {self.table}"
        else:
            self._sql = f"TRUNCATE TABLE {self.table}"
        return self

    def raw_query(self, sql: str, params: Mapping[str, Any] | None = None) -> XQueryBuilder:
        self._advance("raw_query", Step.RAW)
        self._sql = sql
        self._params = dict(params or {})
        return self

    # -- Filters --

    def _condition(self, glue: str, clause: str) -> None:
        keyword = glue if self._filtered else "WHERE"
        self._sql += f" {keyword} {clause}"
        self._filtered = True

    def where(self, column: str, value: Any, operator: str = "=") -> XQueryBuilder:
        """``column = :column``; a ``%`` in a string value switches to ``LIKE``.

        ``None`` compares with ``IS NULL`` / ``IS NOT NULL``.
        """
        return self._where("where", "AND", column, value, operator)

    def or_where(self, column: str, value: Any, operator: str = "=") -> XQueryBuilder:
        return self._where("or_where", "OR", column, value, operator)

    def _where(
        self, method: str, glue: str, column: str, value: Any, operator: str
    ) -> XQueryBuilder:
        operator = operator.upper()
        if operator not in OPERATORS:
            msg = f"{method}() got unsupported operator {operator!r}"
            raise QueryArgumentError(msg)
        self._check(method)
        if value is None:
            test = "IS NOT NULL" if operator in {"!=", "<>"} else "IS NULL"
            clause = f"{column} {test}"
        else:
            if operator == "=" and isinstance(value, str) and "%" in value:
                operator = "LIKE"
            clause = f"{column} {operator} :{self._bind(column, value)}"
        self._condition(glue, clause)
        self._step = Step.WHERE
        return self

    def where_in(self, column: str, values: Iterable[Any]) -> XQueryBuilder:
        values = list(values)
        if not values:
            msg = "where_in() needs at least one value"
            raise QueryArgumentError(msg)
        self._check("where_in")
        binds = ", ".join(f":{self._bind(column, value)}" for value in values)
        self._condition("AND", f"{column} IN ({binds})")
        self._step = Step.WHERE
        return self

    def between(self, column: str, low: Any, high: Any) -> XQueryBuilder:
        self._check("between")
        low_name = self._bind(f"{column}_from", low)
        high_name = self._bind(f"{column}_to", high)
        self._condition("AND", f"{column} BETWEEN :{low_name} AND :{high_name}")
        self._step = Step.BETWEEN
        return self

    # -- Joins --

    def _join(
        self, method: str, kind: str, table: str, first: str, operator: str, second: str
    ) -> XQueryBuilder:
        self._check_read(method)
        self._step = Step.JOIN
        self._joins.append(f" {kind} {table} ON {first} {operator} {second}")
        return self

    def join(self, table: str, first: str, operator: str, second: str) -> XQueryBuilder:
        return self._join("join", "INNER JOIN", table, first, operator, second)

    def left_join(self, table: str, first: str, operator: str, second: str) -> XQueryBuilder:
        return self._join("left_join", "LEFT JOIN", table, first, operator, second)

    def right_join(self, table: str, first: str, operator: str, second: str) -> XQueryBuilder:
        return self._join("right_join", "RIGHT JOIN", table, first, operator, second)

    def outer_join(self, table: str, first: str, operator: str, second: str) -> XQueryBuilder:
        return self._join("outer_join", "FULL OUTER JOIN", table, first, operator, second)

    # -- Grouping, ordering, windows --

    def group_by(self, *columns: str) -> XQueryBuilder:
        if not columns:
            msg = "group_by() needs at least one column"
            raise QueryArgumentError(msg)
        self._check_read("group_by")
        self._step = Step.GROUP
        self._sql += f" GROUP BY {', '.join(columns)}"
        return self

    def having(self, column: str, operator: str, value: Any) -> XQueryBuilder:
        operator = operator.upper()
        if operator not in OPERATORS:
            msg = f"having() got unsupported operator {operator!r}"
            raise QueryArgumentError(msg)
        glue = "AND" if self._step is Step.HAVING else "HAVING"
        self._advance("having", Step.HAVING)
        self._sql += f" {glue} {column} {operator} :{self._bind(column, value)}"
        return self

    def order_by(self, column: str, direction: str = "ASC") -> XQueryBuilder:
        direction = direction.upper()
        if direction not in DIRECTIONS:
            msg = f"order_by() direction must be ASC or DESC, got {direction!r}"
            raise QueryArgumentError(msg)
        glue = "," if self._step is Step.ORDER else " ORDER BY"
        self._advance("order_by", Step.ORDER)
        self._sql += f"{glue} {column} {direction}"
        return self

    def limit(self, count: int) -> XQueryBuilder:
        count = _positive_int(count, "limit", minimum=1)
        self._advance("limit", Step.LIMIT)
        self._sql += f" LIMIT {count}"
        return self

    def offset(self, count: int) -> XQueryBuilder:
        count = _positive_int(count, "offset", minimum=0)
        self._advance("offset", Step.OFFSET)
        self._sql += f" OFFSET {count}"
        return self

    def union(self, other: XQueryBuilder, *, all: bool = False) -> XQueryBuilder:  # noqa: A002
        other_sql = other.to_sql()
        if not other_sql:
            msg = "union() needs a builder with a statement"
            raise QueryArgumentError(msg)
        self._check_read("union")
        # Splice our joins now so they stay attached to our own FROM.
        self._sql = self.to_sql()
        self._joins = []
        other_sql = self._absorb(other_sql, other.params)
        self._sql += f" UNION {'ALL ' if all else ''}{other_sql}"
        self._step = Step.UNION
        return self

    # -- Compilation --

    def to_sql(self) -> str:
        """The statement with join fragments spliced after its FROM clause."""
        if not self._joins:
            return self._sql
        head, tail = self._sql[: self._from_end], self._sql[self._from_end :]
        return head + "".join(self._joins) + tail

    # -- Execution --

    async def execute(self) -> QueryResult:
        """Run the statement. The builder resets whether or not it succeeds."""
        if self._step is Step.INITIAL:
            raise QueryOrderError("execute", self._step.value, frozenset())
        sql, params = self.to_sql(), self.params
        try:
            return await self._db.execute_raw(sql, params)
        finally:
            self.reset()

    async def get(self) -> list[dict[str, Any]]:
        """Run a read and return every row. Selects ``*`` when nothing was chosen."""
        if self._step is Step.INITIAL:
            self.select()
        elif self._step not in _FETCHABLE:
            raise QueryOrderError("get", self._step.value, frozenset(s.value for s in _FETCHABLE))
        return (await self.execute()).rows

    async def first(self) -> dict[str, Any] | None:
        if self._step is Step.INITIAL:
            self.select()
        if self._step in ALLOWED["limit"]:
            self.limit(1)
        rows = await self.get()
        return rows[0] if rows else None

    async def value(self) -> Any:
        """First column of the first row (``count()``, ``sum()``...)."""
        row = await self.first()
        if row is None:
            return None
        return next(iter(row.values()), None)

    async def paginate(self, per_page: int = 15, page: int = 1) -> dict[str, Any]:
        """Run the current read one page at a time.

        Returns ``{"data", "total", "per_page", "page", "total_pages"}``.
        """
        per_page = _positive_int(per_page, "paginate", minimum=1)
        page = _positive_int(page, "paginate", minimum=1)
        if self._step is Step.INITIAL:
            self.select()
        self._check("limit")

        sql, params = self.to_sql(), self.params
        try:
            total = await self._db.fetch_value(
                f"SELECT COUNT(*) AS count FROM ({sql}) AS paginated", params
            )
            offset = (page - 1) * per_page
            rows = await self._db.fetch_all(f"{sql} LIMIT {per_page} OFFSET {offset}", params)
        finally:
            self.reset()

        total = int(total or 0)
        return {
            "data": rows,
            "total": total,
            "per_page": per_page,
            "page": page,
            "total_pages": math.ceil(total / per_page) if total else 0,
        }
