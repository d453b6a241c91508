"""Fluent query builder that compiles to one SQLite statement.

Usage mirrors the hosted REST client the application was written against::

    resp = await client.table("items").select("*").eq("user_id", uid).order("created_at", ascending=False)
    if resp.error:
        ...

A builder holds exactly one pending operation (``Select``, ``Insert``,
``Update`` or ``Delete``); calling a second operation setter replaces the
first. Predicates are kept as an ordered list of ``Filter`` tuples and are
AND-ed in the order they were added. Nothing touches the engine until the
builder is awaited (or ``execute()`` is called), and the result is always an
``APIResponse`` value: errors never propagate as exceptions.

Known approximations:
- ``ilike`` compiles exactly like ``like``; SQLite's LIKE is already
  case-insensitive for ASCII and case-sensitive beyond it.
- ``contains`` is a substring match (``LIKE '%value%'``) on the stored text,
  not structural containment.
"""

import asyncio
import logging
import sqlite3
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple, Union

from ..errors import LaterrError, NoRowsError, QueryError, TableNotFoundError
from ..logging_config import log_mutation
from ..utils import generate_id, utc_now
from .base import APIResponse
from .codec import contains_fragment, decode_row, encode_row, encode_value
from .schema import table_columns, validate_identifier

if TYPE_CHECKING:
    from .local import LocalDatabase

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


# === Operations ===


@dataclass(frozen=True)
class Select:
    columns: str = "*"


@dataclass(frozen=True)
class Insert:
    rows: Tuple[Row, ...]
    many: bool


@dataclass(frozen=True)
class Update:
    values: Row


@dataclass(frozen=True)
class Delete:
    pass


Operation = Union[Select, Insert, Update, Delete]


@dataclass(frozen=True)
class Filter:
    column: str
    operator: str  # SQL operator token: "=", "!=", ">", "LIKE", "IS NULL", "IN", "CONTAINS"...
    value: Any = None


@dataclass(frozen=True)
class OrderBy:
    column: str
    ascending: bool = True


@dataclass
class Compiled:
    sql: str
    params: List[Any] = field(default_factory=list)


# === Compilation (pure functions of builder state) ===

_LIKE_ESCAPE = "\\"


def escape_like_pattern(pattern: str) -> str:
    """Escape LIKE pattern special characters to prevent pattern injection."""
    return pattern.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def compile_projection(columns: str) -> str:
    """Validate a projection string and return it unchanged."""
    if not isinstance(columns, str) or not columns.strip():
        raise QueryError("Projection cannot be empty")
    for part in columns.split(","):
        part = part.strip()
        if part != "*":
            validate_identifier(part)
    return columns.strip()


def compile_where(filters: Sequence[Filter]) -> Tuple[str, List[Any]]:
    """Join predicates with AND; every value becomes a bound parameter."""
    if not filters:
        return "", []

    clauses: List[str] = []
    params: List[Any] = []
    for f in filters:
        column = validate_identifier(f.column)
        if f.operator == "IS NULL":
            clauses.append(f"{column} IS NULL")
        elif f.operator == "IN":
            values = list(f.value)
            placeholders = ", ".join("?" for _ in values)
            clauses.append(f"{column} IN ({placeholders})")
            params.extend(encode_value(column, v) for v in values)
        elif f.operator == "CONTAINS":
            clauses.append(f"{column} LIKE ? ESCAPE '{_LIKE_ESCAPE}'")
            params.append(f"%{escape_like_pattern(f.value)}%")
        else:
            clauses.append(f"{column} {f.operator} ?")
            params.append(encode_value(column, f.value))

    return "WHERE " + " AND ".join(clauses), params


def compile_select(
    table: str,
    columns: str,
    filters: Sequence[Filter],
    order: Optional[OrderBy] = None,
    limit: Optional[int] = None,
) -> Compiled:
    parts = [f"SELECT {compile_projection(columns)} FROM {validate_identifier(table)}"]
    where, params = compile_where(filters)
    if where:
        parts.append(where)
    if order is not None:
        direction = "ASC" if order.ascending else "DESC"
        parts.append(f"ORDER BY {validate_identifier(order.column)} {direction}")
    if limit is not None:
        parts.append(f"LIMIT {int(limit)}")
    return Compiled(" ".join(parts), params)


def compile_insert(table: str, row: Row) -> Compiled:
    if not row:
        raise QueryError("No data to insert")
    keys = [validate_identifier(k) for k in row]
    encoded = encode_row(row)
    placeholders = ", ".join("?" for _ in keys)
    sql = f"INSERT INTO {validate_identifier(table)} ({', '.join(keys)}) VALUES ({placeholders})"
    return Compiled(sql, [encoded[k] for k in keys])


def compile_update(table: str, values: Row, filters: Sequence[Filter]) -> Compiled:
    if not values:
        raise QueryError("No data to update")
    keys = [validate_identifier(k) for k in values]
    encoded = encode_row(values)
    set_clause = ", ".join(f"{k} = ?" for k in keys)
    where, where_params = compile_where(filters)
    sql = f"UPDATE {validate_identifier(table)} SET {set_clause}"
    if where:
        sql += f" {where}"
    sql += " RETURNING *"
    return Compiled(sql, [encoded[k] for k in keys] + where_params)


def compile_delete(table: str, filters: Sequence[Filter]) -> Compiled:
    where, params = compile_where(filters)
    sql = f"DELETE FROM {validate_identifier(table)}"
    if where:
        sql += f" {where}"
    sql += " RETURNING *"
    return Compiled(sql, params)


def materialize(rows: Sequence[sqlite3.Row]) -> List[Row]:
    """Turn engine rows into dicts, decoding JSON columns."""
    return [decode_row(dict(r)) for r in rows]


# === Builder ===


class QueryBuilder:
    """Per-table builder; every chaining method returns ``self``."""

    def __init__(self, db: "LocalDatabase", table: str):
        self._db = db
        self.table = table
        self.operation: Operation = Select()
        self.filters: List[Filter] = []
        self.order_by: Optional[OrderBy] = None
        self.limit_count: Optional[int] = None
        self.expect_single = False
        self.expect_maybe_single = False
        # First bad argument given to a chaining method; reported on execution
        self.invalid: Optional[QueryError] = None

    def __repr__(self) -> str:
        return f"<QueryBuilder {self.table} {self.operation!r} filters={len(self.filters)}>"

    def _reject(self, message: str) -> "QueryBuilder":
        if self.invalid is None:
            self.invalid = QueryError(message)
        return self

    # --- operation setters (last one wins) ---

    def select(self, columns: str = "*") -> "QueryBuilder":
        self.operation = Select(columns)
        return self

    def insert(self, data: Union[Row, Sequence[Row]]) -> "QueryBuilder":
        if isinstance(data, dict):
            self.operation = Insert((dict(data),), many=False)
            return self
        if data is None or isinstance(data, (str, bytes)):
            return self._reject("insert() expects a row or a list of rows")
        try:
            rows = tuple(dict(r) for r in data)
        except (TypeError, ValueError):
            return self._reject("insert() expects a row or a list of rows")
        self.operation = Insert(rows, many=True)
        return self

    def update(self, data: Row) -> "QueryBuilder":
        if not isinstance(data, dict):
            return self._reject("update() expects a row of column values")
        self.operation = Update(dict(data))
        return self

    def delete(self) -> "QueryBuilder":
        self.operation = Delete()
        return self

    # --- predicates ---

    def _add(self, column: str, operator: str, value: Any = None) -> "QueryBuilder":
        self.filters.append(Filter(column, operator, value))
        return self

    def eq(self, column: str, value: Any) -> "QueryBuilder":
        return self._add(column, "=", value)

    def neq(self, column: str, value: Any) -> "QueryBuilder":
        return self._add(column, "!=", value)

    def gt(self, column: str, value: Any) -> "QueryBuilder":
        return self._add(column, ">", value)

    def gte(self, column: str, value: Any) -> "QueryBuilder":
        return self._add(column, ">=", value)

    def lt(self, column: str, value: Any) -> "QueryBuilder":
        return self._add(column, "<", value)

    def lte(self, column: str, value: Any) -> "QueryBuilder":
        return self._add(column, "<=", value)

    def like(self, column: str, pattern: str) -> "QueryBuilder":
        return self._add(column, "LIKE", pattern)

    def ilike(self, column: str, pattern: str) -> "QueryBuilder":
        # Same SQL as like(): SQLite LIKE is case-insensitive for ASCII
        return self._add(column, "LIKE", pattern)

    def is_(self, column: str, value: Any) -> "QueryBuilder":
        if value is None or value == "null":
            return self._add(column, "IS NULL")
        return self._add(column, "=", value)

    def in_(self, column: str, values: Sequence[Any]) -> "QueryBuilder":
        if values is None or isinstance(values, (str, bytes)):
            return self._reject("in_() expects a sequence of values, not a string")
        try:
            values = tuple(values)
        except TypeError:
            return self._reject("in_() expects a sequence of values")
        return self._add(column, "IN", values)

    def contains(self, column: str, value: Any) -> "QueryBuilder":
        if isinstance(value, (list, tuple, set)):
            for element in value:
                self._add(column, "CONTAINS", contains_fragment(column, element))
            return self
        return self._add(column, "CONTAINS", str(value))

    # --- shaping ---

    def order(self, column: str, ascending: bool = True) -> "QueryBuilder":
        self.order_by = OrderBy(column, ascending)
        return self

    def limit(self, count: int) -> "QueryBuilder":
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            return self._reject("limit must be a non-negative integer")
        self.limit_count = count
        return self

    def single(self) -> "QueryBuilder":
        self.expect_single = True
        return self

    def maybe_single(self) -> "QueryBuilder":
        self.expect_maybe_single = True
        return self

    # --- execution ---

    def __await__(self):
        # Blocking engine work runs on a worker thread; the engine lock serializes it
        return asyncio.to_thread(self.execute).__await__()

    def execute(self) -> APIResponse:
        """Compile, run and (for mutations) persist. Never raises."""
        try:
            data = self._run()
        except LaterrError as e:
            logger.debug(f"{self.table}: {e.kind} error: {e.message}")
            return APIResponse.failure(e)
        except Exception as e:
            logger.exception(f"Unexpected failure querying {self.table}")
            return APIResponse.failure(e)
        return APIResponse(data=data)

    def _run(self) -> Any:
        if self.invalid is not None:
            raise self.invalid
        op = self.operation
        if isinstance(op, Select):
            return self._run_select(op)
        if isinstance(op, Insert):
            return self._run_insert(op)
        if isinstance(op, Update):
            return self._run_update(op)
        return self._run_delete()

    def _run_select(self, op: Select) -> Any:
        compiled = compile_select(
            self.table, op.columns, self.filters, self.order_by, self.limit_count
        )
        logger.debug(f"SQL: {compiled.sql}")
        try:
            rows = self._db.read(
                lambda conn: conn.execute(compiled.sql, compiled.params).fetchall()
            )
        except TableNotFoundError:
            # Table not created yet: treat as no rows
            rows = []
        return self._shape(materialize(rows))

    def _run_insert(self, op: Insert) -> Any:
        if not op.rows:
            raise QueryError("No data to insert")

        def apply(conn: sqlite3.Connection) -> List[sqlite3.Row]:
            columns = table_columns(conn, self.table)
            inserted = []
            for source in op.rows:
                row = dict(source)
                if not row.get("id"):
                    row["id"] = generate_id()
                stamp = None
                for col in ("created_at", "updated_at"):
                    if col in columns and row.get(col) is None:
                        stamp = stamp or utc_now()
                        row[col] = stamp
                compiled = compile_insert(self.table, row)
                logger.debug(f"SQL: {compiled.sql}")
                conn.execute(compiled.sql, compiled.params)
                stored = conn.execute(
                    f"SELECT * FROM {validate_identifier(self.table)} WHERE id = ?", (row["id"],)
                ).fetchone()
                if stored is not None:
                    inserted.append(stored)
            return inserted

        rows = materialize(self._db.mutate(apply))
        log_mutation("insert", self.table, len(rows))
        if op.many or self.expect_single or self.expect_maybe_single:
            return self._shape(rows)
        return rows[0] if rows else None

    def _run_update(self, op: Update) -> Any:
        def apply(conn: sqlite3.Connection) -> List[sqlite3.Row]:
            values = dict(op.values)
            if "updated_at" in table_columns(conn, self.table):
                # Always advanced, even over a caller-supplied value
                values["updated_at"] = utc_now()
            compiled = compile_update(self.table, values, self.filters)
            logger.debug(f"SQL: {compiled.sql}")
            return conn.execute(compiled.sql, compiled.params).fetchall()

        rows = materialize(self._db.mutate(apply))
        log_mutation("update", self.table, len(rows))
        return self._shape(rows)

    def _run_delete(self) -> Any:
        compiled = compile_delete(self.table, self.filters)
        logger.debug(f"SQL: {compiled.sql}")
        rows = materialize(
            self._db.mutate(lambda conn: conn.execute(compiled.sql, compiled.params).fetchall())
        )
        log_mutation("delete", self.table, len(rows))
        return self._shape(rows)

    def _shape(self, rows: List[Row]) -> Any:
        if self.expect_single:
            if len(rows) != 1:
                raise NoRowsError(
                    "JSON object requested, multiple (or no) rows returned",
                    details=f"The result contains {len(rows)} rows",
                )
            return rows[0]
        if self.expect_maybe_single:
            if len(rows) > 1:
                raise NoRowsError(
                    "JSON object requested, multiple rows returned",
                    details=f"The result contains {len(rows)} rows",
                )
            return rows[0] if rows else None
        return rows
