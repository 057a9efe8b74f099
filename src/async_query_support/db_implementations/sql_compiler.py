# src/async_query_support/db_implementations/sql_compiler.py

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Any, List, Optional

from async_query_support.base.pagination import Order
from async_query_support.base.query import (FieldRef, QueryExpression,
                                            QueryFilter, QueryLogical,
                                            QueryOperator, QueryOptions)
from async_query_support.base.update import (IncrementOperation,
                                             MultiplyOperation, SetOperation,
                                             UnsetOperation, Update)
from async_query_support.base.utils import check_identifier

log = logging.getLogger(__name__)

# MySQL has no "OFFSET without LIMIT"; this is the documented workaround
_MYSQL_MAX_LIMIT = 18446744073709551615


class Dialect(Enum):
    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"


@dataclass
class CompiledQuery:
    """SQL text plus positional parameters in placeholder order."""

    sql: str
    params: List[Any] = field(default_factory=list)


class _Params:
    """Collects bound values and hands out dialect placeholders."""

    def __init__(self, dialect: Dialect, convert):
        self._dialect = dialect
        self._convert = convert
        self.values: List[Any] = []

    def add(self, value: Any) -> str:
        self.values.append(self._convert(value))
        if self._dialect is Dialect.POSTGRESQL:
            return f"${len(self.values)}"
        if self._dialect is Dialect.MYSQL:
            return "%s"
        return "?"


class SqlCompiler:
    """
    Compiles QueryOptions and Update objects into parameterized SQL.

    Identifiers were validated when the query was built and are quoted here
    (double quotes, or backticks for MySQL). Values are never interpolated;
    they are returned as parameters.

    Text matching (``like``, ``contains``, ``startswith``, ``endswith``) is
    case-insensitive in every dialect: PostgreSQL uses ``ILIKE``, SQLite's
    ``LIKE`` already ignores ASCII case and MySQL's default collations do.
    """

    _COMPARISON_OPS = {
        QueryOperator.EQ: "=",
        QueryOperator.NE: "<>",
        QueryOperator.GT: ">",
        QueryOperator.GTE: ">=",
        QueryOperator.LT: "<",
        QueryOperator.LTE: "<=",
    }

    def __init__(self, dialect: Dialect):
        if not isinstance(dialect, Dialect):
            raise TypeError(f"dialect must be a Dialect, got {type(dialect).__name__}")
        self.dialect = dialect

    # --- Identifiers and values ---

    def quote(self, identifier: str) -> str:
        check_identifier(identifier)
        if self.dialect is Dialect.MYSQL:
            return f"`{identifier}`"
        return f'"{identifier}"'

    def _column(self, path: str, bare: bool) -> str:
        """Renders a field path; bulk statements drop the table alias."""
        if "." not in path:
            return self.quote(path)
        alias, column = path.split(".", 1)
        if bare:
            return self.quote(column)
        return f"{self.quote(alias)}.{self.quote(column)}"

    def _convert_value(self, value: Any) -> Any:
        if self.dialect is Dialect.SQLITE:
            # aiosqlite has no adapters registered for these by default
            if isinstance(value, bool):
                return int(value)
            if isinstance(value, (datetime, date, time)):
                return value.isoformat()
        return value

    def _new_params(self) -> _Params:
        return _Params(self.dialect, self._convert_value)

    @staticmethod
    def _escape_like(value: str) -> str:
        return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")

    def _like(self, column: str, placeholder: str) -> str:
        keyword = "ILIKE" if self.dialect is Dialect.POSTGRESQL else "LIKE"
        clause = f"{column} {keyword} {placeholder}"
        # Backslash is the LIKE escape character on every dialect; MySQL
        # already defaults to it, SQLite has no default
        if self.dialect is not Dialect.MYSQL:
            clause += " ESCAPE '\\'"
        return clause

    # --- Expressions ---

    def _translate_expression(
        self, expression: QueryExpression, params: _Params, bare: bool
    ) -> str:
        """Recursively translates QueryExpression nodes into a WHERE fragment."""
        if isinstance(expression, QueryLogical):
            if not expression.conditions:
                return "1=1" if expression.operator == "and" else "1=0"
            joiner = " AND " if expression.operator == "and" else " OR "
            parts = [
                self._translate_expression(condition, params, bare)
                for condition in expression.conditions
            ]
            return "(" + joiner.join(parts) + ")"

        if not isinstance(expression, QueryFilter):
            raise TypeError(
                f"Unsupported expression type for SQL translation: {type(expression)}"
            )

        column = self._column(expression.field_path, bare)
        op = expression.operator
        value = expression.value

        if op in self._COMPARISON_OPS:
            if isinstance(value, FieldRef):
                operand = self._column(value.path, bare)
            else:
                operand = params.add(value)
            return f"{column} {self._COMPARISON_OPS[op]} {operand}"

        if op in (QueryOperator.IN, QueryOperator.NIN):
            values = list(value)
            if not values:
                # x IN () matches nothing, x NOT IN () matches everything
                return "1=0" if op is QueryOperator.IN else "1=1"
            placeholders = ", ".join(params.add(v) for v in values)
            keyword = "IN" if op is QueryOperator.IN else "NOT IN"
            return f"{column} {keyword} ({placeholders})"

        if op is QueryOperator.LIKE:
            return self._like(column, params.add(value))
        if op is QueryOperator.CONTAINS:
            pattern = f"%{self._escape_like(value)}%"
            return self._like(column, params.add(pattern))
        if op is QueryOperator.STARTSWITH:
            pattern = f"{self._escape_like(value)}%"
            return self._like(column, params.add(pattern))
        if op is QueryOperator.ENDSWITH:
            pattern = f"%{self._escape_like(value)}"
            return self._like(column, params.add(pattern))

        if op is QueryOperator.EXISTS:
            return f"{column} IS NOT NULL" if value else f"{column} IS NULL"

        raise ValueError(f"Unsupported query operator for SQL translation: {op}")

    # --- Statement parts ---

    def _from_clause(self, options: QueryOptions, params: _Params) -> str:
        sql = f"FROM {self.quote(options.table)} AS {self.quote(options.source)}"
        for join in options.joins:
            keyword = "LEFT JOIN" if join.kind == "left" else "JOIN"
            on = self._translate_expression(join.on, params, bare=False)
            sql += (
                f" {keyword} {self.quote(join.table)} AS {self.quote(join.alias)}"
                f" ON {on}"
            )
        return sql

    def _where_clause(
        self, options: QueryOptions, params: _Params, bare: bool = False
    ) -> str:
        if options.expression is None:
            return ""
        return " WHERE " + self._translate_expression(options.expression, params, bare)

    def _select_list(self, options: QueryOptions) -> str:
        if not options.projections:
            return f"{self.quote(options.source)}.*"
        return ", ".join(
            f"{self._column(p.path, bare=False)} AS {self.quote(p.name)}"
            for p in options.projections
        )

    def _order_clause(self, options: QueryOptions) -> str:
        if not options.sort:
            return ""
        # A bare name may refer to a projection alias, which SQL resolves
        # against the select list before the source columns
        terms = [
            f"{self._column(order.path, bare=False)} {self._direction(order)}"
            for order in options.sort
        ]
        return " ORDER BY " + ", ".join(terms)

    def _direction(self, order: Order) -> str:
        direction = "DESC" if order.is_descending else "ASC"
        if self.dialect is Dialect.POSTGRESQL:
            # NULLs sort first ascending, as on SQLite and MySQL
            direction += " NULLS LAST" if order.is_descending else " NULLS FIRST"
        return direction

    def _limit_clause(self, limit: Optional[int], offset: int) -> str:
        limit = None if limit is None else int(limit)
        offset = int(offset or 0)
        if limit is None and not offset:
            return ""
        if limit is None:
            if self.dialect is Dialect.SQLITE:
                return f" LIMIT -1 OFFSET {offset}"
            if self.dialect is Dialect.MYSQL:
                return f" LIMIT {_MYSQL_MAX_LIMIT} OFFSET {offset}"
            return f" OFFSET {offset}"
        sql = f" LIMIT {limit}"
        if offset:
            sql += f" OFFSET {offset}"
        return sql

    # --- Statements ---

    def compile_select(self, options: QueryOptions) -> CompiledQuery:
        params = self._new_params()
        sql = f"SELECT {self._select_list(options)} {self._from_clause(options, params)}"
        sql += self._where_clause(options, params)
        sql += self._order_clause(options)
        sql += self._limit_clause(options.limit, options.offset)
        log.debug(f"Compiled select ({self.dialect.value}): {sql}")
        return CompiledQuery(sql, params.values)

    def compile_count(self, options: QueryOptions) -> CompiledQuery:
        """COUNT(*) over the same FROM, JOIN and WHERE; sort and slicing dropped."""
        params = self._new_params()
        sql = (
            f"SELECT COUNT(*) AS {self.quote('total')} "
            f"{self._from_clause(options, params)}"
        )
        sql += self._where_clause(options, params)
        log.debug(f"Compiled count ({self.dialect.value}): {sql}")
        return CompiledQuery(sql, params.values)

    def compile_update(self, options: QueryOptions, update: Update) -> CompiledQuery:
        params = self._new_params()
        assignments = []
        for op in update.build():
            column = self.quote(op.column)
            if isinstance(op, SetOperation):
                assignments.append(f"{column} = {params.add(op.value)}")
            elif isinstance(op, UnsetOperation):
                assignments.append(f"{column} = NULL")
            elif isinstance(op, IncrementOperation):
                assignments.append(f"{column} = {column} + {params.add(op.amount)}")
            elif isinstance(op, MultiplyOperation):
                assignments.append(f"{column} = {column} * {params.add(op.factor)}")
            else:
                raise ValueError(f"Unsupported update operation: {op!r}")
        if not assignments:
            raise ValueError("Update has no operations.")
        sql = f"UPDATE {self.quote(options.table)} SET {', '.join(assignments)}"
        sql += self._where_clause(options, params, bare=True)
        log.debug(f"Compiled update ({self.dialect.value}): {sql}")
        return CompiledQuery(sql, params.values)

    def compile_delete(self, options: QueryOptions) -> CompiledQuery:
        params = self._new_params()
        sql = f"DELETE FROM {self.quote(options.table)}"
        sql += self._where_clause(options, params, bare=True)
        log.debug(f"Compiled delete ({self.dialect.value}): {sql}")
        return CompiledQuery(sql, params.values)
