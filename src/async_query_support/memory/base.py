import asyncio
import copy
import functools
import re
from logging import LoggerAdapter
from typing import AbstractSet, Any, Dict, Iterable, List, Optional

from async_query_support.base.exceptions import QueryExecutionException
from async_query_support.base.interfaces import QueryExecutor, UnitOfWork
from async_query_support.base.pagination import Order
from async_query_support.base.query import (FieldRef, JoinClause,
                                            QueryDescriptor, QueryExpression,
                                            QueryFilter, QueryLogical,
                                            QueryOperator, QueryOptions,
                                            as_options)
from async_query_support.base.update import (IncrementOperation,
                                             MultiplyOperation, SetOperation,
                                             UnsetOperation, Update)

# A joined row: qualified "alias.column" keys for every table in the query
JoinedRow = Dict[str, Any]


def _like_to_regex(pattern: str) -> "re.Pattern[str]":
    """
    Translate a SQL LIKE pattern (``%``, ``_``, backslash escapes) into a
    case-insensitive regular expression.
    """
    parts = []
    escaped = False
    for char in pattern:
        if escaped:
            parts.append(re.escape(char))
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("^" + "".join(parts) + "$", re.IGNORECASE | re.DOTALL)


def _compare_nullable(left: Any, right: Any) -> int:
    """Sort comparison with NULLs first."""
    if left is None and right is None:
        return 0
    if left is None:
        return -1
    if right is None:
        return 1
    return (left > right) - (left < right)


class MemoryQueryExecutor(QueryExecutor):
    """
    Evaluates query descriptors over in-memory tables.

    ``tables`` maps table names to lists of dict rows and is used as-is, so
    bulk writes are visible to the caller. Filters follow SQL semantics: a
    comparison with NULL is false (only ``is_null``/``is_not_null`` match
    NULLs), text matching is case-insensitive and NULLs sort first in
    ascending order.

    Meant for tests and prototypes; every call scans the tables.
    """

    def __init__(
        self,
        tables: Dict[str, List[Dict[str, Any]]],
        default_timeout: Optional[float] = None,
    ):
        super().__init__(default_timeout)
        self._tables = tables

    @property
    def tables(self) -> Dict[str, List[Dict[str, Any]]]:
        return self._tables

    # --- Reads ---

    async def execute(
        self,
        descriptor: QueryDescriptor,
        logger: LoggerAdapter,
        timeout: Optional[float] = None,
    ) -> List[Any]:
        options = as_options(descriptor)
        logger.debug(f"Executing in memory: {options!r}")
        rows = await self._run(self._select, options, timeout)
        logger.debug(f"Fetched {len(rows)} row(s) from '{options.table}'")
        return rows

    async def count(
        self,
        descriptor: QueryDescriptor,
        logger: LoggerAdapter,
        timeout: Optional[float] = None,
    ) -> int:
        options = as_options(descriptor)
        logger.debug(f"Counting in memory: {options!r}")
        total = await self._run(
            lambda opts: len(self._filtered_rows(opts)), options, timeout
        )
        logger.debug(f"Counted {total} row(s) in '{options.table}'")
        return total

    # --- Bulk writes ---

    async def update_many(
        self,
        descriptor: QueryDescriptor,
        update: Update,
        logger: LoggerAdapter,
        timeout: Optional[float] = None,
    ) -> int:
        options = as_options(descriptor)
        self._check_bulk_options(options, "update")
        if not update:
            logger.warning("update_many called with empty update operations. Returning 0.")
            return 0
        operations = update.build()
        affected = 0
        for row in self._table_rows(options.table):
            if not self._matches(self._qualify(options.source, row), options.expression):
                continue
            for op in operations:
                if isinstance(op, SetOperation):
                    row[op.column] = copy.deepcopy(op.value)
                elif isinstance(op, UnsetOperation):
                    row[op.column] = None
                elif isinstance(op, IncrementOperation):
                    # NULL arithmetic stays NULL, as in SQL
                    if row.get(op.column) is not None:
                        row[op.column] = row[op.column] + op.amount
                elif isinstance(op, MultiplyOperation):
                    if row.get(op.column) is not None:
                        row[op.column] = row[op.column] * op.factor
                else:
                    raise ValueError(f"Unsupported update operation: {op!r}")
            affected += 1
        logger.info(
            f"Updated {affected} row(s) of '{options.table}' matching filter: "
            f"{options.expression!r}."
        )
        return affected

    async def delete_many(
        self,
        descriptor: QueryDescriptor,
        logger: LoggerAdapter,
        timeout: Optional[float] = None,
    ) -> int:
        options = as_options(descriptor)
        self._check_bulk_options(options, "delete")
        rows = self._table_rows(options.table)
        kept = [
            row
            for row in rows
            if not self._matches(self._qualify(options.source, row), options.expression)
        ]
        affected = len(rows) - len(kept)
        rows[:] = kept
        logger.info(
            f"Deleted {affected} row(s) of '{options.table}' matching filter: "
            f"{options.expression!r}."
        )
        return affected

    # --- Evaluation ---

    async def _run(self, fn, options: QueryOptions, timeout: Optional[float]):
        # Evaluation itself is synchronous; the timeout bounds the scheduling wait
        async def run():
            await asyncio.sleep(0)
            return fn(options)

        return await asyncio.wait_for(run(), self._effective_timeout(options, timeout))

    def _table_rows(self, table: str) -> List[Dict[str, Any]]:
        try:
            return self._tables[table]
        except KeyError:
            raise QueryExecutionException(f"No such table: '{table}'") from None

    @staticmethod
    def _qualify(alias: str, row: Dict[str, Any]) -> JoinedRow:
        return {f"{alias}.{column}": value for column, value in row.items()}

    def _joined_rows(self, options: QueryOptions) -> List[JoinedRow]:
        rows = [self._qualify(options.source, row) for row in self._table_rows(options.table)]
        for join in options.joins:
            rows = self._apply_join(rows, join)
        return rows

    def _apply_join(self, rows: Iterable[JoinedRow], join: JoinClause) -> List[JoinedRow]:
        right_rows = [self._qualify(join.alias, row) for row in self._table_rows(join.table)]
        nullable = frozenset([join.alias]) if join.kind == "left" else frozenset()
        result = []
        for left in rows:
            matched = False
            for right in right_rows:
                combined = {**left, **right}
                if self._matches(combined, join.on, nullable):
                    result.append(combined)
                    matched = True
            if not matched and join.kind == "left":
                result.append(dict(left))
        return result

    @staticmethod
    def _nullable_aliases(options: QueryOptions) -> AbstractSet[str]:
        return frozenset(join.alias for join in options.joins if join.kind == "left")

    def _filtered_rows(self, options: QueryOptions) -> List[JoinedRow]:
        nullable = self._nullable_aliases(options)
        return [
            row
            for row in self._joined_rows(options)
            if self._matches(row, options.expression, nullable)
        ]

    def _select(self, options: QueryOptions) -> List[Any]:
        rows = self._filtered_rows(options)
        rows = self._sort(rows, options)
        end = None if options.limit is None else options.offset + options.limit
        rows = rows[options.offset:end]
        return [self._shape(row, options) for row in rows]

    def _shape(self, row: JoinedRow, options: QueryOptions) -> Any:
        if options.projections:
            nullable = self._nullable_aliases(options)
            record = {
                p.name: self._resolve(row, p.path, nullable) for p in options.projections
            }
        else:
            prefix = f"{options.source}."
            record = {
                key[len(prefix):]: copy.deepcopy(value)
                for key, value in row.items()
                if key.startswith(prefix)
            }
        if options.mapper is not None:
            return options.mapper(record)
        if options.is_scalar:
            return record[options.projections[0].name]
        return record

    def _resolve(
        self, row: JoinedRow, path: str, nullable: AbstractSet[str] = frozenset()
    ) -> Any:
        """
        Value of a field path in a joined row; a bare column must be unambiguous.

        Columns of a left-joined alias (in ``nullable``) that the row lacks are
        NULL: the join found no match, or the joined table is empty.
        """
        if path in row:
            return row[path]
        if "." not in path:
            matches = [key for key in row if key.rsplit(".", 1)[-1] == path]
            if len(matches) == 1:
                return row[matches[0]]
            if len(matches) > 1:
                raise QueryExecutionException(f"Column reference '{path}' is ambiguous")
        elif path.rsplit(".", 1)[0] in nullable:
            return None
        raise QueryExecutionException(f"No such column: '{path}'")

    def _sort_value(self, row: JoinedRow, order: Order, options: QueryOptions) -> Any:
        nullable = self._nullable_aliases(options)
        # Projection aliases take precedence over source columns, as in SQL
        for projection in options.projections:
            if "." not in order.path and projection.name == order.path:
                return self._resolve(row, projection.path, nullable)
        return self._resolve(row, order.path, nullable)

    def _sort(self, rows: List[JoinedRow], options: QueryOptions) -> List[JoinedRow]:
        if not rows or not options.sort:
            return rows
        # Stable sorts applied from the last key to the first
        for order in reversed(options.sort):
            keyed = [(self._sort_value(row, order, options), row) for row in rows]
            keyed.sort(
                key=functools.cmp_to_key(lambda a, b: _compare_nullable(a[0], b[0])),
                reverse=order.is_descending,
            )
            rows = [row for _, row in keyed]
        return rows

    def _matches(
        self,
        row: JoinedRow,
        expr: Optional[QueryExpression],
        nullable: AbstractSet[str] = frozenset(),
    ) -> bool:
        if expr is None:
            return True
        if isinstance(expr, QueryLogical):
            if expr.operator == "and":
                return all(self._matches(row, sub, nullable) for sub in expr.conditions)
            return any(self._matches(row, sub, nullable) for sub in expr.conditions)
        if isinstance(expr, QueryFilter):
            value = expr.value
            if isinstance(value, FieldRef):
                value = self._resolve(row, value.path, nullable)
            return self._check_operator(
                expr.operator, self._resolve(row, expr.field_path, nullable), value
            )
        raise TypeError(f"Unsupported expression type: {type(expr)}")

    @staticmethod
    def _check_operator(operator: QueryOperator, entity_value: Any, filter_value: Any) -> bool:
        if operator is QueryOperator.EXISTS:
            return (entity_value is not None) == filter_value
        if entity_value is None or filter_value is None:
            # Any comparison with NULL is unknown, which filters the row out
            return False
        if operator is QueryOperator.EQ:
            return entity_value == filter_value
        elif operator is QueryOperator.NE:
            return entity_value != filter_value
        elif operator is QueryOperator.GT:
            return entity_value > filter_value
        elif operator is QueryOperator.GTE:
            return entity_value >= filter_value
        elif operator is QueryOperator.LT:
            return entity_value < filter_value
        elif operator is QueryOperator.LTE:
            return entity_value <= filter_value
        elif operator is QueryOperator.IN:
            return entity_value in filter_value
        elif operator is QueryOperator.NIN:
            return entity_value not in filter_value
        elif operator is QueryOperator.LIKE:
            return isinstance(entity_value, str) and bool(
                _like_to_regex(filter_value).match(entity_value)
            )
        elif operator is QueryOperator.CONTAINS:
            return isinstance(entity_value, str) and filter_value.lower() in entity_value.lower()
        elif operator is QueryOperator.STARTSWITH:
            return isinstance(entity_value, str) and entity_value.lower().startswith(
                filter_value.lower()
            )
        elif operator is QueryOperator.ENDSWITH:
            return isinstance(entity_value, str) and entity_value.lower().endswith(
                filter_value.lower()
            )
        else:
            raise ValueError(f"Unsupported operator: {operator}")


class MemoryUnitOfWork(UnitOfWork):
    """
    Transactional scope over in-memory tables.

    ``begin`` snapshots the tables; ``rollback`` restores the snapshot in
    place so executors holding the same dict see the restored rows.
    """

    def __init__(
        self,
        tables: Dict[str, List[Dict[str, Any]]],
        default_timeout: Optional[float] = None,
    ):
        self._tables = tables
        self._default_timeout = default_timeout
        self._snapshot: Optional[Dict[str, List[Dict[str, Any]]]] = None

    async def begin(self) -> MemoryQueryExecutor:
        if self._snapshot is not None:
            raise RuntimeError("Unit of work is already active.")
        self._snapshot = copy.deepcopy(self._tables)
        return MemoryQueryExecutor(self._tables, self._default_timeout)

    async def commit(self) -> None:
        self._snapshot = None

    async def rollback(self) -> None:
        if self._snapshot is None:
            return
        self._tables.clear()
        self._tables.update(self._snapshot)
        self._snapshot = None

    async def release(self) -> None:
        self._snapshot = None
