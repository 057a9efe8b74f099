# src/async_query_support/base/query.py
import copy
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import (
    Any,
    Callable,
    Dict,
    Generic,
    List,
    Literal,
    Optional,
    Sequence,
    Set,
    Tuple,
    TypeVar,
    Union,
)

from .pagination import Direction, Order
from .utils import check_identifier, check_path, prepare_value

# --- Setup Logging ---
log = logging.getLogger(__name__)

# --- Generic Type Variables ---
T = TypeVar("T")
R = TypeVar("R")

Row = Dict[str, Any]


# --- Query Operator Enum ---
class QueryOperator(Enum):
    """Enumeration of valid query filter operators."""

    # Comparison
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    LT = "lt"
    GTE = "ge"
    LTE = "le"
    # Membership
    IN = "in"
    NIN = "nin"
    # String Specific
    CONTAINS = "contains"
    LIKE = "like"
    STARTSWITH = "startswith"
    ENDSWITH = "endswith"
    # Nullness
    EXISTS = "exists"


# --- Structured Query Expression Classes ---
@dataclass
class QueryExpression:
    """Base class for structured query filter expressions."""

    pass


@dataclass
class QueryFilter(QueryExpression):
    """Represents a single filter condition (field_path <operator> value)."""

    field_path: str
    operator: QueryOperator
    value: Any


@dataclass
class QueryLogical(QueryExpression):
    """Represents a logical combination (AND/OR) of expressions."""

    operator: Literal["and", "or"]
    conditions: List[QueryExpression] = field(default_factory=list)


@dataclass(frozen=True)
class FieldRef:
    """A comparison operand that refers to another column (e.g. join keys)."""

    path: str


@dataclass(frozen=True)
class Projection:
    """A selected column, optionally renamed in the result row."""

    path: str
    alias: Optional[str] = None

    @property
    def name(self) -> str:
        """Key of this column in a result row."""
        return self.alias or self.path.rsplit(".", 1)[-1]


@dataclass(frozen=True)
class JoinClause:
    """A joined table with its join condition."""

    kind: Literal["inner", "left"]
    table: str
    alias: str
    on: QueryExpression


# --- Query Options ---
@dataclass
class QueryOptions:
    """
    Backend-agnostic description of a select query: what to project, from
    which table, joined how, filtered how, sorted and sliced how.
    """

    table: str
    alias: Optional[str] = None
    projections: List[Projection] = field(default_factory=list)
    joins: List[JoinClause] = field(default_factory=list)
    expression: Optional[QueryExpression] = None
    sort: Tuple[Order, ...] = ()
    limit: Optional[int] = None
    offset: int = 0
    timeout: Optional[float] = None
    mapper: Optional[Callable[[Row], Any]] = None

    def __repr__(self) -> str:
        parts = [f"table={self.table!r}"]
        if self.alias and self.alias != self.table:
            parts.append(f"alias={self.alias!r}")
        if self.projections:
            parts.append(f"projections={[p.name for p in self.projections]!r}")
        if self.joins:
            parts.append(f"joins={[(j.kind, j.table) for j in self.joins]!r}")
        if self.expression:
            parts.append(f"expression={self.expression!r}")
        if self.sort:
            parts.append(
                f"sort={[(o.path, o.direction.value) for o in self.sort]!r}"
            )
        if self.limit is not None:
            parts.append(f"limit={self.limit!r}")
        if self.offset:
            parts.append(f"offset={self.offset!r}")
        if self.timeout is not None:
            parts.append(f"timeout={self.timeout!r}")
        return f"QueryOptions({', '.join(parts)})"

    @property
    def source(self) -> str:
        """Name the source table is referred to by in field paths."""
        return self.alias or self.table

    @property
    def is_scalar(self) -> bool:
        """A single projection without mapper yields bare values, not rows."""
        return len(self.projections) == 1 and self.mapper is None

    def copy(self) -> "QueryOptions":
        """Creates a copy that can be changed without touching this one."""
        duplicate = copy.copy(self)
        duplicate.projections = list(self.projections)
        duplicate.joins = list(self.joins)
        return duplicate

    def without_pagination(self) -> "QueryOptions":
        """Same projections, joins and filter; no sort, limit or offset."""
        return replace(self.copy(), sort=(), limit=None, offset=0)


# --- Internal Expression Classes (Used by Builder API) ---
class Expression:
    """Base class for internal query expressions (used by builder)."""

    def __and__(self, other: "Expression") -> "CombinedCondition":
        log.debug(f"Combining expressions with AND: {self!r} & {other!r}")
        return CombinedCondition("and", self, other)

    def __or__(self, other: "Expression") -> "CombinedCondition":
        log.debug(f"Combining expressions with OR: {self!r} | {other!r}")
        return CombinedCondition("or", self, other)


class FilterCondition(Expression, Generic[T]):
    """Represents an internal filter condition (field OP value)."""

    field_path: str
    operator: str
    value: Any

    def __init__(self, field_path: str, operator: str, value: Any):
        self.field_path = field_path
        self.operator = operator
        self.value = value

    def __repr__(self) -> str:
        return (
            f"FilterCondition({self.field_path!r}, {self.operator!r}, "
            f"{self.value!r})"
        )


class CombinedCondition(Expression):
    """Combines two internal expressions with AND or OR."""

    logical_operator: str
    left: Expression
    right: Expression

    def __init__(self, logical_operator: str, left: Expression, right: Expression):
        if logical_operator not in ("and", "or"):
            raise ValueError("logical_operator must be 'and' or 'or'")
        if not isinstance(left, Expression) or not isinstance(right, Expression):
            raise TypeError(
                f"Cannot combine {type(left).__name__} with {type(right).__name__}; "
                f"both sides must be expressions"
            )
        self.logical_operator = logical_operator
        self.left = left
        self.right = right

    def __repr__(self) -> str:
        return (
            f"CombinedCondition({self.logical_operator!r}, {self.left!r}, "
            f"{self.right!r})"
        )


# --- Field Representation ---
class Field(Generic[T]):
    """Represents a queryable column path ('column' or 'alias.column')."""

    _path: str

    def __init__(self, path: str):
        check_path(path)
        object.__setattr__(self, "_path", path)

    @property
    def path(self) -> str:
        return self._path

    def _op(self, op_name: str, other: Any) -> FilterCondition[T]:
        """Helper to create FilterCondition."""
        log.debug(f"Creating filter: Field('{self._path}') {op_name} {other!r}")
        if other is None:
            raise TypeError(
                f"Cannot compare Field('{self._path}') with None using '{op_name}'; "
                f"leave the condition out or use is_null()/is_not_null()"
            )
        if op_name in ("like", "startswith", "endswith", "contains") and not isinstance(
            other, str
        ):
            raise TypeError(f"Operator '{op_name}' requires a string value")
        if op_name in ("in", "nin") and not isinstance(other, (list, set, tuple)):
            raise TypeError(f"Operator '{op_name}' requires a list/set/tuple")
        if op_name == "exists" and not isinstance(other, bool):
            raise TypeError(f"Operator '{op_name}' requires a boolean value")

        value_to_use = other
        if isinstance(other, (set, tuple)) and op_name in ("in", "nin"):
            value_to_use = list(other)
            log.debug(f"Converted {type(other).__name__} to list for '{op_name}'")

        return FilterCondition(self._path, op_name, value_to_use)

    # Comparison operators
    def __eq__(self, other: Any) -> FilterCondition[T]:
        return self._op("eq", other)

    def __ne__(self, other: Any) -> FilterCondition[T]:
        return self._op("ne", other)

    def __gt__(self, other: Any) -> FilterCondition[T]:
        return self._op("gt", other)

    def __lt__(self, other: Any) -> FilterCondition[T]:
        return self._op("lt", other)

    def __ge__(self, other: Any) -> FilterCondition[T]:
        return self._op("ge", other)

    def __le__(self, other: Any) -> FilterCondition[T]:
        return self._op("le", other)

    __hash__ = None  # type: ignore[assignment]

    # Other operators
    def contains(self, substring: str) -> FilterCondition[T]:
        return self._op("contains", substring)

    def like(self, pattern: str) -> FilterCondition[T]:
        return self._op("like", pattern)

    def startswith(self, prefix: str) -> FilterCondition[T]:
        return self._op("startswith", prefix)

    def endswith(self, suffix: str) -> FilterCondition[T]:
        return self._op("endswith", suffix)

    def in_(self, collection: Union[List, Set, Tuple]) -> FilterCondition[T]:
        return self._op("in", collection)

    def nin(self, collection: Union[List, Set, Tuple]) -> FilterCondition[T]:
        return self._op("nin", collection)

    def is_null(self) -> FilterCondition[T]:
        return self._op("exists", False)

    def is_not_null(self) -> FilterCondition[T]:
        return self._op("exists", True)

    def between(self, lower: Any, upper: Any) -> CombinedCondition:
        """Inclusive range; both bounds are required (see predicates.between)."""
        return (self >= lower) & (self <= upper)

    # Projection and ordering
    def as_(self, alias: str) -> Projection:
        return Projection(self._path, check_identifier(alias))

    def asc(self) -> Order:
        return Order(self._path, Direction.ASC)

    def desc(self) -> Order:
        return Order(self._path, Direction.DESC)

    def __repr__(self) -> str:
        return f"Field(path={self._path!r})"

    def __setattr__(self, name: str, value: Any):
        """Prevent modification after initialization."""
        raise AttributeError(f"Cannot set attribute '{name}' on Field object.")


# --- Table Representation ---
class Table:
    """
    A queryable table, referred to by its alias in field paths.

    Attribute access returns a Field for that column, so columns may use any
    name that does not start with an underscore::

        member = Table("member", alias="m")
        member.age >= 18      # FilterCondition('m.age', 'ge', 18)
    """

    __slots__ = ("_name", "_alias")

    def __init__(self, name: str, alias: Optional[str] = None):
        object.__setattr__(self, "_name", check_identifier(name))
        object.__setattr__(self, "_alias", check_identifier(alias or name))

    def __getattr__(self, name: str) -> Field[Any]:
        if name.startswith("_"):
            raise AttributeError(
                f"'{type(self).__name__}' object has no attribute '{name}'"
            )
        return Field(f"{self._alias}.{name}")

    def __getitem__(self, column: str) -> Field[Any]:
        return Field(f"{self._alias}.{check_identifier(column)}")

    def __setattr__(self, name: str, value: Any):
        raise AttributeError(f"Cannot set attribute '{name}' on Table object.")

    def __repr__(self) -> str:
        if self._alias == self._name:
            return f"Table({self._name!r})"
        return f"Table({self._name!r}, alias={self._alias!r})"


# --- Query Builder ---
class QueryBuilder(Generic[R]):
    """
    Builds select queries using a fluent API. The final `build()` method
    returns a `QueryOptions` object containing a structured,
    database-agnostic `QueryExpression` for filtering.
    """

    _projections: List[Projection]
    _table: Optional[Table]
    _joins: List[Tuple[str, Table, Expression]]
    _expression: Optional[Expression]
    _options: Dict[str, Any]
    _logger: logging.Logger

    # Map internal string operators to QueryOperator enum members
    _OPERATOR_MAP = {op.value: op for op in QueryOperator}

    def __init__(self, projections: Sequence[Union[Field[Any], Projection]] = ()):
        self._logger = log
        self._projections = [self._to_projection(p) for p in projections]
        self._table = None
        self._joins = []
        self._expression = None
        self._options = {
            "sort": [],
            "limit": None,
            "offset": 0,
            "timeout": None,
            "mapper": None,
        }

    @staticmethod
    def _to_projection(item: Union[Field[Any], Projection]) -> Projection:
        if isinstance(item, Projection):
            return item
        if isinstance(item, Field):
            return Projection(item.path)
        raise TypeError(
            f"select() requires Field or Projection objects, got {type(item).__name__}"
        )

    def from_(self, table: Table) -> "QueryBuilder[R]":
        """Sets the source table."""
        if not isinstance(table, Table):
            raise TypeError(f"from_() requires a Table, got {type(table).__name__}")
        self._table = table
        return self

    def join(self, table: Table, on: Expression) -> "QueryBuilder[R]":
        """Adds an inner join."""
        return self._add_join("inner", table, on)

    def left_join(self, table: Table, on: Expression) -> "QueryBuilder[R]":
        """Adds a left outer join."""
        return self._add_join("left", table, on)

    def _add_join(self, kind: str, table: Table, on: Expression) -> "QueryBuilder[R]":
        if not isinstance(table, Table):
            raise TypeError(f"Join target must be a Table, got {type(table).__name__}")
        if not isinstance(on, Expression):
            raise TypeError(
                f"Join condition must be an Expression, got {type(on).__name__}"
            )
        self._logger.debug(f"Adding {kind} join on {table!r}: {on!r}")
        self._joins.append((kind, table, on))
        return self

    def filter(self, expr: Expression) -> "QueryBuilder[R]":
        """Adds a filter expression (combined with AND if one exists)."""
        self._logger.debug(f"Adding filter expression: {expr!r}")
        if not isinstance(expr, Expression):
            raise TypeError(
                f"filter() requires an Expression object, got {type(expr).__name__}"
            )
        if self._expression is None:
            self._expression = expr
        else:
            self._expression = self._expression & expr
        self._logger.debug(f"Current internal expression is now: {self._expression!r}")
        return self

    def where(self, *conditions: Any) -> "QueryBuilder[R]":
        """
        Adds optional filter expressions, all combined with AND.

        ``None`` entries are skipped, so each argument can be the result of
        a helper that returns no expression when its input is absent. A
        ``BooleanBuilder`` is accepted as well and contributes its
        accumulated expression, if any.
        """
        for condition in conditions:
            if condition is not None and hasattr(condition, "to_expression"):
                condition = condition.to_expression()
            if condition is None:
                continue
            self.filter(condition)
        return self

    def order_by(self, *orders: Union[Order, Field[Any]]) -> "QueryBuilder[R]":
        """Appends sort directives; a bare Field sorts ascending."""
        for order in orders:
            if isinstance(order, Field):
                order = order.asc()
            if not isinstance(order, Order):
                raise TypeError(
                    f"order_by() requires Order or Field objects, got {type(order).__name__}"
                )
            self._options["sort"].append(order)
        return self

    def limit(self, num: Optional[int]) -> "QueryBuilder[R]":
        """Sets the query limit; None removes it."""
        if num is not None and (not isinstance(num, int) or num < 0):
            raise ValueError("Limit must be a non-negative integer.")
        self._options["limit"] = num
        self._logger.debug(f"Query limit set to: {num}")
        return self

    def offset(self, num: int) -> "QueryBuilder[R]":
        """Sets the query offset."""
        if not isinstance(num, int) or num < 0:
            raise ValueError("Offset must be a non-negative integer.")
        self._options["offset"] = num
        self._logger.debug(f"Query offset set to: {num}")
        return self

    def timeout(self, seconds: Optional[float]) -> "QueryBuilder[R]":
        """Sets the query timeout in seconds."""
        if seconds is not None and (
            not isinstance(seconds, (int, float)) or seconds < 0
        ):
            raise ValueError("Timeout must be a non-negative number or None.")
        self._options["timeout"] = seconds
        return self

    def into(self, mapper: Callable[[Row], T]) -> "QueryBuilder[T]":
        """Maps every result row through mapper (e.g. a model's model_validate)."""
        if not callable(mapper):
            raise TypeError("into() requires a callable")
        self._options["mapper"] = mapper
        return self  # type: ignore[return-value]

    def _translate_expression(
        self, internal_expr: Optional[Expression]
    ) -> Optional[QueryExpression]:
        """Recursively translates internal Expression tree to public QueryExpression tree."""
        if internal_expr is None:
            return None

        if isinstance(internal_expr, FilterCondition):
            operator_enum = self._OPERATOR_MAP.get(internal_expr.operator)
            if operator_enum is None:
                raise ValueError(
                    f"Unknown operator '{internal_expr.operator}' in {internal_expr!r}"
                )
            if isinstance(internal_expr.value, Field):
                value = FieldRef(internal_expr.value.path)
            else:
                value = prepare_value(internal_expr.value)
            return QueryFilter(
                field_path=internal_expr.field_path,
                operator=operator_enum,
                value=value,
            )
        elif isinstance(internal_expr, CombinedCondition):
            left = self._translate_expression(internal_expr.left)
            right = self._translate_expression(internal_expr.right)
            conditions: List[QueryExpression] = []
            # Flatten AND(AND(a, b), c) into AND(a, b, c)
            for child in (left, right):
                if (
                    isinstance(child, QueryLogical)
                    and child.operator == internal_expr.logical_operator
                ):
                    conditions.extend(child.conditions)
                else:
                    conditions.append(child)
            return QueryLogical(
                operator=internal_expr.logical_operator,  # "and" or "or"
                conditions=conditions,
            )
        else:
            raise TypeError(
                f"Unsupported internal expression type: {type(internal_expr)}"
            )

    def build(self) -> QueryOptions:
        """Builds the final QueryOptions object with a structured QueryExpression."""
        if self._table is None:
            raise ValueError("No source table: call from_() before build().")

        joins = [
            JoinClause(
                kind=kind,
                table=table._name,
                alias=table._alias,
                on=self._translate_expression(on),
            )
            for kind, table, on in self._joins
        ]
        options = QueryOptions(
            table=self._table._name,
            alias=self._table._alias,
            projections=list(self._projections),
            joins=joins,
            expression=self._translate_expression(self._expression),
            sort=tuple(self._options["sort"]),
            limit=self._options["limit"],
            offset=self._options["offset"],
            timeout=self._options["timeout"],
            mapper=self._options["mapper"],
        )
        self._logger.debug(f"Built query options: {options!r}")
        return options


QueryDescriptor = Union[QueryBuilder, QueryOptions]


def as_options(descriptor: QueryDescriptor) -> QueryOptions:
    """Returns the QueryOptions for a builder or an already built descriptor."""
    if isinstance(descriptor, QueryOptions):
        return descriptor
    if isinstance(descriptor, QueryBuilder):
        return descriptor.build()
    raise TypeError(
        f"Expected a QueryBuilder or QueryOptions, got {type(descriptor).__name__}"
    )


class QueryFactory:
    """
    Entry point for building queries, handed to query-building callables::

        lambda qf: qf.select(member.username).from_(member).where(...)
    """

    def select(self, *projections: Union[Field[Any], Projection]) -> QueryBuilder[Any]:
        if not projections:
            raise ValueError("select() requires at least one projection")
        return QueryBuilder(projections)

    def select_from(self, table: Table) -> QueryBuilder[Row]:
        """Selects every column of table."""
        return QueryBuilder().from_(table)
