# src/async_query_support/base/predicates.py

"""
Null-safe predicate helpers for dynamic search conditions.

Every helper takes a field and an optional operand and returns either a
filter expression or ``None`` when the operand is absent. Results can be
handed straight to ``QueryBuilder.where(...)``, combined with ``and_all``,
or accumulated in a ``BooleanBuilder``::

    qb.where(
        text_eq(member.username, condition.username),
        text_eq(team.name, condition.team_name),
        between(member.age, condition.age_goe, condition.age_loe),
    )
"""

import logging
from typing import Any, Callable, Collection, Iterable, Optional, TypeVar

from pydantic import BaseModel, ConfigDict

from .query import Expression, Field

log = logging.getLogger(__name__)

C = TypeVar("C", bound="SearchCondition")

Dimension = Callable[[C], Optional[Expression]]


# --- Search Condition ---
class SearchCondition(BaseModel):
    """
    Base class for search condition records.

    Every field must be optional (declare a default, usually ``None``): an
    empty condition is a valid input meaning "no constraint". Instances are
    frozen so composing a filter cannot change them.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def __pydantic_init_subclass__(cls, **kwargs: Any) -> None:
        super().__pydantic_init_subclass__(**kwargs)
        required = [name for name, info in cls.model_fields.items() if info.is_required()]
        if required:
            raise TypeError(
                f"{cls.__name__} declares required fields {required}; "
                f"search condition fields must all have defaults"
            )

    def present_fields(self) -> dict:
        """Fields that constrain the search (not None and not blank text)."""
        return {
            name: value
            for name, value in self
            if value is not None and (not isinstance(value, str) or has_text(value))
        }

    def is_empty(self) -> bool:
        return not self.present_fields()


# --- Presence checks ---
def has_text(value: Optional[str]) -> bool:
    """True if value is a string with at least one non-whitespace character."""
    return value is not None and bool(str(value).strip())


# --- Optional comparisons ---
def eq(field: Field[Any], value: Any) -> Optional[Expression]:
    return None if value is None else field == value


def ne(field: Field[Any], value: Any) -> Optional[Expression]:
    return None if value is None else field != value


def text_eq(field: Field[Any], value: Optional[str]) -> Optional[Expression]:
    """Equality on a text field; blank text counts as absent."""
    return field == value if has_text(value) else None


def goe(field: Field[Any], value: Any) -> Optional[Expression]:
    """field >= value, or nothing when value is absent."""
    return None if value is None else field >= value


def loe(field: Field[Any], value: Any) -> Optional[Expression]:
    """field <= value, or nothing when value is absent."""
    return None if value is None else field <= value


def gt(field: Field[Any], value: Any) -> Optional[Expression]:
    return None if value is None else field > value


def lt(field: Field[Any], value: Any) -> Optional[Expression]:
    return None if value is None else field < value


def in_(field: Field[Any], values: Optional[Collection[Any]]) -> Optional[Expression]:
    """Membership test; an absent or empty collection contributes nothing."""
    return field.in_(values) if values else None


def like(field: Field[Any], pattern: Optional[str]) -> Optional[Expression]:
    return field.like(pattern) if has_text(pattern) else None


def contains(field: Field[Any], value: Optional[str]) -> Optional[Expression]:
    return field.contains(value) if has_text(value) else None


def starts_with(field: Field[Any], prefix: Optional[str]) -> Optional[Expression]:
    return field.startswith(prefix) if has_text(prefix) else None


def between(field: Field[Any], lower: Any, upper: Any) -> Optional[Expression]:
    """
    Inclusive range built from ``goe(lower)`` AND ``loe(upper)``.

    With one bound absent this is the single one-sided comparison; with
    both absent it contributes nothing.
    """
    return and_all(goe(field, lower), loe(field, upper))


# --- Composition ---
def and_all(*expressions: Optional[Expression]) -> Optional[Expression]:
    """ANDs the present expressions in argument order; None if there are none."""
    result: Optional[Expression] = None
    for expression in expressions:
        if expression is None:
            continue
        result = expression if result is None else result & expression
    return result


def or_any(*expressions: Optional[Expression]) -> Optional[Expression]:
    """ORs the present expressions in argument order; None if there are none."""
    result: Optional[Expression] = None
    for expression in expressions:
        if expression is None:
            continue
        result = expression if result is None else result | expression
    return result


def compose(condition: C, *dimensions: Dimension) -> Optional[Expression]:
    """
    Builds the filter for a search condition.

    Each dimension maps the condition to one optional expression; the present
    ones are ANDed in the order given. Returns ``None`` (no filter, matches
    every row) when no dimension produced an expression.
    """
    expressions = [dimension(condition) for dimension in dimensions]
    log.debug(
        f"Composed {sum(e is not None for e in expressions)} of {len(expressions)} "
        f"dimensions for {type(condition).__name__}"
    )
    return and_all(*expressions)


class BooleanBuilder:
    """
    Mutable accumulator for a conjunction of optional expressions.

    Not safe to share between tasks; build one per query::

        builder = BooleanBuilder()
        if has_text(condition.username):
            builder.and_(member.username == condition.username)
        qb.where(builder)
    """

    def __init__(self, initial: Optional[Expression] = None):
        self._expression: Optional[Expression] = None
        self.and_(initial)

    def and_(self, expression: Optional[Expression]) -> "BooleanBuilder":
        """ANDs expression into the accumulated filter; None is ignored."""
        if expression is None:
            return self
        self._check(expression)
        if self._expression is None:
            self._expression = expression
        else:
            self._expression = self._expression & expression
        return self

    def or_(self, expression: Optional[Expression]) -> "BooleanBuilder":
        """ORs expression into the accumulated filter; None is ignored."""
        if expression is None:
            return self
        self._check(expression)
        if self._expression is None:
            self._expression = expression
        else:
            self._expression = self._expression | expression
        return self

    def and_all(self, expressions: Iterable[Optional[Expression]]) -> "BooleanBuilder":
        for expression in expressions:
            self.and_(expression)
        return self

    @staticmethod
    def _check(expression: Any) -> None:
        if not isinstance(expression, Expression):
            raise TypeError(
                f"BooleanBuilder accepts Expression objects, got {type(expression).__name__}"
            )

    @property
    def value(self) -> Optional[Expression]:
        return self._expression

    def to_expression(self) -> Optional[Expression]:
        return self._expression

    def has_value(self) -> bool:
        return self._expression is not None

    def __repr__(self) -> str:
        return f"BooleanBuilder({self._expression!r})"
