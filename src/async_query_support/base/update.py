# src/async_query_support/base/update.py

import logging
from dataclasses import dataclass
from typing import Any, List, Union

from .query import Field
from .utils import check_identifier, prepare_value


# --- Agnostic Update Operation Classes ---
@dataclass
class UpdateOperation:
    column: str


@dataclass
class SetOperation(UpdateOperation):
    value: Any


@dataclass
class UnsetOperation(UpdateOperation):
    pass


@dataclass
class IncrementOperation(UpdateOperation):
    amount: Union[int, float]


@dataclass
class MultiplyOperation(UpdateOperation):
    factor: Union[int, float]


# --- End Agnostic Update Operation Classes ---


class Update:
    """
    Column changes for a bulk UPDATE. Each column may be changed once::

        Update().set(member.username, "renamed").increment(member.age)
    """

    _operations: List[UpdateOperation]
    _logger: logging.Logger

    def __init__(self) -> None:
        self._operations = []
        self._logger = logging.getLogger(__name__)

    def _get_column(self, field: Union[str, Field[Any]]) -> str:
        if isinstance(field, Field):
            field = field.path
        if not isinstance(field, str):
            raise TypeError(
                f"Expected field to be str or Field, got {type(field).__name__}"
            )
        # Bulk statements target a single table, so the alias is dropped
        return check_identifier(field.rsplit(".", 1)[-1])

    def _check_column_conflict(self, column: str) -> None:
        for op in self._operations:
            if op.column == column:
                self._logger.warning(
                    f"Column conflict detected: '{column}' already has an operation."
                )
                raise ValueError(
                    f"Column '{column}' already has an operation. Multiple "
                    f"operations on the same column are not allowed in a single update."
                )

    @staticmethod
    def _check_numeric(kind: str, value: Any) -> None:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError(f"{kind} must be numeric, got {type(value).__name__}.")

    # --- Update Methods ---
    def set(self, field: Union[str, Field[Any]], value: Any) -> "Update":
        column = self._get_column(field)
        self._check_column_conflict(column)
        if value is None:
            self._operations.append(UnsetOperation(column=column))
        else:
            self._operations.append(
                SetOperation(column=column, value=prepare_value(value))
            )
        return self

    def unset(self, field: Union[str, Field[Any]]) -> "Update":
        """Sets the column to NULL."""
        column = self._get_column(field)
        self._check_column_conflict(column)
        self._operations.append(UnsetOperation(column=column))
        return self

    def increment(
        self, field: Union[str, Field[Any]], amount: Union[int, float] = 1
    ) -> "Update":
        column = self._get_column(field)
        self._check_numeric("Increment amount", amount)
        self._check_column_conflict(column)
        self._operations.append(IncrementOperation(column=column, amount=amount))
        return self

    def decrement(
        self, field: Union[str, Field[Any]], amount: Union[int, float] = 1
    ) -> "Update":
        self._check_numeric("Decrement amount", amount)
        return self.increment(field, -amount)

    def mul(
        self, field: Union[str, Field[Any]], factor: Union[int, float]
    ) -> "Update":
        column = self._get_column(field)
        self._check_numeric("Multiply factor", factor)
        self._check_column_conflict(column)
        self._operations.append(MultiplyOperation(column=column, factor=factor))
        return self

    # --- Build and Utility Methods ---
    def build(self) -> List[UpdateOperation]:
        return list(self._operations)

    def __repr__(self) -> str:
        if not self._operations:
            return "Update([])"
        ops_repr = ", ".join(repr(op) for op in self._operations)
        return f"Update([{ops_repr}])"

    def __bool__(self) -> bool:
        return bool(self._operations)

    def __len__(self) -> int:
        return len(self._operations)
