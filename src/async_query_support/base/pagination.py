# src/async_query_support/base/pagination.py

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Generic, List, Optional, Tuple, TypeVar

from .exceptions import InvalidPageRequestException
from .utils import check_path

T = TypeVar("T")


class Direction(Enum):
    """Sort direction of a single order directive."""

    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class Order:
    """A single sort directive: property path plus direction."""

    path: str
    direction: Direction = Direction.ASC

    def __post_init__(self) -> None:
        check_path(self.path)

    @classmethod
    def asc(cls, path: str) -> "Order":
        return cls(path, Direction.ASC)

    @classmethod
    def desc(cls, path: str) -> "Order":
        return cls(path, Direction.DESC)

    @property
    def is_descending(self) -> bool:
        return self.direction is Direction.DESC


@dataclass(frozen=True)
class PageRequest:
    """
    Zero-based page index, page size and sort directives for one page.

    Validated on construction: ``size`` must be positive and ``page`` must
    not be negative.
    """

    page: int = 0
    size: int = 20
    sort: Tuple[Order, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.page, int) or isinstance(self.page, bool):
            raise InvalidPageRequestException("Page index must be an integer.")
        if not isinstance(self.size, int) or isinstance(self.size, bool):
            raise InvalidPageRequestException("Page size must be an integer.")
        if self.page < 0:
            raise InvalidPageRequestException(
                f"Page index must not be negative, got {self.page}."
            )
        if self.size <= 0:
            raise InvalidPageRequestException(
                f"Page size must be greater than zero, got {self.size}."
            )
        # Accept any iterable of orders but store an immutable tuple
        object.__setattr__(self, "sort", tuple(self.sort))
        for order in self.sort:
            if not isinstance(order, Order):
                raise InvalidPageRequestException(
                    f"Sort directives must be Order objects, got {type(order).__name__}."
                )

    @classmethod
    def of(cls, page: int, size: int, *sort: Order) -> "PageRequest":
        return cls(page=page, size=size, sort=sort)

    @classmethod
    def of_offset(cls, offset: int, size: int, *sort: Order) -> "PageRequest":
        """Builds a request from a row offset, which must be a multiple of size."""
        if not isinstance(offset, int) or offset < 0:
            raise InvalidPageRequestException(
                f"Offset must be a non-negative integer, got {offset!r}."
            )
        if not isinstance(size, int) or size <= 0:
            raise InvalidPageRequestException(
                f"Page size must be greater than zero, got {size!r}."
            )
        if offset % size:
            raise InvalidPageRequestException(
                f"Offset {offset} is not aligned to page size {size}."
            )
        return cls(page=offset // size, size=size, sort=sort)

    @property
    def offset(self) -> int:
        return self.page * self.size

    def next(self) -> "PageRequest":
        return PageRequest(self.page + 1, self.size, self.sort)

    def previous_or_first(self) -> "PageRequest":
        return PageRequest(max(self.page - 1, 0), self.size, self.sort)

    def first(self) -> "PageRequest":
        return PageRequest(0, self.size, self.sort)

    def with_sort(self, *sort: Order) -> "PageRequest":
        return PageRequest(self.page, self.size, sort)


@dataclass
class Page(Generic[T]):
    """
    One page of query results.

    ``total`` is the number of rows matching the filter across all pages, or
    ``None`` when it was not computed (see ``Paginator.slice``). Without a
    total, ``has_next_hint`` tells whether another page exists.
    """

    content: List[T]
    page_request: PageRequest
    total: Optional[int] = None
    has_next_hint: Optional[bool] = field(default=None, repr=False)

    @classmethod
    def unbounded(
        cls, content: List[T], page_request: PageRequest, has_next: bool
    ) -> "Page[T]":
        """A Page without a total, as returned by ``Paginator.slice``."""
        return cls(content, page_request, None, has_next_hint=has_next)

    def __post_init__(self) -> None:
        if len(self.content) > self.page_request.size:
            raise ValueError(
                f"Page content has {len(self.content)} rows, more than the "
                f"requested page size {self.page_request.size}."
            )
        if self.total is not None and self.total < 0:
            raise ValueError(f"Total must not be negative, got {self.total}.")

    @property
    def number(self) -> int:
        return self.page_request.page

    @property
    def size(self) -> int:
        return self.page_request.size

    @property
    def number_of_elements(self) -> int:
        return len(self.content)

    @property
    def has_content(self) -> bool:
        return bool(self.content)

    @property
    def total_pages(self) -> Optional[int]:
        if self.total is None:
            return None
        return math.ceil(self.total / self.size)

    @property
    def has_next(self) -> bool:
        if self.total is None:
            return bool(self.has_next_hint)
        return self.number + 1 < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.number > 0

    @property
    def is_first(self) -> bool:
        return not self.has_previous

    @property
    def is_last(self) -> bool:
        return not self.has_next

    def map(self, fn: Callable[[T], Any]) -> "Page[Any]":
        """Return a new Page with each row transformed by fn."""
        return Page(
            content=[fn(item) for item in self.content],
            page_request=self.page_request,
            total=self.total,
            has_next_hint=self.has_next_hint,
        )

    def __iter__(self):
        return iter(self.content)

    def __len__(self) -> int:
        return len(self.content)
