# src/async_query_support/base/paginator.py

import asyncio
import logging
from enum import Enum
from logging import LoggerAdapter
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from .interfaces import QueryExecutor
from .pagination import Page, PageRequest
from .query import QueryDescriptor, QueryFactory, as_options

log = logging.getLogger(__name__)

T = TypeVar("T")

QueryBuilderFn = Callable[[QueryFactory], QueryDescriptor]


class CountPolicy(Enum):
    """When the paginator runs the count query."""

    # Run the count query for every page.
    ALWAYS = "always"
    # Skip it when the fetched page already determines the total.
    SKIP_WHEN_BOUNDED = "skip_when_bounded"


async def get_page(
    content: List[T],
    page_request: PageRequest,
    total_supplier: Callable[[], Awaitable[int]],
    count_policy: CountPolicy = CountPolicy.SKIP_WHEN_BOUNDED,
) -> Page[T]:
    """
    Assemble a Page, calling total_supplier only when the total is unknown.

    With SKIP_WHEN_BOUNDED a page shorter than the page size is the last
    page, so the total is ``offset + len(content)``. That holds on the first
    page even when it is empty; on a later page an empty result may mean the
    request ran past the end, so the count query still runs.
    """
    if count_policy is CountPolicy.SKIP_WHEN_BOUNDED and len(content) < page_request.size:
        if page_request.offset == 0 or content:
            total = page_request.offset + len(content)
            log.debug(f"Count query skipped, total derived from page: {total}")
            return Page(content, page_request, total)
    total = await total_supplier()
    return Page(content, page_request, total)


class _Deadline:
    """One deadline shared by the content and count queries of a call."""

    def __init__(self, timeout: Optional[float]):
        loop = asyncio.get_running_loop()
        self._loop = loop
        self._expires_at = None if timeout is None else loop.time() + timeout

    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(self._expires_at - self._loop.time(), 0.0)


class Paginator:
    """
    Executes paginated queries built by caller-supplied functions.

    The content function (and optionally a separate count function) receives
    the executor's QueryFactory and returns a query. The content query gets
    the page request's offset, size and sort applied by the executor; the
    count query is either the dedicated one or the content query without
    pagination.

    Failures from the executor propagate unchanged.
    """

    def __init__(
        self,
        executor: QueryExecutor,
        count_policy: CountPolicy = CountPolicy.SKIP_WHEN_BOUNDED,
    ):
        if not isinstance(executor, QueryExecutor):
            raise TypeError(
                f"executor must be a QueryExecutor, got {type(executor).__name__}"
            )
        self._executor = executor
        self._count_policy = count_policy

    @property
    def executor(self) -> QueryExecutor:
        return self._executor

    @property
    def count_policy(self) -> CountPolicy:
        return self._count_policy

    async def paginate(
        self,
        page_request: PageRequest,
        content: QueryBuilderFn,
        count: Optional[QueryBuilderFn] = None,
        *,
        logger: LoggerAdapter,
        timeout: Optional[float] = None,
    ) -> Page[Any]:
        """
        Fetch one page of content and its total.

        Args:
            page_request: Page index, size and sort.
            content: Builds the content query from a QueryFactory.
            count: Builds a dedicated count query. It must apply the same
                   filter as the content query; a cheaper shape (fewer joins,
                   no projections) is fine. When omitted, the content query
                   without pagination is counted.
            logger: Logger adapter for recording operations.
            timeout: Seconds allowed for the content and count queries
                     together.

        Returns:
            The Page with content in query order and the total.
        """
        if not isinstance(page_request, PageRequest):
            raise TypeError(
                f"page_request must be a PageRequest, got {type(page_request).__name__}"
            )

        # Both queries are built before anything runs, so a failing count
        # builder aborts the call without executing the content query.
        factory = self._executor.factory
        content_query = as_options(content(factory))
        count_query = as_options(count(factory)) if count is not None else None

        deadline = _Deadline(timeout)
        paged_query = self._executor.apply_pagination(content_query, page_request)
        logger.debug(
            f"Fetching page {page_request.page} (size {page_request.size}) with "
            f"{'dedicated' if count_query is not None else 'derived'} count query"
        )
        rows = await self._executor.execute(
            paged_query, logger, timeout=deadline.remaining()
        )

        async def total_supplier() -> int:
            query = (
                count_query
                if count_query is not None
                else content_query.without_pagination()
            )
            return await self._executor.count(
                query, logger, timeout=deadline.remaining()
            )

        page = await get_page(rows, page_request, total_supplier, self._count_policy)
        logger.debug(
            f"Page {page.number} has {page.number_of_elements} rows, total {page.total}"
        )
        return page

    async def slice(
        self,
        page_request: PageRequest,
        content: QueryBuilderFn,
        *,
        logger: LoggerAdapter,
        timeout: Optional[float] = None,
    ) -> Page[Any]:
        """
        Fetch one page without a total.

        One extra row is requested to find out whether a next page exists;
        the returned Page has ``total=None`` and a reliable ``has_next``.
        """
        if not isinstance(page_request, PageRequest):
            raise TypeError(
                f"page_request must be a PageRequest, got {type(page_request).__name__}"
            )
        content_query = as_options(content(self._executor.factory))
        paged_query = self._executor.apply_pagination(content_query, page_request)
        paged_query.limit = page_request.size + 1
        rows = await self._executor.execute(paged_query, logger, timeout=timeout)
        has_next = len(rows) > page_request.size
        return Page.unbounded(rows[: page_request.size], page_request, has_next)
