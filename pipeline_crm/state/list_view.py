"""State shared by the accounts, opportunities and prospects lists.

A controller owns filters, sort, pagination and selection. In client mode it
fetches one unfiltered snapshot and derives the visible page locally; in
server mode every filter, sort or page change is sent to the service and the
page is re-fetched.
"""

import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from pipeline_crm.core.result import ServiceResult

logger = logging.getLogger(__name__)

Direction = Literal["asc", "desc"]
Row = dict[str, Any]


@dataclass(frozen=True)
class SortConfig:
    """Single-column sort."""

    key: str
    direction: Direction = "asc"

    def toggled(self, key: str) -> "SortConfig":
        """Flip direction on the active key; a new key starts ascending."""
        if key == self.key:
            return SortConfig(key, "desc" if self.direction == "asc" else "asc")
        return SortConfig(key, "asc")


@dataclass
class Pagination:
    """Offset/limit paging with 1-based pages."""

    page: int = 1
    page_size: int = 25

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    def total_pages(self, total: int) -> int:
        return max(1, -(-total // self.page_size))


@dataclass(frozen=True)
class ListQuery:
    """What a server-mode fetch is asked for."""

    filters: Mapping[str, Any]
    sort: SortConfig
    limit: int
    offset: int


Fetcher = Callable[[ListQuery], Awaitable[ServiceResult[Any]]]
RowPredicate = Callable[[Row, Mapping[str, Any]], bool]
BulkAction = Callable[[list[str]], Awaitable[ServiceResult[Any]]]


def _sort_value(value: Any) -> tuple[int, Any]:
    # Missing values sort last in either direction
    if value is None or value == "":
        return (1, "")
    if isinstance(value, str):
        return (0, value.lower())
    return (0, value)


def sort_rows(rows: Iterable[Row], sort: SortConfig) -> list[Row]:
    """Sort rows by one column, case-insensitively, blanks last."""
    rows = list(rows)
    present = [r for r in rows if _sort_value(r.get(sort.key))[0] == 0]
    missing = [r for r in rows if _sort_value(r.get(sort.key))[0] == 1]
    present.sort(key=lambda r: _sort_value(r.get(sort.key)), reverse=sort.direction == "desc")
    return present + missing


@dataclass
class ListState:
    """Everything a list view renders from."""

    filters: dict[str, Any]
    sort: SortConfig
    pagination: Pagination
    selection: set[str] = field(default_factory=set)
    rows: list[Row] = field(default_factory=list)
    total: int | None = None
    loading: bool = False
    error: str | None = None


class ListViewController:
    """Filter, sort, page and select over a list of entity rows.

    Args:
        fetch: Loads rows for a query. In client mode it is called once per
            reload and must return the whole unfiltered set.
        default_filters: Filters restored by ``clear_filters``.
        default_sort: Initial sort.
        page_size: Rows per page.
        mode: "client" or "server".
        predicate: Client mode row filter, given a row and the filters.
    """

    def __init__(
        self,
        fetch: Fetcher,
        *,
        default_filters: Mapping[str, Any] | None = None,
        default_sort: SortConfig,
        page_size: int = 25,
        mode: Literal["client", "server"] = "server",
        predicate: RowPredicate | None = None,
    ) -> None:
        if mode == "client" and predicate is None:
            raise ValueError("client mode needs a row predicate")
        self._fetch = fetch
        self._default_filters = dict(default_filters or {})
        self.mode = mode
        self._predicate = predicate
        self.state = ListState(
            filters=dict(self._default_filters),
            sort=default_sort,
            pagination=Pagination(page=1, page_size=page_size),
        )

    # Derived view

    @property
    def filtered_rows(self) -> list[Row]:
        """All rows passing the filters, sorted (client mode), or the fetched page."""
        if self.mode == "server":
            return self.state.rows
        predicate = self._predicate or (lambda row, filters: True)
        matched = [r for r in self.state.rows if predicate(r, self.state.filters)]
        return sort_rows(matched, self.state.sort)

    @property
    def visible_rows(self) -> list[Row]:
        """Rows on the current page."""
        rows = self.filtered_rows
        if self.mode == "server":
            return rows
        start = self.state.pagination.offset
        return rows[start : start + self.state.pagination.page_size]

    @property
    def total(self) -> int:
        if self.mode == "client":
            return len(self.filtered_rows)
        if self.state.total is not None:
            return self.state.total
        return self.state.pagination.offset + len(self.state.rows)

    @property
    def has_next_page(self) -> bool:
        p = self.state.pagination
        if self.mode == "server" and self.state.total is None:
            return len(self.state.rows) >= p.page_size
        return p.page < p.total_pages(self.total)

    @property
    def current_page(self) -> int:
        return self.state.pagination.page

    # Loading

    async def reload(self) -> ServiceResult[Any]:
        """Fetch rows for the current filters, sort and page."""
        p = self.state.pagination
        query = ListQuery(
            filters=dict(self.state.filters),
            sort=self.state.sort,
            limit=p.page_size,
            offset=p.offset,
        )
        self.state.loading = True
        try:
            result = await self._fetch(query)
        finally:
            self.state.loading = False

        if result.success:
            self.state.rows = list(result.data or [])
            self.state.total = result.count if self.mode == "server" else None
            self.state.error = None
        else:
            self.state.error = result.error
        return result

    async def _refresh(self) -> None:
        if self.mode == "server":
            await self.reload()

    # Filters, sort, paging

    async def set_filter(self, key: str, value: Any) -> None:
        """Change one filter and go back to the first page."""
        self.state.filters[key] = value
        self.state.pagination.page = 1
        await self._refresh()

    async def set_filters(self, filters: Mapping[str, Any]) -> None:
        self.state.filters.update(filters)
        self.state.pagination.page = 1
        await self._refresh()

    async def clear_filters(self) -> None:
        self.state.filters = dict(self._default_filters)
        self.state.pagination.page = 1
        await self._refresh()

    async def toggle_sort(self, key: str) -> SortConfig:
        """Sort by a column; clicking the active column flips direction."""
        self.state.sort = self.state.sort.toggled(key)
        await self._refresh()
        return self.state.sort

    async def go_to_page(self, page: int) -> None:
        if self.mode == "client":
            page = min(page, self.state.pagination.total_pages(self.total))
        self.state.pagination.page = max(1, page)
        await self._refresh()

    async def set_page_size(self, page_size: int) -> None:
        self.state.pagination.page_size = max(1, page_size)
        self.state.pagination.page = 1
        await self._refresh()

    # Selection

    @property
    def selected_ids(self) -> list[str]:
        return sorted(self.state.selection)

    def toggle_selection(self, row_id: str) -> None:
        if row_id in self.state.selection:
            self.state.selection.discard(row_id)
        else:
            self.state.selection.add(row_id)

    def select_all(self) -> None:
        """Select every row on the visible page, or deselect them if all are selected."""
        page_ids = {str(r["id"]) for r in self.visible_rows if r.get("id") is not None}
        if page_ids and page_ids <= self.state.selection:
            self.state.selection -= page_ids
        else:
            self.state.selection |= page_ids

    def clear_selection(self) -> None:
        self.state.selection.clear()

    async def run_bulk_action(self, action: BulkAction) -> ServiceResult[Any]:
        """Run an action on the selected ids, then clear the selection and reload.

        The selection is cleared and the list reloaded whether or not the
        action succeeded, so the view always reflects the backend.
        """
        ids = self.selected_ids
        if not ids:
            return ServiceResult.fail("No items selected", code="VALIDATION_ERROR")
        try:
            result = await action(ids)
        finally:
            self.clear_selection()
        await self.reload()
        if not result.success:
            logger.warning(
                "Bulk action failed", extra={"count": len(ids), "error": result.error}
            )
        return result
