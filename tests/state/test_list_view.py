"""Tests for the generic list view controller."""

from collections.abc import Mapping
from typing import Any

import pytest

from pipeline_crm.core.result import ServiceResult
from pipeline_crm.state.list_view import (
    ListQuery,
    ListViewController,
    Pagination,
    SortConfig,
    sort_rows,
)

ROWS: list[dict[str, Any]] = [
    {"id": "1", "name": "delta", "city": "Austin", "value": 3},
    {"id": "2", "name": "Alpha", "city": None, "value": 10},
    {"id": "3", "name": "charlie", "city": "Boston", "value": 1},
    {"id": "4", "name": "Bravo", "city": "", "value": 7},
    {"id": "5", "name": "echo", "city": "Austin", "value": 5},
]


def city_matches(row: Mapping[str, Any], filters: Mapping[str, Any]) -> bool:
    wanted = filters.get("city")
    return not wanted or row.get("city") == wanted


class RecordingFetch:
    """Fetcher that records queries and serves rows."""

    def __init__(
        self, rows: list[dict[str, Any]], count: int | None = None, fail: bool = False
    ) -> None:
        self.rows = rows
        self.count = count
        self.fail = fail
        self.queries: list[ListQuery] = []

    async def __call__(self, query: ListQuery) -> ServiceResult[Any]:
        self.queries.append(query)
        if self.fail:
            return ServiceResult.fail("Failed to load")
        return ServiceResult.ok(list(self.rows), count=self.count)


def _client(page_size: int = 2) -> tuple[ListViewController, RecordingFetch]:
    fetch = RecordingFetch(ROWS)
    controller = ListViewController(
        fetch,
        default_filters={"city": None},
        default_sort=SortConfig("name"),
        page_size=page_size,
        mode="client",
        predicate=city_matches,
    )
    return controller, fetch


def _server(count: int | None = 120) -> tuple[ListViewController, RecordingFetch]:
    fetch = RecordingFetch(ROWS[:2], count=count)
    controller = ListViewController(
        fetch,
        default_filters={"stage": None},
        default_sort=SortConfig("created_at", "desc"),
        page_size=25,
    )
    return controller, fetch


# ---------------------------------------------------------------------------
# Sorting helpers
# ---------------------------------------------------------------------------


class TestSortConfig:
    """Tests for SortConfig.toggled."""

    def test_same_key_flips(self) -> None:
        sort = SortConfig("name", "asc")
        assert sort.toggled("name") == SortConfig("name", "desc")
        assert sort.toggled("name").toggled("name") == sort

    def test_new_key_starts_ascending(self) -> None:
        assert SortConfig("name", "desc").toggled("city") == SortConfig("city", "asc")


class TestSortRows:
    """Tests for sort_rows."""

    def test_case_insensitive(self) -> None:
        names = [r["name"] for r in sort_rows(ROWS, SortConfig("name"))]
        assert names == ["Alpha", "Bravo", "charlie", "delta", "echo"]

    def test_blanks_last_both_directions(self) -> None:
        asc = [r["id"] for r in sort_rows(ROWS, SortConfig("city", "asc"))]
        desc = [r["id"] for r in sort_rows(ROWS, SortConfig("city", "desc"))]
        assert asc[:3] == ["1", "5", "3"]
        assert desc[:3] == ["3", "1", "5"]
        assert set(asc[3:]) == set(desc[3:]) == {"2", "4"}

    def test_numbers(self) -> None:
        values = [r["value"] for r in sort_rows(ROWS, SortConfig("value", "desc"))]
        assert values == [10, 7, 5, 3, 1]


class TestPagination:
    """Tests for Pagination."""

    def test_offset(self) -> None:
        assert Pagination(page=3, page_size=25).offset == 50

    @pytest.mark.parametrize(("total", "pages"), [(0, 1), (25, 1), (26, 2), (100, 4)])
    def test_total_pages(self, total: int, pages: int) -> None:
        assert Pagination(page_size=25).total_pages(total) == pages


# ---------------------------------------------------------------------------
# Client mode
# ---------------------------------------------------------------------------


class TestClientMode:
    """Tests for a controller filtering a local snapshot."""

    def test_requires_predicate(self) -> None:
        with pytest.raises(ValueError):
            ListViewController(RecordingFetch([]), default_sort=SortConfig("id"), mode="client")

    @pytest.mark.asyncio
    async def test_pages_locally(self) -> None:
        controller, fetch = _client()
        await controller.reload()

        assert [r["name"] for r in controller.visible_rows] == ["Alpha", "Bravo"]
        assert controller.total == 5
        assert controller.has_next_page

        await controller.go_to_page(3)
        assert [r["name"] for r in controller.visible_rows] == ["echo"]
        assert not controller.has_next_page
        assert len(fetch.queries) == 1

    @pytest.mark.asyncio
    async def test_page_clamped_to_last(self) -> None:
        controller, _ = _client()
        await controller.reload()
        await controller.go_to_page(99)
        assert controller.current_page == 3

    @pytest.mark.asyncio
    async def test_filter_resets_page_without_refetch(self) -> None:
        controller, fetch = _client()
        await controller.reload()
        await controller.go_to_page(2)

        await controller.set_filter("city", "Austin")

        assert controller.current_page == 1
        assert [r["id"] for r in controller.filtered_rows] == ["1", "5"]
        assert controller.total == 2
        assert len(fetch.queries) == 1

    @pytest.mark.asyncio
    async def test_toggle_sort_twice(self) -> None:
        controller, _ = _client(page_size=10)
        await controller.reload()

        first = await controller.toggle_sort("value")
        second = await controller.toggle_sort("value")

        assert first == SortConfig("value", "asc")
        assert second == SortConfig("value", "desc")
        assert [r["value"] for r in controller.visible_rows] == [10, 7, 5, 3, 1]

    @pytest.mark.asyncio
    async def test_clear_filters_restores_defaults(self) -> None:
        controller, _ = _client()
        await controller.reload()
        await controller.set_filters({"city": "Boston"})
        await controller.clear_filters()
        assert controller.state.filters == {"city": None}
        assert controller.total == 5


# ---------------------------------------------------------------------------
# Server mode
# ---------------------------------------------------------------------------


class TestServerMode:
    """Tests for a controller that re-queries on every change."""

    @pytest.mark.asyncio
    async def test_filter_change_requeries_page_one(self) -> None:
        controller, fetch = _server()
        await controller.go_to_page(3)
        assert fetch.queries[-1].offset == 50

        await controller.set_filter("stage", "won")

        query = fetch.queries[-1]
        assert controller.current_page == 1
        assert query.offset == 0
        assert query.limit == 25
        assert query.filters == {"stage": "won"}

    @pytest.mark.asyncio
    async def test_sort_change_requeries(self) -> None:
        controller, fetch = _server()
        await controller.toggle_sort("created_at")
        assert fetch.queries[-1].sort == SortConfig("created_at", "asc")

    @pytest.mark.asyncio
    async def test_total_from_count(self) -> None:
        controller, _ = _server(count=120)
        await controller.reload()
        assert controller.total == 120
        assert controller.has_next_page
        await controller.go_to_page(5)
        assert not controller.has_next_page

    @pytest.mark.asyncio
    async def test_failure_keeps_rows(self) -> None:
        controller, fetch = _server()
        await controller.reload()
        fetch.fail = True

        result = await controller.reload()

        assert not result.success
        assert controller.state.error == "Failed to load"
        assert len(controller.state.rows) == 2
        assert not controller.state.loading


# ---------------------------------------------------------------------------
# Selection and bulk actions
# ---------------------------------------------------------------------------


class TestSelection:
    """Tests for selection and bulk actions."""

    @pytest.mark.asyncio
    async def test_select_all_targets_visible_page(self) -> None:
        controller, _ = _client()
        await controller.reload()

        controller.select_all()
        assert controller.selected_ids == ["2", "4"]

        controller.select_all()
        assert controller.selected_ids == []

    @pytest.mark.asyncio
    async def test_toggle_selection(self) -> None:
        controller, _ = _client()
        controller.toggle_selection("3")
        controller.toggle_selection("1")
        assert controller.selected_ids == ["1", "3"]
        controller.toggle_selection("3")
        assert controller.selected_ids == ["1"]

    @pytest.mark.asyncio
    async def test_bulk_action_clears_and_reloads(self) -> None:
        controller, fetch = _client()
        controller.toggle_selection("1")
        controller.toggle_selection("2")
        seen: list[list[str]] = []

        async def action(ids: list[str]) -> ServiceResult[Any]:
            seen.append(ids)
            return ServiceResult.ok(ids)

        result = await controller.run_bulk_action(action)

        assert result.success
        assert seen == [["1", "2"]]
        assert controller.selected_ids == []
        assert len(fetch.queries) == 1

    @pytest.mark.asyncio
    async def test_failed_bulk_action_still_clears(self) -> None:
        controller, fetch = _client()
        controller.toggle_selection("1")

        async def action(ids: list[str]) -> ServiceResult[Any]:
            return ServiceResult.fail("nope")

        result = await controller.run_bulk_action(action)

        assert result.error == "nope"
        assert controller.selected_ids == []
        assert len(fetch.queries) == 1

    @pytest.mark.asyncio
    async def test_empty_selection(self) -> None:
        controller, fetch = _client()

        async def action(ids: list[str]) -> ServiceResult[Any]:
            raise AssertionError("should not run")

        result = await controller.run_bulk_action(action)
        assert result.error == "No items selected"
        assert fetch.queries == []
