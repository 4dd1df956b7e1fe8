"""Accounts, opportunities and prospects list controllers."""

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from pipeline_crm.core.config import get_settings
from pipeline_crm.core.result import ServiceResult
from pipeline_crm.core.session import Session
from pipeline_crm.models.prospect import DEFAULT_LIST_STATUSES
from pipeline_crm.services.account_service import AccountService
from pipeline_crm.services.csv_export import build_csv_download
from pipeline_crm.services.opportunity_service import OpportunityService
from pipeline_crm.services.prospect_service import EXPORT_COLUMNS, ProspectService
from pipeline_crm.state.list_view import ListQuery, ListViewController, Row, SortConfig

logger = logging.getLogger(__name__)

ACCOUNT_DEFAULT_FILTERS: dict[str, Any] = {
    "search": "",
    "company_type": None,
    "stage": None,
    "assigned_rep": None,
    "show_inactive": False,
}

OPPORTUNITY_DEFAULT_FILTERS: dict[str, Any] = {
    "search": "",
    "stage": None,
    "opportunity_type": None,
    "account_id": None,
    "property_id": None,
    "assigned_to": None,
    "min_bid_value": None,
    "max_bid_value": None,
}

PROSPECT_DEFAULT_FILTERS: dict[str, Any] = {
    "status": list(DEFAULT_LIST_STATUSES),
    "min_icp_score": 0,
    "state": None,
    "city": None,
    "source": None,
    "assigned_to": None,
    "search": "",
}


def account_matches(account: Row, filters: Mapping[str, Any]) -> bool:
    """Local filter over the accounts snapshot."""
    if not filters.get("show_inactive") and account.get("is_active") is False:
        return False
    search = (filters.get("search") or "").strip().lower()
    if search:
        haystack = " ".join(
            str(account.get(k) or "") for k in ("name", "city", "state", "email")
        ).lower()
        if search not in haystack:
            return False
    for key, column in (
        ("company_type", "company_type"),
        ("stage", "stage"),
        ("assigned_rep", "assigned_rep_id"),
    ):
        wanted = filters.get(key)
        if wanted and account.get(column) != wanted:
            return False
    return True


def _clean(filters: Mapping[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in filters.items() if v not in (None, "")}


def summarize_bulk(results: list[ServiceResult[Any]], noun: str) -> ServiceResult[Any]:
    """Fold per-item results into one result carrying the successful rows."""
    updated = [r.data for r in results if r.success]
    failed = [r for r in results if not r.success]
    if not failed:
        return ServiceResult.ok(updated)
    first_error = failed[0].error or "unknown error"
    return ServiceResult.fail(
        f"{len(failed)} of {len(results)} {noun} could not be updated: {first_error}",
        code="BULK_PARTIAL_FAILURE",
        data=updated,
    )


class AccountsListController(ListViewController):
    """Accounts list: one unfiltered fetch, filtered and sorted locally."""

    def __init__(self, service: AccountService, session: Session) -> None:
        self.service = service
        self.session = session
        super().__init__(
            self._fetch_accounts,
            default_filters=ACCOUNT_DEFAULT_FILTERS,
            default_sort=SortConfig("name", "asc"),
            page_size=get_settings().DEFAULT_PAGE_SIZE,
            mode="client",
            predicate=account_matches,
        )

    async def _fetch_accounts(self, query: ListQuery) -> ServiceResult[Any]:
        # Inactive rows are fetched too; show_inactive is applied locally
        return await self.service.get_accounts(self.session, show_inactive=True)

    async def bulk_update_stage(self, stage: str) -> ServiceResult[Any]:
        async def action(ids: list[str]) -> ServiceResult[Any]:
            return await self.service.bulk_update_accounts(self.session, ids, {"stage": stage})

        return await self.run_bulk_action(action)

    async def bulk_assign_rep(self, rep_id: str) -> ServiceResult[Any]:
        async def action(ids: list[str]) -> ServiceResult[Any]:
            return await self.service.bulk_update_accounts(
                self.session, ids, {"assigned_rep_id": rep_id}
            )

        return await self.run_bulk_action(action)

    async def bulk_delete(self) -> ServiceResult[Any]:
        async def action(ids: list[str]) -> ServiceResult[Any]:
            results = await asyncio.gather(
                *(self.service.delete_account(self.session, i) for i in ids)
            )
            return summarize_bulk(list(results), "accounts")

        return await self.run_bulk_action(action)


class OpportunitiesListController(ListViewController):
    """Opportunities list: filters, sort and paging go to the backend."""

    def __init__(self, service: OpportunityService, session: Session) -> None:
        self.service = service
        self.session = session
        super().__init__(
            self._fetch_opportunities,
            default_filters=OPPORTUNITY_DEFAULT_FILTERS,
            default_sort=SortConfig("created_at", "desc"),
            page_size=get_settings().DEFAULT_PAGE_SIZE,
            mode="server",
        )

    async def _fetch_opportunities(self, query: ListQuery) -> ServiceResult[Any]:
        return await self.service.get_opportunities(
            self.session,
            filters=_clean(query.filters),
            sort={"column": query.sort.key, "direction": query.sort.direction},
            limit=query.limit,
            offset=query.offset,
        )

    async def bulk_update_stage(self, stage: str, notes: str | None = None) -> ServiceResult[Any]:
        """Move every selected opportunity to a stage, one stage call per id, in parallel."""

        async def action(ids: list[str]) -> ServiceResult[Any]:
            results = await asyncio.gather(
                *(
                    self.service.update_opportunity_stage(self.session, i, stage, notes)
                    for i in ids
                )
            )
            return summarize_bulk(list(results), "opportunities")

        return await self.run_bulk_action(action)

    async def bulk_delete(self) -> ServiceResult[Any]:
        async def action(ids: list[str]) -> ServiceResult[Any]:
            results = await asyncio.gather(
                *(self.service.delete_opportunity(self.session, i) for i in ids)
            )
            return summarize_bulk(list(results), "opportunities")

        return await self.run_bulk_action(action)


class ProspectsListController(ListViewController):
    """Prospects list: server-side filters, bulk assignment and CSV export."""

    def __init__(self, service: ProspectService, session: Session) -> None:
        self.service = service
        self.session = session
        super().__init__(
            self._fetch_prospects,
            default_filters=PROSPECT_DEFAULT_FILTERS,
            default_sort=SortConfig("created_at", "desc"),
            page_size=get_settings().PROSPECT_PAGE_SIZE,
            mode="server",
        )

    async def _fetch_prospects(self, query: ListQuery) -> ServiceResult[Any]:
        return await self.service.list_prospects(
            self.session,
            filters=_clean(query.filters),
            sort={"column": query.sort.key, "direction": query.sort.direction},
            limit=query.limit,
            offset=query.offset,
        )

    async def bulk_assign(self, user_id: str | None) -> ServiceResult[Any]:
        async def action(ids: list[str]) -> ServiceResult[Any]:
            return await self.service.bulk_assign(self.session, ids, user_id)

        return await self.run_bulk_action(action)

    async def bulk_update_status(self, status: str) -> ServiceResult[Any]:
        async def action(ids: list[str]) -> ServiceResult[Any]:
            return await self.service.bulk_update_status(self.session, ids, status)

        return await self.run_bulk_action(action)

    async def export_csv(self) -> ServiceResult[dict[str, str]]:
        """CSV download of every prospect matching the current filters, unpaginated."""
        result = await self.service.export_prospects(
            self.session, _clean(self.state.filters)
        )
        if not result.success:
            return result
        rows = result.data or []
        logger.info("Prospects exported", extra={"row_count": len(rows)})
        return ServiceResult.ok(build_csv_download(rows, "prospects", EXPORT_COLUMNS))
