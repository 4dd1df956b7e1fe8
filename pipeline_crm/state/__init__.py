"""View-state controllers a UI binds to: lists, conversion wizard, notifications."""

from pipeline_crm.state.conversion_wizard import ConversionWizard, transition
from pipeline_crm.state.list_view import ListViewController, Pagination, SortConfig
from pipeline_crm.state.lists import (
    AccountsListController,
    OpportunitiesListController,
    ProspectsListController,
)
from pipeline_crm.state.notification_center import NotificationCenter
from pipeline_crm.state.optimistic import OptimisticCounter, OptimisticValue

__all__ = [
    "AccountsListController",
    "ConversionWizard",
    "ListViewController",
    "NotificationCenter",
    "OpportunitiesListController",
    "OptimisticCounter",
    "OptimisticValue",
    "Pagination",
    "ProspectsListController",
    "SortConfig",
    "transition",
]
