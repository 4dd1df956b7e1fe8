"""Data-access services, one per entity.

Every public method takes the caller's Session first and returns a
ServiceResult instead of raising.
"""

from pipeline_crm.services.account_service import AccountService
from pipeline_crm.services.activity_service import ActivityService
from pipeline_crm.services.notification_service import NotificationService
from pipeline_crm.services.opportunity_service import OpportunityService
from pipeline_crm.services.prospect_service import ProspectService
from pipeline_crm.services.realtime import NotificationSubscription, subscribe_to_notifications

__all__ = [
    "AccountService",
    "ActivityService",
    "NotificationService",
    "NotificationSubscription",
    "OpportunityService",
    "ProspectService",
    "subscribe_to_notifications",
]
