"""Database client for the CRM."""

from pipeline_crm.db.supabase import SupabaseClient, create_realtime_client

__all__ = ["SupabaseClient", "create_realtime_client"]
