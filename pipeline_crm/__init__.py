"""Sales-pipeline CRM client: Supabase data-access services and view-state controllers."""

__version__ = "0.1.0"
