"""Supabase client module for database operations."""

import asyncio
import logging
from typing import Any, cast

from postgrest.exceptions import APIError

from pipeline_crm.core.config import Settings, get_settings
from pipeline_crm.core.exceptions import (
    DatabaseError,
    NetworkError,
    NotFoundError,
    map_backend_error,
)
from pipeline_crm.core.result import TRANSPORT_ERRORS
from pipeline_crm.core.session import Session, require_session
from supabase import (
    AsyncClient,
    AsyncClientOptions,
    Client,
    ClientOptions,
    acreate_client,
    create_client,
)

logger = logging.getLogger(__name__)


def _auth_headers(session: Session) -> dict[str, str]:
    return {"Authorization": f"Bearer {session.access_token}"}


def _configured(settings: Settings | None) -> Settings:
    settings = settings or get_settings()
    if not settings.is_configured:
        raise DatabaseError("Supabase is not configured: set SUPABASE_URL and SUPABASE_ANON_KEY")
    return settings


class SupabaseClient:
    """Supabase client bound to one caller's session.

    Every request carries the caller's bearer token, so row-level security
    is evaluated for that user. Blocking SDK calls run in a worker thread so
    that independent requests can be awaited together.
    """

    def __init__(self, client: Client) -> None:
        """Wrap an already-built Supabase client.

        Args:
            client: Supabase client (or a test double with table/rpc).
        """
        self._client = client

    @classmethod
    def for_session(cls, session: Session, settings: Settings | None = None) -> "SupabaseClient":
        """Create a client that acts as the session's user.

        Args:
            session: Authenticated session.
            settings: Optional settings override.

        Returns:
            Session-bound client.

        Raises:
            AuthenticationError: If the session is invalid.
            DatabaseError: If Supabase is not configured or client initialization fails.
        """
        require_session(session)
        settings = _configured(settings)
        try:
            client = create_client(
                settings.SUPABASE_URL,
                settings.SUPABASE_ANON_KEY.get_secret_value(),
                options=ClientOptions(headers=_auth_headers(session)),
            )
            # PostgREST requests must carry the user's JWT, not the anon key
            client.postgrest.auth(session.access_token)
        except Exception as e:
            logger.exception("Failed to initialize Supabase client")
            raise DatabaseError(f"Failed to initialize database connection: {e}") from e
        logger.info("Supabase client initialized", extra={"user_id": session.user_id})
        return cls(client)

    @property
    def client(self) -> Client:
        """The underlying Supabase client."""
        return self._client

    def table(self, name: str) -> Any:
        """Start a query against a table."""
        return self._client.table(name)

    def rpc(self, fn: str, params: dict[str, Any] | None = None) -> Any:
        """Start a remote procedure call."""
        return self._client.rpc(fn, params or {})

    async def execute(self, query: Any, *, resource: str = "Record") -> Any:
        """Run a built query and translate backend failures.

        Args:
            query: A PostgREST request builder.
            resource: Human name of the entity, used in error messages.

        Returns:
            The API response (``data`` and ``count`` attributes).

        Raises:
            CRMException: Mapped from the backend error code.
            NetworkError: On transport failure.
        """
        try:
            return await asyncio.to_thread(query.execute)
        except APIError as e:
            raise map_backend_error(e.code, e.message, resource) from e
        except TRANSPORT_ERRORS as e:
            logger.warning("Supabase transport error: %s", e)
            raise NetworkError() from e

    async def get_user_profile(self, user_id: str) -> dict[str, Any]:
        """Fetch a user profile by ID.

        Args:
            user_id: The user's UUID.

        Returns:
            User profile data.

        Raises:
            NotFoundError: If the profile does not exist.
        """
        response = await self.execute(
            self.table("user_profiles").select("*").eq("id", user_id).single(),
            resource="User profile",
        )
        if response.data is None:
            raise NotFoundError("User profile", user_id)
        return cast(dict[str, Any], response.data)

    async def resolve_tenant_id(self, session: Session) -> str:
        """Tenant of the caller, from the session or their profile.

        Raises:
            AuthenticationError: If the session is invalid or no tenant is found.
        """
        require_session(session)
        if session.tenant_id:
            return session.tenant_id
        try:
            profile = await self.get_user_profile(session.user_id)
        except NotFoundError:
            profile = {}
        # Raises when the profile has no tenant either
        return session.model_copy(update={"tenant_id": profile.get("tenant_id")}).require_tenant()


async def create_realtime_client(session: Session, settings: Settings | None = None) -> AsyncClient:
    """Create an async client for realtime channel subscriptions.

    Args:
        session: Authenticated session.
        settings: Optional settings override.

    Returns:
        Async Supabase client.
    """
    require_session(session)
    settings = _configured(settings)
    return await acreate_client(
        settings.SUPABASE_URL,
        settings.SUPABASE_ANON_KEY.get_secret_value(),
        options=AsyncClientOptions(headers=_auth_headers(session)),
    )
