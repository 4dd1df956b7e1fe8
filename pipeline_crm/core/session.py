"""Authenticated session passed explicitly to every data-access call."""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from pipeline_crm.core.exceptions import AuthenticationError


class Session(BaseModel):
    """The signed-in user as seen by the data-access layer.

    Services never look up "the current user" on their own; the caller
    hands them this object. Two sessions for two tenants can therefore be
    used side by side, and tests can build one directly.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., description="auth.users id of the caller")
    access_token: str = Field(..., description="JWT sent as the bearer token for RLS")
    tenant_id: str | None = Field(None, description="Organization the caller belongs to")
    email: str | None = Field(None, description="Caller email")
    expires_at: datetime | None = Field(None, description="Token expiry, if known")

    @property
    def is_expired(self) -> bool:
        """Whether the token expiry has passed."""
        if self.expires_at is None:
            return False
        return self.expires_at <= datetime.now(UTC)

    def require_valid(self) -> "Session":
        """Check the session before a privileged call.

        Returns:
            The session itself, for chaining.

        Raises:
            AuthenticationError: If the token is empty or expired.
        """
        if not self.user_id or not self.access_token:
            raise AuthenticationError("Authentication required")
        if self.is_expired:
            raise AuthenticationError("Your session has expired. Please sign in again.")
        return self

    def require_tenant(self) -> str:
        """Return the tenant id or fail.

        Raises:
            AuthenticationError: If the session is invalid or has no tenant.
        """
        self.require_valid()
        if not self.tenant_id:
            raise AuthenticationError(
                "User profile does not have a valid organization. Please contact support."
            )
        return self.tenant_id


def require_session(session: Session | None) -> Session:
    """Reject a missing session before any network call.

    Args:
        session: Session or None.

    Returns:
        The valid session.

    Raises:
        AuthenticationError: If the session is missing or invalid.
    """
    if session is None:
        raise AuthenticationError("Authentication required")
    return session.require_valid()
