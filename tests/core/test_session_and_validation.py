"""Tests for Session checks and pre-request input validation."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from pydantic import BaseModel, Field

from pipeline_crm.core.exceptions import AuthenticationError, ValidationError
from pipeline_crm.core.session import Session, require_session
from pipeline_crm.core.validation import (
    is_valid_uuid,
    parse_decimal_or_none,
    parse_int_or_none,
    parse_payload,
    require_fields,
    require_percentage,
    require_uuid,
)
from tests.fakes import TENANT_ID, USER_ID

# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class TestSession:
    """Tests for Session validity checks."""

    def test_valid_session_passes(self) -> None:
        s = Session(user_id=USER_ID, access_token="t", tenant_id=TENANT_ID)
        assert require_session(s) is s
        assert s.require_tenant() == TENANT_ID

    def test_missing_session_rejected(self) -> None:
        with pytest.raises(AuthenticationError):
            require_session(None)

    def test_empty_token_rejected(self) -> None:
        with pytest.raises(AuthenticationError):
            Session(user_id=USER_ID, access_token="").require_valid()

    def test_expired_session_rejected(self) -> None:
        s = Session(
            user_id=USER_ID,
            access_token="t",
            expires_at=datetime.now(UTC) - timedelta(minutes=1),
        )
        assert s.is_expired
        with pytest.raises(AuthenticationError, match="expired"):
            s.require_valid()

    def test_missing_tenant_rejected(self) -> None:
        with pytest.raises(AuthenticationError, match="organization"):
            Session(user_id=USER_ID, access_token="t").require_tenant()

    def test_session_is_frozen(self) -> None:
        s = Session(user_id=USER_ID, access_token="t")
        with pytest.raises(Exception):
            s.user_id = "someone-else"  # type: ignore[misc]


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


class TestUuidValidation:
    """Tests for is_valid_uuid and require_uuid."""

    def test_accepts_v4(self) -> None:
        assert is_valid_uuid(USER_ID)

    @pytest.mark.parametrize("value", [":id", "undefined", "null", "", None, 42, "not-a-uuid"])
    def test_rejects_placeholders_and_junk(self, value: object) -> None:
        assert not is_valid_uuid(value)

    def test_require_uuid_missing(self) -> None:
        with pytest.raises(ValidationError, match="Account ID is required"):
            require_uuid(None, "Account")

    def test_require_uuid_malformed(self) -> None:
        with pytest.raises(ValidationError, match="Invalid account ID format"):
            require_uuid("abc", "Account")


class TestParsers:
    """Tests for numeric form parsing."""

    def test_parse_int(self) -> None:
        assert parse_int_or_none("42") == 42
        assert parse_int_or_none(" 7 ") == 7
        assert parse_int_or_none("") is None
        assert parse_int_or_none("abc") is None
        assert parse_int_or_none(True) is None

    def test_parse_decimal(self) -> None:
        assert parse_decimal_or_none("10000.50") == Decimal("10000.50")
        assert parse_decimal_or_none(None) is None
        assert parse_decimal_or_none("n/a") is None

    def test_percentage_range(self) -> None:
        assert require_percentage("25", "probability") == 25
        assert require_percentage("", "probability") is None
        with pytest.raises(ValidationError) as exc:
            require_percentage(101, "probability")
        assert exc.value.field == "probability"

    def test_require_fields(self) -> None:
        require_fields({"name": "Acme", "company_type": "Retail"}, ("name", "company_type"))
        with pytest.raises(ValidationError) as exc:
            require_fields({"name": "Acme"}, ("name", "company_type"))
        assert exc.value.field == "company_type"


class _Payload(BaseModel):
    name: str = Field(..., min_length=1)
    score: int = Field(0, ge=0, le=100)


class TestParsePayload:
    """Tests for parse_payload."""

    def test_valid_payload(self) -> None:
        assert parse_payload(_Payload, {"name": "Acme", "score": 50}).score == 50

    def test_error_names_first_field(self) -> None:
        with pytest.raises(ValidationError) as exc:
            parse_payload(_Payload, {"name": "Acme", "score": 150})
        assert exc.value.field == "score"

    def test_model_instance_passes_through(self) -> None:
        payload = _Payload(name="Acme")
        assert parse_payload(_Payload, payload) is payload
