"""Shared fixtures."""

import pytest

from pipeline_crm.core.session import Session
from pipeline_crm.db.supabase import SupabaseClient
from tests.fakes import TENANT_ID, USER_ID, FakeSupabase


@pytest.fixture
def session() -> Session:
    return Session(user_id=USER_ID, access_token="test-token", tenant_id=TENANT_ID)


@pytest.fixture
def fake_db() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def db(fake_db: FakeSupabase) -> SupabaseClient:
    return SupabaseClient(fake_db)  # type: ignore[arg-type]
