"""Shared pytest fixtures and configuration."""

import os
from unittest.mock import patch

import pytest
from freezegun import freeze_time

# Set test environment variables
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-key")
os.environ.setdefault("RESEND_API_KEY", "re_test_key")
os.environ.setdefault("RESEND_FROM", "RHD Wholesale <deals@example.com>")
os.environ.setdefault("ADMIN_NOTIFY_EMAIL", "admin@example.com")
os.environ.setdefault("APP_BASE_URL", "https://deals.example.com")
os.environ.setdefault("LOG_FORMAT", "text")

from src.services.events import EventBus  # noqa: E402
from tests.utils.factories import (  # noqa: E402
    create_offer_data,
    create_profile_data,
    create_property_data,
)
from tests.utils.helpers import FakeSupabase  # noqa: E402


@pytest.fixture
def bus():
    """Fresh event bus per test so listeners don't leak between tests."""
    return EventBus()


@pytest.fixture
def sample_property():
    """The worked example: price 200k, ARV 300k, repairs 50k."""
    return create_property_data(price=200000, arv=300000, repairs=50000)


@pytest.fixture
def buyer_profile():
    return create_profile_data(role="buyer")


@pytest.fixture
def admin_profile():
    return create_profile_data(role="admin", is_admin=True)


@pytest.fixture
def pending_profile():
    return create_profile_data(role="pending")


@pytest.fixture
def fake_db(sample_property, buyer_profile, admin_profile, pending_profile):
    """In-memory store seeded with one property and one profile per role."""
    return FakeSupabase({
        "properties": [sample_property],
        "offers": [],
        "profiles": [buyer_profile, admin_profile, pending_profile],
        "saved_properties": [],
    })


@pytest.fixture
def seeded_offers(fake_db, sample_property):
    """Three pending offers from different buyers on the sample property."""
    rows = [
        create_offer_data(sample_property["id"], offer_price=price, created_at=f"2024-12-0{i + 2}T12:00:00+00:00")
        for i, price in enumerate((205000, 210000, 215000))
    ]
    fake_db.tables["offers"].extend(rows)
    return rows


@pytest.fixture
def service_client(fake_db):
    """Route the service-role singleton to the in-memory store."""
    with patch("src.services.supabase_client.get_supabase_client", return_value=fake_db):
        yield fake_db


@pytest.fixture
def freeze_time_fixture():
    """Fixture for freezing time in tests."""
    with freeze_time("2024-12-09 12:00:00") as frozen_time:
        yield frozen_time
