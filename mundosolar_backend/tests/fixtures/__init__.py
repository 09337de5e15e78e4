"""
Shared Test Fixtures
====================

This module provides pytest fixtures shared across all test modules.

Available Fixtures:
------------------
- client: Django test client
- api_client: DRF API client
- admin_user / manager_user / technician / sales_user / support_user
- admin_client / manager_client / technician_client / sales_client / support_client
- admin_api_client: DRF client authenticated as admin
- portal_client: customer record with a portal password
- portal_http: Django test client carrying a valid client-token cookie
- responses_mock: active ``responses`` registry
- mock_growatt: Mocked Growatt API

Usage:
-----
def test_example(admin_client):
    response = admin_client.get('/api/orders/')
    assert response.status_code == 200
"""

import pytest
import responses
from rest_framework.test import APIClient

from django.conf import settings as django_settings
from django.test import Client

from main.factories import (
    AdminFactory,
    ClientFactory,
    TechnicianFactory,
    UserFactory,
)
from main.models import UserRole
from tests.mocks.growatt import GrowattMock
from user.auth import issue_client_token

PORTAL_PHONE = "5512345678"
PORTAL_PASSWORD = "Solar123!"


# ============================================================================
# CLIENT FIXTURES
# ============================================================================


@pytest.fixture
def client():
    """Django test client"""
    return Client()


@pytest.fixture
def api_client():
    """DRF API client"""
    return APIClient()


# ============================================================================
# STAFF FIXTURES
# ============================================================================


@pytest.fixture
def admin_user(db):
    return AdminFactory(email="admin@mundosolar.test")


@pytest.fixture
def manager_user(db):
    return UserFactory(role=UserRole.MANAGER)


@pytest.fixture
def technician(db):
    return TechnicianFactory(full_name="Técnico Uno")


@pytest.fixture
def sales_user(db):
    return UserFactory(role=UserRole.SALES)


@pytest.fixture
def support_user(db):
    return UserFactory(role=UserRole.SUPPORT)


@pytest.fixture
def admin_client(client, admin_user):
    """Client with authenticated admin user"""
    client.force_login(admin_user)
    return client


@pytest.fixture
def manager_client(manager_user):
    c = Client()
    c.force_login(manager_user)
    return c


@pytest.fixture
def technician_client(technician):
    c = Client()
    c.force_login(technician)
    return c


@pytest.fixture
def sales_client(sales_user):
    c = Client()
    c.force_login(sales_user)
    return c


@pytest.fixture
def support_client(support_user):
    c = Client()
    c.force_login(support_user)
    return c


@pytest.fixture
def admin_api_client(api_client, admin_user):
    """API client with authenticated admin user"""
    api_client.force_authenticate(user=admin_user)
    return api_client


# ============================================================================
# CLIENT PORTAL FIXTURES
# ============================================================================


@pytest.fixture
def portal_client(db):
    """A customer who can sign in to the portal."""
    customer = ClientFactory(phone=f"+52 {PORTAL_PHONE}", require_password_change=False)
    customer.set_password(PORTAL_PASSWORD)
    customer.save()
    return customer


@pytest.fixture
def portal_http(portal_client):
    """Test client already carrying the customer's token cookie."""
    c = Client()
    c.cookies[django_settings.CLIENT_TOKEN_COOKIE] = issue_client_token(portal_client)
    return c


# ============================================================================
# EXTERNAL SERVICE MOCKS
# ============================================================================


@pytest.fixture
def responses_mock():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


@pytest.fixture
def mock_growatt(responses_mock, settings):
    """Mock Growatt monitoring API"""
    mock = GrowattMock()
    settings.GROWATT_API_URL = mock.api_url
    settings.GROWATT_SYNC_DELAY_SECONDS = 0
    mock.register_responses(responses_mock)
    return mock


# ============================================================================
# CLEANUP FIXTURES
# ============================================================================


@pytest.fixture(autouse=True)
def clear_cache():
    """Clear Django cache after each test"""
    from django.core.cache import cache

    yield
    cache.clear()
