"""
conftest.py - Pytest Configuration
===================================

This file contains pytest configuration and shared fixtures for all tests.

Test Setup:
----------
- Django settings configuration
- Database setup (tables created straight from models, no migrations)
- External service mocking (Growatt via ``responses``)
- Common fixtures for staff roles, portal clients, authentication

Markers:
-------
- unit: Fast unit tests (< 100ms)
- integration: Integration tests (< 1s)
- slow: Tests that take > 1s
- external: Tests touching mocked external services
- database: Tests requiring database access
- growatt / maintenance / ledger: per-area markers added by directory

Running Tests:
-------------
pytest                          # Run all tests
pytest -m unit                  # Run only unit tests
pytest -m "not slow"            # Skip slow tests
pytest -k ledger                # Run tests matching pattern
"""

import os
import sys
from pathlib import Path

# Add project root to Python path
BASE_DIR = Path(__file__).resolve().parent
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

# Set environment variables
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "mundosolar_backend.settings")
os.environ.setdefault("TESTING", "True")

# Load the shared fixtures defined in tests/fixtures/__init__.py
pytest_plugins = ["tests.fixtures"]


def pytest_configure(config):
    """Configure pytest"""
    from django.conf import settings

    # Build tables directly from models
    settings.MIGRATION_MODULES = {
        "main": None,
        "user": None,
        "orders": None,
        "maintenance": None,
        "notifications": None,
        "growatt": None,
        "customers": None,
        "stock": None,
        "tech": None,
        "client_app": None,
        "invoicing": None,
        "reports": None,
    }

    # Use simple password hasher for faster tests
    settings.PASSWORD_HASHERS = [
        "django.contrib.auth.hashers.MD5PasswordHasher",
    ]

    # Use local memory cache
    settings.CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        }
    }

    # Run Celery tasks inline
    settings.CELERY_TASK_ALWAYS_EAGER = True
    settings.CELERY_TASK_EAGER_PROPAGATES = True

    # No pauses between Growatt accounts, no cron secret
    settings.GROWATT_SYNC_DELAY_SECONDS = 0
    settings.CRON_SECRET = ""


def pytest_collection_modifyitems(config, items):
    """Modify test collection"""
    import pytest

    for item in items:
        # Add 'database' marker to tests using db fixture
        if "db" in item.fixturenames:
            item.add_marker(pytest.mark.database)

        # Add module markers based on directory
        parts = Path(item.fspath).parts
        if "growatt" in parts:
            item.add_marker(pytest.mark.growatt)
        elif "maintenance" in parts:
            item.add_marker(pytest.mark.maintenance)
        elif "orders" in parts:
            item.add_marker(pytest.mark.ledger)


def pytest_report_header(config):
    """Add custom header to pytest output"""
    return [
        "MundoSolar Backend - Test Suite",
        f"Python version: {sys.version.split()[0]}",
        "Django test environment configured",
    ]
