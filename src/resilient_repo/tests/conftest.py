"""
Core pytest configuration for the entire test suite.

Provides the logging setup, a per-test database engine and the policy-cache reset
that every repository test relies on. Domain fixtures (tables, entities,
repositories, fake store errors) live in:
- tests/test_fixtures/repository_fixtures.py
"""

from __future__ import annotations

# -------------------------------
# Standard library imports
# -------------------------------
import logging
import os
from typing import AsyncGenerator
from urllib.parse import urlparse

# -------------------------------
# Early logging tuning
# -------------------------------
# Keep this block above the project imports so collection stays quiet.
NOISY_LOGGERS = (
    "sqlalchemy",
    "sqlalchemy.engine",
    "sqlalchemy.engine.Engine",
    "aiosqlite",
    "asyncio",
)
for _name in NOISY_LOGGERS:
    logging.getLogger(_name).setLevel(logging.WARNING)

# -------------------------------
# Third-party / project imports
# -------------------------------
import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from resilient_repo.config import get_settings
from resilient_repo.core.logging.builder import setup_logging
from resilient_repo.database import metadata
from resilient_repo.resilience import reset_policy_cache

settings = get_settings()
logger = logging.getLogger(__name__)


@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    """
    Install the project logging configuration once for the whole session, so
    formatters and filters are exercised by every test that logs.

    pytest re-attaches its capture handler for each test phase, so `caplog`
    keeps working after dictConfig replaced the root handlers.
    """
    setup_logging(settings)
    yield


@pytest.fixture(autouse=True)
def clean_policy_cache():
    """Policies are cached per repository class for the life of the process; start every test empty."""
    reset_policy_cache()
    yield
    reset_policy_cache()


# ------------------------------------------------------------------------------------------------
# Test database
# ------------------------------------------------------------------------------------------------


def safe_log_db_url(db_url: str) -> str:
    """Return the database URL without credentials, for logging."""
    parsed = urlparse(db_url)
    return f"{parsed.scheme}://{parsed.hostname or ''}:{parsed.port or ''}/{parsed.path.lstrip('/')}"


def get_test_database_url(tmp_path) -> str:
    """
    TEST_DATABASE_URL (CI against a real server) wins; otherwise a throwaway
    SQLite file in the test's tmp_path.
    """
    if test_url := os.getenv("TEST_DATABASE_URL"):
        return test_url
    return f"sqlite+aiosqlite:///{tmp_path / 'repository.db'}"


@pytest.fixture()
async def async_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    url = get_test_database_url(tmp_path)
    logger.debug("Using test DB: %s", safe_log_db_url(url))

    engine = create_async_engine(url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)

    await engine.dispose()


# Repository test fixtures
from .test_fixtures.repository_fixtures import (  # noqa: E402
    booking_repository,
    connection_factory,
    create_widget,
    created_widget,
    offline_factory,
    sample_booking,
    sleep_recorder,
    widget_repository,
)
