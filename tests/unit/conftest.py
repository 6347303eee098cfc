"""Shared unit-test fixtures."""

from __future__ import annotations

import pytest
from fakes import (
    FakeClock,
    FakeDBSession,
    InMemoryApiKeyRepository,
    InMemoryUsageLogRepository,
    InMemoryUserRepository,
    InMemoryWebhookRepository,
)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db_session() -> FakeDBSession:
    return FakeDBSession()


@pytest.fixture
def users() -> InMemoryUserRepository:
    return InMemoryUserRepository()


@pytest.fixture
def api_key_repo(clock: FakeClock) -> InMemoryApiKeyRepository:
    return InMemoryApiKeyRepository(clock)


@pytest.fixture
def usage_log_repo() -> InMemoryUsageLogRepository:
    return InMemoryUsageLogRepository()


@pytest.fixture
def webhook_repo(clock: FakeClock) -> InMemoryWebhookRepository:
    return InMemoryWebhookRepository(clock)
