"""Pytest configuration and fixtures for directory_sync tests."""

from __future__ import annotations

import pytest

from fakes import BASE_URL, FakeSlackClient
from scripts.directory_sync.config import SlackConfig
from scripts.directory_sync.context import SyncContext, background


SLACK_ENV_VARS = (
    "SLACK_TOKEN",
    "SLACK_BUSINESS_PLUS_TOKEN",
    "SLACK_ENTERPRISE_ID",
    "SLACK_SSO_ENABLED",
    "SLACK_GOV_ENV",
    "SLACK_BASE_URL",
    "CRAWL_PAGE_SIZE",
    "CRAWL_MAX_RETRIES",
    "CRAWL_BACKOFF_BASE_SECONDS",
    "CRAWL_REQUEST_TIMEOUT",
    "CRAWL_RESOURCE_TYPES",
)


@pytest.fixture(autouse=True)
def clean_slack_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's own Slack settings out of the tests."""
    for name in SLACK_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def ctx() -> SyncContext:
    return background()


@pytest.fixture
def slack_config() -> SlackConfig:
    return SlackConfig(token="xoxb-bot", base_url=BASE_URL)


@pytest.fixture
def admin_config() -> SlackConfig:
    return SlackConfig(token="xoxb-bot", business_plus_token="xoxp-admin", base_url=BASE_URL)


@pytest.fixture
def grid_config() -> SlackConfig:
    return SlackConfig(
        token="xoxb-bot",
        business_plus_token="xoxp-admin",
        enterprise_id="E1",
        base_url=BASE_URL,
    )


@pytest.fixture
def enterprise_config() -> SlackConfig:
    return SlackConfig(
        token="xoxb-bot",
        business_plus_token="xoxp-admin",
        enterprise_id="E1",
        sso_enabled=True,
        base_url=BASE_URL,
    )


@pytest.fixture
def fake_client() -> FakeSlackClient:
    return FakeSlackClient()
