"""Tests for environment-driven configuration."""

from __future__ import annotations

import pytest

from scripts.directory_sync import config as config_module
from scripts.directory_sync.config import SlackConfig, _env_bool, load_config


@pytest.fixture(autouse=True)
def no_dotenv(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config_module, "load_dotenv", lambda: None)


class TestLoadConfig:
    def test_minimal(self, monkeypatch):
        monkeypatch.setenv("SLACK_TOKEN", "xoxb-bot")
        cfg = load_config()
        assert cfg.slack.token == "xoxb-bot"
        assert cfg.slack.business_plus_token is None
        assert not cfg.slack.is_enterprise
        assert not cfg.slack.has_admin_api
        assert cfg.max_retries == 3
        assert cfg.request_timeout_seconds == 30.0
        assert cfg.resource_types == []

    def test_missing_token(self):
        with pytest.raises(ValueError, match="SLACK_TOKEN"):
            load_config()

    def test_all_options(self, monkeypatch):
        monkeypatch.setenv("SLACK_TOKEN", "xoxb-bot")
        monkeypatch.setenv("SLACK_BUSINESS_PLUS_TOKEN", "xoxp-admin")
        monkeypatch.setenv("SLACK_ENTERPRISE_ID", "E1")
        monkeypatch.setenv("SLACK_SSO_ENABLED", "true")
        monkeypatch.setenv("CRAWL_PAGE_SIZE", "50")
        monkeypatch.setenv("CRAWL_MAX_RETRIES", "5")
        monkeypatch.setenv("CRAWL_BACKOFF_BASE_SECONDS", "0.25")
        monkeypatch.setenv("CRAWL_RESOURCE_TYPES", "workspace, user,,")
        cfg = load_config()
        assert cfg.slack.is_enterprise
        assert cfg.slack.has_admin_api
        assert cfg.slack.sso_enabled
        assert cfg.slack.page_size == 50
        assert cfg.max_retries == 5
        assert cfg.backoff_base_seconds == 0.25
        assert cfg.resource_types == ["workspace", "user"]

    def test_gov_env_requires_business_plus_token(self, monkeypatch):
        monkeypatch.setenv("SLACK_TOKEN", "xoxb-bot")
        monkeypatch.setenv("SLACK_GOV_ENV", "1")
        with pytest.raises(ValueError, match="business-plus"):
            load_config()


class TestSlackConfig:
    def test_commercial_urls(self):
        cfg = SlackConfig(token="xoxb-bot")
        assert cfg.api_url == "https://slack.com"
        assert cfg.scim_url == "https://api.slack.com"
        assert cfg.scim_version == "v2"

    def test_gov_urls(self):
        cfg = SlackConfig(token="xoxb-bot", business_plus_token="xoxp-admin", gov_env=True)
        assert cfg.api_url == "https://slack-gov.com"
        assert cfg.scim_url == "https://api.slack-gov.com"
        assert cfg.scim_version == "v1"

    def test_base_url_overrides_both(self):
        cfg = SlackConfig(token="xoxb-bot", base_url="http://localhost:8080/")
        assert cfg.api_url == "http://localhost:8080"
        assert cfg.scim_url == "http://localhost:8080"

    def test_page_size_must_be_positive(self):
        with pytest.raises(ValueError):
            SlackConfig(token="xoxb-bot", page_size=0)


@pytest.mark.parametrize("raw, expected", [
    ("true", True), ("YES", True), ("1", True), ("on", True),
    ("false", False), ("0", False), ("nope", False),
])
def test_env_bool(monkeypatch, raw, expected):
    monkeypatch.setenv("FLAG", raw)
    assert _env_bool("FLAG") is expected


def test_env_bool_default(monkeypatch):
    monkeypatch.delenv("FLAG", raising=False)
    assert _env_bool("FLAG", default=True) is True
