"""Configuration via environment variables.

Supports:
  - Environment variables (cloud runtimes)
  - A local .env file (local dev)

Only the bot token is required. The business-plus token unlocks the Admin
and SCIM APIs; SLACK_ENTERPRISE_ID switches on Enterprise Grid behavior.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

SLACK_API_URL = "https://slack.com"
SLACK_GOV_API_URL = "https://slack-gov.com"
SLACK_SCIM_URL = "https://api.slack.com"
SLACK_GOV_SCIM_URL = "https://api.slack-gov.com"


@dataclass(frozen=True)
class SlackConfig:
    token: str
    business_plus_token: Optional[str] = None
    enterprise_id: Optional[str] = None
    sso_enabled: bool = False
    gov_env: bool = False
    base_url: Optional[str] = None  # hidden override, testing only
    page_size: int = 100

    def __post_init__(self) -> None:
        if not self.token:
            raise ValueError("Slack bot token is required")
        if self.gov_env and not self.business_plus_token:
            raise ValueError("The Slack gov environment requires a business-plus token")
        if self.page_size <= 0:
            raise ValueError(f"page_size must be a positive integer, got {self.page_size}")

    @property
    def api_url(self) -> str:
        if self.base_url:
            return self.base_url.rstrip("/")
        return SLACK_GOV_API_URL if self.gov_env else SLACK_API_URL

    @property
    def scim_url(self) -> str:
        if self.base_url:
            return self.base_url.rstrip("/")
        return SLACK_GOV_SCIM_URL if self.gov_env else SLACK_SCIM_URL

    @property
    def scim_version(self) -> str:
        return "v1" if self.gov_env else "v2"

    @property
    def is_enterprise(self) -> bool:
        return bool(self.enterprise_id)

    @property
    def has_admin_api(self) -> bool:
        return bool(self.business_plus_token)


@dataclass(frozen=True)
class CrawlConfig:
    slack: SlackConfig
    max_retries: int = 3
    backoff_base_seconds: float = 1.0
    request_timeout_seconds: float = 30.0
    resource_types: list[str] = field(default_factory=list)  # empty = all


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_config() -> CrawlConfig:
    """Load configuration from environment variables.

    Optional capabilities (admin API, enterprise grid, SCIM groups) are
    switched off when their variables are unset.
    """
    load_dotenv()

    token = os.environ.get("SLACK_TOKEN", "")
    if not token:
        raise ValueError("SLACK_TOKEN environment variable is required")

    slack = SlackConfig(
        token=token,
        business_plus_token=os.environ.get("SLACK_BUSINESS_PLUS_TOKEN") or None,
        enterprise_id=os.environ.get("SLACK_ENTERPRISE_ID") or None,
        sso_enabled=_env_bool("SLACK_SSO_ENABLED"),
        gov_env=_env_bool("SLACK_GOV_ENV"),
        base_url=os.environ.get("SLACK_BASE_URL") or None,
        page_size=int(os.environ.get("CRAWL_PAGE_SIZE", "100")),
    )

    types_raw = os.environ.get("CRAWL_RESOURCE_TYPES", "")
    resource_types = [s.strip() for s in types_raw.split(",") if s.strip()]

    return CrawlConfig(
        slack=slack,
        max_retries=int(os.environ.get("CRAWL_MAX_RETRIES", "3")),
        backoff_base_seconds=float(os.environ.get("CRAWL_BACKOFF_BASE_SECONDS", "1.0")),
        request_timeout_seconds=float(os.environ.get("CRAWL_REQUEST_TIMEOUT", "30")),
        resource_types=resource_types,
    )
