"""Slack Web API and SCIM transport.

Every failure leaves this module as an ``UpstreamError`` carrying a
``RawFailureSignal``; classification is the orchestrator's job. Slack can
report an error with an HTTP 200 and ``{"ok": false, "error": "..."}`` in
the body, so the body is always checked.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Union

import requests

from scripts.directory_sync.config import SlackConfig
from scripts.directory_sync.context import SyncContext
from scripts.directory_sync.outcomes import (
    RateLimitSignal,
    RawFailureSignal,
    UpstreamError,
    clamp_retry_after,
)

logger = logging.getLogger("directory_sync.client")

# docs: https://api.slack.com/methods
PATH_USERS_LIST = "/api/users.list"
PATH_ADMIN_USERS_LIST = "/api/admin.users.list"
PATH_AUTH_TEAMS_LIST = "/api/auth.teams.list"
PATH_ROLE_ASSIGNMENTS = "/api/admin.roles.listAssignments"
PATH_USERGROUPS_LIST = "/api/usergroups.list"
PATH_USERGROUP_MEMBERS = "/api/usergroups.users.list"

# SCIM endpoints need an admin-scoped token: https://api.slack.com/scim
PATH_SCIM_GROUPS = "/Groups"
PATH_SCIM_USERS = "/Users"

ParamValue = Union[str, int, bool, list]


class QueryParams:
    """Typed form/query parameter builder."""

    def __init__(self) -> None:
        self._items: list[tuple[str, str]] = []

    def add(self, key: str, value: ParamValue) -> "QueryParams":
        # bool first: bool is a subclass of int
        if isinstance(value, bool):
            self._items.append((key, "true" if value else "false"))
        elif isinstance(value, (str, int)):
            self._items.append((key, str(value)))
        elif isinstance(value, list) and all(isinstance(v, str) for v in value):
            self._items.extend((key, v) for v in value)
        else:
            raise TypeError(f"unsupported value for parameter {key!r}: {type(value).__name__}")
        return self

    def cursor(self, cursor: str) -> "QueryParams":
        # Slack rejects an explicit empty cursor.
        if cursor:
            self.add("cursor", cursor)
        return self

    def items(self) -> list[tuple[str, str]]:
        return list(self._items)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, QueryParams) and self._items == other._items

    def __repr__(self) -> str:
        return f"QueryParams({self._items!r})"


@dataclass
class Page:
    items: list[dict] = field(default_factory=list)
    next_cursor: str = ""
    rate_limit: Optional[RateLimitSignal] = None


def _int_header(headers: Any, name: str) -> Optional[int]:
    raw = headers.get(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _retry_after(headers: Any) -> Optional[float]:
    raw = headers.get("Retry-After")
    if raw is None:
        return None
    try:
        seconds = float(raw)
    except ValueError:
        return None
    if math.isnan(seconds):
        return None
    return clamp_retry_after(seconds)


def _reset_at(headers: Any) -> Optional[datetime]:
    reset = _int_header(headers, "X-RateLimit-Reset")
    if reset is None:
        return None
    try:
        return datetime.fromtimestamp(reset, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        logger.debug("Ignoring out-of-range X-RateLimit-Reset: %s", reset)
        return None


def rate_limit_from_headers(headers: Any) -> Optional[RateLimitSignal]:
    limit = _int_header(headers, "X-RateLimit-Limit")
    remaining = _int_header(headers, "X-RateLimit-Remaining")
    reset_at = _reset_at(headers)
    if limit is None and remaining is None and reset_at is None:
        return None
    return RateLimitSignal(limit=limit or 0, remaining=remaining or 0, reset_at=reset_at)


def signal_from_response(resp: requests.Response, error: Optional[str] = None) -> RawFailureSignal:
    return RawFailureSignal(
        status_code=resp.status_code,
        error=error,
        retry_after=_retry_after(resp.headers),
        limit=_int_header(resp.headers, "X-RateLimit-Limit"),
        remaining=_int_header(resp.headers, "X-RateLimit-Remaining"),
        reset_at=_reset_at(resp.headers),
    )


def _body_error(resp: requests.Response) -> Optional[str]:
    try:
        body = resp.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, str) and err:
            return err
    return None


class SlackClient:
    def __init__(self, config: SlackConfig, timeout: float = 30.0) -> None:
        self._config = config
        self._api_base = config.api_url
        self._scim_base = f"{config.scim_url}/scim/{config.scim_version}"
        self._bot_token = config.token
        self._admin_token = config.business_plus_token or config.token
        self._page_size = config.page_size
        self._timeout = timeout
        self._session = requests.Session()
        self._session.headers.update({"Accept": "application/json"})

    @property
    def page_size(self) -> int:
        return self._page_size

    def close(self) -> None:
        self._session.close()

    # ------------------------------------------------------------------
    # Request primitives
    # ------------------------------------------------------------------

    def _request(
        self,
        ctx: SyncContext,
        method: str,
        url: str,
        token: str,
        params: Optional[QueryParams],
        action: str,
    ) -> tuple[Any, Optional[RateLimitSignal]]:
        ctx.check()
        timeout = self._timeout
        remaining = ctx.remaining()
        if remaining is not None:
            timeout = max(min(timeout, remaining), 0.001)

        pairs = params.items() if params else []
        kwargs: dict[str, Any] = {"params": pairs} if method == "GET" else {"data": pairs}
        logger.debug("Making request %s %s", method, url)
        try:
            resp = self._session.request(
                method,
                url,
                headers={"Authorization": f"Bearer {token}"},
                timeout=timeout,
                **kwargs,
            )
        except requests.Timeout as exc:
            raise UpstreamError(RawFailureSignal(error="request_timeout"), action) from exc
        except requests.ConnectionError as exc:
            raise UpstreamError(RawFailureSignal(error="http_request_failed"), action) from exc

        if resp.status_code >= 400:
            logger.warning(
                "Slack returned HTTP %d for %s: %s",
                resp.status_code, action, resp.text[:512],
            )
            raise UpstreamError(signal_from_response(resp, _body_error(resp)), action)

        if resp.status_code == 204 or not resp.content:
            return {}, rate_limit_from_headers(resp.headers)

        try:
            body = resp.json()
        except ValueError as exc:
            raise UpstreamError(
                signal_from_response(resp, "unparseable_response_body"), action
            ) from exc

        if isinstance(body, dict) and body.get("ok") is False:
            raise UpstreamError(
                signal_from_response(resp, body.get("error") or "unknown_error"), action
            )
        return body, rate_limit_from_headers(resp.headers)

    def fetch_page(
        self,
        ctx: SyncContext,
        path: str,
        params: QueryParams,
        cursor: str,
        items_key: str,
        use_admin_token: bool = False,
        action: str = "",
    ) -> Page:
        """One cursor-paginated Web API page."""
        params.add("limit", self._page_size).cursor(cursor)
        token = self._admin_token if use_admin_token else self._bot_token
        body, rate_limit = self._request(
            ctx, "POST", f"{self._api_base}{path}", token, params, action or path,
        )
        metadata = body.get("response_metadata") or {}
        return Page(
            items=list(body.get(items_key) or []),
            next_cursor=metadata.get("next_cursor") or "",
            rate_limit=rate_limit,
        )

    def fetch(
        self,
        ctx: SyncContext,
        path: str,
        params: QueryParams,
        use_admin_token: bool = False,
        action: str = "",
    ) -> tuple[dict, Optional[RateLimitSignal]]:
        """A single non-paginated Web API call."""
        token = self._admin_token if use_admin_token else self._bot_token
        return self._request(
            ctx, "POST", f"{self._api_base}{path}", token, params, action or path,
        )

    def fetch_scim(
        self,
        ctx: SyncContext,
        path: str,
        params: Optional[QueryParams] = None,
        action: str = "",
    ) -> tuple[dict, Optional[RateLimitSignal]]:
        return self._request(
            ctx, "GET", f"{self._scim_base}{path}", self._admin_token, params, action or path,
        )

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    def list_users(self, ctx: SyncContext, team_id: str, cursor: str) -> Page:
        params = QueryParams().add("team_id", team_id)
        return self.fetch_page(
            ctx, PATH_USERS_LIST, params, cursor, "members", action="listing workspace users",
        )

    def list_admin_users(self, ctx: SyncContext, cursor: str) -> Page:
        return self.fetch_page(
            ctx, PATH_ADMIN_USERS_LIST, QueryParams(), cursor, "users",
            use_admin_token=True, action="listing admin users",
        )

    def list_teams(self, ctx: SyncContext, cursor: str, enterprise: bool) -> Page:
        # On Enterprise Grid the org-level token sees every workspace the app
        # is installed in; otherwise the bot token sees its own.
        return self.fetch_page(
            ctx, PATH_AUTH_TEAMS_LIST, QueryParams(), cursor, "teams",
            use_admin_token=enterprise, action="listing workspaces",
        )

    def list_role_assignments(self, ctx: SyncContext, role_id: str, cursor: str) -> Page:
        params = QueryParams()
        if role_id:
            params.add("role_ids", role_id)
        return self.fetch_page(
            ctx, PATH_ROLE_ASSIGNMENTS, params, cursor, "role_assignments",
            use_admin_token=True, action="listing role assignments",
        )

    def list_user_groups(self, ctx: SyncContext, team_id: str) -> Page:
        params = QueryParams().add("team_id", team_id).add("include_users", True)
        body, rate_limit = self.fetch(
            ctx, PATH_USERGROUPS_LIST, params, action="listing user groups",
        )
        return Page(items=list(body.get("usergroups") or []), rate_limit=rate_limit)

    def list_user_group_members(self, ctx: SyncContext, group_id: str, team_id: str) -> Page:
        params = QueryParams().add("usergroup", group_id).add("team_id", team_id)
        body, rate_limit = self.fetch(
            ctx, PATH_USERGROUP_MEMBERS, params, action="listing user group members",
        )
        return Page(items=[{"id": u} for u in body.get("users") or []], rate_limit=rate_limit)

    def list_idp_groups(self, ctx: SyncContext, start_index: int, count: int) -> tuple[dict, Optional[RateLimitSignal]]:
        params = QueryParams().add("startIndex", start_index).add("count", count)
        return self.fetch_scim(ctx, PATH_SCIM_GROUPS, params, action="listing IDP groups")

    def get_idp_group(self, ctx: SyncContext, group_id: str) -> tuple[dict, Optional[RateLimitSignal]]:
        return self.fetch_scim(ctx, f"{PATH_SCIM_GROUPS}/{group_id}", action="fetching IDP group")

    def list_idp_users(self, ctx: SyncContext, start_index: int, count: int) -> tuple[dict, Optional[RateLimitSignal]]:
        params = QueryParams().add("startIndex", start_index).add("count", count)
        return self.fetch_scim(ctx, PATH_SCIM_USERS, params, action="listing SCIM users")
