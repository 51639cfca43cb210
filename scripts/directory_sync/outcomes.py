"""Upstream failure classification.

Slack reports failures three different ways: HTTP status codes, an
``{"ok": false, "error": "..."}`` body on an HTTP 200, and explicit
``Retry-After`` / ``X-RateLimit-*`` headers. ``classify()`` folds all of
them into one small taxonomy so the caller can tell "try again later" apart
from "this will never work without a configuration change".
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional


class OutcomeCategory(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    INVALID_ARGUMENT = "invalid_argument"
    ALREADY_EXISTS = "already_exists"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    INTERNAL = "internal"
    UNKNOWN = "unknown"


RETRYABLE_CATEGORIES = frozenset({
    OutcomeCategory.RATE_LIMITED,
    OutcomeCategory.UNAVAILABLE,
    OutcomeCategory.DEADLINE_EXCEEDED,
})

# Conditions raised by the crawler itself rather than the upstream API.
CONDITION_MALFORMED_TOKEN = "malformed_token"
CONDITION_CACHE_POPULATION_FAILED = "cache_population_failed"

# Longest Retry-After honored; longer values, infinity included, are clamped to it.
MAX_RETRY_AFTER_SECONDS = 24 * 60 * 60.0


@dataclass(frozen=True)
class RateLimitSignal:
    """Backpressure hint attached to an outcome or a successful page."""

    limit: int = 0
    remaining: int = 0
    reset_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "limit": self.limit,
            "remaining": self.remaining,
            "reset_at": self.reset_at.isoformat() if self.reset_at else None,
        }


@dataclass(frozen=True)
class RawFailureSignal:
    """Everything the transport knows about a failed call.

    ``error`` is Slack's textual identifier (``invalid_auth``,
    ``ratelimited``...). ``retry_after`` is the parsed ``Retry-After``
    header in seconds; the ``limit``/``remaining``/``reset_at`` fields come
    from ``X-RateLimit-*`` headers.
    """

    status_code: Optional[int] = None
    error: Optional[str] = None
    retry_after: Optional[float] = None
    limit: Optional[int] = None
    remaining: Optional[int] = None
    reset_at: Optional[datetime] = None


@dataclass(frozen=True)
class ErrorOutcome:
    category: OutcomeCategory
    message: str = ""
    rate_limit: Optional[RateLimitSignal] = None
    condition: Optional[str] = None

    @property
    def retryable(self) -> bool:
        return self.category in RETRYABLE_CATEGORIES

    def with_condition(self, condition: str) -> "ErrorOutcome":
        return replace(self, condition=condition)

    def to_dict(self) -> dict:
        out = {
            "category": self.category.value,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.condition:
            out["condition"] = self.condition
        if self.rate_limit:
            out["rate_limit"] = self.rate_limit.to_dict()
        return out


# ----------------------------------------------------------------------
# Errors
# ----------------------------------------------------------------------

class SyncError(Exception):
    """Base class for every failure the crawler reports to its caller."""


class UpstreamError(SyncError):
    """A Slack API call failed; carries the raw signal for classification."""

    def __init__(self, signal: RawFailureSignal, action: str = "") -> None:
        self.signal = signal
        self.action = action
        detail = signal.error or (
            f"HTTP {signal.status_code}" if signal.status_code else "request failed"
        )
        super().__init__(f"{action}: {detail}" if action else detail)


class MalformedToken(SyncError):
    """A continuation token could not be decoded. Never retried."""


class SyncCancelled(SyncError):
    """The caller's context was cancelled or its deadline passed."""


class CachePopulationFailed(SyncError):
    """The enrichment sub-crawl aborted; wraps the outcome that caused it."""

    def __init__(self, outcome: ErrorOutcome, cause: Optional[BaseException] = None) -> None:
        self.outcome = outcome
        self.cause = cause
        super().__init__(f"enrichment cache population failed: {outcome.message}")


# ----------------------------------------------------------------------
# Rule table
# ----------------------------------------------------------------------

# Order matters: the first rule with a matching keyword wins, so
# "invalid_auth" is an authentication failure, not an invalid argument.
ERROR_RULES: tuple[tuple[tuple[str, ...], OutcomeCategory], ...] = (
    ((
        "token_revoked", "token_expired", "invalid_auth", "not_authed",
        "auth_token_error", "invalid_token", "account_inactive",
    ), OutcomeCategory.UNAUTHENTICATED),
    ((
        "missing_scope", "no_permission", "access_denied", "not_allowed_token_type",
        "team_access_not_granted", "_denied",
    ), OutcomeCategory.PERMISSION_DENIED),
    ((
        "user_not_found", "team_not_found", "channel_not_found", "not_found",
        "user_already_deleted",
    ), OutcomeCategory.NOT_FOUND),
    ((
        "invalid_arguments", "invalid_args", "invalid_cursor", "missing_argument",
        "limit_required", "invalid_", "parameter_validation_failed",
    ), OutcomeCategory.INVALID_ARGUMENT),
    ((
        "ratelimited", "rate limit", "rate_limited", "team_quota_exceeded",
    ), OutcomeCategory.RATE_LIMITED),
    ((
        "503", "service_unavailable", "service unavailable", "502", "bad_gateway",
        "bad gateway", "504", "gateway_timeout", "gateway timeout", "internal_error",
        "http_request_failed", "no_such_subteam",
    ), OutcomeCategory.UNAVAILABLE),
    ((
        "timeout", "deadline",
    ), OutcomeCategory.DEADLINE_EXCEEDED),
    ((
        "already_exists", "app_add_exists", "user_already_",
    ), OutcomeCategory.ALREADY_EXISTS),
    ((
        "method_deprecated", "deprecated_endpoint", "app_not_installed",
        "installation_required", "free_team_not_allowed", "restricted_plan_level",
    ), OutcomeCategory.INVALID_ARGUMENT),
    ((
        "fatal_error",
    ), OutcomeCategory.INTERNAL),
)

_STATUS_TABLE: dict[int, OutcomeCategory] = {
    400: OutcomeCategory.INVALID_ARGUMENT,
    401: OutcomeCategory.UNAUTHENTICATED,
    403: OutcomeCategory.PERMISSION_DENIED,
    404: OutcomeCategory.NOT_FOUND,
    409: OutcomeCategory.ALREADY_EXISTS,
    429: OutcomeCategory.RATE_LIMITED,
}

_MESSAGES: dict[OutcomeCategory, str] = {
    OutcomeCategory.UNAUTHENTICATED: "authentication failed",
    OutcomeCategory.PERMISSION_DENIED: "insufficient permissions",
    OutcomeCategory.NOT_FOUND: "resource not found",
    OutcomeCategory.INVALID_ARGUMENT: "invalid argument",
    OutcomeCategory.ALREADY_EXISTS: "resource already exists",
    OutcomeCategory.RATE_LIMITED: "rate limited",
    OutcomeCategory.UNAVAILABLE: "service unavailable",
    OutcomeCategory.DEADLINE_EXCEEDED: "timeout",
    OutcomeCategory.INTERNAL: "internal error",
    OutcomeCategory.UNKNOWN: "error",
}


def clamp_retry_after(seconds: float) -> float:
    """Bound a Retry-After duration to [0, MAX_RETRY_AFTER_SECONDS]; NaN is 0."""
    if math.isnan(seconds) or seconds <= 0:
        return 0.0
    return min(seconds, MAX_RETRY_AFTER_SECONDS)


def match_error_identifier(error: str) -> Optional[OutcomeCategory]:
    """Return the category of the first rule whose keyword occurs in ``error``."""
    lowered = error.lower()
    for keywords, category in ERROR_RULES:
        if any(keyword in lowered for keyword in keywords):
            return category
    return None


def category_for_status(status_code: Optional[int]) -> OutcomeCategory:
    if status_code is None:
        return OutcomeCategory.UNKNOWN
    if status_code in _STATUS_TABLE:
        return _STATUS_TABLE[status_code]
    if 500 <= status_code <= 599:
        return OutcomeCategory.UNAVAILABLE
    return OutcomeCategory.UNKNOWN


def _header_rate_limit(signal: RawFailureSignal) -> Optional[RateLimitSignal]:
    if signal.limit is None and signal.remaining is None and signal.reset_at is None:
        return None
    return RateLimitSignal(
        limit=signal.limit or 0,
        remaining=signal.remaining or 0,
        reset_at=signal.reset_at,
    )


def classify(
    signal: RawFailureSignal,
    action: str = "",
    now: Optional[datetime] = None,
) -> ErrorOutcome:
    """Map a raw failure signal to an ``ErrorOutcome``.

    An explicit ``Retry-After`` always wins. Otherwise the textual
    identifier is matched against ``ERROR_RULES``; if there is none, or
    none of the rules match, the status code decides.
    """
    if signal.retry_after is not None:
        now = now or datetime.now(timezone.utc)
        category = OutcomeCategory.RATE_LIMITED
        rate_limit = RateLimitSignal(
            limit=signal.limit or 0,
            remaining=signal.remaining or 0,
            reset_at=now + timedelta(seconds=clamp_retry_after(signal.retry_after)),
        )
    else:
        category = None
        if signal.error:
            category = match_error_identifier(signal.error)
        if category is None:
            category = category_for_status(signal.status_code)
        rate_limit = _header_rate_limit(signal)

    message = _MESSAGES[category]
    if action:
        message = f"{message} during {action}"
    if signal.error:
        message = f"{message} ({signal.error})"
    return ErrorOutcome(category=category, message=message, rate_limit=rate_limit)


def outcome_for_error(exc: SyncError, now: Optional[datetime] = None) -> ErrorOutcome:
    """Classify any crawler error, including the crawler's own conditions."""
    if isinstance(exc, UpstreamError):
        return classify(exc.signal, exc.action, now=now)
    if isinstance(exc, CachePopulationFailed):
        return exc.outcome.with_condition(CONDITION_CACHE_POPULATION_FAILED)
    if isinstance(exc, MalformedToken):
        return ErrorOutcome(
            category=OutcomeCategory.INVALID_ARGUMENT,
            message=str(exc),
            condition=CONDITION_MALFORMED_TOKEN,
        )
    if isinstance(exc, SyncCancelled):
        return ErrorOutcome(category=OutcomeCategory.DEADLINE_EXCEEDED, message=str(exc))
    return ErrorOutcome(category=OutcomeCategory.UNKNOWN, message=str(exc))
