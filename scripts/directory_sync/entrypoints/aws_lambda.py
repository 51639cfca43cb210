"""AWS Lambda handler: one page per invocation.

The caller drives the crawl, passing back the token from the previous
response until it comes back empty.

Event format:
  {"operation": "list", "resource_type": "workspace", "token": ""}
  {"operation": "list", "resource_type": "user",
   "parent_id": {"resource_type": "workspace", "resource": "T123"}, "token": ""}
  {"operation": "entitlements", "resource": {...}}
  {"operation": "grants", "resource": {...}, "token": ""}

``resource`` is a record exactly as a previous list response returned it.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Optional

from scripts.directory_sync.config import load_config
from scripts.directory_sync.context import SyncContext, background
from scripts.directory_sync.logging_config import configure_logging
from scripts.directory_sync.orchestrator import SyncOrchestrator, SyncResult
from scripts.directory_sync.outcomes import OutcomeCategory
from scripts.directory_sync.resources import Resource, ResourceId

logger = logging.getLogger("directory_sync.lambda")

OPERATIONS = ("list", "entitlements", "grants")

# Kept across warm invocations so each syncer's enrichment cache survives.
_orchestrator: Optional[SyncOrchestrator] = None


def _get_orchestrator() -> SyncOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        config = load_config()
        _orchestrator = SyncOrchestrator.from_config(
            config.slack, timeout=config.request_timeout_seconds,
        )
    return _orchestrator


def _context(context: Any) -> SyncContext:
    # Stop a second before Lambda kills us.
    remaining_ms = getattr(context, "get_remaining_time_in_millis", None)
    if remaining_ms is None:
        return background()
    return SyncContext.with_timeout(max(remaining_ms() / 1000.0 - 1.0, 0.0))


def _status_code(result: SyncResult) -> int:
    if result.ok:
        return 200
    category = result.outcome.category
    if category is OutcomeCategory.RATE_LIMITED:
        return 429
    if category is OutcomeCategory.INVALID_ARGUMENT:
        return 400
    return 502


def _bad_request(message: str) -> dict:
    return {"statusCode": 400, "body": json.dumps({"error": message})}


def handler(event: dict, context) -> dict:
    """Lambda entry point."""
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))

    operation = event.get("operation", "")
    if operation not in OPERATIONS:
        return _bad_request(f"'operation' must be one of {', '.join(OPERATIONS)}")
    token = event.get("token") or ""

    try:
        if operation == "list":
            resource_type = event.get("resource_type", "")
            if not resource_type:
                return _bad_request("Missing 'resource_type' in event")
            parent = ResourceId.from_dict(event["parent_id"]) if event.get("parent_id") else None
        else:
            if not event.get("resource"):
                return _bad_request("Missing 'resource' in event")
            resource = Resource.from_dict(event["resource"])
            resource_type = resource.resource_type
    except ValueError as exc:
        return _bad_request(str(exc))

    logger.info(
        "Lambda invoked for %s %s", operation, resource_type,
        extra={"resource_type": resource_type},
    )

    try:
        orchestrator = _get_orchestrator()
    except ValueError as exc:
        logger.error("Invalid configuration: %s", exc)
        return {"statusCode": 500, "body": json.dumps({"error": str(exc)})}

    ctx = _context(context)
    if operation == "list":
        result = orchestrator.list(resource_type, parent, token, ctx=ctx)
    elif operation == "entitlements":
        result = orchestrator.entitlements(resource, ctx=ctx)
    else:
        result = orchestrator.grants(resource, token, ctx=ctx)

    body = result.to_dict()
    body["operation"] = operation
    body["resource_type"] = resource_type
    return {"statusCode": _status_code(result), "body": json.dumps(body, default=str)}
