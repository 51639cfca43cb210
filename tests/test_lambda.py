"""Tests for the Lambda entry point, backed by the in-memory client."""

from __future__ import annotations

import json

import pytest

from fakes import make_user
from scripts.directory_sync.entrypoints import aws_lambda
from scripts.directory_sync.orchestrator import SyncOrchestrator, build_syncers
from scripts.directory_sync.outcomes import RawFailureSignal, UpstreamError


class FakeLambdaContext:
    def get_remaining_time_in_millis(self) -> int:
        return 60_000


@pytest.fixture
def orchestrator(monkeypatch, fake_client, slack_config):
    fake_client.teams = [{"id": "T1", "name": "Acme"}]
    fake_client.users["T1"] = [make_user("U1"), make_user("U2", is_stranger=True)]
    orch = SyncOrchestrator(build_syncers(fake_client, slack_config))
    monkeypatch.setattr(aws_lambda, "_orchestrator", orch)
    return orch


def _invoke(event: dict) -> tuple[int, dict]:
    response = aws_lambda.handler(event, FakeLambdaContext())
    return response["statusCode"], json.loads(response["body"])


def test_list_roots(orchestrator):
    status, body = _invoke({"operation": "list", "resource_type": "workspace"})
    assert status == 200
    assert body["operation"] == "list"
    assert body["resource_type"] == "workspace"
    assert [item["id"]["resource"] for item in body["items"]] == ["T1"]
    assert body["next_token"] == ""
    assert body["outcome"] is None


def test_list_children_with_parent(orchestrator):
    status, body = _invoke({
        "operation": "list",
        "resource_type": "user",
        "parent_id": {"resource_type": "workspace", "resource": "T1"},
    })
    assert status == 200
    assert [item["id"]["resource"] for item in body["items"]] == ["U1", "U2"]


def test_grants_from_a_listed_record(orchestrator):
    _, listed = _invoke({"operation": "list", "resource_type": "workspace"})
    status, body = _invoke({"operation": "grants", "resource": listed["items"][0], "token": ""})
    assert status == 200
    assert [g["principal"]["resource"] for g in body["items"]] == ["U1"]


def test_user_grants_survive_the_round_trip(orchestrator):
    _, listed = _invoke({
        "operation": "list",
        "resource_type": "user",
        "parent_id": {"resource_type": "workspace", "resource": "T1"},
    })
    status, body = _invoke({"operation": "grants", "resource": listed["items"][0]})
    assert status == 200
    assert [g["entitlement"] for g in body["items"]] == ["workspaceRole:T1:member:assigned"]


def test_entitlements(orchestrator):
    _, listed = _invoke({"operation": "list", "resource_type": "workspace"})
    status, body = _invoke({"operation": "entitlements", "resource": listed["items"][0]})
    assert status == 200
    assert body["items"][0]["slug"] == "member"


@pytest.mark.parametrize("event", [
    {},
    {"operation": "delete"},
    {"operation": "list"},
    {"operation": "grants"},
    {"operation": "grants", "resource": {"display_name": "no id"}},
    {"operation": "list", "resource_type": "user", "parent_id": {"resource": "T1"}},
    {
        "operation": "entitlements",
        "resource": {
            "id": {"resource_type": "workspaceRole", "resource": "T1:admin"},
            "role_key": {"scope_id": "T1"},
        },
    },
    {
        "operation": "grants",
        "resource": {"id": {"resource_type": "user", "resource": "U1"}, "attributes": "yes"},
    },
    {
        "operation": "grants",
        "resource": {"id": {"resource_type": "user", "resource": "U1"}, "profile": ["a"]},
    },
])
def test_bad_requests(orchestrator, event):
    status, body = _invoke(event)
    assert status == 400
    assert body["error"]


def test_unknown_resource_type_is_invalid_argument(orchestrator):
    status, body = _invoke({"operation": "list", "resource_type": "channel", "token": "abc"})
    assert status == 400
    assert body["outcome"]["category"] == "invalid_argument"
    assert body["next_token"] == "abc"


def test_rate_limited_page(orchestrator, fake_client):
    fake_client.fail("list_teams", "", UpstreamError(RawFailureSignal(status_code=429, retry_after=3)))
    status, body = _invoke({"operation": "list", "resource_type": "workspace"})
    assert status == 429
    assert body["outcome"]["retryable"] is True
    assert body["rate_limit"]["reset_at"]


def test_missing_configuration(monkeypatch):
    monkeypatch.setattr(aws_lambda, "_orchestrator", None)
    monkeypatch.setattr("scripts.directory_sync.config.load_dotenv", lambda: None)
    response = aws_lambda.handler({"operation": "list", "resource_type": "workspace"}, None)
    assert response["statusCode"] == 500
    assert "SLACK_TOKEN" in json.loads(response["body"])["error"]
