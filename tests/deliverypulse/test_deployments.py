"""Tests for the deployment event sources (REST and GraphQL)."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from deliverypulse.engines.collector.github_client import ApiResponse, GitHubClient
from deliverypulse.engines.collector.models import DeploymentsOptions, RepoConfig
from deliverypulse.engines.collector.sources.deployments import (
    allow_list_matcher,
    collect_deployment_rest_events,
)
from deliverypulse.engines.collector.sources.deployments_graphql import (
    collect_deployment_graphql_events,
)


def _repo(**options) -> RepoConfig:
    return RepoConfig(
        owner="acme",
        name="widgets",
        method="deployments",
        deployments=DeploymentsOptions(**options),
    )


# ── TestAllowListMatcher ──────────────────────────────────────────────────


class TestAllowListMatcher:
    def test_unconfigured(self):
        assert allow_list_matcher(None) is None
        assert allow_list_matcher(()) is None

    def test_case_insensitive(self):
        matches = allow_list_matcher(("Production",))
        assert matches("production") is True
        assert matches("PRODUCTION") is True
        assert matches("staging") is False
        assert matches(None) is False


# ── TestRestDeployments ───────────────────────────────────────────────────


def _deployment(dep_id: int, created_at: str, environment: str = "production") -> dict:
    return {
        "id": dep_id,
        "created_at": created_at,
        "updated_at": created_at,
        "environment": environment,
        "task": "deploy",
        "ref": "main",
        "sha": f"sha{dep_id}",
        "creator": {"login": "deployer"},
    }


def _rest_client(pages: list[list[dict]], statuses: dict[int, list[dict]]) -> GitHubClient:
    client = AsyncMock(spec=GitHubClient)
    client.iter_calls = []

    async def _iter_pages(path, params=None, *, items_key=None, max_pages=10):
        client.iter_calls.append({"path": path, "params": params})
        for page in pages:
            yield page

    async def _get(path, params=None, headers=None):
        dep_id = int(path.rstrip("/").split("/")[-2])
        return ApiResponse(data=statuses.get(dep_id, []))

    client.iter_pages = _iter_pages
    client.get = AsyncMock(side_effect=_get)
    return client


class TestRestDeployments:
    @pytest.mark.anyio
    async def test_latest_status_is_used(self, window):
        client = _rest_client(
            [[_deployment(1, "2024-01-20T00:00:00Z")]],
            {
                1: [
                    {"state": "success", "created_at": "2024-01-20T00:05:00Z", "description": "ok"},
                    {"state": "in_progress", "created_at": "2024-01-20T00:01:00Z"},
                ]
            },
        )
        [event] = await collect_deployment_rest_events(client, _repo(), window)

        assert event.id == "deployment:1"
        assert event.source == "deployments"
        assert event.status == "success"
        assert event.conclusion == "success"
        assert event.completed_at == "2024-01-20T00:05:00Z"
        assert event.branch == "main"
        assert event.commit_sha == "sha1"
        assert event.display_title == "production"
        assert event.metadata == {
            "environment": "production",
            "description": "ok",
            "creator": "deployer",
        }
        client.get.assert_awaited_once_with(
            "/repos/acme/widgets/deployments/1/statuses", params={"per_page": 100}
        )

    @pytest.mark.anyio
    async def test_stops_at_first_older_deployment(self, window):
        client = _rest_client(
            [
                [
                    _deployment(3, "2024-02-10T00:00:00Z"),
                    _deployment(2, "2024-01-10T00:00:00Z"),
                    _deployment(1, "2023-12-10T00:00:00Z"),
                    _deployment(0, "2024-01-05T00:00:00Z"),
                ],
                [_deployment(9, "2024-01-03T00:00:00Z")],
            ],
            {2: [{"state": "success"}], 0: [{"state": "success"}], 9: [{"state": "success"}]},
        )
        events = await collect_deployment_rest_events(client, _repo(), window)

        assert [e.id for e in events] == ["deployment:2"]
        # Deployment 3 is newer than the window and never needs its statuses
        assert client.get.await_count == 1

    @pytest.mark.anyio
    async def test_environment_filter_runs_before_status_fetch(self, window):
        client = _rest_client(
            [
                [
                    _deployment(2, "2024-01-12T00:00:00Z", environment="staging"),
                    _deployment(1, "2024-01-10T00:00:00Z", environment="Production"),
                ]
            ],
            {1: [{"state": "success"}], 2: [{"state": "success"}]},
        )
        repo = _repo(environments=("production", "preview"))
        events = await collect_deployment_rest_events(client, repo, window)

        assert [e.id for e in events] == ["deployment:1"]
        client.get.assert_awaited_once()
        assert "environment" not in client.iter_calls[0]["params"]

    @pytest.mark.anyio
    async def test_single_environment_is_sent_upstream(self, window):
        client = _rest_client([[]], {})
        await collect_deployment_rest_events(client, _repo(environments=("production",)), window)
        assert client.iter_calls[0] == {
            "path": "/repos/acme/widgets/deployments",
            "params": {"per_page": 100, "environment": "production"},
        }

    @pytest.mark.anyio
    async def test_status_filter(self, window):
        client = _rest_client(
            [
                [
                    _deployment(2, "2024-01-12T00:00:00Z"),
                    _deployment(1, "2024-01-10T00:00:00Z"),
                ]
            ],
            {1: [{"state": "failure"}], 2: [{"state": "SUCCESS"}]},
        )
        events = await collect_deployment_rest_events(client, _repo(statuses=("success",)), window)
        assert [e.id for e in events] == ["deployment:2"]

    @pytest.mark.anyio
    async def test_deployment_without_statuses(self, window):
        client = _rest_client([[_deployment(1, "2024-01-10T00:00:00Z")]], {})
        [event] = await collect_deployment_rest_events(client, _repo(), window)
        assert event.status is None
        assert event.completed_at == "2024-01-10T00:00:00Z"


# ── TestGraphQLDeployments ────────────────────────────────────────────────


def _node(db_id: int, created_at: str, state: str | None = "SUCCESS", **overrides) -> dict:
    node = {
        "id": f"DE_{db_id}",
        "databaseId": db_id,
        "createdAt": created_at,
        "updatedAt": created_at,
        "environment": "production",
        "task": "deploy",
        "commitOid": f"oid{db_id}",
        "ref": {"name": "main"},
        "creator": {"login": "deployer"},
        "statuses": {
            "nodes": [{"state": state, "description": None, "createdAt": created_at}]
            if state
            else []
        },
    }
    node.update(overrides)
    return node


def _page(nodes: list[dict], next_cursor: str | None = None) -> dict:
    return {
        "repository": {
            "deployments": {
                "nodes": nodes,
                "pageInfo": {"hasNextPage": next_cursor is not None, "endCursor": next_cursor},
            }
        }
    }


def _graphql_client(pages: list[dict]) -> GitHubClient:
    client = AsyncMock(spec=GitHubClient)
    client.graphql = AsyncMock(side_effect=pages)
    return client


class TestGraphQLDeployments:
    @pytest.mark.anyio
    async def test_follows_cursor_across_pages(self, window):
        client = _graphql_client(
            [
                _page([_node(5, "2024-01-25T00:00:00Z"), _node(4, "2024-01-20T00:00:00Z")], "c1"),
                _page([_node(3, "2024-01-15T00:00:00Z")]),
            ]
        )
        events = await collect_deployment_graphql_events(client, _repo(), window)

        assert [e.id for e in events] == ["deployment:5", "deployment:4", "deployment:3"]
        assert client.graphql.await_count == 2
        second_variables = client.graphql.await_args_list[1].args[1]
        assert second_variables == {"owner": "acme", "name": "widgets", "cursor": "c1"}

    @pytest.mark.anyio
    async def test_status_case_is_preserved(self, window):
        client = _graphql_client([_page([_node(1, "2024-01-10T00:00:00Z", state="SUCCESS")])])
        [event] = await collect_deployment_graphql_events(client, _repo(), window)
        assert event.status == "SUCCESS"
        assert event.branch == "main"
        assert event.commit_sha == "oid1"

    @pytest.mark.anyio
    async def test_stops_mid_page_at_first_older_node(self, window):
        client = _graphql_client(
            [
                _page(
                    [
                        _node(3, "2024-01-10T00:00:00Z"),
                        _node(2, "2023-12-31T23:59:59Z"),
                        _node(1, "2024-01-09T00:00:00Z"),
                    ],
                    "c1",
                ),
                _page([_node(0, "2024-01-08T00:00:00Z")]),
            ]
        )
        events = await collect_deployment_graphql_events(client, _repo(), window)

        assert [e.id for e in events] == ["deployment:3"]
        assert client.graphql.await_count == 1

    @pytest.mark.anyio
    async def test_skips_nodes_newer_than_window(self, window):
        client = _graphql_client(
            [_page([_node(2, "2024-03-01T00:00:00Z"), _node(1, "2024-01-10T00:00:00Z")])]
        )
        events = await collect_deployment_graphql_events(client, _repo(), window)
        assert [e.id for e in events] == ["deployment:1"]

    @pytest.mark.anyio
    async def test_environment_and_status_filters(self, window):
        client = _graphql_client(
            [
                _page(
                    [
                        _node(4, "2024-01-20T00:00:00Z", environment="staging"),
                        _node(3, "2024-01-18T00:00:00Z", state="FAILURE"),
                        _node(2, "2024-01-16T00:00:00Z", state=None),
                        _node(1, "2024-01-14T00:00:00Z", state="SUCCESS"),
                    ]
                )
            ]
        )
        repo = _repo(environments=("production",), statuses=("success",))
        events = await collect_deployment_graphql_events(client, repo, window)
        assert [e.id for e in events] == ["deployment:1"]
