"""Deployments with their latest status in one GraphQL query per page."""

from __future__ import annotations

from typing import Any

import structlog

from deliverypulse.engines.collector.github_client import GitHubClient
from deliverypulse.engines.collector.models import (
    CollectionWindow,
    DeploymentLikeEvent,
    RepoConfig,
    parse_datetime,
)
from deliverypulse.engines.collector.sources.deployments import allow_list_matcher

log = structlog.get_logger("deliverypulse.collector")

DEPLOYMENTS_QUERY = """
query ($owner: String!, $name: String!, $cursor: String) {
  repository(owner: $owner, name: $name) {
    deployments(first: 100, after: $cursor, orderBy: {field: CREATED_AT, direction: DESC}) {
      nodes {
        id
        databaseId
        createdAt
        updatedAt
        environment
        task
        commitOid
        ref {
          name
        }
        creator {
          login
        }
        statuses(last: 1) {
          nodes {
            state
            description
            createdAt
          }
        }
      }
      pageInfo {
        hasNextPage
        endCursor
      }
    }
  }
}
"""


async def collect_deployment_graphql_events(
    client: GitHubClient,
    repo: RepoConfig,
    window: CollectionWindow,
) -> list[DeploymentLikeEvent]:
    """Cursor-paginate deployments ordered by ``CREATED_AT DESC``.

    Precondition: the connection really is sorted newest first. The first
    node older than the window ends the scan, even in the middle of a page.
    """
    options = repo.deployments
    environment_matches = allow_list_matcher(options.environments)
    status_matches = allow_list_matcher(options.statuses)

    events: list[DeploymentLikeEvent] = []
    cursor: str | None = None
    inspected = 0

    while True:
        data = await client.graphql(
            DEPLOYMENTS_QUERY,
            {"owner": repo.owner, "name": repo.name, "cursor": cursor},
        )
        connection = data["repository"]["deployments"]

        for node in connection["nodes"]:
            inspected += 1
            created_at = parse_datetime(node.get("createdAt"))
            if created_at is None or node.get("databaseId") is None:
                continue
            if created_at < window.start:
                log.debug(
                    "deployments.reached_older",
                    repo=repo.slug,
                    inspected=inspected,
                    selected=len(events),
                )
                return events
            if created_at > window.end:
                continue

            environment = node.get("environment")
            if environment_matches and not environment_matches(environment):
                log.debug(
                    "deployments.skipped",
                    repo=repo.slug,
                    deployment_id=node["databaseId"],
                    reason=f"environment {environment!r}",
                )
                continue

            status_nodes = (node.get("statuses") or {}).get("nodes") or []
            latest: dict[str, Any] = status_nodes[0] if status_nodes else {}
            state = latest.get("state")
            if status_matches and not status_matches(state):
                log.debug(
                    "deployments.skipped",
                    repo=repo.slug,
                    deployment_id=node["databaseId"],
                    reason=f"status {state!r}",
                )
                continue

            events.append(
                DeploymentLikeEvent(
                    id=f"deployment:{node['databaseId']}",
                    source="deployments",
                    name=node.get("task") or "deployment",
                    display_title=environment or "unknown",
                    event=node.get("task"),
                    status=state,
                    conclusion=state,
                    created_at=node["createdAt"],
                    completed_at=latest.get("createdAt") or node.get("updatedAt"),
                    branch=(node.get("ref") or {}).get("name"),
                    commit_sha=node.get("commitOid"),
                    metadata={
                        "environment": environment,
                        "description": latest.get("description"),
                        "creator": (node.get("creator") or {}).get("login"),
                    },
                )
            )

        page_info = connection["pageInfo"]
        if not page_info.get("hasNextPage"):
            break
        cursor = page_info.get("endCursor")

    log.debug(
        "deployments.collected",
        repo=repo.slug,
        variant="graphql",
        inspected=inspected,
        selected=len(events),
    )
    return events
