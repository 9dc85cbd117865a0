"""Deployment + status history over REST (one status request per deployment)."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import structlog

from deliverypulse.engines.collector.github_client import GitHubClient
from deliverypulse.engines.collector.models import (
    CollectionWindow,
    DeploymentLikeEvent,
    RepoConfig,
    parse_datetime,
)

log = structlog.get_logger("deliverypulse.collector")

_MAX_PAGES = 50


def allow_list_matcher(allowed: tuple[str, ...] | None) -> Callable[[str | None], bool] | None:
    """Case-insensitive membership test, or None when nothing is configured."""
    if not allowed:
        return None
    normalized = {a.lower() for a in allowed}

    def _matches(value: str | None) -> bool:
        return value is not None and value.lower() in normalized

    return _matches


async def collect_deployment_rest_events(
    client: GitHubClient,
    repo: RepoConfig,
    window: CollectionWindow,
) -> list[DeploymentLikeEvent]:
    """GET /repos/{owner}/{repo}/deployments, newest first.

    Precondition: the listing is sorted by ``created_at`` descending. The
    scan stops at the first deployment older than the window, so a change in
    upstream ordering would silently under-collect.
    """
    options = repo.deployments
    environment_matches = allow_list_matcher(options.environments)
    status_matches = allow_list_matcher(options.statuses)

    params: dict[str, Any] = {"per_page": 100}
    if options.environments and len(options.environments) == 1:
        params["environment"] = options.environments[0]

    base = f"/repos/{repo.owner}/{repo.name}/deployments"
    events: list[DeploymentLikeEvent] = []
    inspected = 0
    reached_older = False

    async for page in client.iter_pages(base, params, max_pages=_MAX_PAGES):
        for deployment in page:
            inspected += 1
            created_raw = deployment.get("created_at") or deployment.get("updated_at")
            created_at = parse_datetime(created_raw)
            if created_at is None or deployment.get("id") is None:
                continue
            if created_at < window.start:
                reached_older = True
                break
            if created_at > window.end:
                continue

            environment = deployment.get("environment")
            if environment_matches and not environment_matches(environment):
                log.debug(
                    "deployments.skipped",
                    repo=repo.slug,
                    deployment_id=deployment["id"],
                    reason=f"environment {environment!r}",
                )
                continue

            statuses = await client.get(
                f"{base}/{deployment['id']}/statuses", params={"per_page": 100}
            )
            latest = statuses.data[0] if statuses.data else {}
            state = latest.get("state")
            if status_matches and not status_matches(state):
                log.debug(
                    "deployments.skipped",
                    repo=repo.slug,
                    deployment_id=deployment["id"],
                    reason=f"status {state!r}",
                )
                continue

            events.append(
                DeploymentLikeEvent(
                    id=f"deployment:{deployment['id']}",
                    source="deployments",
                    name=deployment.get("task") or "deployment",
                    display_title=environment or "unknown",
                    event=deployment.get("task"),
                    status=state,
                    conclusion=state,
                    created_at=created_raw,
                    completed_at=latest.get("created_at") or deployment.get("updated_at"),
                    branch=deployment.get("ref"),
                    commit_sha=deployment.get("sha"),
                    metadata={
                        "environment": environment,
                        "description": latest.get("description"),
                        "creator": (deployment.get("creator") or {}).get("login"),
                    },
                )
            )
        if reached_older:
            break

    log.debug(
        "deployments.collected",
        repo=repo.slug,
        variant="rest",
        inspected=inspected,
        selected=len(events),
    )
    return events
