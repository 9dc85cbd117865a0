"""Workflow-run history → deployment-like events."""

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

log = structlog.get_logger("deliverypulse.collector")

# Filtered run listings are capped at 1000 results upstream.
_MAX_PAGES = 10


def branch_candidates(branch: str) -> set[str]:
    """All spellings of *branch*: bare and ``refs/heads/`` prefixed."""
    trimmed = branch.removeprefix("refs/heads/")
    return {branch, trimmed, f"refs/heads/{trimmed}"}


async def collect_actions_events(
    client: GitHubClient,
    repo: RepoConfig,
    window: CollectionWindow,
) -> list[DeploymentLikeEvent]:
    """GET /repos/{owner}/{repo}/actions/runs: successful deploy-like runs.

    The ``created`` range filter is applied server-side and re-checked here.
    """
    options = repo.actions
    keywords = [k.lower() for k in options.workflow_keywords]
    allowed_events = [e.lower() for e in options.events] if options.events else None
    wanted_branches = branch_candidates(options.branch) if options.branch else None

    if options.workflow_id is not None:
        path = f"/repos/{repo.owner}/{repo.name}/actions/workflows/{options.workflow_id}/runs"
    else:
        path = f"/repos/{repo.owner}/{repo.name}/actions/runs"
    params = {
        "per_page": 100,
        "created": f"{window.start_iso}..{window.end_iso}",
    }

    events: list[DeploymentLikeEvent] = []
    inspected = 0
    async for run in client.get_paginated(
        path, params, items_key="workflow_runs", max_pages=_MAX_PAGES
    ):
        inspected += 1
        skip = _skip_reason(
            run,
            window,
            keywords,
            allowed_events,
            wanted_branches,
            options.workflow_id,
        )
        if skip:
            log.debug("actions.run_skipped", repo=repo.slug, run_id=run.get("id"), reason=skip)
            continue
        events.append(_to_event(run))

    log.debug(
        "actions.collected",
        repo=repo.slug,
        inspected=inspected,
        selected=len(events),
        window_start=window.start_iso,
        window_end=window.end_iso,
    )
    return events


def _skip_reason(
    run: dict[str, Any],
    window: CollectionWindow,
    keywords: list[str],
    allowed_events: list[str] | None,
    wanted_branches: set[str] | None,
    workflow_id: int | None,
) -> str | None:
    """Return why *run* is rejected, or None if it counts."""
    if run.get("id") is None:
        return "missing id"
    if run.get("status") != "completed" or run.get("conclusion") != "success":
        return f"status={run.get('status')} conclusion={run.get('conclusion')}"

    created_at = parse_datetime(run.get("created_at"))
    if created_at is None:
        return "missing created_at"
    if not window.contains(created_at):
        return "outside window"

    # An explicit workflow id already selected the runs
    if workflow_id is None:
        target = f"{run.get('name') or ''} {run.get('display_title') or ''}".lower()
        if not any(k in target for k in keywords):
            return "no keyword match"

    if allowed_events:
        event_name = (run.get("event") or "").lower()
        if event_name not in allowed_events:
            return f"event {event_name!r} not allowed"

    if wanted_branches is not None:
        head = run.get("head_branch")
        if not head or not (branch_candidates(head) & wanted_branches):
            return f"branch {head!r} not matching"

    return None


def _to_event(run: dict[str, Any]) -> DeploymentLikeEvent:
    return DeploymentLikeEvent(
        id=f"run:{run['id']}",
        source="actions",
        name=run.get("name") or "",
        display_title=run.get("display_title") or "",
        event=run.get("event"),
        status=run.get("status"),
        conclusion=run.get("conclusion"),
        created_at=run["created_at"],
        completed_at=run.get("updated_at"),
        branch=run.get("head_branch"),
        commit_sha=run.get("head_sha"),
        metadata={
            "runAttempt": run.get("run_attempt"),
            "runNumber": run.get("run_number"),
            "htmlUrl": run.get("html_url"),
        },
    )
