"""Release history → deployment-like events."""

from __future__ import annotations

import re

import structlog

from deliverypulse.engines.collector.github_client import GitHubClient
from deliverypulse.engines.collector.models import (
    CollectionWindow,
    DeploymentLikeEvent,
    RepoConfig,
    parse_datetime,
)

log = structlog.get_logger("deliverypulse.collector")

_MAX_PAGES = 10


def matches_tag(tag: str | None, pattern: str | None) -> bool:
    """Regex search when *pattern* compiles, plain substring match otherwise."""
    if not pattern:
        return True
    if not tag:
        return False
    try:
        return re.search(pattern, tag) is not None
    except re.error:
        return pattern in tag


async def collect_release_events(
    client: GitHubClient,
    repo: RepoConfig,
    window: CollectionWindow,
) -> list[DeploymentLikeEvent]:
    """GET /repos/{owner}/{repo}/releases, newest first.

    The first release published before the window stops the scan.
    """
    options = repo.releases
    events: list[DeploymentLikeEvent] = []

    async for release in client.get_paginated(
        f"/repos/{repo.owner}/{repo.name}/releases", {"per_page": 100}, max_pages=_MAX_PAGES
    ):
        release_id = release.get("id")
        relevant = release.get("published_at") or release.get("created_at")
        published_at = parse_datetime(relevant)
        if published_at is None or release_id is None:
            continue
        if published_at < window.start:
            log.debug(
                "releases.reached_older",
                repo=repo.slug,
                release_id=release_id,
                published_at=relevant,
            )
            break
        if published_at > window.end:
            continue

        if release.get("prerelease") and not options.include_prereleases:
            log.debug(
                "releases.skipped", repo=repo.slug, release_id=release_id, reason="prerelease"
            )
            continue

        tag = release.get("tag_name")
        if not matches_tag(tag, options.tag_pattern):
            log.debug(
                "releases.skipped",
                repo=repo.slug,
                release_id=release_id,
                reason=f"tag {tag!r} does not match {options.tag_pattern!r}",
            )
            continue

        title = release.get("name") or tag or "release"
        draft = bool(release.get("draft"))
        prerelease = bool(release.get("prerelease"))
        if draft:
            status = "draft"
        elif prerelease:
            status = "prerelease"
        else:
            status = "released"

        events.append(
            DeploymentLikeEvent(
                id=f"release:{release_id}",
                source="releases",
                name=title,
                display_title=title,
                event="prerelease" if prerelease else "release",
                status=status,
                conclusion="draft" if draft else "released",
                created_at=release.get("created_at") or relevant,
                completed_at=release.get("published_at") or release.get("created_at"),
                branch=release.get("target_commitish"),
                commit_sha=None,
                metadata={
                    "tag": tag,
                    "url": release.get("html_url"),
                    "author": (release.get("author") or {}).get("login"),
                },
            )
        )

    log.debug("releases.collected", repo=repo.slug, selected=len(events))
    return events
