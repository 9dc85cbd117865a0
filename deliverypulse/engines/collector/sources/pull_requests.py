"""Merged pull requests against the default branch, via GraphQL."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import structlog

from deliverypulse.engines.collector.bots import DEFAULT_BOT_AUTHOR_PATTERNS, is_bot_author
from deliverypulse.engines.collector.github_client import GitHubClient
from deliverypulse.engines.collector.models import (
    CollectionWindow,
    ExcludedBot,
    PullRequestCollection,
    PullRequestRecord,
    RepoConfig,
    parse_datetime,
)

log = structlog.get_logger("deliverypulse.collector")

PULL_REQUESTS_QUERY = """
query ($owner: String!, $name: String!, $base: String!, $cursor: String) {
  repository(owner: $owner, name: $name) {
    pullRequests(
      states: MERGED,
      baseRefName: $base,
      orderBy: {field: UPDATED_AT, direction: DESC},
      first: 50,
      after: $cursor
    ) {
      nodes {
        number
        title
        createdAt
        mergedAt
        additions
        deletions
        changedFiles
        headRefName
        baseRefName
        author {
          login
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


async def collect_pull_requests(
    client: GitHubClient,
    repo: RepoConfig,
    window: CollectionWindow,
    base_branch: str,
    *,
    include_bots: bool = False,
    bot_patterns: Iterable[str] = DEFAULT_BOT_AUTHOR_PATTERNS,
) -> PullRequestCollection:
    """Collect PRs merged into *base_branch* inside *window*.

    A page on which every node is unmerged or merged before the window is
    taken to mean the rest of the connection is older too, and the scan
    stops without requesting the next cursor. Bot-authored PRs are moved
    to ``excluded_bots`` unless *include_bots* is set.
    """
    patterns = tuple(bot_patterns)
    result = PullRequestCollection()
    cursor: str | None = None
    page_number = 0

    while True:
        data = await client.graphql(
            PULL_REQUESTS_QUERY,
            {"owner": repo.owner, "name": repo.name, "base": base_branch, "cursor": cursor},
        )
        connection = data["repository"]["pullRequests"]
        nodes: list[dict[str, Any]] = connection["nodes"]
        page_number += 1

        if all(_is_stale(node, window) for node in nodes):
            log.debug(
                "pull_requests.page_stale",
                repo=repo.slug,
                page=page_number,
                nodes=len(nodes),
            )
            break

        for node in nodes:
            merged_at = parse_datetime(node.get("mergedAt"))
            if merged_at is None or not window.contains(merged_at):
                continue
            if node.get("number") is None or not node.get("createdAt"):
                continue

            author_login = (node.get("author") or {}).get("login")
            if not include_bots and is_bot_author(author_login, patterns):
                result.excluded_bots.append(
                    ExcludedBot(number=node["number"], author_login=author_login)
                )
                continue

            result.pull_requests.append(
                PullRequestRecord(
                    number=node["number"],
                    title=node.get("title") or "",
                    created_at=node["createdAt"],
                    merged_at=node["mergedAt"],
                    additions=node.get("additions") or 0,
                    deletions=node.get("deletions") or 0,
                    changed_files_count=node.get("changedFiles"),
                    head_ref=node.get("headRefName") or "",
                    base_ref=node.get("baseRefName") or base_branch,
                    author_login=author_login,
                )
            )

        page_info = connection["pageInfo"]
        if not page_info.get("hasNextPage"):
            break
        cursor = page_info.get("endCursor")

    if result.excluded_bots:
        log.info(
            "pull_requests.bots_excluded",
            repo=repo.slug,
            count=len(result.excluded_bots),
            authors=sorted({b.author_login or "unknown" for b in result.excluded_bots}),
        )
    log.debug(
        "pull_requests.collected",
        repo=repo.slug,
        pages=page_number,
        kept=len(result.pull_requests),
    )
    return result


def _is_stale(node: dict[str, Any], window: CollectionWindow) -> bool:
    merged_at = parse_datetime(node.get("mergedAt"))
    return merged_at is None or merged_at < window.start
