"""CollectorRunner — metadata + events + pull requests per repo, then JSON writes."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Sequence
from typing import Any

import structlog

from deliverypulse.engines.collector.bots import DEFAULT_BOT_AUTHOR_PATTERNS
from deliverypulse.engines.collector.conditional import (
    CachedResponse,
    ConditionalFetchResult,
    fetch_with_conditional,
)
from deliverypulse.engines.collector.github_client import ApiResponse, GitHubClient
from deliverypulse.engines.collector.models import (
    CollectionWindow,
    DeploymentLikeEvent,
    RepoCollectionResult,
    RepoConfig,
    RepoMetadata,
    RepoState,
)
from deliverypulse.engines.collector.sources import (
    collect_actions_events,
    collect_deployment_graphql_events,
    collect_deployment_rest_events,
    collect_pull_requests,
    collect_release_events,
)
from deliverypulse.engines.collector.storage import (
    EVENTS_FILE,
    METADATA_FILE,
    PULL_REQUESTS_FILE,
    ArtifactStore,
    fetched_at,
)
from deliverypulse.exceptions import ConfigError

log = structlog.get_logger("deliverypulse.collector")

DEFAULT_CONCURRENCY = 4


class CollectorRunner:
    """Orchestration layer: sources → JSON artifacts, many repos at once.

    Each repository moves through :class:`RepoState`. Failures are contained
    per repository by :meth:`run_all`; :meth:`run` itself raises.
    """

    def __init__(
        self,
        client: GitHubClient,
        store: ArtifactStore,
        window: CollectionWindow,
        *,
        force_refresh: bool = False,
        concurrency: int = DEFAULT_CONCURRENCY,
        use_rest_deployments: bool = False,
        include_bots: bool = False,
        bot_patterns: Iterable[str] = DEFAULT_BOT_AUTHOR_PATTERNS,
    ) -> None:
        if concurrency < 1:
            raise ConfigError(f"concurrency must be at least 1, got {concurrency}")
        self._client = client
        self._store = store
        self._window = window
        self._force_refresh = force_refresh
        self._concurrency = concurrency
        self._use_rest_deployments = use_rest_deployments
        self._include_bots = include_bots
        self._bot_patterns = tuple(bot_patterns)
        self.states: dict[str, RepoState] = {}

    async def run(self, repo: RepoConfig) -> RepoCollectionResult:
        """Collect a single repository and persist its artifacts.

        1. Revalidate metadata through the conditional cache
        2. Collect events with the source chosen by ``repo.method``
        3. Collect merged pull requests against the default branch
        4. Write whatever was freshly fetched
        """
        self.states[repo.key] = RepoState.PENDING
        log.info("collector.repo_start", repo=repo.slug, method=repo.method)

        metadata_result = await self._fetch_metadata(repo)
        metadata: RepoMetadata = metadata_result.data
        self.states[repo.key] = RepoState.METADATA_FETCHED

        pending: list[tuple[str, dict[str, Any]]] = []
        if metadata_result.source == "network":
            pending.append(
                (
                    METADATA_FILE,
                    {
                        "fetchedAt": fetched_at(),
                        "etag": metadata_result.etag,
                        "lastModified": metadata_result.last_modified,
                        "metadata": metadata.to_dict(),
                    },
                )
            )

        events_payload = self._read_artifact(repo, EVENTS_FILE)
        if events_payload is None:
            events = await self._collect_events(repo)
            events_payload = {
                "fetchedAt": fetched_at(),
                "windowStart": self._window.start_iso,
                "windowEnd": self._window.end_iso,
                "method": repo.method,
                "events": [e.to_dict() for e in events],
            }
            pending.append((EVENTS_FILE, events_payload))
        self.states[repo.key] = RepoState.EVENTS_COLLECTED

        pr_payload = self._read_artifact(repo, PULL_REQUESTS_FILE)
        if pr_payload is None:
            prs = await collect_pull_requests(
                self._client,
                repo,
                self._window,
                metadata.default_branch,
                include_bots=self._include_bots,
                bot_patterns=self._bot_patterns,
            )
            pr_payload = {
                "fetchedAt": fetched_at(),
                "windowStart": self._window.start_iso,
                "windowEnd": self._window.end_iso,
                "baseBranch": metadata.default_branch,
                "pullRequests": [p.to_dict() for p in prs.pull_requests],
                "excludedBots": [b.to_dict() for b in prs.excluded_bots],
            }
            pending.append((PULL_REQUESTS_FILE, pr_payload))
        self.states[repo.key] = RepoState.PULL_REQUESTS_COLLECTED

        for filename, payload in pending:
            self._store.write(repo, filename, payload)
        self.states[repo.key] = RepoState.DONE

        result = RepoCollectionResult(
            repo=metadata.full_name,
            pull_request_count=len(pr_payload["pullRequests"]),
            deployment_event_count=len(events_payload["events"]),
            cached=not self._force_refresh,
        )
        log.info(
            "collector.repo_done",
            repo=result.repo,
            pull_requests=result.pull_request_count,
            deployment_events=result.deployment_event_count,
            written=[name for name, _ in pending],
        )
        return result

    async def run_all(self, repos: Sequence[RepoConfig]) -> list[RepoCollectionResult]:
        """Collect every repository with a fixed pool of workers.

        Results come back in input order, one per repository. A repository
        that raises is logged and reported with zero counts.
        """
        if not repos:
            raise ConfigError("no repositories to collect")

        results: list[RepoCollectionResult | None] = [None] * len(repos)
        queue: asyncio.Queue[int] = asyncio.Queue(maxsize=len(repos))
        for index in range(len(repos)):
            queue.put_nowait(index)

        async def _worker() -> None:
            while True:
                try:
                    index = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                repo = repos[index]
                try:
                    results[index] = await self.run(repo)
                except Exception as exc:
                    failed_in = self.states.get(repo.key, RepoState.PENDING)
                    self.states[repo.key] = RepoState.FAILED
                    log.error(
                        "collector.repo_failed",
                        repo=repo.slug,
                        state=failed_in.value,
                        error=f"{type(exc).__name__}: {exc}",
                    )
                    results[index] = RepoCollectionResult(
                        repo=repo.slug,
                        cached=not self._force_refresh,
                        error=f"{type(exc).__name__}: {exc}",
                    )
                finally:
                    queue.task_done()

        width = min(self._concurrency, len(repos))
        await asyncio.gather(*(_worker() for _ in range(width)))
        return [r for r in results if r is not None]

    # ── internal ───────────────────────────────────────────────────────────

    def _read_artifact(self, repo: RepoConfig, filename: str) -> dict[str, Any] | None:
        if self._force_refresh:
            return None
        return self._store.read(repo, filename)

    async def _fetch_metadata(self, repo: RepoConfig) -> ConditionalFetchResult[RepoMetadata]:
        cached: CachedResponse[RepoMetadata] | None = None
        previous = self._read_artifact(repo, METADATA_FILE)
        if previous is not None:
            cached = CachedResponse(
                data=RepoMetadata.from_dict(previous["metadata"]),
                etag=previous.get("etag"),
                last_modified=previous.get("lastModified"),
            )

        async def _request(headers: dict[str, str]) -> ApiResponse:
            response = await self._client.get(f"/repos/{repo.owner}/{repo.name}", headers=headers)
            return ApiResponse(
                data=RepoMetadata.from_api(response.data),
                headers=response.headers,
                status_code=response.status_code,
            )

        result = await fetch_with_conditional(_request, cached)
        log.debug("collector.metadata", repo=repo.slug, source=result.source)
        return result

    async def _collect_events(self, repo: RepoConfig) -> list[DeploymentLikeEvent]:
        if repo.method == "actions":
            return await collect_actions_events(self._client, repo, self._window)
        if repo.method == "deployments":
            if self._use_rest_deployments:
                return await collect_deployment_rest_events(self._client, repo, self._window)
            return await collect_deployment_graphql_events(self._client, repo, self._window)
        if repo.method == "releases":
            return await collect_release_events(self._client, repo, self._window)
        raise ConfigError(f"collection method {repo.method!r} not supported for {repo.slug}")
