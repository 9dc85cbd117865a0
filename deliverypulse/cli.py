"""CLI entry point: deliverypulse.

Subcommands:
    deliverypulse collect -r owner/name            # Collect one repository
    deliverypulse collect -i repos.json --days 90  # Collect a repository list
"""

from __future__ import annotations

import asyncio
import sys

import click
import structlog

from deliverypulse.config import (
    DEFAULT_WORKFLOW_KEYWORDS,
    CollectorSettings,
    load_repo_entries,
    merge_repo_entries,
)
from deliverypulse.core.logging import setup_logging
from deliverypulse.engines.collector import (
    ArtifactStore,
    CollectionWindow,
    CollectorRunner,
    GitHubClient,
    RateBudget,
    RepoCollectionResult,
    RepoConfig,
)
from deliverypulse.exceptions import ConfigError

log = structlog.get_logger("deliverypulse.cli")


def _split_keywords(
    ctx: click.Context, param: click.Parameter, value: str | None
) -> tuple[str, ...]:
    if value is None:
        return DEFAULT_WORKFLOW_KEYWORDS
    return tuple(word.strip() for word in value.split(",") if word.strip())


@click.group()
def main() -> None:
    """deliverypulse: collect delivery telemetry from GitHub."""


@main.command("collect")
@click.option("-r", "--repo", "repos", multiple=True, help="Repository owner/name (repeatable)")
@click.option(
    "-i", "--input", "input_path", type=click.Path(), default=None,
    help="JSON file containing repository entries",
)
@click.option("-d", "--days", type=int, default=None, help="Number of days to look back [60]")
@click.option("--refresh", is_flag=True, help="Ignore cached artifacts and fetch from the API")
@click.option(
    "--workflow-filter", callback=_split_keywords, default=None,
    help="Comma-separated keywords that identify deployment workflows [deploy,release]",
)
@click.option("-o", "--output", default=None, help="Directory to store raw payloads [data/raw]")
@click.option("--concurrency", type=int, default=None, help="Repositories collected at once [4]")
@click.option(
    "--rest-deployments", is_flag=True,
    help="Use the REST deployments listing instead of GraphQL",
)
@click.option("--include-bots", is_flag=True, help="Keep bot-authored PRs")
@click.option("--debug", is_flag=True, help="Log why each upstream item was skipped")
def collect(
    repos: tuple[str, ...],
    input_path: str | None,
    days: int | None,
    refresh: bool,
    workflow_filter: tuple[str, ...],
    output: str | None,
    concurrency: int | None,
    rest_deployments: bool,
    include_bots: bool,
    debug: bool,
) -> None:
    """Collect deployment-like events and merged PRs for each repository."""
    setup_logging("DEBUG" if debug else None)

    try:
        settings = CollectorSettings.from_env(
            output_dir=output,
            days=days,
            concurrency=concurrency,
            force_refresh=refresh,
            use_rest_deployments=rest_deployments or None,
            include_bots=include_bots or None,
            workflow_keywords=workflow_filter,
        )
        settings.validate()

        entries: list = list(repos)
        if input_path:
            entries.extend(load_repo_entries(input_path))
        if not entries:
            raise ConfigError("No repositories specified. Use --repo or --input.")
        repo_configs = merge_repo_entries(entries, workflow_keywords=settings.workflow_keywords)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    window = CollectionWindow.last_days(settings.days)
    click.echo(
        f"Collecting {len(repo_configs)} repositories "
        f"between {window.start_iso} and {window.end_iso}"
    )

    summaries = asyncio.run(_collect(settings, repo_configs, window))

    click.echo("\nCollection complete:")
    for item in summaries:
        if item.error:
            click.echo(f"  x {item.repo}: failed ({item.error})")
        else:
            click.echo(
                f"  - {item.repo}: {item.pull_request_count} PRs, "
                f"{item.deployment_event_count} deployment events"
                f"{' (cached)' if item.cached else ''}"
            )


async def _collect(
    settings: CollectorSettings,
    repo_configs: list[RepoConfig],
    window: CollectionWindow,
) -> list[RepoCollectionResult]:
    budget = RateBudget(threshold=settings.rate_limit_threshold)
    async with GitHubClient(settings.token, budget=budget) as client:
        runner = CollectorRunner(
            client,
            ArtifactStore(settings.output_dir),
            window,
            force_refresh=settings.force_refresh,
            concurrency=settings.concurrency,
            use_rest_deployments=settings.use_rest_deployments,
            include_bots=settings.include_bots,
            bot_patterns=settings.bot_patterns,
        )
        results = await runner.run_all(repo_configs)
    log.info(
        "collector.batch_done",
        repos=len(results),
        failed=sum(1 for r in results if r.error),
        rate_remaining=budget.state.remaining,
    )
    return results


if __name__ == "__main__":
    main()
