"""Run settings and repository-list parsing."""

from __future__ import annotations

import json
import os
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Union

from deliverypulse.core.github import parse_repo_slug
from deliverypulse.engines.collector.bots import DEFAULT_BOT_AUTHOR_PATTERNS
from deliverypulse.engines.collector.models import (
    COLLECTION_METHODS,
    ActionsOptions,
    DeploymentsOptions,
    ReleasesOptions,
    RepoConfig,
)
from deliverypulse.exceptions import ConfigError

DEFAULT_WORKFLOW_KEYWORDS: tuple[str, ...] = ("deploy", "release")

RawRepoEntry = Union[str, dict[str, Any]]


def _env_int(key: str, default: int) -> int:
    raw = os.environ.get(key)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from None


def _env_bool(key: str, default: bool = False) -> bool:
    value = os.environ.get(key)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class CollectorSettings:
    """Everything one collection run needs besides the repository list."""

    token: str | None = None
    output_dir: str = "data/raw"
    days: int = 60
    concurrency: int = 4
    force_refresh: bool = False
    rate_limit_threshold: int = 100
    use_rest_deployments: bool = False
    include_bots: bool = False
    bot_patterns: tuple[str, ...] = DEFAULT_BOT_AUTHOR_PATTERNS
    workflow_keywords: tuple[str, ...] = field(default=DEFAULT_WORKFLOW_KEYWORDS)

    @classmethod
    def from_env(cls, **overrides: Any) -> CollectorSettings:
        """Read ``GITHUB_TOKEN`` and ``DELIVERYPULSE_*``; *overrides* win.

        Overrides that are None are ignored so CLI options left unset fall
        through to the environment.
        """
        settings = cls(
            token=os.environ.get("GITHUB_TOKEN"),
            output_dir=os.environ.get("DELIVERYPULSE_OUTPUT_DIR", cls.output_dir),
            days=_env_int("DELIVERYPULSE_DAYS", cls.days),
            concurrency=_env_int("DELIVERYPULSE_CONCURRENCY", cls.concurrency),
            rate_limit_threshold=_env_int(
                "DELIVERYPULSE_RATE_LIMIT_THRESHOLD", cls.rate_limit_threshold
            ),
            use_rest_deployments=_env_bool("DELIVERYPULSE_REST_DEPLOYMENTS"),
            include_bots=_env_bool("DELIVERYPULSE_INCLUDE_BOTS"),
        )
        return replace(settings, **{k: v for k, v in overrides.items() if v is not None})

    def validate(self) -> None:
        if not self.token:
            raise ConfigError("GITHUB_TOKEN is required. Set it via environment variable.")
        if self.concurrency < 1:
            raise ConfigError(f"concurrency must be at least 1, got {self.concurrency}")
        if self.days < 0:
            raise ConfigError(f"days must not be negative, got {self.days}")


# ── repository lists ──────────────────────────────────────────────────────


def load_repo_entries(path: str | os.PathLike[str]) -> list[RawRepoEntry]:
    """Read a JSON array of repository entries (strings or objects)."""
    resolved = Path(path).resolve()
    if not resolved.exists():
        raise ConfigError(f"repo list file not found: {resolved}")
    try:
        with open(resolved, encoding="utf-8") as fh:
            parsed = json.load(fh)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"invalid JSON in {resolved}: {exc}") from exc
    if not isinstance(parsed, list):
        raise ConfigError(f"repo list file must contain a JSON array: {resolved}")
    return parsed


def to_repo_config(
    entry: RawRepoEntry,
    *,
    workflow_keywords: Sequence[str] = DEFAULT_WORKFLOW_KEYWORDS,
) -> RepoConfig:
    """Turn one raw entry into a :class:`RepoConfig`.

    A bare string is an ``owner/name`` slug collected with the actions
    method and the default workflow keywords.
    """
    if isinstance(entry, str):
        entry = {"slug": entry}
    if not isinstance(entry, dict):
        raise ConfigError(f"repository entry must be a string or object, got {entry!r}")

    slug = entry.get("slug") or entry.get("repo")
    if not slug:
        raise ConfigError("repository entry is missing a 'slug' field (owner/name)")
    owner, name = parse_repo_slug(slug)

    method = entry.get("method") or "actions"
    if method not in COLLECTION_METHODS:
        raise ConfigError(f"unsupported collection method {method!r} for {slug}")

    actions_raw = _option_block(entry, "actions", slug)
    keywords = actions_raw.get("workflowKeywords")
    if keywords is None:
        keywords = workflow_keywords
    workflow_id = actions_raw.get("workflowId")
    if isinstance(workflow_id, bool) or not isinstance(workflow_id, int):
        workflow_id = None
    actions = ActionsOptions(
        workflow_keywords=tuple(k.lower() for k in keywords),
        workflow_id=workflow_id,
        events=_lowered(actions_raw.get("events")),
        branch=actions_raw.get("branch") or None,
    )

    deployments_raw = _option_block(entry, "deployments", slug)
    deployments = DeploymentsOptions(
        environments=_tuple_or_none(deployments_raw.get("environments")),
        statuses=_tuple_or_none(deployments_raw.get("statuses")),
    )

    releases_raw = _option_block(entry, "releases", slug)
    releases = ReleasesOptions(
        include_prereleases=bool(releases_raw.get("includePrereleases", False)),
        tag_pattern=releases_raw.get("tagPattern") or None,
    )

    return RepoConfig(
        owner=owner,
        name=name,
        method=method,
        actions=actions,
        deployments=deployments,
        releases=releases,
    )


def merge_repo_entries(
    entries: Iterable[RawRepoEntry],
    *,
    workflow_keywords: Sequence[str] = DEFAULT_WORKFLOW_KEYWORDS,
) -> list[RepoConfig]:
    """Parse *entries*, de-duplicating by lower-cased slug (last one wins)."""
    merged: dict[str, RepoConfig] = {}
    for entry in entries:
        config = to_repo_config(entry, workflow_keywords=workflow_keywords)
        merged[config.key] = config
    return list(merged.values())


def _option_block(entry: dict[str, Any], key: str, slug: str) -> dict[str, Any]:
    block = entry.get(key)
    if block is None:
        return {}
    if not isinstance(block, dict):
        raise ConfigError(f"'{key}' options for {slug} must be an object, got {block!r}")
    return block


def _tuple_or_none(values: Iterable[str] | None) -> tuple[str, ...] | None:
    if not values:
        return None
    return tuple(values)


def _lowered(values: Iterable[str] | None) -> tuple[str, ...] | None:
    if not values:
        return None
    return tuple(v.lower() for v in values)
