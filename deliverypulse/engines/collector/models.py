"""Data models for the collector engine."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Literal

CollectionMethod = Literal["actions", "deployments", "releases"]

COLLECTION_METHODS: tuple[str, ...] = ("actions", "deployments", "releases")


# ── repository configuration ──────────────────────────────────────────────


@dataclass(frozen=True)
class ActionsOptions:
    workflow_keywords: tuple[str, ...] = ("deploy", "release")
    workflow_id: int | None = None
    events: tuple[str, ...] | None = None
    branch: str | None = None


@dataclass(frozen=True)
class DeploymentsOptions:
    environments: tuple[str, ...] | None = None
    statuses: tuple[str, ...] | None = None


@dataclass(frozen=True)
class ReleasesOptions:
    include_prereleases: bool = False
    tag_pattern: str | None = None


@dataclass(frozen=True)
class RepoConfig:
    """One repository to collect, plus the options of its collection method."""

    owner: str
    name: str
    method: CollectionMethod = "actions"
    actions: ActionsOptions = field(default_factory=ActionsOptions)
    deployments: DeploymentsOptions = field(default_factory=DeploymentsOptions)
    releases: ReleasesOptions = field(default_factory=ReleasesOptions)

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def key(self) -> str:
        return self.slug.lower()


@dataclass(frozen=True)
class CollectionWindow:
    """Inclusive ``[start, end]`` time range."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError("window bounds must be timezone-aware")
        if self.start > self.end:
            raise ValueError(
                f"window start {self.start.isoformat()} is after end {self.end.isoformat()}"
            )

    @classmethod
    def last_days(cls, days: int, now: datetime | None = None) -> CollectionWindow:
        end = (now or datetime.now(timezone.utc)).replace(microsecond=0)
        return cls(start=end - timedelta(days=days), end=end)

    def contains(self, ts: datetime) -> bool:
        return self.start <= ts <= self.end

    @property
    def start_iso(self) -> str:
        return format_datetime(self.start)

    @property
    def end_iso(self) -> str:
        return format_datetime(self.end)


# ── collected records ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class DeploymentLikeEvent:
    """A workflow run, deployment or release after normalization.

    ``id`` is namespaced by source (``run:``, ``deployment:``, ``release:``).
    Lists of events carry no ordering guarantee.
    """

    id: str
    source: CollectionMethod
    name: str
    display_title: str
    event: str | None
    status: str | None
    conclusion: str | None
    created_at: str
    completed_at: str | None
    branch: str | None
    commit_sha: str | None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "name": self.name,
            "displayTitle": self.display_title,
            "event": self.event,
            "status": self.status,
            "conclusion": self.conclusion,
            "createdAt": self.created_at,
            "completedAt": self.completed_at,
            "branch": self.branch,
            "commitSha": self.commit_sha,
            "metadata": dict(self.metadata),
        }


@dataclass
class PullRequestRecord:
    number: int
    title: str
    created_at: str
    merged_at: str
    additions: int
    deletions: int
    changed_files_count: int | None
    head_ref: str
    base_ref: str
    author_login: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "number": self.number,
            "title": self.title,
            "createdAt": self.created_at,
            "mergedAt": self.merged_at,
            "additions": self.additions,
            "deletions": self.deletions,
            "changedFilesCount": self.changed_files_count,
            "headRef": self.head_ref,
            "baseRef": self.base_ref,
            "authorLogin": self.author_login,
        }


@dataclass
class ExcludedBot:
    number: int
    author_login: str | None

    def to_dict(self) -> dict[str, Any]:
        return {"number": self.number, "authorLogin": self.author_login}


@dataclass
class PullRequestCollection:
    pull_requests: list[PullRequestRecord] = field(default_factory=list)
    excluded_bots: list[ExcludedBot] = field(default_factory=list)


@dataclass
class RepoMetadata:
    id: int
    name: str
    full_name: str
    description: str | None
    html_url: str
    default_branch: str
    language: str | None = None
    topics: list[str] = field(default_factory=list)
    stargazers_count: int = 0
    forks_count: int = 0
    open_issues_count: int = 0
    pushed_at: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> RepoMetadata:
        """Build from a ``GET /repos/{owner}/{repo}`` payload."""
        return cls(
            id=data["id"],
            name=data["name"],
            full_name=data["full_name"],
            description=data.get("description"),
            html_url=data["html_url"],
            default_branch=data["default_branch"],
            language=data.get("language"),
            topics=list(data.get("topics") or []),
            stargazers_count=data.get("stargazers_count", 0),
            forks_count=data.get("forks_count", 0),
            open_issues_count=data.get("open_issues_count", 0),
            pushed_at=data.get("pushed_at"),
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RepoMetadata:
        """Inverse of :meth:`to_dict` (reads a persisted snapshot)."""
        return cls(
            id=data["id"],
            name=data["name"],
            full_name=data["fullName"],
            description=data.get("description"),
            html_url=data["htmlUrl"],
            default_branch=data["defaultBranch"],
            language=data.get("language"),
            topics=list(data.get("topics") or []),
            stargazers_count=data.get("stargazersCount", 0),
            forks_count=data.get("forksCount", 0),
            open_issues_count=data.get("openIssuesCount", 0),
            pushed_at=data.get("pushedAt"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "fullName": self.full_name,
            "description": self.description,
            "htmlUrl": self.html_url,
            "defaultBranch": self.default_branch,
            "language": self.language,
            "topics": list(self.topics),
            "stargazersCount": self.stargazers_count,
            "forksCount": self.forks_count,
            "openIssuesCount": self.open_issues_count,
            "pushedAt": self.pushed_at,
        }


# ── run bookkeeping ───────────────────────────────────────────────────────


class RepoState(str, enum.Enum):
    PENDING = "pending"
    METADATA_FETCHED = "metadata_fetched"
    EVENTS_COLLECTED = "events_collected"
    PULL_REQUESTS_COLLECTED = "pull_requests_collected"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RepoCollectionResult:
    """Summary of collecting one repository."""

    repo: str
    pull_request_count: int = 0
    deployment_event_count: int = 0
    cached: bool = False
    error: str | None = None


# ── helpers ───────────────────────────────────────────────────────────────


def parse_datetime(value: str | None) -> datetime | None:
    """Parse an ISO-8601 datetime string, returning None on failure."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_datetime(value: datetime) -> str:
    """Format as ``YYYY-MM-DDTHH:MM:SSZ`` (the form GitHub filters accept)."""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
