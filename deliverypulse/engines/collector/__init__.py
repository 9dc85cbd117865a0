"""Collector engine — GitHub delivery telemetry into per-repo JSON artifacts."""

from deliverypulse.engines.collector.bots import DEFAULT_BOT_AUTHOR_PATTERNS, is_bot_author
from deliverypulse.engines.collector.conditional import (
    CachedResponse,
    ConditionalFetchResult,
    fetch_with_conditional,
)
from deliverypulse.engines.collector.github_client import ApiResponse, GitHubClient
from deliverypulse.engines.collector.models import (
    CollectionWindow,
    DeploymentLikeEvent,
    PullRequestCollection,
    PullRequestRecord,
    RepoCollectionResult,
    RepoConfig,
    RepoMetadata,
    RepoState,
)
from deliverypulse.engines.collector.rate_budget import RateBudget, RateState
from deliverypulse.engines.collector.runner import CollectorRunner
from deliverypulse.engines.collector.storage import ArtifactStore

__all__ = [
    "DEFAULT_BOT_AUTHOR_PATTERNS",
    "ApiResponse",
    "ArtifactStore",
    "CachedResponse",
    "CollectionWindow",
    "CollectorRunner",
    "ConditionalFetchResult",
    "DeploymentLikeEvent",
    "GitHubClient",
    "PullRequestCollection",
    "PullRequestRecord",
    "RateBudget",
    "RateState",
    "RepoCollectionResult",
    "RepoConfig",
    "RepoMetadata",
    "RepoState",
    "fetch_with_conditional",
    "is_bot_author",
]
