"""Upstream sources, one module per GitHub listing contract."""

from deliverypulse.engines.collector.sources.actions import collect_actions_events
from deliverypulse.engines.collector.sources.deployments import collect_deployment_rest_events
from deliverypulse.engines.collector.sources.deployments_graphql import (
    collect_deployment_graphql_events,
)
from deliverypulse.engines.collector.sources.pull_requests import collect_pull_requests
from deliverypulse.engines.collector.sources.releases import collect_release_events

__all__ = [
    "collect_actions_events",
    "collect_deployment_graphql_events",
    "collect_deployment_rest_events",
    "collect_pull_requests",
    "collect_release_events",
]
