"""Conditional (ETag / Last-Modified) revalidation of a single request."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Generic, Literal, TypeVar

import httpx
import structlog

from deliverypulse.engines.collector.github_client import ApiResponse

log = structlog.get_logger("deliverypulse.collector")

T = TypeVar("T")


@dataclass
class CachedResponse(Generic[T]):
    data: T
    etag: str | None = None
    last_modified: str | None = None


@dataclass
class ConditionalFetchResult(CachedResponse[T]):
    source: Literal["network", "cache"] = "network"
    headers: Mapping[str, str] = field(default_factory=dict)


async def fetch_with_conditional(
    request: Callable[[dict[str, str]], Awaitable[ApiResponse]],
    cached: CachedResponse[Any] | None,
) -> ConditionalFetchResult[Any]:
    """Issue *request* with validators taken from *cached*.

    A 304 with a cached value returns that value marked ``source="cache"``;
    without one the 304 propagates like any other failure. The headers of
    the attempt are returned on both paths.
    """
    headers: dict[str, str] = {}
    if cached is not None and cached.etag:
        headers["If-None-Match"] = cached.etag
    if cached is not None and cached.last_modified:
        headers["If-Modified-Since"] = cached.last_modified

    try:
        response = await request(headers)
    except httpx.HTTPStatusError as exc:
        if exc.response is not None and exc.response.status_code == 304 and cached is not None:
            log.debug("conditional.not_modified", etag=cached.etag)
            return ConditionalFetchResult(
                data=cached.data,
                etag=cached.etag,
                last_modified=cached.last_modified,
                source="cache",
                headers=exc.response.headers,
            )
        raise

    return ConditionalFetchResult(
        data=response.data,
        etag=response.headers.get("ETag") or response.headers.get("etag"),
        last_modified=response.headers.get("Last-Modified")
        or response.headers.get("last-modified"),
        source="network",
        headers=response.headers,
    )
