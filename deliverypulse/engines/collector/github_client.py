"""Async GitHub REST + GraphQL client with pagination, rate budget, and retries."""

from __future__ import annotations

import asyncio
import os
import re
import time
from collections.abc import AsyncGenerator, Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

from deliverypulse.engines.collector.rate_budget import RateBudget, parse_header_int
from deliverypulse.exceptions import GraphQLError, RateLimitError

log = structlog.get_logger("deliverypulse.collector")

_NEXT_LINK_RE = re.compile(r'<([^>]+)>;\s*rel="next"')

_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 1.0  # seconds
_DEFAULT_MAX_PAGES = 10


@dataclass
class ApiResponse:
    """Parsed JSON body plus the response headers it arrived with."""

    data: Any
    headers: Mapping[str, str] = field(default_factory=dict)
    status_code: int = 200


class GitHubClient:
    """Thin async wrapper around the GitHub REST and GraphQL APIs.

    Every request first awaits :meth:`RateBudget.check_and_wait` and every
    response (including 304 and error responses) is fed back into the
    budget, so one budget instance throttles all workers sharing the client.
    """

    def __init__(
        self,
        token: str | None = None,
        *,
        budget: RateBudget | None = None,
        base_url: str = "https://api.github.com",
    ) -> None:
        resolved_token = token or os.environ.get("GITHUB_TOKEN")
        headers: dict[str, str] = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "deliverypulse",
        }
        if resolved_token:
            headers["Authorization"] = f"token {resolved_token}"
        self.budget = budget or RateBudget()
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=30.0,
        )

    # ── lifecycle ──────────────────────────────────────────────────────────

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── REST ───────────────────────────────────────────────────────────────

    async def get(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> ApiResponse:
        """Single-resource GET, returns parsed JSON and response headers.

        *headers* are sent with this request only (e.g. ``If-None-Match``).
        A 304 surfaces as :class:`httpx.HTTPStatusError`.
        """
        response = await self._request_with_retry("GET", path, params=params, headers=headers)
        return ApiResponse(
            data=response.json(),
            headers=response.headers,
            status_code=response.status_code,
        )

    async def iter_pages(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        *,
        items_key: str | None = None,
        max_pages: int = _DEFAULT_MAX_PAGES,
    ) -> AsyncGenerator[list[dict[str, Any]], None]:
        """Yield one list of items per page of a paginated endpoint.

        Follows ``Link: <...>; rel="next"`` headers and stops after
        *max_pages* pages. *items_key* selects the list inside an object
        body (``workflow_runs`` for the Actions API).
        """
        url: str | None = path
        params = dict(params or {})
        params.setdefault("per_page", 100)
        page = 0

        while url and page < max_pages:
            response = await self._request_with_retry(
                "GET", url, params=params if page == 0 else None
            )
            data = response.json()
            if items_key is not None:
                data = data.get(items_key, []) if isinstance(data, dict) else []
            yield data if isinstance(data, list) else [data]

            url = self._parse_next_link(response.headers.get("Link", ""))
            page += 1

    async def get_paginated(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        *,
        items_key: str | None = None,
        max_pages: int = _DEFAULT_MAX_PAGES,
    ) -> AsyncGenerator[dict[str, Any], None]:
        """Yield JSON items from a paginated endpoint, flattened across pages."""
        async for page in self.iter_pages(
            path, params, items_key=items_key, max_pages=max_pages
        ):
            for item in page:
                yield item

    # ── GraphQL ────────────────────────────────────────────────────────────

    async def graphql(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """POST a GraphQL query and return its ``data`` object."""
        response = await self._request_with_retry(
            "POST", "/graphql", json={"query": query, "variables": variables or {}}
        )
        payload = response.json()
        if payload.get("errors"):
            raise GraphQLError(payload["errors"])
        return payload.get("data") or {}

    # ── internal ───────────────────────────────────────────────────────────

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send with exponential backoff on 5xx, rate-limit, and timeout errors.

        A rate-limited 403/429 sleeps for the advertised wait and retries;
        on the last attempt it raises :class:`RateLimitError` without sleeping.
        """
        last_exc: Exception | None = None
        waited_for_limit = False
        for attempt in range(_MAX_RETRIES):
            # The rate-limit sleep already covered the budget's wait
            if not waited_for_limit:
                await self.budget.check_and_wait()
            waited_for_limit = False
            try:
                resp = await self._client.request(
                    method, url, params=params, json=json, headers=headers
                )
                self.budget.update_from_headers(resp.headers)

                if resp.status_code in (403, 429) and self._is_rate_limited(resp):
                    wait = self._get_rate_limit_wait(resp)
                    if attempt == _MAX_RETRIES - 1:
                        raise RateLimitError(wait)
                    log.warning(
                        "github.rate_limit",
                        url=url,
                        status=resp.status_code,
                        wait_seconds=wait,
                        attempt=attempt + 1,
                        max_retries=_MAX_RETRIES,
                    )
                    self.budget.hold(wait)
                    await asyncio.sleep(wait)
                    waited_for_limit = True
                    continue

                if resp.status_code < 500:
                    resp.raise_for_status()
                    return resp

                log.warning(
                    "github.server_error",
                    url=url,
                    status=resp.status_code,
                    attempt=attempt + 1,
                    max_retries=_MAX_RETRIES,
                )
                last_exc = httpx.HTTPStatusError(
                    f"{resp.status_code}", request=resp.request, response=resp
                )
            except httpx.TimeoutException as exc:
                log.warning(
                    "github.timeout",
                    url=url,
                    attempt=attempt + 1,
                    max_retries=_MAX_RETRIES,
                )
                last_exc = exc

            if attempt < _MAX_RETRIES - 1:
                delay = _RETRY_BASE_DELAY * (2**attempt)
                await asyncio.sleep(delay)

        raise last_exc  # type: ignore[misc]

    @staticmethod
    def _is_rate_limited(response: httpx.Response) -> bool:
        """Check if a 403/429 response is due to rate limiting."""
        if response.status_code == 429:
            return True
        remaining = parse_header_int(response.headers.get("X-RateLimit-Remaining"))
        if remaining is not None:
            return remaining == 0
        # Secondary (abuse) limits only send Retry-After
        return "Retry-After" in response.headers

    @staticmethod
    def _get_rate_limit_wait(response: httpx.Response) -> int:
        """Calculate how long to wait based on rate-limit headers."""
        retry_after = parse_header_int(response.headers.get("Retry-After"))
        if retry_after is not None:
            return max(retry_after, 1)
        reset_ts = parse_header_int(response.headers.get("X-RateLimit-Reset"))
        if reset_ts is not None:
            return max(reset_ts - int(time.time()), 1)
        return 60  # conservative fallback

    @staticmethod
    def _parse_next_link(link_header: str) -> str | None:
        """Extract the ``next`` URL from a GitHub ``Link`` header."""
        match = _NEXT_LINK_RE.search(link_header)
        return match.group(1) if match else None
