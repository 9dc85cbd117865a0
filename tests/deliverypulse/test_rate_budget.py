"""Tests for the shared rate budget."""

from __future__ import annotations

import time
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from deliverypulse.engines.collector.rate_budget import RateBudget, RateState, parse_header_int


class TestCheckAndWait:
    @pytest.mark.anyio
    async def test_no_wait_above_threshold(self):
        budget = RateBudget(threshold=100)
        budget.state.remaining = 101
        budget.state.reset_at = time.time() + 3600
        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await budget.check_and_wait()
            mock_sleep.assert_not_called()

    @pytest.mark.anyio
    async def test_no_wait_when_reset_already_passed(self):
        budget = RateBudget(state=RateState(remaining=0, reset_at=time.time() - 5, threshold=100))
        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await budget.check_and_wait()
            mock_sleep.assert_not_called()

    @pytest.mark.anyio
    async def test_waits_until_reset_plus_buffer(self):
        reset_at = time.time() + 30
        budget = RateBudget(
            state=RateState(remaining=10, reset_at=reset_at, threshold=100),
            buffer_seconds=1.0,
        )
        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await budget.check_and_wait()
            mock_sleep.assert_called_once()
            waited = mock_sleep.call_args[0][0]
            assert 29 < waited <= 31

    @pytest.mark.anyio
    async def test_threshold_is_exclusive(self):
        """remaining == threshold counts as low."""
        budget = RateBudget(
            state=RateState(remaining=100, reset_at=time.time() + 10, threshold=100)
        )
        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await budget.check_and_wait()
            mock_sleep.assert_called_once()

    def test_optimistic_defaults(self):
        state = RateState()
        assert state.remaining == 5000
        assert state.threshold == 100
        assert state.reset_at > time.time()


class TestUpdateFromHeaders:
    def test_overwrites_remaining_and_reset(self):
        budget = RateBudget()
        budget.update_from_headers(
            {"X-RateLimit-Remaining": "42", "X-RateLimit-Reset": "1700000000"}
        )
        assert budget.state.remaining == 42
        assert budget.state.reset_at == 1700000000.0

    def test_case_insensitive_plain_dict(self):
        budget = RateBudget()
        budget.update_from_headers({"x-ratelimit-remaining": "7"})
        assert budget.state.remaining == 7

    def test_httpx_headers(self):
        budget = RateBudget()
        budget.update_from_headers(httpx.Headers({"X-RateLimit-Remaining": "3"}))
        assert budget.state.remaining == 3

    def test_missing_headers_leave_state(self):
        budget = RateBudget(state=RateState(remaining=77, reset_at=123.0))
        budget.update_from_headers({"Content-Type": "application/json"})
        assert budget.state.remaining == 77
        assert budget.state.reset_at == 123.0

    def test_malformed_headers_leave_state(self):
        budget = RateBudget(state=RateState(remaining=77, reset_at=123.0))
        budget.update_from_headers(
            {"X-RateLimit-Remaining": "garbage", "X-RateLimit-Reset": "soon"}
        )
        assert budget.state.remaining == 77
        assert budget.state.reset_at == 123.0

    def test_shared_state_between_budgets(self):
        state = RateState()
        a = RateBudget(state=state)
        b = RateBudget(state=state)
        a.update_from_headers({"X-RateLimit-Remaining": "11"})
        assert b.state.remaining == 11


class TestHold:
    @pytest.mark.anyio
    async def test_hold_makes_other_workers_wait(self):
        budget = RateBudget(buffer_seconds=1.0)
        budget.hold(20)
        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await budget.check_and_wait()
            waited = mock_sleep.call_args[0][0]
        assert budget.state.remaining == 0
        assert 19 < waited <= 21


class TestParseHeaderInt:
    def test_valid(self):
        assert parse_header_int("42") == 42

    def test_none(self):
        assert parse_header_int(None) is None

    def test_garbage(self):
        assert parse_header_int("not-a-number") is None
