"""Tests for log setup."""

from __future__ import annotations

import logging

import pytest
import structlog

from deliverypulse.core.logging import setup_logging


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


class TestSetupLogging:
    def test_explicit_level_wins_over_environment(self, monkeypatch):
        monkeypatch.setenv("DELIVERYPULSE_LOG_LEVEL", "ERROR")
        setup_logging("debug")
        assert logging.getLogger("deliverypulse").level == logging.DEBUG

    def test_environment_level(self, monkeypatch):
        monkeypatch.setenv("DELIVERYPULSE_LOG_LEVEL", "warning")
        setup_logging()
        assert logging.getLogger("deliverypulse").level == logging.WARNING

    def test_transport_loggers_quieted(self, monkeypatch):
        monkeypatch.delenv("DELIVERYPULSE_LOG_LEVEL", raising=False)
        setup_logging()
        assert logging.getLogger("deliverypulse").level == logging.INFO
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING

    def test_json_format(self, monkeypatch):
        monkeypatch.setenv("DELIVERYPULSE_LOG_FORMAT", "json")
        setup_logging()
        handler = next(
            h
            for h in logging.getLogger().handlers
            if isinstance(h.formatter, structlog.stdlib.ProcessorFormatter)
        )
        assert isinstance(handler.formatter.processors[-1], structlog.processors.JSONRenderer)
