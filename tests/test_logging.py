"""Tests for structlog setup."""

from __future__ import annotations

import json

import structlog

from pipewatch.infra.logging import setup_logging


class TestSetupLogging:
    def test_json_lines_carry_bound_execution(self, capsys) -> None:
        setup_logging(json_output=True, log_level="INFO")
        try:
            logger = structlog.get_logger()
            with structlog.contextvars.bound_contextvars(project_name="shop", execution_id="exec-1"):
                logger.info("event_applied", key="stage:STARTED:Build::1")
            logger.debug("notification_suppressed")
        finally:
            structlog.reset_defaults()

        lines = capsys.readouterr().out.splitlines()
        assert len(lines) == 1
        entry = json.loads(lines[0])
        assert entry["event"] == "event_applied"
        assert entry["level"] == "info"
        assert entry["project_name"] == "shop"
        assert entry["execution_id"] == "exec-1"
        assert "timestamp" in entry

    def test_context_cleared_after_event(self, capsys) -> None:
        setup_logging(json_output=True, log_level="DEBUG")
        try:
            logger = structlog.get_logger()
            with structlog.contextvars.bound_contextvars(execution_id="exec-1"):
                pass
            logger.debug("backlog_drained")
        finally:
            structlog.reset_defaults()

        entry = json.loads(capsys.readouterr().out.splitlines()[0])
        assert "execution_id" not in entry
