"""
Unit tests for structured logging.
"""

import json
import logging

import pytest
import structlog

from shared.logging import bind_context, clear_context, get_logger, setup_logging
from shared.logging.logger import _censor_secrets


@pytest.fixture
def json_logging():
    setup_logging(log_level="INFO", json_logs=True, service_name="regscore-test")
    yield
    clear_context()
    structlog.reset_defaults()
    logging.getLogger().handlers.clear()


class TestLogging:
    """Tests for logger configuration and context."""

    def test_secrets_are_censored(self) -> None:
        event = _censor_secrets(
            None,  # type: ignore[arg-type]
            "info",
            {"event": "x", "api_key": "sk-123", "headers": {"Authorization": "Bearer abc"}},
        )

        assert event["api_key"] == "***REDACTED***"
        assert event["headers"]["Authorization"] == "***REDACTED***"
        assert event["event"] == "x"

    def test_json_output_carries_context(
        self, capsys: pytest.CaptureFixture[str], json_logging
    ) -> None:
        bind_context(domain="trees", jurisdiction="springfield")
        get_logger("tests").info("analysis_planned", to_analyze=2)

        line = capsys.readouterr().err.strip().splitlines()[-1]
        payload = json.loads(line)

        assert payload["event"] == "analysis_planned"
        assert payload["domain"] == "trees"
        assert payload["jurisdiction"] == "springfield"
        assert payload["service"] == "regscore-test"
        assert payload["level"] == "info"

    def test_clear_context(self, capsys: pytest.CaptureFixture[str], json_logging) -> None:
        bind_context(domain="trees")
        clear_context()
        get_logger("tests").info("run_completed")

        payload = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert "domain" not in payload

    def test_noisy_libraries_are_quieted(self, json_logging) -> None:
        assert logging.getLogger("httpx").level == logging.WARNING
