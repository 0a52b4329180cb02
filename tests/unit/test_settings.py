"""
Unit tests for configuration.
"""

from pathlib import Path

import pytest

from shared.config import (
    AnalysisSettings,
    LogLevel,
    RateLimitSettings,
    Settings,
    StorageSettings,
    get_settings,
    settings,
)
from shared.config.settings import Environment


class TestSettings:
    """Tests for environment-driven settings."""

    def test_test_environment_is_active(self) -> None:
        assert settings.environment == Environment.TESTING
        assert not settings.is_production

    def test_get_settings_is_cached(self) -> None:
        assert get_settings() is get_settings()

    def test_log_level_is_normalized(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOG_LEVEL", "debug")
        assert Settings().log_level == LogLevel.DEBUG

    def test_analysis_defaults(self) -> None:
        config = AnalysisSettings()

        assert config.short_document_words == 1000
        assert config.conversation_char_limit == 50_000
        assert config.chunk_char_limit == 2000
        assert config.near_perfect_score == 1.0

    def test_analysis_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ANALYSIS_SHORT_DOCUMENT_WORDS", "250")
        monkeypatch.setenv("ANALYSIS_JURISDICTION_PAUSE_SECONDS", "0")

        config = AnalysisSettings()

        assert config.short_document_words == 250
        assert config.jurisdiction_pause_seconds == 0.0

    def test_rate_limit_budgets(self, monkeypatch: pytest.MonkeyPatch) -> None:
        assert RateLimitSettings().model_budgets["gpt-4o"] == 30_000

        monkeypatch.setenv("RATE_LIMIT_MODEL_BUDGETS", '{"local-model": 5000}')
        assert RateLimitSettings().model_budgets == {"local-model": 5000}

    def test_storage_paths(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("STORAGE_DATA_DIR", str(tmp_path))

        config = StorageSettings()

        assert config.data_dir == tmp_path
        assert config.index_path is None
        assert config.statute_filenames == ["statute.txt", "policy.txt"]
