"""
Configuration Module
====================

Centralized configuration management using Pydantic Settings.
Loads from environment variables with type validation and defaults.

Usage:
    from shared.config import settings

    print(settings.analysis.short_document_words)
    print(settings.rate_limit.model_budgets["gpt-4o"])
"""

from shared.config.settings import (
    AnalysisSettings,
    EmbeddingSettings,
    Environment,
    LLMProvider,
    LogLevel,
    RateLimitSettings,
    Settings,
    StorageSettings,
    get_settings,
)


# Global settings instance (singleton)
settings = get_settings()

__all__ = [
    "Settings",
    "get_settings",
    "settings",
    "Environment",
    "LogLevel",
    "LLMProvider",
    "AnalysisSettings",
    "EmbeddingSettings",
    "RateLimitSettings",
    "StorageSettings",
]
