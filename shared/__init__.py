"""
RegScore Shared Library
=======================

Common utilities and configuration shared by the RegScore services.

Modules:
    - config: Configuration management with Pydantic Settings
    - logging: Structured logging with structlog
    - llm: LLM provider abstraction (Claude, OpenAI)
    - models: Shared Pydantic models

Version: 0.1.0
"""

__version__ = "0.1.0"
__author__ = "RegScore Team"

from shared.config import settings
from shared.logging import get_logger, setup_logging

__all__ = [
    "settings",
    "get_logger",
    "setup_logging",
    "__version__",
]
