"""
Utility modules for the Opinion Drafting Assistant.

Provides LLM/embedding factory and logging utilities.
"""

from src.utils.llm_factory import (
    LLMFactoryError,
    get_embedding_model,
    get_llm,
)
from src.utils.logger import (
    LogContext,
    get_logger,
    setup_logging,
    truncate,
)

__all__ = [
    # LLM Factory
    "get_llm",
    "get_embedding_model",
    "LLMFactoryError",
    # Logging
    "get_logger",
    "setup_logging",
    "LogContext",
    "truncate",
]
