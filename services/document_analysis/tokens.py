"""
Token Estimation
================

Conservative character-based token estimates used for pre-flight rate
budgeting. They deliberately overshoot real tokenizer counts.

Version: 0.1.0
"""

import math
import re

from shared.logging import get_logger


logger = get_logger(__name__)

_PUNCTUATION = re.compile(r"[§()\[\].,:;]")
_NUMBERS = re.compile(r"\d+")


def estimate_tokens(text: str) -> int:
    """Roughly one token per four characters."""
    return math.ceil(len(text) / 4)


def estimate_chunk_tokens(text: str) -> int:
    """
    Stricter estimate for embedding chunks.

    Legal text tokenizes densely: section symbols, citations and numbers
    each tend to become their own token, so they are padded on top of a
    three-characters-per-token base.
    """
    base = math.ceil(len(text) / 3)
    punctuation = len(_PUNCTUATION.findall(text))
    numbers = len(_NUMBERS.findall(text))
    return math.ceil(base + punctuation * 0.1 + numbers * 0.2)


def truncate_to_token_budget(text: str, max_tokens: int) -> str:
    """Cut ``text`` to fit ``max_tokens`` at four characters per token."""
    if estimate_tokens(text) <= max_tokens:
        return text
    limit = max(0, max_tokens * 4 - 100)
    logger.debug("context_truncated", original_chars=len(text), kept_chars=limit)
    return text[:limit] + "\n\n[Text truncated to fit context limit...]"
