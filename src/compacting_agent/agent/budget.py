"""
Context budget estimation.

A cheap character-based approximation of how much of the model's context
window a conversation consumes. It is not meant to match the provider's
tokenizer; it only has to be monotonic and free of external calls.
"""

import json
import math
from typing import Sequence

from ..llm.base import LLMMessage

# Rough estimate: 4 chars per token
TOKENS_PER_CHAR = 0.25

# Claude's context window is 200k tokens; compact at 75% of it
DEFAULT_CONTEXT_WINDOW_TOKENS = 200_000
DEFAULT_COMPACTION_THRESHOLD = 0.75


def _content_text(message: LLMMessage) -> str:
    if isinstance(message.content, str):
        return message.content
    return json.dumps(message.content)


def estimate_tokens(
    messages: Sequence[LLMMessage],
    tokens_per_char: float = TOKENS_PER_CHAR,
) -> int:
    """Estimate token count for a list of messages."""
    total_chars = sum(len(_content_text(m)) for m in messages)
    return math.ceil(total_chars * tokens_per_char)


def should_compact(score: int, threshold: int) -> bool:
    """Whether a consumption score is over the compaction threshold."""
    return score > threshold


def consumption_score(
    messages: Sequence[LLMMessage],
    reported_tokens: int | None = None,
    tokens_per_char: float = TOKENS_PER_CHAR,
) -> int:
    """Return the budget signal for a conversation.

    The provider's reported input token count for the last request is
    authoritative; the estimate is only used when no count is known.
    """
    if reported_tokens is not None:
        return reported_tokens
    return estimate_tokens(messages, tokens_per_char)
