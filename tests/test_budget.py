"""
Tests for context budget estimation.
"""

from compacting_agent.agent.budget import (
    consumption_score,
    estimate_tokens,
    should_compact,
)
from compacting_agent.llm.base import LLMMessage


def test_estimate_tokens_empty():
    """An empty conversation costs nothing."""
    assert estimate_tokens([]) == 0


def test_estimate_tokens_rounds_up():
    """Characters are converted at a quarter token each, rounded up."""
    messages = [LLMMessage(role="user", content="abcde")]
    assert estimate_tokens(messages) == 2


def test_estimate_tokens_at_threshold_boundary():
    """600001 characters is just over the default threshold, 600000 is not."""
    over = [LLMMessage(role="user", content="x" * 600_001)]
    at = [LLMMessage(role="user", content="x" * 600_000)]

    assert estimate_tokens(over) == 150_001
    assert should_compact(estimate_tokens(over), 150_000) is True

    assert estimate_tokens(at) == 150_000
    assert should_compact(estimate_tokens(at), 150_000) is False


def test_estimate_tokens_is_monotonic():
    """Adding a message never lowers the estimate."""
    messages = [LLMMessage(role="user", content="hello world")]
    before = estimate_tokens(messages)

    messages.append(LLMMessage(role="assistant", content=""))
    assert estimate_tokens(messages) >= before

    messages.append(LLMMessage(role="assistant", content="more text"))
    assert estimate_tokens(messages) > before


def test_estimate_tokens_structured_content():
    """Non-string content is measured by its JSON form."""
    messages = [LLMMessage(role="user", content=[{"type": "text", "text": "hi"}])]
    assert estimate_tokens(messages) > 0


def test_estimate_tokens_custom_ratio():
    """The chars-to-tokens ratio is configurable."""
    messages = [LLMMessage(role="user", content="x" * 10)]
    assert estimate_tokens(messages, tokens_per_char=0.5) == 5


def test_consumption_score_prefers_reported_count():
    """A reported input token count overrides the estimate."""
    messages = [LLMMessage(role="user", content="x" * 400)]

    assert consumption_score(messages) == 100
    assert consumption_score(messages, reported_tokens=160_000) == 160_000
    assert consumption_score(messages, reported_tokens=0) == 0


def test_should_compact_is_strict():
    """Equal to the threshold does not trigger compaction."""
    assert should_compact(150_000, 150_000) is False
    assert should_compact(150_001, 150_000) is True
    assert should_compact(0, 150_000) is False
