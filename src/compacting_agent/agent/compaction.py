"""
Conversation Compaction - replace an old conversation prefix with a summary.

When the conversation grows close to the model's context window, older
non-system turns are summarized by the LLM into one assistant turn while
system turns and the most recent turns are kept verbatim.

Summarization talks to the same upstream that may be overloaded, so it
degrades instead of failing: if the summary request errors, the old turns
are dropped without a summary and the caller is told via
``CompactionResult.used_fallback``.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from ..llm.base import BaseLLM, LLMMessage
from .budget import (
    DEFAULT_COMPACTION_THRESHOLD,
    DEFAULT_CONTEXT_WINDOW_TOKENS,
    estimate_tokens,
)

if TYPE_CHECKING:
    from ..config import Settings

logger = structlog.get_logger()

DEFAULT_KEEP_RECENT = 6
DEFAULT_EMERGENCY_KEEP_RECENT = 4
DEFAULT_SUMMARY_MAX_TOKENS = 4096

SUMMARY_LABEL = "[Summary of {count} previous messages]"

SUMMARIZER_SYSTEM_PROMPT = (
    "You are a conversation summarizer for a coding assistant. "
    "Create concise summaries that keep everything needed to continue the work."
)

SUMMARY_PROMPT_TEMPLATE = """Please provide a concise summary of the following conversation history, preserving all important decisions, code changes, and context that would be needed to continue the work:

{transcript}

Provide a summary that captures:
1. The main goals and objectives
2. Key decisions made
3. Important code changes or implementations
4. Any errors encountered and how they were resolved
5. Current state of the project

Format the summary as a clear, structured narrative."""


@dataclass
class CompactionConfig:
    """Configuration for conversation compaction."""

    context_window_tokens: int = DEFAULT_CONTEXT_WINDOW_TOKENS
    compaction_threshold: float = DEFAULT_COMPACTION_THRESHOLD
    keep_recent_messages: int = DEFAULT_KEEP_RECENT
    emergency_keep_recent_messages: int = DEFAULT_EMERGENCY_KEEP_RECENT
    summary_max_tokens: int = DEFAULT_SUMMARY_MAX_TOKENS
    enabled: bool = True

    @property
    def threshold_tokens(self) -> int:
        return int(self.context_window_tokens * self.compaction_threshold)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "CompactionConfig":
        return cls(
            context_window_tokens=settings.context_window_tokens,
            compaction_threshold=settings.compaction_threshold,
            keep_recent_messages=settings.keep_recent_messages,
            emergency_keep_recent_messages=settings.emergency_keep_recent_messages,
            summary_max_tokens=settings.summary_max_tokens,
        )


@dataclass
class CompactionResult:
    """Result of a compaction operation."""

    original_message_count: int
    compacted_message_count: int
    summarized_count: int
    summary: str
    tokens_saved_estimate: int
    used_fallback: bool = False
    error: str | None = None

    @property
    def changed(self) -> bool:
        return self.summarized_count > 0


def render_transcript(messages: list[LLMMessage]) -> str:
    """Render turns as ``ROLE: content`` blocks separated by blank lines."""
    return "\n\n".join(f"{m.role.upper()}: {m.content}" for m in messages)


def build_summary_message(summary: str, count: int) -> LLMMessage:
    """The synthetic assistant turn that stands in for summarized turns."""
    return LLMMessage(
        role="assistant",
        content=f"{SUMMARY_LABEL.format(count=count)}\n{summary}",
    )


async def _generate_summary(
    llm: BaseLLM,
    messages: list[LLMMessage],
    max_tokens: int,
) -> str:
    """Use the LLM to generate a conversation summary."""
    prompt = SUMMARY_PROMPT_TEMPLATE.format(transcript=render_transcript(messages))

    response = await llm.generate(
        messages=[LLMMessage(role="user", content=prompt)],
        system_prompt=SUMMARIZER_SYSTEM_PROMPT,
        max_tokens=max_tokens,
    )

    return response.content.strip()


async def compact_conversation(
    llm: BaseLLM,
    messages: list[LLMMessage],
    keep_last: int = DEFAULT_KEEP_RECENT,
    max_summary_tokens: int = DEFAULT_SUMMARY_MAX_TOKENS,
) -> tuple[list[LLMMessage], CompactionResult]:
    """Compact a conversation by summarizing older messages.

    Strategy:
    1. Keep system messages, in order
    2. Keep the last ``keep_last`` non-system messages verbatim
    3. Summarize everything before them into one assistant message

    If there are no more than ``keep_last`` non-system messages the input
    is returned unchanged.

    Args:
        llm: LLM to use for summarization
        messages: Full message history
        keep_last: Number of recent non-system messages to keep
        max_summary_tokens: Output cap for the summary request

    Returns:
        Tuple of (compacted messages, compaction result)
    """
    system_messages = [m for m in messages if m.role == "system"]
    conversation = [m for m in messages if m.role != "system"]

    if len(conversation) <= keep_last:
        return messages, CompactionResult(
            original_message_count=len(messages),
            compacted_message_count=len(messages),
            summarized_count=0,
            summary="",
            tokens_saved_estimate=0,
        )

    split = len(conversation) - keep_last
    older_messages = conversation[:split]
    recent_messages = conversation[split:]

    logger.info(
        "Starting conversation compaction",
        message_count=len(messages),
        summarizing=len(older_messages),
        keeping=len(recent_messages),
    )

    summary = ""
    error: str | None = None
    try:
        summary = await _generate_summary(llm, older_messages, max_summary_tokens)
        compacted = (
            system_messages
            + [build_summary_message(summary, len(older_messages))]
            + recent_messages
        )
    except Exception as e:
        # Drop the old turns rather than fail the user's turn
        logger.warning(
            "Compaction summarization failed, dropping old messages",
            error=str(e),
            dropped=len(older_messages),
        )
        error = str(e)
        compacted = system_messages + recent_messages

    result = CompactionResult(
        original_message_count=len(messages),
        compacted_message_count=len(compacted),
        summarized_count=len(older_messages),
        summary=summary,
        tokens_saved_estimate=max(0, estimate_tokens(messages) - estimate_tokens(compacted)),
        used_fallback=error is not None,
        error=error,
    )

    logger.info(
        "Compaction complete",
        original=result.original_message_count,
        compacted=result.compacted_message_count,
        tokens_saved=result.tokens_saved_estimate,
        fallback=result.used_fallback,
    )

    return compacted, result


async def emergency_compact(
    llm: BaseLLM,
    messages: list[LLMMessage],
    keep_last: int = DEFAULT_EMERGENCY_KEEP_RECENT,
    max_summary_tokens: int = DEFAULT_SUMMARY_MAX_TOKENS,
) -> tuple[list[LLMMessage], CompactionResult]:
    """Compact more aggressively after the context window overflowed."""
    logger.warning(
        "Context overflow, running emergency compaction",
        message_count=len(messages),
        keep_last=keep_last,
    )
    return await compact_conversation(llm, messages, keep_last, max_summary_tokens)
