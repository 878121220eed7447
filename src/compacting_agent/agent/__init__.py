"""
Agent module - the brain of the system.

Includes:
- Agent: Message processing with LLM + tools, compaction and overflow retry
- MessageStore: Persistent, ordered conversation turns
- ConversationContext: Per-session state threaded through the loop
- Compaction: Summarize old turns to stay within the context budget
"""

from .budget import consumption_score, estimate_tokens, should_compact
from .compaction import CompactionConfig, CompactionResult, compact_conversation, emergency_compact
from .core import Agent, ConversationContext, TurnResult
from .session import MessageStore

__all__ = [
    "Agent",
    "ConversationContext",
    "TurnResult",
    "MessageStore",
    "CompactionConfig",
    "CompactionResult",
    "compact_conversation",
    "emergency_compact",
    "consumption_score",
    "estimate_tokens",
    "should_compact",
]
