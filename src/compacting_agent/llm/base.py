"""
Provider-neutral request and response types for the LLM transport.

The agent loop only ever sees these types; each provider module converts
them to and from its SDK's wire format.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Literal

Role = Literal["user", "assistant", "system", "tool"]

# Normalized stop reasons
STOP_END_TURN = "end_turn"
STOP_TOOL_USE = "tool_use"
STOP_MAX_TOKENS = "max_tokens"


@dataclass
class ToolDefinition:
    """A tool offered to the model, with a JSON Schema for its arguments."""

    name: str
    description: str
    parameters: dict[str, Any]


@dataclass
class ToolCall:
    """One tool invocation requested by the model."""

    id: str
    name: str
    arguments: dict[str, Any]


@dataclass
class LLMMessage:
    """One conversation turn.

    ``tool`` turns and assistant turns carrying ``tool_calls`` only exist in
    the request list of a single user turn; stored turns are plain text.
    """

    role: Role
    content: str
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None
    name: str | None = None


@dataclass
class LLMResponse:
    """A completed model response.

    ``input_tokens`` is the provider's own count of the request size and is
    the authoritative budget signal for the next turn. It is None when the
    provider reported no usage.
    """

    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    input_tokens: int | None = None
    output_tokens: int = 0
    model: str = ""
    stop_reason: str | None = None
    raw_response: Any = None

    @property
    def wants_tools(self) -> bool:
        return bool(self.tool_calls)


class BaseLLM(ABC):
    """Common settings and the request contract shared by all providers."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        max_tokens: int = 8096,
        temperature: float = 0.7,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.max_tokens = max_tokens
        self.temperature = temperature

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.model!r})"

    def _output_cap(self, max_tokens: int | None) -> int:
        """The output token cap for one request."""
        return max_tokens or self.max_tokens

    @abstractmethod
    async def generate(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Send one request and wait for the complete response.

        ``max_tokens`` overrides the provider default for this request.
        Transport and API failures propagate to the caller unchanged.
        """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get the provider name."""
