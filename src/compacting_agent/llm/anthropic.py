"""
Anthropic Claude provider.
"""

from typing import Any

import anthropic
import structlog

from .base import (
    STOP_END_TURN,
    STOP_MAX_TOKENS,
    STOP_TOOL_USE,
    BaseLLM,
    LLMMessage,
    LLMResponse,
    ToolCall,
    ToolDefinition,
)

logger = structlog.get_logger()

STOP_REASON_MAP = {
    "end_turn": STOP_END_TURN,
    "stop_sequence": STOP_END_TURN,
    "tool_use": STOP_TOOL_USE,
    "max_tokens": STOP_MAX_TOKENS,
}


def _is_tool_result_group(message: dict[str, Any]) -> bool:
    content = message["content"]
    return (
        message["role"] == "user"
        and isinstance(content, list)
        and all(block.get("type") == "tool_result" for block in content)
    )


class AnthropicLLM(BaseLLM):
    """Claude through the native Anthropic SDK."""

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-20250514",
        base_url: str | None = None,
        max_tokens: int = 8096,
        temperature: float = 0.7,
    ):
        super().__init__(api_key, model, base_url, max_tokens, temperature)
        self.client = anthropic.AsyncAnthropic(api_key=api_key, base_url=base_url)

    @property
    def provider_name(self) -> str:
        return "anthropic"

    def _convert_messages(self, messages: list[LLMMessage]) -> list[dict[str, Any]]:
        """Convert turns to Anthropic messages.

        System turns are dropped (they travel in ``system``). Consecutive tool
        results are folded into one user message so every tool_use block of an
        assistant turn is answered together.
        """
        converted: list[dict[str, Any]] = []

        for msg in messages:
            if msg.role == "system":
                continue

            if msg.role == "tool":
                block = {
                    "type": "tool_result",
                    "tool_use_id": msg.tool_call_id,
                    "content": msg.content,
                }
                if converted and _is_tool_result_group(converted[-1]):
                    converted[-1]["content"].append(block)
                else:
                    converted.append({"role": "user", "content": [block]})
                continue

            if msg.role == "assistant" and msg.tool_calls:
                blocks: list[dict[str, Any]] = []
                if msg.content:
                    blocks.append({"type": "text", "text": msg.content})
                blocks.extend(
                    {"type": "tool_use", "id": tc.id, "name": tc.name, "input": tc.arguments}
                    for tc in msg.tool_calls
                )
                converted.append({"role": "assistant", "content": blocks})
                continue

            converted.append({"role": msg.role, "content": msg.content})

        return converted

    @staticmethod
    def _convert_tools(tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        return [
            {"name": t.name, "description": t.description, "input_schema": t.parameters}
            for t in tools
        ]

    @staticmethod
    def _extract_system_prompt(messages: list[LLMMessage]) -> str | None:
        """Join any system turns into one system prompt."""
        parts = [m.content for m in messages if m.role == "system"]
        return "\n\n".join(parts) if parts else None

    @staticmethod
    def _parse_response(response: Any) -> LLMResponse:
        text_parts: list[str] = []
        tool_calls: list[ToolCall] = []

        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(
                    id=block.id,
                    name=block.name,
                    arguments=dict(block.input) if isinstance(block.input, dict) else {},
                ))

        return LLMResponse(
            content="".join(text_parts),
            tool_calls=tool_calls,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=response.model,
            stop_reason=STOP_REASON_MAP.get(response.stop_reason, response.stop_reason),
            raw_response=response,
        )

    async def generate(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        request: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self._output_cap(max_tokens),
            "messages": self._convert_messages(messages),
        }

        system = system_prompt or self._extract_system_prompt(messages)
        if system:
            request["system"] = system
        if tools:
            request["tools"] = self._convert_tools(tools)

        try:
            response = await self.client.messages.create(**request)
        except anthropic.APIError as e:
            logger.error("Anthropic API error", model=self.model, error=str(e))
            raise

        return self._parse_response(response)
