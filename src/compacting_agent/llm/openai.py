"""
OpenAI chat-completions provider, also used for OpenRouter.
"""

import json
from typing import Any

import openai
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

# finish_reason -> normalized stop reason
FINISH_REASON_MAP = {
    "stop": STOP_END_TURN,
    "tool_calls": STOP_TOOL_USE,
    "function_call": STOP_TOOL_USE,
    "length": STOP_MAX_TOKENS,
}


def _parse_arguments(raw: str | None) -> dict[str, Any]:
    """Decode tool-call arguments; malformed JSON yields no arguments."""
    if not raw:
        return {}
    try:
        arguments = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Malformed tool call arguments", arguments=raw[:200])
        return {}
    return arguments if isinstance(arguments, dict) else {}


class OpenAILLM(BaseLLM):
    """GPT models, or any OpenAI-compatible endpoint via ``base_url``."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        base_url: str | None = None,
        max_tokens: int = 8096,
        temperature: float = 0.7,
    ):
        super().__init__(api_key, model, base_url, max_tokens, temperature)
        self.client = openai.AsyncOpenAI(api_key=api_key, base_url=base_url)

    @property
    def provider_name(self) -> str:
        return "openai"

    @staticmethod
    def _convert_message(msg: LLMMessage) -> dict[str, Any]:
        if msg.role == "tool":
            return {"role": "tool", "tool_call_id": msg.tool_call_id, "content": msg.content}

        if msg.role == "assistant" and msg.tool_calls:
            return {
                "role": "assistant",
                "content": msg.content or None,
                "tool_calls": [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {"name": tc.name, "arguments": json.dumps(tc.arguments)},
                    }
                    for tc in msg.tool_calls
                ],
            }

        return {"role": msg.role, "content": msg.content}

    def _convert_messages(self, messages: list[LLMMessage]) -> list[dict[str, Any]]:
        return [self._convert_message(m) for m in messages]

    @staticmethod
    def _convert_tools(tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {"name": t.name, "description": t.description, "parameters": t.parameters},
            }
            for t in tools
        ]

    @staticmethod
    def _parse_response(response: Any) -> LLMResponse:
        choice = response.choices[0]
        message = choice.message
        usage = response.usage

        return LLMResponse(
            content=message.content or "",
            tool_calls=[
                ToolCall(id=tc.id, name=tc.function.name, arguments=_parse_arguments(tc.function.arguments))
                for tc in message.tool_calls or []
            ],
            input_tokens=usage.prompt_tokens if usage else None,
            output_tokens=usage.completion_tokens if usage else 0,
            model=response.model,
            stop_reason=FINISH_REASON_MAP.get(choice.finish_reason, choice.finish_reason),
            raw_response=response,
        )

    async def generate(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        converted = self._convert_messages(messages)
        if system_prompt:
            converted.insert(0, {"role": "system", "content": system_prompt})

        request: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self._output_cap(max_tokens),
            "temperature": self.temperature,
            "messages": converted,
        }
        if tools:
            request["tools"] = self._convert_tools(tools)

        try:
            response = await self.client.chat.completions.create(**request)
        except openai.APIError as e:
            logger.error("OpenAI API error", model=self.model, base_url=self.base_url, error=str(e))
            raise

        return self._parse_response(response)
