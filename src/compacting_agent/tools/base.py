"""
Tool contract.

A tool turns model-supplied arguments into a ``ToolResult``. Results are
sent back to the model as JSON text, so a tool reports failure in the
result rather than by raising.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Coroutine

from ..llm.base import ToolDefinition


@dataclass
class ToolResult:
    """Result from a tool execution."""

    success: bool
    output: str = ""
    data: dict[str, Any] | None = None
    error: str | None = None

    def to_payload(self) -> str:
        """Serialize the result as the JSON text sent back to the model."""
        payload: dict[str, Any] = {"success": self.success}
        if self.output:
            payload["output"] = self.output
        if self.data:
            payload.update(self.data)
        if self.error:
            payload["error"] = self.error
        return json.dumps(payload)


@dataclass
class ToolParameter:
    """One argument of a function tool."""

    name: str
    param_type: str  # string, integer, boolean, array, object
    description: str
    required: bool = True
    default: Any = None


class BaseTool(ABC):
    """Base class for all tools."""

    # Tools that run inside the session sandbox receive the handle as ``sandbox``
    requires_sandbox: bool = False

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the tool name."""

    @property
    @abstractmethod
    def description(self) -> str:
        """Get the tool description."""

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        """Get the tool parameters schema (JSON Schema)."""

    @abstractmethod
    async def execute(self, **kwargs: Any) -> ToolResult:
        """Execute the tool with given arguments."""

    def definition(self) -> ToolDefinition:
        return ToolDefinition(name=self.name, description=self.description, parameters=self.parameters)


Handler = Callable[..., Coroutine[Any, Any, ToolResult]]


class FunctionTool(BaseTool):
    """A tool backed by a plain coroutine function.

    The JSON Schema is built from the ``ToolParameter`` list.
    """

    def __init__(self, name: str, description: str, parameters: list[ToolParameter], handler: Handler):
        self._name = name
        self._description = description
        self._parameters = parameters
        self.handler = handler

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    @property
    def parameters(self) -> dict[str, Any]:
        properties: dict[str, Any] = {}
        for param in self._parameters:
            prop: dict[str, Any] = {"type": param.param_type, "description": param.description}
            if param.default is not None:
                prop["default"] = param.default
            properties[param.name] = prop

        return {
            "type": "object",
            "properties": properties,
            "required": [p.name for p in self._parameters if p.required],
        }

    async def execute(self, **kwargs: Any) -> ToolResult:
        return await self.handler(**kwargs)
