"""
Tool registry: the set of tools offered to the model for one agent.
"""

from typing import TYPE_CHECKING, Any

import structlog

from ..llm.base import ToolDefinition
from .base import BaseTool, ToolResult

if TYPE_CHECKING:
    from ..config import Settings
    from ..sandbox import SandboxBackend, SandboxHandle

logger = structlog.get_logger()

NO_SANDBOX_ERROR = "No sandbox is available for this session"


class ToolRegistry:
    """Looks tools up by name and runs them, turning every failure into a result."""

    def __init__(self, tools: list[BaseTool] | None = None):
        self._tools: dict[str, BaseTool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: BaseTool) -> None:
        """Register a tool, replacing any tool with the same name."""
        self._tools[tool.name] = tool
        logger.debug("Tool registered", tool_name=tool.name)

    def get(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    def list_tools(self) -> list[str]:
        return list(self._tools)

    def get_definitions(self) -> list[ToolDefinition]:
        """Definitions of all tools, in registration order."""
        return [tool.definition() for tool in self._tools.values()]

    async def execute(
        self,
        name: str,
        arguments: dict[str, Any],
        sandbox: "SandboxHandle | None" = None,
    ) -> ToolResult:
        """Run a tool. Failures are returned, never raised.

        Sandboxed tools get ``sandbox`` injected and fail without one.
        """
        tool = self.get(name)
        if tool is None:
            return ToolResult(success=False, error=f"Unknown tool: {name}")

        kwargs = dict(arguments)
        if tool.requires_sandbox:
            if sandbox is None:
                return ToolResult(success=False, error=NO_SANDBOX_ERROR)
            kwargs["sandbox"] = sandbox

        logger.info("Executing tool", tool_name=name, arguments=arguments)
        try:
            result = await tool.execute(**kwargs)
        except Exception as e:
            logger.error("Tool execution error", tool_name=name, error=str(e))
            return ToolResult(success=False, error=str(e))

        logger.info("Tool executed", tool_name=name, success=result.success)
        return result


def build_tool_registry(settings: "Settings", sandbox_backend: "SandboxBackend") -> ToolRegistry:
    """Create the registry with the file tools and the sandboxed shell tool."""
    from .file_tool import create_file_tools
    from .shell_tool import ExecuteCommandTool

    return ToolRegistry([
        *create_file_tools(settings.workspace_dir),
        ExecuteCommandTool(sandbox_backend),
    ])
