"""
Shell Command Tool - run commands inside the session's Docker sandbox.
"""

from typing import TYPE_CHECKING, Any

import structlog

from ..errors import SandboxGoneError
from .base import BaseTool, ToolResult

if TYPE_CHECKING:
    from ..sandbox import SandboxBackend, SandboxHandle

logger = structlog.get_logger()

MAX_OUTPUT_LINES = 400
MAX_OUTPUT_CHARS = 20_000


def truncate_output(output: str) -> str:
    """Truncate command output to configured limits."""
    lines = output.split("\n")

    if len(lines) > MAX_OUTPUT_LINES:
        output = "\n".join(lines[:MAX_OUTPUT_LINES]) + f"\n\n... (truncated, {MAX_OUTPUT_LINES} of {len(lines)} lines shown)"

    if len(output) > MAX_OUTPUT_CHARS:
        output = output[:MAX_OUTPUT_CHARS] + "\n\n... (truncated)"

    return output


class ExecuteCommandTool(BaseTool):
    """Runs a shell command in the sandbox container."""

    requires_sandbox = True

    def __init__(self, backend: "SandboxBackend"):
        self.backend = backend

    @property
    def name(self) -> str:
        return "execute_command"

    @property
    def description(self) -> str:
        return "Execute a shell command in the Docker container"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "command": {
                    "type": "string",
                    "description": "The shell command to execute",
                },
            },
            "required": ["command"],
        }

    async def execute(self, command: str, sandbox: "SandboxHandle") -> ToolResult:
        try:
            result = await self.backend.run(sandbox.container_id, command)
        except SandboxGoneError:
            logger.warning("Sandbox gone during command", container_id=sandbox.short_id)
            return ToolResult(
                success=False,
                error="Container crashed. It will be recreated on the next command.",
                data={"sandbox_crashed": True},
            )

        return ToolResult(
            success=result.success,
            data={
                "stdout": truncate_output(result.stdout),
                "stderr": truncate_output(result.stderr),
                "exit_code": result.exit_code,
            },
        )
