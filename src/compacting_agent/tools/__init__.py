"""
Tools the agent offers to the model.
"""

from .base import BaseTool, FunctionTool, ToolParameter, ToolResult
from .registry import ToolRegistry, build_tool_registry
from .file_tool import FileManager, create_file_tools
from .shell_tool import ExecuteCommandTool

__all__ = [
    "BaseTool",
    "FunctionTool",
    "ToolParameter",
    "ToolResult",
    "ToolRegistry",
    "build_tool_registry",
    "FileManager",
    "create_file_tools",
    "ExecuteCommandTool",
]
