"""
File Operations Tool - Read, write, and list files in the workspace.

Paths are resolved relative to the workspace root. A leading ``/`` is
treated as the workspace root, and nothing outside it can be touched.
"""

from pathlib import Path
from typing import Any, Callable

import structlog

from .base import FunctionTool, Handler, ToolParameter, ToolResult

logger = structlog.get_logger()


class FileManager:
    """Manages file operations within a workspace directory."""

    def __init__(self, workspace_dir: str = "."):
        self.workspace_dir = Path(workspace_dir).expanduser().resolve()

    def _resolve(self, path: str) -> Path:
        """Resolve a tool-supplied path inside the workspace."""
        relative = path.lstrip("/") or "."
        resolved = (self.workspace_dir / relative).resolve()

        if resolved != self.workspace_dir and self.workspace_dir not in resolved.parents:
            logger.warning("Path outside workspace", path=path)
            raise PermissionError(f"Access denied: {path}")

        return resolved

    def read_file(self, path: str) -> str:
        """Read a file's contents."""
        file_path = self._resolve(path)

        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {path}")

        if not file_path.is_file():
            raise IsADirectoryError(f"Path is a directory: {path}")

        return file_path.read_text(encoding="utf-8")

    def write_file(self, path: str, content: str) -> str:
        """Write content to a file, creating parent directories."""
        file_path = self._resolve(path)

        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(content, encoding="utf-8")

        return f"File written to {path.lstrip('/')}"

    def list_directory(self, path: str = ".") -> list[dict[str, Any]]:
        """List the entries of a directory."""
        dir_path = self._resolve(path)

        if not dir_path.exists():
            raise FileNotFoundError(f"Directory not found: {path}")

        if not dir_path.is_dir():
            raise NotADirectoryError(f"Path is not a directory: {path}")

        entries = []
        for entry in sorted(dir_path.iterdir()):
            stats = entry.stat()
            entries.append({
                "name": entry.name,
                "type": "directory" if entry.is_dir() else "file",
                "size": stats.st_size,
            })
        return entries


def _failure_as_result(operation: Callable[..., dict[str, Any]]) -> Handler:
    """Wrap a synchronous file operation as a tool handler."""

    async def handler(**kwargs: Any) -> ToolResult:
        try:
            return ToolResult(success=True, data=operation(**kwargs))
        except (OSError, UnicodeDecodeError) as e:
            return ToolResult(success=False, error=str(e))

    return handler


def create_file_tools(workspace_dir: str = ".") -> list[FunctionTool]:
    """Create the read, write and list tools bound to one workspace."""
    manager = FileManager(workspace_dir)

    path_param = ToolParameter(
        name="path",
        param_type="string",
        description="Path relative to the workspace root",
    )

    return [
        FunctionTool(
            name="read_file",
            description="Read the contents of a file",
            parameters=[path_param],
            handler=_failure_as_result(lambda path: {"content": manager.read_file(path)}),
        ),
        FunctionTool(
            name="write_file",
            description="Write content to a file, creating parent directories",
            parameters=[
                path_param,
                ToolParameter(
                    name="content",
                    param_type="string",
                    description="The content to write to the file",
                ),
            ],
            handler=_failure_as_result(
                lambda path, content: {"message": manager.write_file(path, content)}
            ),
        ),
        FunctionTool(
            name="list_directory",
            description="List files and directories in a path. Use '.' for the workspace root.",
            parameters=[path_param],
            handler=_failure_as_result(lambda path=".": {"entries": manager.list_directory(path)}),
        ),
    ]
