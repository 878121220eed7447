"""
Sandbox module - isolated execution of shell commands.
"""

from .docker import CommandResult, DockerSandbox
from .monitor import SandboxBackend, SandboxHandle, SandboxMonitor

__all__ = [
    "CommandResult",
    "DockerSandbox",
    "SandboxBackend",
    "SandboxHandle",
    "SandboxMonitor",
]
