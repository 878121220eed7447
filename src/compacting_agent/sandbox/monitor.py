"""
Sandbox health tracking.

Keeps at most one live sandbox handle per session and replaces it when a
liveness probe fails.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import structlog

from ..errors import SandboxError

if TYPE_CHECKING:
    from ..agent.session import MessageStore
    from .docker import CommandResult

logger = structlog.get_logger()


class SandboxBackend(Protocol):
    """The execution environment the monitor manages."""

    async def find(self, name: str) -> tuple[str, bool] | None: ...

    async def create(self, name: str) -> str: ...

    async def start(self, container_id: str) -> None: ...

    async def remove(self, name: str) -> None: ...

    async def probe(self, container_id: str) -> bool: ...

    async def run(self, container_id: str, command: str) -> "CommandResult": ...


@dataclass
class SandboxHandle:
    """A live sandbox bound to a session."""

    session_id: str
    container_id: str
    name: str

    @property
    def short_id(self) -> str:
        return self.container_id[:12]


class SandboxMonitor:
    """Ensures each session has a healthy sandbox."""

    def __init__(
        self,
        backend: SandboxBackend,
        store: "MessageStore | None" = None,
        name_prefix: str = "coding-agent",
    ):
        self.backend = backend
        self.store = store
        self.name_prefix = name_prefix
        self._handles: dict[str, SandboxHandle] = {}

    def container_name(self, session_id: str) -> str:
        return f"{self.name_prefix}-{session_id[:8]}"

    def get(self, session_id: str) -> SandboxHandle | None:
        return self._handles.get(session_id)

    async def is_healthy(self, handle: SandboxHandle) -> bool:
        """Probe the sandbox; any probe failure counts as unhealthy."""
        try:
            return await self.backend.probe(handle.container_id)
        except Exception as e:
            logger.warning("Sandbox probe failed", container_id=handle.short_id, error=str(e))
            return False

    async def ensure(self, session_id: str) -> SandboxHandle:
        """Return the session's sandbox, recreating it if it is not healthy."""
        handle = self._handles.get(session_id)
        if handle is not None:
            if await self.is_healthy(handle):
                return handle
            logger.warning("Sandbox unhealthy, recreating", session_id=session_id, container_id=handle.short_id)

        name = self.container_name(session_id)
        container_id = await self._acquire(name)

        handle = SandboxHandle(session_id=session_id, container_id=container_id, name=name)
        self._handles[session_id] = handle

        if self.store is not None:
            await self.store.record_sandbox(session_id, container_id)

        logger.info("Sandbox ready", session_id=session_id, container_id=handle.short_id)
        return handle

    async def recreate(self, session_id: str) -> SandboxHandle:
        """Drop the tracked handle and ensure a fresh one."""
        self._handles.pop(session_id, None)
        return await self.ensure(session_id)

    async def _acquire(self, name: str) -> str:
        """Reuse a same-named container or create one.

        If that fails, force-remove the stale container and create again
        exactly once.
        """
        try:
            existing = await self.backend.find(name)
            if existing is not None:
                container_id, running = existing
                if not running:
                    await self.backend.start(container_id)
                if await self.backend.probe(container_id):
                    return container_id
                logger.warning("Existing container not running, replacing", name=name)
                await self.backend.remove(name)
            return await self.backend.create(name)
        except SandboxError as e:
            logger.warning("Sandbox creation failed, retrying once", name=name, error=str(e))

        await self.backend.remove(name)
        try:
            return await self.backend.create(name)
        except SandboxError as e:
            raise SandboxError(f"Failed to create sandbox container: {e}") from e
