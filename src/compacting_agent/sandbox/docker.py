"""
Docker-backed command sandbox.

Drives the ``docker`` CLI through asyncio subprocesses. Each session gets
one long-lived container that idles on ``tail -f /dev/null`` and runs
commands through ``docker exec``.
"""

import asyncio
import os
from dataclasses import dataclass

import structlog

from ..errors import SandboxError, SandboxGoneError

logger = structlog.get_logger()

DEFAULT_IMAGE = "node:20-alpine"
DEFAULT_WORKDIR = "/workspace"
DOCKER_TIMEOUT_SECONDS = 60


@dataclass
class CommandResult:
    """Output of a command run inside the sandbox."""

    stdout: str
    stderr: str
    exit_code: int

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class DockerSandbox:
    """Creates, probes and runs commands in Docker containers."""

    def __init__(
        self,
        image: str = DEFAULT_IMAGE,
        workdir: str = DEFAULT_WORKDIR,
        command_timeout: int = 120,
        docker_bin: str = "docker",
    ):
        self.image = image
        self.workdir = workdir
        self.command_timeout = command_timeout
        self.docker_bin = docker_bin

    async def _docker(self, *args: str, timeout: float = DOCKER_TIMEOUT_SECONDS) -> tuple[int, str, str]:
        """
        Run a docker CLI command.

        Returns:
            Tuple of (return_code, stdout, stderr)
        """
        try:
            process = await asyncio.create_subprocess_exec(
                self.docker_bin,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=os.environ.copy(),
            )
        except OSError as e:
            raise SandboxError(f"Could not run {self.docker_bin}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return -1, "", f"docker {args[0]} timed out after {timeout} seconds"

        return (
            process.returncode,
            stdout.decode("utf-8", errors="replace").strip(),
            stderr.decode("utf-8", errors="replace").strip(),
        )

    async def find(self, name: str) -> tuple[str, bool] | None:
        """Look up a container by exact name.

        Returns (container_id, running) or None if there is no such container.
        """
        code, stdout, stderr = await self._docker(
            "ps", "-a",
            "--filter", f"name=^/{name}$",
            "--format", "{{.ID}} {{.Status}}",
        )
        if code != 0:
            raise SandboxError(f"docker ps failed: {stderr}")
        if not stdout:
            return None

        container_id, _, status = stdout.splitlines()[0].partition(" ")
        return container_id, status.startswith("Up")

    async def create(self, name: str) -> str:
        """Start a new idle container and return its id."""
        code, stdout, stderr = await self._docker(
            "run", "-d",
            "--name", name,
            "-w", self.workdir,
            self.image,
            "sh", "-c", f"mkdir -p {self.workdir} && tail -f /dev/null",
        )
        if code != 0 or not stdout:
            raise SandboxError(f"Failed to create container {name}: {stderr}")

        container_id = stdout.splitlines()[-1].strip()
        logger.info("Sandbox container created", name=name, container_id=container_id[:12])
        return container_id

    async def start(self, container_id: str) -> None:
        code, _, stderr = await self._docker("start", container_id)
        if code != 0:
            raise SandboxError(f"Failed to start container {container_id[:12]}: {stderr}")

    async def remove(self, name: str) -> None:
        """Force-remove a container; a missing container is not an error."""
        code, _, stderr = await self._docker("rm", "-f", name)
        if code != 0 and "No such container" not in stderr:
            logger.warning("Failed to remove container", name=name, error=stderr)

    async def probe(self, container_id: str) -> bool:
        """Whether the container is running."""
        code, stdout, _ = await self._docker(
            "ps",
            "--filter", f"id={container_id}",
            "--format", "{{.ID}}",
        )
        return code == 0 and bool(stdout)

    async def run(self, container_id: str, command: str) -> CommandResult:
        """Run a shell command in the container.

        Raises:
            SandboxGoneError: if the command failed because the container is gone
        """
        code, stdout, stderr = await self._docker(
            "exec", "-w", self.workdir, container_id, "sh", "-c", command,
            timeout=self.command_timeout,
        )

        if code != 0 and not await self.probe(container_id):
            raise SandboxGoneError("Container crashed or was removed")

        return CommandResult(stdout=stdout, stderr=stderr, exit_code=code)
