"""
Tests for the sandbox monitor and Docker backend.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, call

from compacting_agent.errors import SandboxError, SandboxGoneError
from compacting_agent.sandbox import DockerSandbox, SandboxHandle, SandboxMonitor


def make_backend() -> AsyncMock:
    backend = AsyncMock()
    backend.find.return_value = None
    backend.create.return_value = "container-1"
    backend.probe.return_value = True
    return backend


def test_container_name_uses_session_prefix():
    """Container names are derived from the first eight characters of the session id."""
    monitor = SandboxMonitor(make_backend(), name_prefix="coding-agent")
    assert monitor.container_name("0123456789abcdef") == "coding-agent-01234567"


def test_handle_short_id():
    handle = SandboxHandle(session_id="s", container_id="0123456789abcdef", name="n")
    assert handle.short_id == "0123456789ab"


@pytest.mark.asyncio
async def test_ensure_creates_once():
    """Repeated ensure calls reuse a healthy sandbox."""
    backend = make_backend()
    monitor = SandboxMonitor(backend)

    first = await monitor.ensure("session-1")
    second = await monitor.ensure("session-1")

    assert first is second
    assert first.container_id == "container-1"
    backend.create.assert_awaited_once()
    assert monitor.get("session-1") is first


@pytest.mark.asyncio
async def test_ensure_records_container():
    """The container id is recorded in the store when one is given."""
    backend = make_backend()
    store = MagicMock()
    store.record_sandbox = AsyncMock()
    monitor = SandboxMonitor(backend, store=store)

    await monitor.ensure("session-1")

    store.record_sandbox.assert_awaited_once_with("session-1", "container-1")


@pytest.mark.asyncio
async def test_ensure_recreates_unhealthy_sandbox():
    """A failed probe replaces the sandbox."""
    backend = make_backend()
    backend.create.side_effect = ["container-1", "container-2"]
    monitor = SandboxMonitor(backend)

    await monitor.ensure("session-1")
    backend.probe.return_value = False

    handle = await monitor.ensure("session-1")

    assert handle.container_id == "container-2"
    assert backend.create.await_count == 2


@pytest.mark.asyncio
async def test_is_healthy_probe_exception():
    """A probe that raises counts as unhealthy."""
    backend = make_backend()
    backend.probe.side_effect = RuntimeError("docker daemon unreachable")
    monitor = SandboxMonitor(backend)
    handle = SandboxHandle(session_id="s", container_id="c", name="n")

    assert await monitor.is_healthy(handle) is False


@pytest.mark.asyncio
async def test_ensure_reuses_existing_container():
    """A running container with the session's name is adopted."""
    backend = make_backend()
    backend.find.return_value = ("existing-1", True)
    monitor = SandboxMonitor(backend)

    handle = await monitor.ensure("session-1")

    assert handle.container_id == "existing-1"
    backend.create.assert_not_awaited()
    backend.start.assert_not_awaited()


@pytest.mark.asyncio
async def test_ensure_starts_stopped_container():
    """A stopped container with the session's name is started and adopted."""
    backend = make_backend()
    backend.find.return_value = ("existing-1", False)
    monitor = SandboxMonitor(backend)

    handle = await monitor.ensure("session-1")

    backend.start.assert_awaited_once_with("existing-1")
    assert handle.container_id == "existing-1"


@pytest.mark.asyncio
async def test_ensure_retries_after_create_failure():
    """A failed creation force-removes the name and retries once."""
    backend = make_backend()
    backend.create.side_effect = [SandboxError("name in use"), "container-2"]
    monitor = SandboxMonitor(backend)

    handle = await monitor.ensure("session-1")

    assert handle.container_id == "container-2"
    assert backend.create.await_count == 2
    backend.remove.assert_awaited_once_with(monitor.container_name("session-1"))


@pytest.mark.asyncio
async def test_ensure_fails_after_second_failure():
    """Two failed creations raise SandboxError with no third attempt."""
    backend = make_backend()
    backend.create.side_effect = SandboxError("image not found")
    monitor = SandboxMonitor(backend)

    with pytest.raises(SandboxError, match="Failed to create sandbox container"):
        await monitor.ensure("session-1")

    assert backend.create.await_count == 2
    assert monitor.get("session-1") is None


@pytest.mark.asyncio
async def test_recreate_replaces_handle():
    """recreate always builds a new sandbox, even if the old one looks healthy."""
    backend = make_backend()
    backend.create.side_effect = ["container-1", "container-2"]
    monitor = SandboxMonitor(backend)

    await monitor.ensure("session-1")
    handle = await monitor.recreate("session-1")

    assert handle.container_id == "container-2"


@pytest.mark.asyncio
async def test_docker_run_success():
    """Command output and exit code are returned."""
    sandbox = DockerSandbox()
    sandbox._docker = AsyncMock(return_value=(0, "hello", ""))

    result = await sandbox.run("container-1", "echo hello")

    assert result.success
    assert result.stdout == "hello"
    args = sandbox._docker.call_args.args
    assert args[:4] == ("exec", "-w", "/workspace", "container-1")
    assert args[-1] == "echo hello"


@pytest.mark.asyncio
async def test_docker_run_failed_command():
    """A failing command in a live container is a normal result."""
    sandbox = DockerSandbox()
    sandbox._docker = AsyncMock(side_effect=[(1, "", "not found"), (0, "container-1", "")])

    result = await sandbox.run("container-1", "cat missing")

    assert result.exit_code == 1
    assert not result.success


@pytest.mark.asyncio
async def test_docker_run_container_gone():
    """A failing command in a dead container raises SandboxGoneError."""
    sandbox = DockerSandbox()
    sandbox._docker = AsyncMock(side_effect=[(137, "", "killed"), (0, "", "")])

    with pytest.raises(SandboxGoneError):
        await sandbox.run("container-1", "sleep 100")


@pytest.mark.asyncio
async def test_docker_find_parses_status():
    """find reports the container id and whether it is running."""
    sandbox = DockerSandbox()
    sandbox._docker = AsyncMock(return_value=(0, "abc123 Up 3 minutes", ""))
    assert await sandbox.find("coding-agent-1") == ("abc123", True)

    sandbox._docker = AsyncMock(return_value=(0, "abc123 Exited (0) 2 hours ago", ""))
    assert await sandbox.find("coding-agent-1") == ("abc123", False)

    sandbox._docker = AsyncMock(return_value=(0, "", ""))
    assert await sandbox.find("coding-agent-1") is None


@pytest.mark.asyncio
async def test_docker_create_failure():
    """A failed docker run raises SandboxError."""
    sandbox = DockerSandbox(image="node:20-alpine")
    sandbox._docker = AsyncMock(return_value=(125, "", "Conflict. The container name is already in use"))

    with pytest.raises(SandboxError):
        await sandbox.create("coding-agent-1")


@pytest.mark.asyncio
async def test_docker_remove_tolerates_missing():
    """Removing a missing container is not an error."""
    sandbox = DockerSandbox()
    sandbox._docker = AsyncMock(return_value=(1, "", "Error: No such container: x"))

    await sandbox.remove("x")

    assert sandbox._docker.call_args == call("rm", "-f", "x")
