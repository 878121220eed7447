"""Shared fixtures for compacting-agent tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from compacting_agent.agent.session import MessageStore
from compacting_agent.config import Settings
from compacting_agent.llm.base import LLMMessage, LLMResponse
from compacting_agent.models import init_database
from compacting_agent.sandbox import SandboxHandle


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        anthropic_api_key="test-key",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        workspace_dir=str(tmp_path),
    )


@pytest_asyncio.fixture
async def session_maker(settings):
    maker = await init_database(settings.database_url)
    yield maker
    await maker.kw["bind"].dispose()


@pytest_asyncio.fixture
async def store(session_maker):
    """MessageStore backed by a temp SQLite database."""
    return MessageStore(session_maker)


@pytest.fixture
def handle():
    return SandboxHandle(session_id="sess-1", container_id="abc123def4567890", name="coding-agent-sess-1")


@pytest.fixture
def mock_monitor(handle):
    monitor = MagicMock()
    monitor.ensure = AsyncMock(return_value=handle)
    monitor.recreate = AsyncMock(return_value=handle)
    return monitor


@pytest.fixture
def mock_store():
    store = MagicMock()
    store.append = AsyncMock()
    store.replace_all = AsyncMock()
    store.load = AsyncMock(return_value=[])
    store.get_or_create_session = AsyncMock(return_value="sess-1")
    return store


@pytest.fixture
def mock_registry():
    registry = MagicMock()
    registry.get_definitions.return_value = []
    registry.execute = AsyncMock()
    return registry


def make_response(content: str = "", tool_calls=None, input_tokens: int | None = 10, stop_reason: str = "end_turn") -> LLMResponse:
    return LLMResponse(
        content=content,
        tool_calls=tool_calls or [],
        input_tokens=input_tokens,
        output_tokens=5,
        stop_reason=stop_reason,
    )


def make_conversation(count: int) -> list[LLMMessage]:
    """Alternating user/assistant messages numbered from 1."""
    return [
        LLMMessage(role="user" if i % 2 else "assistant", content=f"turn{i}")
        for i in range(1, count + 1)
    ]
