"""
Core agent implementation with context budget management.

This is the brain of the system. For every user message it:
1. Persists the message and keeps the in-memory working list in step
2. Makes sure the command sandbox is alive
3. Runs the model/tool loop until the model stops asking for tools
4. Compacts the conversation when the reported input size crosses the
   proactive threshold
5. Recovers from a context overflow with one emergency compaction and retry
"""

from dataclasses import dataclass, field
from typing import Any, Callable

import structlog

from ..config import Settings, get_settings
from ..errors import AgentError, ErrorKind, OverflowClassifier, SandboxError, classify_error
from ..llm import BaseLLM, LLMMessage, ToolCall, create_llm
from ..llm.base import STOP_END_TURN
from ..models import MessageRole
from ..sandbox import SandboxHandle, SandboxMonitor
from ..tools import ToolRegistry, ToolResult, build_tool_registry
from .budget import consumption_score, should_compact
from .compaction import CompactionConfig, compact_conversation, emergency_compact
from .session import MessageStore

logger = structlog.get_logger()

DEFAULT_SYSTEM_PROMPT = """You are a helpful coding assistant. You can read and write files, execute commands in a Docker container, and help with programming tasks.

You have access to these tools:
- **read_file** / **write_file**: File operations in the local workspace
- **list_directory**: List files and directories in a path
- **execute_command**: Run a shell command in the Docker container

The Docker container is running and ready. You can execute commands using the execute_command tool.
The workspace directory in the container is {workdir}.

When working on tasks:
1. Break down complex tasks into smaller steps
2. Test your code as you go
3. Provide clear explanations of what you're doing
4. Handle errors gracefully"""

RETRY_NOTICE = "\n\n[Context limit reached. Conversation compacted, retrying.]\n\n"

TextCallback = Callable[[str], None]
ToolCallback = Callable[[ToolCall, ToolResult], None]


@dataclass
class ConversationContext:
    """State of one session, owned by the caller and passed to every step."""

    session_id: str
    messages: list[LLMMessage] = field(default_factory=list)
    system_messages: list[LLMMessage] = field(default_factory=list)
    system_prompt: str = ""
    sandbox: SandboxHandle | None = None
    last_input_tokens: int | None = None
    last_output_tokens: int = 0
    compaction_count: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    def add_user_message(self, content: str) -> None:
        """Add a user message."""
        self.messages.append(LLMMessage(role="user", content=content))

    def add_assistant_message(self, content: str) -> None:
        """Add an assistant message."""
        self.messages.append(LLMMessage(role="assistant", content=content))

    def replace_messages(self, messages: list[LLMMessage]) -> None:
        """Swap in a new history, keeping system turns apart from the working list."""
        self.system_messages = [m for m in messages if m.role == "system"]
        self.messages = [m for m in messages if m.role != "system"]

    @property
    def history(self) -> list[LLMMessage]:
        """The full stored history: system turns first, then the working list."""
        return self.system_messages + self.messages

    @property
    def message_count(self) -> int:
        """Get the number of messages."""
        return len(self.messages)


@dataclass
class TurnResult:
    """Outcome of processing one user message."""

    text: str
    error: AgentError | None = None
    attempts: int = 1
    compacted: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


class Agent:
    """Processes user messages against the LLM with tools and compaction."""

    def __init__(
        self,
        store: MessageStore,
        sandbox_monitor: SandboxMonitor,
        llm: BaseLLM | None = None,
        tool_registry: ToolRegistry | None = None,
        settings: Settings | None = None,
        system_prompt: str | None = None,
        compaction_config: CompactionConfig | None = None,
        overflow_classifier: OverflowClassifier | None = None,
        on_text: TextCallback | None = None,
        on_tool: ToolCallback | None = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.sandbox_monitor = sandbox_monitor
        self.llm = llm or create_llm(settings=self.settings)
        self.tool_registry = tool_registry or build_tool_registry(self.settings, sandbox_monitor.backend)
        self.compaction_config = compaction_config or CompactionConfig.from_settings(self.settings)
        self.overflow_classifier = overflow_classifier
        self.on_text = on_text
        self.on_tool = on_tool

        self.max_attempts = self.settings.max_attempts
        self.max_tool_iterations = self.settings.max_tool_iterations
        self.tokens_per_char = self.settings.tokens_per_char

        self.system_prompt = system_prompt or DEFAULT_SYSTEM_PROMPT.format(
            workdir=self.settings.sandbox_workdir,
        )

    async def start_session(self, session_id: str | None = None) -> ConversationContext:
        """Create or resume a session and bring up its sandbox.

        Raises:
            SandboxError: if the sandbox cannot be created
        """
        current_id = await self.store.get_or_create_session(session_id)
        resumed = session_id is not None and current_id == session_id

        rows = await self.store.load(current_id)

        context = ConversationContext(
            session_id=current_id,
            system_prompt=self.system_prompt,
            metadata={"resumed": resumed},
        )
        context.replace_messages([LLMMessage(role=row.role, content=row.content) for row in rows])  # type: ignore[arg-type]
        context.sandbox = await self.sandbox_monitor.ensure(current_id)

        logger.info(
            "Session started",
            session_id=current_id,
            resumed=resumed,
            messages=len(rows),
        )
        return context

    async def process_message(self, message: str, context: ConversationContext) -> TurnResult:
        """Process one user message.

        Storage errors propagate. Transport errors are recorded as an
        assistant turn and returned in ``TurnResult.error``.
        """
        await self.store.append(context.session_id, MessageRole.USER, message)
        context.add_user_message(message)

        # Without a reported count yet, fall back to the estimate
        compacted = False
        if context.last_input_tokens is None:
            compacted = await self._maybe_compact(context)

        await self._ensure_sandbox(context)

        for attempt in range(1, self.max_attempts + 1):
            emitted: list[str] = []
            try:
                response_text = await self._run_model_loop(context, emitted)
            except Exception as e:
                error = classify_error(e, self.overflow_classifier)

                if error.kind == ErrorKind.STORAGE:
                    raise

                if error.kind == ErrorKind.CONTEXT_OVERFLOW and attempt < self.max_attempts:
                    logger.warning(
                        "Context overflow, compacting and retrying",
                        session_id=context.session_id,
                        attempt=attempt,
                        error=error.message,
                    )
                    await self._compact(context, emergency=True)
                    compacted = True
                    if emitted:
                        self._emit(RETRY_NOTICE)
                    continue

                logger.error(
                    "Turn failed",
                    session_id=context.session_id,
                    kind=error.kind.value,
                    attempt=attempt,
                    error=error.message,
                )
                error_text = f"Error: {error.message}"
                await self._record_assistant(context, error_text)
                return TurnResult(text=error_text, error=error, attempts=attempt, compacted=compacted)

            if response_text.strip():
                await self._record_assistant(context, response_text)

            if await self._maybe_compact(context):
                compacted = True

            return TurnResult(text=response_text, attempts=attempt, compacted=compacted)

        # max_attempts is validated to be >= 1, so the loop always returns
        raise RuntimeError("attempt loop exited without a result")

    async def _run_model_loop(self, context: ConversationContext, emitted: list[str]) -> str:
        """Call the model until it stops requesting tools; return its text.

        Text sent through ``on_text`` is also collected in ``emitted``.
        """
        tools = self.tool_registry.get_definitions()
        request_messages = list(context.messages)
        response_text = ""

        for iteration in range(1, self.max_tool_iterations + 1):
            response = await self.llm.generate(
                messages=request_messages,
                tools=tools if tools else None,
                system_prompt=self._system_prompt_for(context),
            )
            # None when the provider reported no usage; the estimate applies then
            context.last_input_tokens = response.input_tokens
            context.last_output_tokens = response.output_tokens

            if response.content:
                self._emit(response.content)
                emitted.append(response.content)
                response_text += response.content

            if not response.wants_tools:
                return response_text

            request_messages.append(LLMMessage(
                role="assistant",
                content=response.content,
                tool_calls=response.tool_calls,
            ))

            for tool_call in response.tool_calls:
                result = await self._execute_tool(tool_call, context)
                request_messages.append(LLMMessage(
                    role="tool",
                    content=result.to_payload(),
                    tool_call_id=tool_call.id,
                    name=tool_call.name,
                ))

            if response.stop_reason == STOP_END_TURN:
                return response_text

        logger.warning(
            "Reached maximum tool iterations",
            session_id=context.session_id,
            iterations=self.max_tool_iterations,
        )
        return response_text

    async def _execute_tool(self, tool_call: ToolCall, context: ConversationContext) -> ToolResult:
        result = await self.tool_registry.execute(
            tool_call.name,
            tool_call.arguments,
            sandbox=context.sandbox,
        )

        if self.on_tool is not None:
            self.on_tool(tool_call, result)

        if result.data and result.data.get("sandbox_crashed"):
            logger.warning("Sandbox crashed during tool call, recreating", session_id=context.session_id)
            await self._recreate_sandbox(context)

        return result

    async def _ensure_sandbox(self, context: ConversationContext) -> None:
        try:
            context.sandbox = await self.sandbox_monitor.ensure(context.session_id)
        except SandboxError as e:
            logger.error("Sandbox unavailable", session_id=context.session_id, error=str(e))
            context.sandbox = None

    async def _recreate_sandbox(self, context: ConversationContext) -> None:
        try:
            context.sandbox = await self.sandbox_monitor.recreate(context.session_id)
        except SandboxError as e:
            logger.error("Sandbox recreation failed", session_id=context.session_id, error=str(e))
            context.sandbox = None

    async def _maybe_compact(self, context: ConversationContext) -> bool:
        """Run compaction if the context is over the proactive threshold."""
        if not self.compaction_config.enabled:
            return False

        score = consumption_score(context.history, context.last_input_tokens, self.tokens_per_char)
        threshold = self.compaction_config.threshold_tokens

        if not should_compact(score, threshold):
            return False

        logger.info(
            "Context approaching limit, running compaction",
            session_id=context.session_id,
            tokens=score,
            reported=context.last_input_tokens is not None,
            threshold=threshold,
        )
        await self._compact(context, emergency=False)
        return True

    async def _compact(self, context: ConversationContext, emergency: bool) -> None:
        """Compact the history, persist it and swap the working list."""
        config = self.compaction_config
        if emergency:
            compacted, result = await emergency_compact(
                self.llm,
                context.history,
                keep_last=config.emergency_keep_recent_messages,
                max_summary_tokens=config.summary_max_tokens,
            )
        else:
            compacted, result = await compact_conversation(
                self.llm,
                context.history,
                keep_last=config.keep_recent_messages,
                max_summary_tokens=config.summary_max_tokens,
            )

        await self.store.replace_all(context.session_id, compacted)
        context.replace_messages(list(compacted))
        context.last_input_tokens = None

        if result.changed:
            context.compaction_count += 1
        if result.used_fallback:
            context.metadata["last_compaction_fallback"] = result.error

    async def _record_assistant(self, context: ConversationContext, content: str) -> None:
        await self.store.append(context.session_id, MessageRole.ASSISTANT, content)
        context.add_assistant_message(content)

    def _system_prompt_for(self, context: ConversationContext) -> str:
        parts = [context.system_prompt or self.system_prompt]
        parts.extend(m.content for m in context.system_messages)
        return "\n\n".join(p for p in parts if p)

    def _emit(self, text: str) -> None:
        if self.on_text is not None:
            self.on_text(text)
