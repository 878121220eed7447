"""
Command-line interface for Compacting-Agent.

Runs one interactive, resumable session:

    compacting-agent [SESSION_ID]
"""

import argparse
import asyncio
import logging
import sys

import structlog

from .agent import Agent, MessageStore
from .config import Settings, get_settings
from .errors import SandboxError
from .llm import ToolCall, create_llm
from .models import init_database
from .sandbox import DockerSandbox, SandboxMonitor
from .tools import ToolResult, build_tool_registry

logger = structlog.get_logger()


def configure_logging(level: str) -> None:
    """Route structlog through stdlib logging at the configured level."""
    logging.basicConfig(level=level.upper(), format="%(message)s", stream=sys.stderr)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=True),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def main() -> None:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="compacting-agent",
        description="Context-compacting coding agent with resumable sessions",
    )
    parser.add_argument(
        "session_id",
        nargs="?",
        default=None,
        help="Session to resume (a new session is created if omitted or unknown)",
    )
    parser.add_argument(
        "--provider",
        choices=["anthropic", "openai", "openrouter"],
        default=None,
        help="LLM provider (default: from configuration)",
    )
    parser.add_argument("--model", default=None, help="Model name override")

    args = parser.parse_args()

    settings = get_settings()
    configure_logging(settings.log_level)

    if not settings.has_llm_key(args.provider):
        provider = args.provider or settings.default_provider
        print(f"❌ An API key for '{provider}' is required (e.g. {provider.upper()}_API_KEY)", file=sys.stderr)
        sys.exit(1)

    sys.exit(asyncio.run(run_session(settings, args.session_id, args.provider, args.model)))


def _print_text(text: str) -> None:
    print(text, end="", flush=True)


def _print_tool(tool_call: ToolCall, result: ToolResult) -> None:
    payload = result.to_payload()
    preview = payload[:100] + ("..." if len(payload) > 100 else "")
    print(f"\n🔧 Using tool: {tool_call.name}")
    print(f"   Result: {preview}")


async def run_session(
    settings: Settings,
    session_id: str | None = None,
    provider: str | None = None,
    model: str | None = None,
) -> int:
    """Run the interactive loop. Returns the process exit code."""
    print("🤖 Context-Compacting Coding Agent")
    print("===================================\n")

    session_maker = await init_database(settings.database_url)
    store = MessageStore(session_maker)
    print("✅ Database initialized\n")

    backend = DockerSandbox(
        image=settings.sandbox_image,
        workdir=settings.sandbox_workdir,
        command_timeout=settings.command_timeout_seconds,
    )
    monitor = SandboxMonitor(backend, store=store, name_prefix=settings.sandbox_name_prefix)

    llm_config = settings.get_llm_config(provider)
    if model:
        llm_config.model = model

    agent = Agent(
        store,
        monitor,
        llm=create_llm(llm_config),
        tool_registry=build_tool_registry(settings, backend),
        settings=settings,
        on_text=_print_text,
        on_tool=_print_tool,
    )

    try:
        context = await agent.start_session(session_id)
    except SandboxError as e:
        print(f"❌ Failed to set up Docker container: {e}", file=sys.stderr)
        print("   Make sure Docker is running and accessible.", file=sys.stderr)
        return 1

    if context.metadata.get("resumed"):
        print(f"📂 Resuming session: {context.session_id} ({context.message_count} messages)\n")
    else:
        print(f"📂 New session: {context.session_id}\n")

    if context.sandbox is not None:
        print(f"🐳 Docker container ready: {context.sandbox.short_id}\n")

    print(f"💬 Agent ready! Type your message (or '{settings.exit_command}' to quit):\n")

    while True:
        try:
            user_input = await asyncio.to_thread(input, "You: ")
        except (EOFError, KeyboardInterrupt):
            print()
            break

        if user_input.strip().lower() == settings.exit_command.lower():
            print("\n👋 Goodbye!")
            break

        if not user_input.strip():
            continue

        result = await agent.process_message(user_input, context)

        if result.error is not None:
            print(f"\n❌ {result.text}")
        if result.compacted:
            print(f"\n🔄 Conversation compacted ({context.message_count} messages kept)")

        print("\n")

    return 0


if __name__ == "__main__":
    main()
