"""Command-line entry point: run one prompt in print mode."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import uuid

from agentcore.agent.session import AgentSession
from agentcore.config import Settings
from agentcore.errors import AbortedError, AgentCoreError
from agentcore.events import EventType, ExecutionEvent
from agentcore.llm.client import OpenAICompatibleClient
from agentcore.session.sql import SqlSessionStore
from agentcore.session.store import FileSessionStore, SessionStore
from agentcore.tools.builtin import register_builtin_tools
from agentcore.tools.registry import ToolRegistry
from agentcore.tools.types import ConfirmDetails, ConfirmOutcome

logger = logging.getLogger(__name__)

_ANSWERS = {
    "y": ConfirmOutcome.ALLOW,
    "yes": ConfirmOutcome.ALLOW,
    "a": ConfirmOutcome.ALLOW_ALWAYS,
    "always": ConfirmOutcome.ALLOW_ALWAYS,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="agentcore", description="Run a coding agent turn.")
    parser.add_argument("-p", "--prompt", required=True, help="User instruction")
    parser.add_argument("--session", help="Session id to resume or create")
    parser.add_argument(
        "--approval-mode",
        choices=["default", "autoEdit", "yolo", "fullAuto"],
        help="Override AGENTCORE_APPROVAL_MODE",
    )
    parser.add_argument("--log-level", help="Override AGENTCORE_LOG_LEVEL")
    return parser


async def confirm_on_stdin(call_id: str, tool_name: str, details: ConfirmDetails) -> ConfirmOutcome:
    print(f"\n[{tool_name}] {details.title}", file=sys.stderr)
    for label, value in (
        ("command", details.command),
        ("file", details.file_path),
        ("preview", details.content_preview),
        ("details", details.message),
    ):
        if value:
            print(f"  {label}: {value}", file=sys.stderr)
    answer = await asyncio.to_thread(input, "Allow? [y]es / [a]lways / [N]o: ")
    return _ANSWERS.get(answer.strip().lower(), ConfirmOutcome.CANCEL)


def print_event(event: ExecutionEvent) -> None:
    data = event.data
    if event.type == EventType.TOOL_EXECUTING:
        print(f"-> {data['tool_name']} {data.get('params_summary', '')}", file=sys.stderr)
    elif event.type == EventType.TOOL_COMPLETE:
        print(f"   {data.get('summary', 'done')}", file=sys.stderr)
    elif event.type == EventType.TOOL_ERROR:
        print(f"   error: {data.get('error')}", file=sys.stderr)
    elif event.type == EventType.TOOL_CANCELLED:
        print(f"   cancelled: {data.get('reason')}", file=sys.stderr)
    elif event.type == EventType.COMPRESSION_COMPLETE and data.get("compressed"):
        print(
            f"(compressed history {data['original_tokens']} -> {data['compressed_tokens']} tokens)",
            file=sys.stderr,
        )


async def _open_store(settings: Settings) -> SessionStore:
    if settings.session_dir:
        return FileSessionStore(settings.session_dir)
    store = SqlSessionStore(settings.session_db_url)
    await store.connect()
    return store


async def run(args: argparse.Namespace, settings: Settings) -> int:
    store = await _open_store(settings)
    registry = ToolRegistry()
    register_builtin_tools(registry, settings)
    session_id = args.session or uuid.uuid4().hex[:12]

    try:
        async with OpenAICompatibleClient(settings) as llm:
            async with AgentSession(
                settings,
                llm,
                registry=registry,
                store=store,
                session_id=session_id,
                confirm=confirm_on_stdin,
            ) as session:
                session.stream.on(print_event)
                try:
                    answer = await session.run(args.prompt)
                except AbortedError as e:
                    print(f"Aborted: {e.reason}", file=sys.stderr)
                    return 130
                except AgentCoreError as e:
                    print(f"Error: {e}", file=sys.stderr)
                    return 1
                print(answer)
                snapshot = session.stream.get_snapshot()
                logger.info(
                    "Session %s: %d tokens, %d tool calls, $%.4f",
                    session_id,
                    snapshot.stats.total_tokens,
                    snapshot.stats.tool_call_count,
                    session.stats.total_cost,
                )
                return 0
    finally:
        if isinstance(store, SqlSessionStore):
            await store.disconnect()


def main() -> None:
    """Entry point: parse settings and arguments, then run one turn."""
    args = build_parser().parse_args()
    overrides = {}
    if args.approval_mode:
        overrides["approval_mode"] = args.approval_mode
    if args.log_level:
        overrides["log_level"] = args.log_level
    settings = Settings(**overrides)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    try:
        sys.exit(asyncio.run(run(args, settings)))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
