"""End-to-end tests for AgentSession driven by a scripted LLM."""

import asyncio
import json

import pytest

from agentcore.agent.session import AgentSession
from agentcore.context.compressor import SUMMARY_PREFIX
from agentcore.context.models import Message, ToolCall
from agentcore.errors import (
    AbortedError,
    ContextOverflowError,
    LLMError,
    MaxLoopsExceededError,
    TransientLLMError,
)
from agentcore.events import EventType, ExecutionState
from agentcore.session.models import CheckpointStats, SessionCheckpoint, StoredMessage
from agentcore.session.store import InMemorySessionStore
from agentcore.tools.builtin import register_builtin_tools
from agentcore.tools.registry import FunctionTool, ToolRegistry
from agentcore.tools.scheduler import NO_CONFIRM_HANDLER
from agentcore.tools.types import ConfirmOutcome
from tests.conftest import ScriptedLLM, reply


def _registry(settings) -> ToolRegistry:
    registry = ToolRegistry()
    register_builtin_tools(registry, settings)
    return registry


def _stored_history(n: int) -> list[StoredMessage]:
    messages = []
    for i in range(n):
        role = "user" if i % 2 == 0 else "assistant"
        text = f"{role} {i} " + "z" * 400
        messages.append(StoredMessage.from_message(Message(role=role, content=text, id=f"m{i}")))
    return messages


class TestTurns:
    @pytest.mark.asyncio
    async def test_plain_answer(self, settings):
        llm = ScriptedLLM([reply("hello there")])
        async with AgentSession(settings, llm, system_prompt="SYS") as session:
            result = await session.run("hi")
            assert result == "hello there"
            assert [m.role for m in llm.calls[0]] == ["system", "user"]
            assert [m.role for m in session.context.get_history()] == ["user", "assistant"]
            assert session.stream.get_snapshot().state == ExecutionState.COMPLETED

    @pytest.mark.asyncio
    async def test_tool_round_trip(self, settings, tmp_path):
        workspace = tmp_path / "workspace"
        workspace.mkdir()
        (workspace / "readme.md").write_text("hi")
        llm = ScriptedLLM(
            [
                reply("Looking", [ToolCall(id="c1", name="list_files", arguments='{"path": "."}')]),
                reply("There is one file."),
            ]
        )
        events = []
        async with AgentSession(settings, llm, registry=_registry(settings)) as session:
            session.stream.on(lambda e: events.append(e.type))
            result = await session.run("what files?")

        assert result == "There is one file."
        second_call = llm.calls[1]
        tool_msg = second_call[-1]
        assert tool_msg.role == "tool" and tool_msg.tool_call_id == "c1"
        assert json.loads(tool_msg.content) == {"path": ".", "entries": ["readme.md"]}
        assert EventType.TOOL_VALIDATING in events
        assert EventType.TOOL_COMPLETE in events
        assert events[-1] == EventType.EXECUTION_COMPLETE

    @pytest.mark.asyncio
    async def test_confirmation_without_handler_reports_cancel(self, settings):
        llm = ScriptedLLM(
            [
                reply("", [ToolCall(id="c1", name="bash", arguments='{"command": "rm -rf x"}')]),
                reply("ok, not running it"),
            ]
        )
        async with AgentSession(settings, llm, registry=_registry(settings)) as session:
            await session.run("clean up")
            tool_msg = session.context.get_history()[2]

        assert json.loads(tool_msg.content) == {"status": "cancelled", "message": NO_CONFIRM_HANDLER}

    @pytest.mark.asyncio
    async def test_confirm_callback_allow_always_records_key(self, settings):
        prompts = []

        async def confirm(call_id, tool_name, details):
            prompts.append(details.command)
            return ConfirmOutcome.ALLOW_ALWAYS

        llm = ScriptedLLM(
            [
                reply("", [ToolCall(id="c1", name="bash", arguments='{"command": "echo 1"}')]),
                reply("", [ToolCall(id="c2", name="bash", arguments='{"command": "echo 2"}')]),
                reply("done"),
            ]
        )
        async with AgentSession(
            settings, llm, registry=_registry(settings), confirm=confirm
        ) as session:
            assert await session.run("echo twice") == "done"
            assert session.scheduler.allowlist.has("bash:echo")
        assert prompts == ["echo 1"]

    @pytest.mark.asyncio
    async def test_unknown_tool_is_reported_to_model(self, settings):
        llm = ScriptedLLM([reply("", [ToolCall(id="c1", name="nope")]), reply("sorry")])
        async with AgentSession(settings, llm) as session:
            await session.run("x")
        tool_msg = llm.calls[1][-1]
        assert json.loads(tool_msg.content) == {"status": "error", "message": "Unknown tool: nope"}

    @pytest.mark.asyncio
    async def test_stats_accumulate(self, settings):
        llm = ScriptedLLM([reply("a", tokens=100), reply("b", tokens=50)])
        async with AgentSession(settings, llm) as session:
            await session.run("1")
            await session.run("2")
            assert session.stats.input_tokens == 150
            assert session.stats.output_tokens == 150
            assert session.stats.call_count == 2


class TestFailures:
    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self, settings):
        llm = ScriptedLLM([TransientLLMError("503"), reply("recovered")])
        async with AgentSession(settings, llm) as session:
            assert await session.run("hi") == "recovered"
        assert len(llm.calls) == 2

    @pytest.mark.asyncio
    async def test_permanent_error_archives_turn(self, settings):
        llm = ScriptedLLM([LLMError("400 bad request")])
        async with AgentSession(settings, llm) as session:
            with pytest.raises(LLMError):
                await session.run("hi")
            assert [m.content for m in session.context.get_history()] == ["hi"]
            assert session.stream.get_snapshot().state == ExecutionState.ERROR
            assert not session.is_running

    @pytest.mark.asyncio
    async def test_overflow_blocks_llm_call(self, settings):
        settings.model_limit = 100
        settings.enable_compression = False
        llm = ScriptedLLM([reply("never")])
        async with AgentSession(settings, llm, system_prompt="") as session:
            with pytest.raises(ContextOverflowError) as exc:
                await session.run("x" * 1000)
            assert exc.value.limit == 100
            assert llm.calls == []
            assert len(session.context.get_history()) == 1

    @pytest.mark.asyncio
    async def test_max_loops(self, settings):
        settings.max_loops = 2
        looping = [reply("", [ToolCall(id=f"c{i}", name="nope")]) for i in range(5)]
        async with AgentSession(settings, ScriptedLLM(looping)) as session:
            with pytest.raises(MaxLoopsExceededError):
                await session.run("loop")
            history = session.context.get_history()
        assert [m.role for m in history] == ["user", "assistant", "tool", "assistant", "tool"]


class TestAbort:
    @pytest.mark.asyncio
    async def test_abort_during_tool_archives_complete_unit(self, settings):
        started = asyncio.Event()

        async def slow(args, context):
            started.set()
            await asyncio.sleep(10)

        registry = ToolRegistry()
        registry.register(FunctionTool("slow", "", {}, slow, read_only=True))
        llm = ScriptedLLM([reply("", [ToolCall(id="c1", name="slow")])])

        async with AgentSession(settings, llm, registry=registry) as session:
            task = asyncio.create_task(session.run("go"))
            await asyncio.wait_for(started.wait(), timeout=5)
            session.abort("user pressed esc")
            with pytest.raises(AbortedError):
                await task

            history = session.context.get_history()
            assert [m.role for m in history] == ["user", "assistant", "tool"]
            assert json.loads(history[2].content)["status"] == "cancelled"
            assert session.stream.get_snapshot().state == ExecutionState.CANCELLED
            assert not session.is_running

    @pytest.mark.asyncio
    async def test_cancelled_task_archives_turn(self, settings, tmp_path):
        (tmp_path / "workspace").mkdir()
        hung = asyncio.Event()

        class HangingLLM(ScriptedLLM):
            async def complete(self, messages, tools=None, **options):
                if len(self.calls) == 1:
                    self.calls.append(list(messages))
                    hung.set()
                    await asyncio.sleep(30)
                return await super().complete(messages, tools, **options)

        llm = HangingLLM(
            [
                reply("", [ToolCall(id="c1", name="list_files", arguments='{"path": "."}')]),
                reply("second answer"),
            ]
        )
        async with AgentSession(settings, llm, registry=_registry(settings), system_prompt="SYS") as session:
            task = asyncio.create_task(session.run("first question"))
            await asyncio.wait_for(hung.wait(), timeout=5)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

            assert session.context.pending_user_input is None
            assert session.context.get_current_turn() == []
            assert session.stream.get_snapshot().state == ExecutionState.CANCELLED
            assert not session.is_running

            assert await session.run("second question") == "second answer"

        sent = llm.calls[-1]
        assert [(m.role, m.content) for m in sent if m.role in ("system", "user")] == [
            ("system", "SYS"),
            ("user", "first question"),
            ("user", "second question"),
        ]
        assert [m.role for m in sent] == ["system", "user", "assistant", "tool", "user"]

    @pytest.mark.asyncio
    async def test_abort_without_running_turn_is_noop(self, settings):
        async with AgentSession(settings, ScriptedLLM()) as session:
            session.abort()
            assert not session.is_running

    @pytest.mark.asyncio
    async def test_run_after_dispose_raises(self, settings):
        session = AgentSession(settings, ScriptedLLM())
        await session.dispose()
        with pytest.raises(RuntimeError):
            await session.run("hi")


class TestPersistence:
    @pytest.mark.asyncio
    async def test_turn_is_persisted_with_ids(self, settings):
        store = InMemorySessionStore()
        async with AgentSession(settings, ScriptedLLM([reply("a")]), store=store, session_id="s1") as session:
            await session.run("q")
        stored = await store.load_messages("s1")
        assert [m.role for m in stored] == ["user", "assistant"]
        assert all(m.id for m in stored)

    @pytest.mark.asyncio
    async def test_resume_from_checkpoint(self, settings):
        store = InMemorySessionStore()
        await store.save_messages("s1", _stored_history(6))
        await store.save_checkpoint(
            "s1",
            SessionCheckpoint(
                summary="did things",
                load_after_message_id="m3",
                stats=CheckpointStats(total_cost=1.25, input_tokens=10, output_tokens=5),
            ),
        )
        session = AgentSession(settings, ScriptedLLM(), store=store, session_id="s1")
        await session.init()

        history = session.context.get_history()
        assert history[0].content == f"{SUMMARY_PREFIX}\n\ndid things"
        assert [m.id for m in history[1:]] == ["m4", "m5"]
        assert len(session.context.get_transcript()) == 6
        assert session.stats.total_cost == 1.25
        assert await store.load_checkpoint("s1") is not None

    @pytest.mark.asyncio
    async def test_stale_checkpoint_is_discarded(self, settings):
        store = InMemorySessionStore()
        await store.save_messages("s1", _stored_history(4))
        await store.save_checkpoint("s1", SessionCheckpoint(summary="x", load_after_message_id="gone"))

        session = AgentSession(settings, ScriptedLLM(), store=store, session_id="s1")
        await session.init()

        assert [m.id for m in session.context.get_history()] == ["m0", "m1", "m2", "m3"]
        assert await store.load_checkpoint("s1") is None

    @pytest.mark.asyncio
    async def test_forced_compression_writes_checkpoint(self, settings):
        store = InMemorySessionStore()
        await store.save_messages("s1", _stored_history(12))
        llm = ScriptedLLM(summary="<summary>the story so far</summary>")
        async with AgentSession(settings, llm, store=store, session_id="s1") as session:
            result = await session.compress()
            assert result.compressed
            history = session.context.get_history()
            assert history[0].content.endswith("the story so far")
            assert len(session.context.get_transcript()) == 12

        checkpoint = await store.load_checkpoint("s1")
        assert checkpoint.summary == "the story so far"
        assert checkpoint.load_after_message_id == f"m{result.split_index - 1}"
        assert len(await store.load_messages("s1")) == 12
