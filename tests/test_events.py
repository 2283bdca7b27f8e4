"""Tests for ExecutionStreamManager: delivery, isolation, snapshots."""

from agentcore.events import EventType, ExecutionState, ExecutionStreamManager


class TestDelivery:
    def test_handlers_called_in_subscription_order(self):
        stream = ExecutionStreamManager()
        order = []
        stream.on(lambda e: order.append("first"))
        stream.on(lambda e: order.append("second"))
        stream.start()
        assert order == ["first", "second"]

    def test_unsubscribe(self):
        stream = ExecutionStreamManager()
        seen = []
        unsubscribe = stream.on(seen.append)
        stream.start()
        unsubscribe()
        unsubscribe()  # idempotent
        stream.complete()
        assert [e.type for e in seen] == [EventType.EXECUTION_START]
        assert stream.handler_count == 0

    def test_failing_handler_isolated(self, caplog):
        stream = ExecutionStreamManager()
        seen = []

        def broken(event):
            raise ValueError("handler bug")

        stream.on(broken)
        stream.on(seen.append)
        stream.error("model failed")

        assert len(seen) == 1
        assert seen[0].data == {"error": "model failed"}
        assert "handler bug" in caplog.text

    def test_clear_handlers(self):
        stream = ExecutionStreamManager()
        stream.on(lambda e: None)
        stream.clear_handlers()
        assert stream.handler_count == 0


class TestSnapshot:
    def test_tool_lifecycle_reflected(self):
        stream = ExecutionStreamManager()
        stream.start()
        stream.emit(EventType.TOOL_VALIDATING, {"call_id": "c1", "tool_name": "bash"})
        stream.emit(EventType.TOOL_EXECUTING, {"call_id": "c1", "tool_name": "bash"})

        snap = stream.get_snapshot()
        assert snap.state == ExecutionState.TOOL_EXECUTING
        assert snap.current_tool.call_id == "c1"
        assert snap.stats.tool_call_count == 1

        stream.emit(EventType.TOOL_COMPLETE, {"call_id": "c1", "summary": "Command completed"})
        snap = stream.get_snapshot()
        assert snap.current_tool is None
        assert snap.state == ExecutionState.THINKING
        assert snap.tool_calls[0].status == "complete"
        assert snap.tool_calls[0].summary == "Command completed"

    def test_snapshot_is_a_copy(self):
        stream = ExecutionStreamManager()
        stream.start()
        snap = stream.get_snapshot()
        snap.stats.input_tokens = 999
        snap.tool_calls.append(None)
        fresh = stream.get_snapshot()
        assert fresh.stats.input_tokens == 0
        assert fresh.tool_calls == []

    def test_stats_and_completion(self):
        stream = ExecutionStreamManager()
        seen = []
        stream.on(seen.append)
        stream.start()
        stream.update_stats(100, 20, loop=True)
        stream.update_stats(50, 10, loop=True)
        stream.complete(cost=0.5)

        snap = stream.get_snapshot()
        assert snap.state == ExecutionState.COMPLETED
        assert snap.stats.total_tokens == 180
        assert snap.stats.loop_count == 2
        assert snap.stats.cost == 0.5
        assert seen[-1].data["input_tokens"] == 150

    def test_thinking_accumulates(self):
        stream = ExecutionStreamManager()
        stream.thinking_start()
        stream.thinking_delta("Let me ")
        stream.thinking_delta("look.")
        assert stream.get_snapshot().thinking == "Let me look."
        stream.thinking_complete("final")
        assert stream.get_snapshot().thinking == "final"

    def test_cancel_and_error_states(self):
        stream = ExecutionStreamManager()
        stream.start()
        stream.cancel("user")
        assert stream.get_snapshot().state == ExecutionState.CANCELLED
        stream.start()
        stream.error("bad")
        snap = stream.get_snapshot()
        assert snap.state == ExecutionState.ERROR
        assert snap.error == "bad"

    def test_progress_updates_view(self):
        stream = ExecutionStreamManager()
        stream.emit(EventType.TOOL_VALIDATING, {"call_id": "c1", "tool_name": "agent"})
        stream.tool_progress("c1", "child 2/3 done")
        assert stream.get_snapshot().tool_calls[0].summary == "child 2/3 done"
