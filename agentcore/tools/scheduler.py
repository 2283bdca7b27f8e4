"""Tool scheduler: drives each tool call through its lifecycle.

    validating -> [awaiting_approval] -> scheduled -> executing
        -> success | error | cancelled

A batch from one model turn runs in parallel only when every target tool is
read-only; otherwise the whole batch runs serially in request order with a
fixed delay between calls. ``tool:validating`` is emitted for every call in
a batch before any call executes.

Nothing raised by a tool escapes the scheduler: argument errors, tool-reported
failures and unexpected exceptions all end as ``error`` records, and user
rejection or abort ends as ``cancelled``.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from agentcore.abort import AbortSignal
from agentcore.context.models import ToolCall
from agentcore.context.tool_output import ToolOutputSummarizer
from agentcore.errors import AbortedError, ToolArgumentError
from agentcore.events import EventType, ExecutionStreamManager
from agentcore.tools.allowlist import Allowlist
from agentcore.tools.args import parse_tool_arguments
from agentcore.tools.registry import ToolRegistry
from agentcore.tools.summaries import generate_params_summary, generate_summary
from agentcore.tools.types import (
    ApprovalMode,
    ConfirmationRequirer,
    ConfirmDetails,
    ConfirmOutcome,
    SchedulerToolCallRecord,
    ScheduleResult,
    Tool,
    ToolCallRequest,
    ToolCallStatus,
    ToolContext,
    ToolFailure,
    ToolValue,
    is_read_only,
    to_tool_result,
)

logger = logging.getLogger(__name__)

# (call_id, tool_name, details) -> outcome
ConfirmCallback = Callable[[str, str, ConfirmDetails], Awaitable[ConfirmOutcome]]

NO_CONFIRM_HANDLER = "Confirmation required but no confirm handler provided"
USER_DECLINED = "User declined to run this tool"

_STATUS_EVENTS = {
    ToolCallStatus.VALIDATING: EventType.TOOL_VALIDATING,
    ToolCallStatus.AWAITING_APPROVAL: EventType.TOOL_AWAITING_APPROVAL,
    ToolCallStatus.EXECUTING: EventType.TOOL_EXECUTING,
    ToolCallStatus.SUCCESS: EventType.TOOL_COMPLETE,
    ToolCallStatus.ERROR: EventType.TOOL_ERROR,
    ToolCallStatus.CANCELLED: EventType.TOOL_CANCELLED,
}


def serialize_result(value: Any) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    return json.dumps(value, ensure_ascii=False, default=str)


class ToolScheduler:
    def __init__(
        self,
        registry: ToolRegistry,
        stream: ExecutionStreamManager | None = None,
        approval_mode: ApprovalMode = ApprovalMode.DEFAULT,
        allowlist: Allowlist | None = None,
        confirm: ConfirmCallback | None = None,
        output_summarizer: ToolOutputSummarizer | None = None,
        batch_delay: float = 0.5,
        workspace_dir: str = ".",
    ) -> None:
        self.registry = registry
        self._stream = stream
        self.approval_mode = ApprovalMode(approval_mode)
        self._allowlist = allowlist if allowlist is not None else Allowlist()
        self._confirm = confirm
        self._output_summarizer = output_summarizer
        self.batch_delay = batch_delay
        self.workspace_dir = workspace_dir
        self._records: dict[str, SchedulerToolCallRecord] = {}

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_approval_mode(self, mode: ApprovalMode | str) -> None:
        self.approval_mode = ApprovalMode(mode)
        logger.info("Approval mode set to %s", self.approval_mode)

    def set_confirm_handler(self, confirm: ConfirmCallback | None) -> None:
        self._confirm = confirm

    @property
    def allowlist(self) -> Allowlist:
        return self._allowlist

    def clear_allowlist(self) -> None:
        self._allowlist.clear()

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def get_records(self) -> list[SchedulerToolCallRecord]:
        return list(self._records.values())

    def get_record(self, call_id: str) -> SchedulerToolCallRecord | None:
        return self._records.get(call_id)

    def clear_records(self) -> None:
        self._records.clear()

    def cancel_pending(self, reason: str = "Cancelled") -> int:
        """Move every non-terminal record to cancelled. Returns the count."""
        count = 0
        for record in self._records.values():
            if not record.status.is_terminal:
                self._cancel(record, reason)
                count += 1
        return count

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _transition(
        self,
        record: SchedulerToolCallRecord,
        status: ToolCallStatus,
        **data: Any,
    ) -> None:
        record.status = status
        if status.is_terminal:
            record.ended_at = time.time()
        event_type = _STATUS_EVENTS.get(status)
        if self._stream is not None and event_type is not None:
            self._stream.emit(
                event_type,
                {"call_id": record.call_id, "tool_name": record.tool_name, **data},
            )

    def _fail(self, record: SchedulerToolCallRecord, message: str) -> ScheduleResult:
        record.error = message
        self._transition(record, ToolCallStatus.ERROR, error=message)
        return self._to_result(record)

    def _cancel(self, record: SchedulerToolCallRecord, reason: str) -> ScheduleResult:
        record.error = reason
        self._transition(record, ToolCallStatus.CANCELLED, reason=reason)
        return self._to_result(record)

    @staticmethod
    def _to_result(record: SchedulerToolCallRecord) -> ScheduleResult:
        return ScheduleResult(
            call_id=record.call_id,
            tool_name=record.tool_name,
            status=record.status,
            result_string=record.result_string,
            error=record.error,
            duration_ms=record.duration_ms,
        )

    def _begin(self, request: ToolCallRequest) -> SchedulerToolCallRecord:
        record = SchedulerToolCallRecord(request=request)
        self._records[request.call_id] = record
        data: dict[str, Any] = {}
        if request.thinking:
            data["thinking"] = request.thinking
        self._transition(record, ToolCallStatus.VALIDATING, **data)
        return record

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    async def schedule(
        self,
        request: ToolCallRequest,
        signal: AbortSignal | None = None,
    ) -> ScheduleResult:
        record = self._begin(request)
        return await self._run(record, signal or AbortSignal())

    async def schedule_batch(
        self,
        tool_calls: list[ToolCall],
        signal: AbortSignal | None = None,
        thinking: str | None = None,
    ) -> list[ScheduleResult]:
        """Run the tool calls of one model turn. Results are in request order."""
        signal = signal or AbortSignal()
        records = [
            self._begin(ToolCallRequest(call=call, thinking=thinking if i == 0 else None))
            for i, call in enumerate(tool_calls)
        ]
        if not records:
            return []

        parallel = len(records) > 1 and all(
            self.registry.is_read_only(r.tool_name) for r in records
        )
        if parallel:
            logger.debug("Running %d read-only tool calls in parallel", len(records))
            return list(await asyncio.gather(*(self._run(r, signal) for r in records)))

        results: list[ScheduleResult] = []
        for i, record in enumerate(records):
            if i > 0 and self.batch_delay > 0 and not signal.aborted:
                try:
                    await signal.race(asyncio.sleep(self.batch_delay))
                except AbortedError:
                    logger.debug("Batch aborted during inter-call delay")
            if signal.aborted:
                results.append(self._cancel(record, signal.reason or "Aborted"))
                continue
            results.append(await self._run(record, signal))
        return results

    async def _run(self, record: SchedulerToolCallRecord, signal: AbortSignal) -> ScheduleResult:
        name = record.tool_name
        try:
            args = parse_tool_arguments(record.request.call.arguments)
        except ToolArgumentError as e:
            logger.warning("Invalid arguments for %s (%s): %s", name, record.call_id, e)
            return self._fail(record, str(e))
        record.args = args

        tool = self.registry.get(name)
        if tool is None:
            return self._fail(record, f"Unknown tool: {name}")

        if signal.aborted:
            return self._cancel(record, signal.reason or "Aborted")

        context = ToolContext(
            call_id=record.call_id,
            signal=signal,
            stream=self._stream,
            approval_mode=self.approval_mode,
            workspace_dir=self.workspace_dir,
        )

        try:
            details = await self._check_confirmation(tool, args, context)
        except Exception as e:
            logger.exception("Confirmation check failed for %s (args=%r)", name, args)
            return self._fail(record, f"Confirmation check failed: {e}")

        if details is not None:
            cancelled = await self._await_approval(record, details, signal)
            if cancelled is not None:
                return cancelled

        record.status = ToolCallStatus.SCHEDULED
        record.started_at = time.time()
        self._transition(
            record,
            ToolCallStatus.EXECUTING,
            params_summary=generate_params_summary(name, args),
        )

        try:
            raw = await signal.race(tool.execute(args, context))
        except AbortedError as e:
            return self._cancel(record, e.reason)
        except Exception as e:
            logger.exception(
                "Tool %s raised (call %s, args=%r)", name, record.call_id, args
            )
            return self._fail(record, f"{type(e).__name__}: {e}")

        result = to_tool_result(raw)
        record.result = raw
        if isinstance(result, ToolFailure):
            logger.info("Tool %s reported failure: %s", name, result.message)
            return self._fail(record, result.message)

        try:
            record.result_string = await signal.race(self._post_process(name, result))
        except AbortedError as e:
            return self._cancel(record, e.reason)
        self._transition(
            record,
            ToolCallStatus.SUCCESS,
            summary=generate_summary(name, args, result),
            duration_ms=record.duration_ms,
        )
        return self._to_result(record)

    async def _post_process(self, name: str, result: ToolValue) -> str:
        text = serialize_result(result.value)
        if self._output_summarizer is None:
            return text
        return await self._output_summarizer.summarize(name, text)

    # ------------------------------------------------------------------
    # Confirmation
    # ------------------------------------------------------------------

    async def _check_confirmation(
        self,
        tool: Tool,
        args: dict[str, Any],
        context: ToolContext,
    ) -> ConfirmDetails | None:
        """Details to confirm, or None when the call may run directly."""
        mode = self.approval_mode
        if mode.auto_approves_all or is_read_only(tool):
            return None

        if isinstance(tool, ConfirmationRequirer):
            details = await tool.should_confirm_execute(args, mode, context, self._allowlist)
        else:
            details = ConfirmDetails(
                type="info",
                title=f"Run {tool.name}?",
                message=json.dumps(args, ensure_ascii=False, default=str)[:500],
            )

        if details is not None and details.type == "edit" and mode == ApprovalMode.AUTO_EDIT:
            return None
        return details

    async def _await_approval(
        self,
        record: SchedulerToolCallRecord,
        details: ConfirmDetails,
        signal: AbortSignal,
    ) -> ScheduleResult | None:
        """Block on the confirm callback. Returns a result only if cancelled."""
        record.confirm_details = details
        self._transition(
            record,
            ToolCallStatus.AWAITING_APPROVAL,
            confirm_type=details.type,
            title=details.title,
        )

        if self._confirm is None:
            logger.warning("%s: %s (%s)", NO_CONFIRM_HANDLER, record.tool_name, record.call_id)
            return self._cancel(record, NO_CONFIRM_HANDLER)

        try:
            raw = await signal.race(self._confirm(record.call_id, record.tool_name, details))
            outcome = ConfirmOutcome(raw)
        except AbortedError as e:
            return self._cancel(record, e.reason)
        except Exception as e:
            logger.exception(
                "Confirmation failed for %s (call %s, args=%r)",
                record.tool_name,
                record.call_id,
                record.args,
            )
            return self._fail(record, f"Confirmation failed: {e}")

        if outcome == ConfirmOutcome.CANCEL:
            return self._cancel(record, USER_DECLINED)

        if details.on_confirm is not None:
            try:
                maybe = details.on_confirm(outcome)
                if inspect.isawaitable(maybe):
                    await maybe
            except Exception as e:
                logger.exception("on_confirm hook failed for %s", record.tool_name)
                return self._fail(record, f"Confirmation hook failed: {e}")
        elif outcome == ConfirmOutcome.ALLOW_ALWAYS and details.allowlist_key:
            self._allowlist.add(details.allowlist_key)
        return None
