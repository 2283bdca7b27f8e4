"""Tests for abortable subprocess execution."""

import asyncio
import sys
import time

import pytest

from agentcore.abort import AbortSignal
from agentcore.errors import AbortedError
from agentcore.tools.process import run_command

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell required")


class TestRunCommand:
    @pytest.mark.asyncio
    async def test_captures_output_and_exit_code(self, tmp_path):
        result = await run_command("echo hello; echo oops >&2; exit 3", cwd=str(tmp_path), timeout=5)
        assert result.stdout.strip() == "hello"
        assert result.stderr.strip() == "oops"
        assert result.exit_code == 3
        assert not result.aborted and not result.timed_out

    @pytest.mark.asyncio
    async def test_timeout_kills(self, tmp_path):
        start = time.monotonic()
        result = await run_command("sleep 10", cwd=str(tmp_path), timeout=0.2, grace=0.2)
        assert result.timed_out
        assert not result.aborted
        assert time.monotonic() - start < 3

    @pytest.mark.asyncio
    async def test_abort_is_not_a_failure(self, tmp_path):
        signal = AbortSignal()

        async def abort_soon():
            await asyncio.sleep(0.1)
            signal.abort("esc")

        asyncio.create_task(abort_soon())
        result = await run_command("sleep 10", cwd=str(tmp_path), timeout=30, signal=signal)
        assert result.aborted
        assert not result.timed_out

    @pytest.mark.asyncio
    async def test_sigterm_ignored_escalates_to_kill(self, tmp_path):
        signal = AbortSignal()

        async def abort_soon():
            await asyncio.sleep(0.2)
            signal.abort()

        asyncio.create_task(abort_soon())
        start = time.monotonic()
        result = await run_command(
            "trap '' TERM; sleep 10", cwd=str(tmp_path), timeout=30, signal=signal, grace=0.3
        )
        assert result.aborted
        assert time.monotonic() - start < 5

    @pytest.mark.asyncio
    async def test_already_aborted_raises(self, tmp_path):
        signal = AbortSignal()
        signal.abort("too late")
        with pytest.raises(AbortedError):
            await run_command("echo hi", cwd=str(tmp_path), timeout=5, signal=signal)
