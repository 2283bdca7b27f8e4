"""Abortable subprocess execution.

Termination escalates: SIGTERM to the process group, then SIGKILL if the
process is still alive after the grace window. Output readers are released
before the process is signalled. An abort is reported as ``aborted=True``,
never as a failure.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal as _signal
from dataclasses import dataclass

from agentcore.abort import AbortSignal

logger = logging.getLogger(__name__)

DEFAULT_KILL_GRACE = 0.5  # seconds


@dataclass
class CommandResult:
    stdout: str
    stderr: str
    exit_code: int | None
    timed_out: bool = False
    aborted: bool = False


def _send(proc: asyncio.subprocess.Process, sig: int) -> None:
    try:
        if hasattr(os, "killpg"):
            os.killpg(proc.pid, sig)
        elif sig == getattr(_signal, "SIGKILL", None):
            proc.kill()
        else:
            proc.terminate()
    except ProcessLookupError:
        logger.debug("Process %d already exited", proc.pid)


def _release_streams(proc: asyncio.subprocess.Process) -> None:
    """Unblock anything still reading the child's pipes."""
    if proc.stdin is not None and not proc.stdin.is_closing():
        proc.stdin.close()
    for reader in (proc.stdout, proc.stderr):
        if reader is not None and not reader.at_eof():
            reader.feed_eof()


async def terminate_process(
    proc: asyncio.subprocess.Process,
    grace: float = DEFAULT_KILL_GRACE,
) -> None:
    if proc.returncode is not None:
        return
    _send(proc, _signal.SIGTERM)
    try:
        await asyncio.wait_for(proc.wait(), timeout=grace)
        return
    except asyncio.TimeoutError:
        logger.info("Process %d ignored SIGTERM for %.1fs, killing", proc.pid, grace)
    _send(proc, getattr(_signal, "SIGKILL", _signal.SIGTERM))
    await proc.wait()


async def run_command(
    command: str,
    cwd: str,
    timeout: float,
    signal: AbortSignal | None = None,
    grace: float = DEFAULT_KILL_GRACE,
) -> CommandResult:
    """Run a shell command, honouring *timeout* and *signal*."""
    if signal is not None:
        signal.throw_if_aborted()

    proc = await asyncio.create_subprocess_shell(
        command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        stdin=asyncio.subprocess.DEVNULL,
        cwd=cwd,
        start_new_session=True,
    )

    communicate = asyncio.ensure_future(proc.communicate())
    waiters: set[asyncio.Future] = {communicate}
    abort_waiter = asyncio.ensure_future(signal.wait()) if signal is not None else None
    if abort_waiter is not None:
        waiters.add(abort_waiter)

    try:
        done, _ = await asyncio.wait(
            waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        communicate.cancel()
        if abort_waiter is not None:
            abort_waiter.cancel()
        _release_streams(proc)
        await terminate_process(proc, grace)
        raise

    if abort_waiter is not None and abort_waiter not in done:
        abort_waiter.cancel()

    if communicate in done:
        stdout, stderr = communicate.result()
        return CommandResult(
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            exit_code=proc.returncode,
        )

    aborted = signal is not None and signal.aborted
    logger.info(
        "Stopping process %d (%s): %s",
        proc.pid,
        "aborted" if aborted else f"timed out after {timeout}s",
        command[:80],
    )
    communicate.cancel()
    _release_streams(proc)
    await terminate_process(proc, grace)
    await asyncio.gather(communicate, return_exceptions=True)
    return CommandResult(
        stdout="",
        stderr="",
        exit_code=proc.returncode,
        timed_out=not aborted,
        aborted=aborted,
    )
