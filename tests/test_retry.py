"""Tests for LLM retry with exponential backoff."""

import pytest

from agentcore.abort import AbortSignal
from agentcore.errors import AbortedError, LLMError, TransientLLMError
from agentcore.llm.retry import backoff_delay, call_with_retry


class Flaky:
    def __init__(self, failures: list[Exception], result: str = "ok") -> None:
        self.failures = list(failures)
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.result


def test_backoff_doubles_and_caps():
    assert [backoff_delay(i, 1.0, 5.0) for i in range(5)] == [1.0, 2.0, 4.0, 5.0, 5.0]


@pytest.mark.asyncio
async def test_retries_transient_then_succeeds():
    fn = Flaky([TransientLLMError("503"), TransientLLMError("429")])
    assert await call_with_retry(fn, max_retries=3, base_delay=0.001, max_delay=0.01) == "ok"
    assert fn.calls == 3


@pytest.mark.asyncio
async def test_exhaustion_raises_llm_error():
    fn = Flaky([TransientLLMError("503")] * 5)
    with pytest.raises(LLMError) as exc:
        await call_with_retry(fn, max_retries=2, base_delay=0.001, max_delay=0.01)
    assert not isinstance(exc.value, TransientLLMError)
    assert isinstance(exc.value.__cause__, TransientLLMError)
    assert fn.calls == 3


@pytest.mark.asyncio
async def test_non_transient_propagates_immediately():
    fn = Flaky([LLMError("400 bad request")])
    with pytest.raises(LLMError, match="400"):
        await call_with_retry(fn, max_retries=3, base_delay=0.001)
    assert fn.calls == 1


@pytest.mark.asyncio
async def test_retry_after_capped_by_max_delay():
    fn = Flaky([TransientLLMError("429", retry_after=60)])
    assert await call_with_retry(fn, max_retries=1, base_delay=0.001, max_delay=0.01) == "ok"


@pytest.mark.asyncio
async def test_abort_during_backoff():
    signal = AbortSignal()
    fn = Flaky([TransientLLMError("503")])

    async def first_then_abort():
        try:
            return await fn()
        finally:
            signal.abort("stop")

    with pytest.raises(AbortedError):
        await call_with_retry(first_then_abort, max_retries=3, base_delay=5, max_delay=5, signal=signal)
    assert fn.calls == 1
