"""Tests for TokenEstimator and format_tokens."""

from agentcore.context.estimator import MESSAGE_OVERHEAD, TokenEstimator, format_tokens
from agentcore.context.models import Message, ToolCall


class TestEstimate:
    def test_empty_and_none_are_zero(self):
        assert TokenEstimator.estimate("") == 0
        assert TokenEstimator.estimate(None) == 0

    def test_ascii_chars_div_4_rounded_up(self):
        assert TokenEstimator.estimate("abcd") == 1
        assert TokenEstimator.estimate("abcde") == 2
        assert TokenEstimator.estimate("a" * 100) == 25

    def test_cjk_charged_heavier(self):
        # 4 CJK chars -> ceil(4 / 1.5) = 3
        assert TokenEstimator.estimate("你好世界") == 3
        assert TokenEstimator.estimate("你好世界") > TokenEstimator.estimate("abcd")

    def test_mixed_text_sums_both_parts(self):
        # 3 CJK -> 2, 8 other -> 2
        assert TokenEstimator.estimate("你好吗abcdefgh") == 4

    def test_non_string_is_serialized(self):
        assert TokenEstimator.estimate({"key": "value"}) > 0
        assert TokenEstimator.estimate([1, 2, 3]) == TokenEstimator.estimate("[1, 2, 3]")

    def test_monotonic_on_appended_text(self):
        base = "hello 世界"
        for extra in ["a", "界", "  ", "abc世界xyz" * 10]:
            assert TokenEstimator.estimate(base + extra) >= TokenEstimator.estimate(base)

    def test_deterministic(self):
        text = "some repeated input 重复"
        assert TokenEstimator.estimate(text) == TokenEstimator.estimate(text)


class TestEstimateMessages:
    def test_overhead_per_message(self):
        messages = [Message(role="user", content="a" * 8), Message(role="assistant", content="")]
        assert TokenEstimator.estimate_messages(messages) == 2 + 2 * MESSAGE_OVERHEAD

    def test_tool_fields_are_counted(self):
        plain = Message(role="tool", content="result")
        with_fields = Message(role="tool", content="result", tool_call_id="call_1", name="read_file")
        assert TokenEstimator.estimate_message(with_fields) > TokenEstimator.estimate_message(plain)

    def test_tool_calls_are_counted(self):
        bare = Message(role="assistant", content="")
        calling = Message(
            role="assistant",
            content="",
            tool_calls=[ToolCall(id="c1", name="bash", arguments='{"command": "ls"}')],
        )
        assert TokenEstimator.estimate_message(calling) > TokenEstimator.estimate_message(bare)

    def test_empty_list(self):
        assert TokenEstimator.estimate_messages([]) == 0


class TestFormatTokens:
    def test_plain(self):
        assert format_tokens(999) == "999"

    def test_thousands(self):
        assert format_tokens(1500) == "1.5K"

    def test_millions(self):
        assert format_tokens(2_300_000) == "2.3M"
