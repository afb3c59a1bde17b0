"""
OpenAI wrapper tests with a fake SDK client (no network).
"""

import pytest

from conftest import StatusError, as_json, fake_openai
from services.ai_client import AIClient, strip_code_fences


def make_client(outcomes, **kwargs):
    sdk, completions = fake_openai(outcomes)
    sleeps = []
    client = AIClient(
        client=sdk,
        model="gpt-4o-mini",
        timeout=5,
        max_retries=kwargs.pop("max_retries", 3),
        base_delay=1.0,
        max_delay=10.0,
        sleep=sleeps.append,
    )
    return client, completions, sleeps


class TestConfiguration:
    def test_no_key_means_not_ready(self):
        client = AIClient(api_key="")
        assert not client.is_ready()
        result = client.chat_completion("hi")
        assert not result.success
        assert result.error == "OpenAI service not configured"

    def test_backoff_is_capped(self):
        client, _, _ = make_client([])
        assert [client.retry_delay(i) for i in range(5)] == [1.0, 2.0, 4.0, 8.0, 10.0]


class TestChatCompletion:
    def test_success_records_usage(self):
        client, completions, sleeps = make_client(["hello"])
        result = client.chat_completion("hi", system_prompt="be brief")

        assert result.success
        assert result.content == "hello"
        assert sleeps == []
        call = completions.calls[0]
        assert call["timeout"] == 5
        assert call["messages"][0] == {"role": "system", "content": "be brief"}
        assert client.usage.total_requests == 1
        assert client.usage.total_tokens == 150
        assert client.usage.estimated_cost == pytest.approx(100 / 1000 * 0.00015 + 50 / 1000 * 0.0006)

    def test_retries_transient_errors(self):
        client, completions, sleeps = make_client([StatusError(500), StatusError(429), "ok"])
        result = client.chat_completion("hi")

        assert result.success
        assert len(completions.calls) == 3
        assert sleeps == [1.0, 2.0]
        assert client.usage.errors == 2

    def test_gives_up_after_max_retries(self):
        client, completions, sleeps = make_client(
            [TimeoutError("slow"), TimeoutError("slow"), TimeoutError("slow")], max_retries=2
        )
        result = client.chat_completion("hi")

        assert not result.success
        assert result.error == "slow"
        assert len(completions.calls) == 3
        assert sleeps == [1.0, 2.0]

    @pytest.mark.parametrize("status", [400, 401, 403])
    def test_client_errors_not_retried(self, status):
        client, completions, sleeps = make_client([StatusError(status, "denied")])
        result = client.chat_completion("hi")

        assert not result.success
        assert len(completions.calls) == 1
        assert sleeps == []


class TestJSONCompletion:
    def test_parses_fenced_json(self):
        client, completions, _ = make_client(['```json\n{"score": 80}\n```'])
        result = client.chat_completion_json("rate this")

        assert result.success
        assert result.data == {"score": 80}
        assert "Respond ONLY with valid JSON" in completions.calls[0]["messages"][0]["content"]

    def test_plain_json(self):
        client, _, _ = make_client([as_json([{"index": 0}])])
        assert client.chat_completion_json("x").data == [{"index": 0}]

    def test_invalid_json(self):
        client, _, _ = make_client(["not json"])
        result = client.chat_completion_json("x")
        assert not result.success
        assert result.error.startswith("JSON parse error")

    def test_failure_propagates_error(self):
        client, _, _ = make_client([StatusError(401, "bad key")])
        result = client.chat_completion_json("x")
        assert not result.success
        assert result.error == "bad key"


class TestStripCodeFences:
    def test_variants(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_code_fences('```\n[1]\n```') == "[1]"
        assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'
