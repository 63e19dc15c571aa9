"""Unit tests for the provider-backed judge client."""

from types import SimpleNamespace

import anthropic
import httpx
import openai
import pytest

from fieldcheck.domain.models import LLMConfig, LLMProvider
from fieldcheck.llm.client import Message, ProviderJudge, classify_sdk_error, parse_json_response
from fieldcheck.llm.providers import PROVIDER_SPECS, get_provider_spec
from fieldcheck.runtime.errors import ErrorCode, RetryableError, TerminalError
from fieldcheck.runtime.retry import RetryPolicy

REQUEST = httpx.Request("POST", "https://api.example.com/v1")
NO_WAIT = RetryPolicy(max_attempts=3, base_delay=0.0, jitter=False)


class FakeAnthropicMessages:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeOpenAICompletions(FakeAnthropicMessages):
    pass


def anthropic_response(text, input_tokens=1000, output_tokens=200):
    return SimpleNamespace(
        content=[SimpleNamespace(type="text", text=text)],
        usage=SimpleNamespace(input_tokens=input_tokens, output_tokens=output_tokens),
    )


def openai_response(text, prompt_tokens=1000, completion_tokens=200):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


MESSAGES = [
    Message(role="system", content="Judge equivalence."),
    Message(role="user", content='{"expected": "a", "actual": "b"}'),
]


class TestProviderSpecs:
    """Tests for model ids and pricing."""

    def test_every_provider_has_a_spec(self):
        """Each LLMProvider should be priced."""
        assert set(PROVIDER_SPECS) == set(LLMProvider)

    def test_cost_from_token_usage(self):
        """Cost is tokens times price per million."""
        spec = get_provider_spec(LLMProvider.ANTHROPIC_CLAUDE_SONNET)

        assert spec.cost(1_000_000, 0) == pytest.approx(3.0)
        assert spec.cost(0, 1_000_000) == pytest.approx(15.0)
        assert spec.cost(2000, 1000) == pytest.approx(0.021)

    def test_lookup_by_value(self):
        """Provider values should resolve like enum members."""
        assert get_provider_spec("openai_gpt5_mini").model == "gpt-5-mini"


class TestParseJsonResponse:
    """Tests for model output parsing."""

    def test_plain_json(self):
        """Should parse a bare JSON object."""
        assert parse_json_response('{"passed": true}') == {"passed": True}

    def test_fenced_json(self):
        """Should strip markdown fences."""
        raw = '```json\n{"passed": false, "rationale": "x"}\n```'

        assert parse_json_response(raw) == {"passed": False, "rationale": "x"}

    def test_json_with_surrounding_prose(self):
        """Should extract the object from surrounding text."""
        raw = 'Here is my verdict: {"passed": true, "rationale": "same"} Hope that helps.'

        assert parse_json_response(raw)["rationale"] == "same"

    def test_no_json_raises_terminal_error(self):
        """Text without an object is malformed."""
        with pytest.raises(TerminalError) as exc_info:
            parse_json_response("I think they match")

        assert exc_info.value.code == ErrorCode.MALFORMED_RESPONSE

    def test_non_object_json_raises(self):
        """A JSON array is not a verdict."""
        with pytest.raises(TerminalError):
            parse_json_response("[true]")

    def test_empty_response_raises(self):
        """An empty response is malformed."""
        with pytest.raises(TerminalError):
            parse_json_response("")


class TestClassifySdkError:
    """Tests for SDK exception mapping."""

    def test_timeout_is_retryable(self):
        """Timeouts should be retried."""
        error = classify_sdk_error(openai.APITimeoutError(request=REQUEST), "gpt-5-mini")

        assert isinstance(error, RetryableError)
        assert error.code == ErrorCode.TIMEOUT

    def test_rate_limit_is_retryable(self):
        """429s should be retried."""
        exc = anthropic.RateLimitError("slow down", response=httpx.Response(429, request=REQUEST), body=None)

        error = classify_sdk_error(exc, "claude")

        assert isinstance(error, RetryableError)
        assert error.code == ErrorCode.RATE_LIMITED

    def test_connection_error_is_retryable(self):
        """Connection failures should be retried."""
        error = classify_sdk_error(anthropic.APIConnectionError(request=REQUEST), "claude")

        assert isinstance(error, RetryableError)

    def test_authentication_error_is_terminal(self):
        """Bad credentials should not be retried."""
        exc = openai.AuthenticationError("bad key", response=httpx.Response(401, request=REQUEST), body=None)

        error = classify_sdk_error(exc, "gpt-5-mini")

        assert isinstance(error, TerminalError)
        assert error.code == ErrorCode.UNAUTHORIZED

    def test_unknown_error_is_terminal(self):
        """Anything unrecognised is terminal."""
        error = classify_sdk_error(ValueError("weird"), "gpt-5-mini")

        assert isinstance(error, TerminalError)
        assert error.cause is not None


class TestProviderJudge:
    """Tests for ProviderJudge with fake SDK clients."""

    @pytest.mark.asyncio
    async def test_anthropic_call_prices_usage(self):
        """Should return text and the cost of the call."""
        config = LLMConfig(api_key="sk-test", provider=LLMProvider.ANTHROPIC_CLAUDE_HAIKU)
        messages_api = FakeAnthropicMessages([anthropic_response('{"passed": true}')])
        judge = ProviderJudge(retry_policy=NO_WAIT)
        judge._clients[("anthropic", "sk-test")] = SimpleNamespace(messages=messages_api)

        result = await judge.judge(MESSAGES, config)

        assert result.text == '{"passed": true}'
        assert result.cost == pytest.approx((1000 * 1.0 + 200 * 5.0) / 1_000_000)
        assert result.model == PROVIDER_SPECS[LLMProvider.ANTHROPIC_CLAUDE_HAIKU].model

        call = messages_api.calls[0]
        assert call["system"] == "Judge equivalence."
        assert [m["role"] for m in call["messages"]] == ["user"]

    @pytest.mark.asyncio
    async def test_openai_call_sends_json_schema(self):
        """Should request structured output when a schema is given."""
        config = LLMConfig(api_key="sk-test", provider=LLMProvider.OPENAI_GPT5_MINI)
        completions = FakeOpenAICompletions([openai_response('{"passed": false}')])
        judge = ProviderJudge(retry_policy=NO_WAIT)
        judge._clients[("openai", "sk-test")] = SimpleNamespace(chat=SimpleNamespace(completions=completions))

        schema = {"type": "object"}
        result = await judge.judge(MESSAGES, config, json_schema=schema)

        assert result.text == '{"passed": false}'
        assert result.cost == pytest.approx((1000 * 0.25 + 200 * 2.0) / 1_000_000)
        call = completions.calls[0]
        assert call["response_format"]["json_schema"]["schema"] == schema
        assert call["messages"][0]["role"] == "system"

    @pytest.mark.asyncio
    async def test_retries_transient_failures(self):
        """A timeout followed by success should succeed."""
        config = LLMConfig(api_key="sk-test")
        messages_api = FakeAnthropicMessages([
            anthropic.APITimeoutError(request=REQUEST),
            anthropic_response('{"passed": true}'),
        ])
        judge = ProviderJudge(retry_policy=NO_WAIT)
        judge._clients[("anthropic", "sk-test")] = SimpleNamespace(messages=messages_api)

        result = await judge.judge(MESSAGES, config)

        assert result.text == '{"passed": true}'
        assert len(messages_api.calls) == 2

    @pytest.mark.asyncio
    async def test_terminal_failures_are_not_retried(self):
        """Authentication errors should surface after one call."""
        config = LLMConfig(api_key="sk-test")
        exc = anthropic.AuthenticationError("bad key", response=httpx.Response(401, request=REQUEST), body=None)
        messages_api = FakeAnthropicMessages([exc, anthropic_response("{}")])
        judge = ProviderJudge(retry_policy=NO_WAIT)
        judge._clients[("anthropic", "sk-test")] = SimpleNamespace(messages=messages_api)

        with pytest.raises(TerminalError):
            await judge.judge(MESSAGES, config)

        assert len(messages_api.calls) == 1

    def test_api_key_not_in_repr(self):
        """LLMConfig should not leak the key in repr."""
        config = LLMConfig(api_key="sk-secret")

        assert "sk-secret" not in repr(config)
