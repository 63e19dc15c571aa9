"""Unit tests for executor adapters."""

import json

import httpx
import pytest

from fieldcheck.domain.exceptions import ExecutorError
from fieldcheck.executors import Executor, ExecutorResult, endpoint, fn, mock
from fieldcheck.runtime.errors import ErrorCode, RetryableError, TerminalError

URL = "https://workflow.example.com/run"


def json_transport(payload, status_code=200, seen=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, json=payload)

    return httpx.MockTransport(handler)


class TestFnExecutor:
    """Tests for fn()."""

    @pytest.mark.asyncio
    async def test_async_function(self):
        """Async workflows are awaited."""

        async def workflow(input):
            return {"total": input["amount"] * 2}

        result = await fn(workflow)({"amount": 5})

        assert result.output == {"total": 10}
        assert result.cost == 0.0

    @pytest.mark.asyncio
    async def test_sync_function_with_system_prompt(self):
        """A system_prompt parameter receives the configured prompt."""
        seen = []

        def workflow(input, system_prompt):
            seen.append(system_prompt)
            return input

        await fn(workflow)("x", "Be precise.")

        assert seen == ["Be precise."]

    @pytest.mark.asyncio
    async def test_defaulted_second_parameter_is_untouched(self):
        """Other optional parameters keep their defaults."""
        executor = fn(lambda doc, model="gpt-5-mini": {"model": model})

        without_prompt = await executor({"doc": 1})
        with_prompt = await executor({"doc": 1}, "Be precise.")

        assert without_prompt.output == {"model": "gpt-5-mini"}
        assert with_prompt.output == {"model": "gpt-5-mini"}

    @pytest.mark.asyncio
    async def test_defaulted_system_prompt_kept_without_prompt(self):
        """A workflow's own default prompt applies when none is configured."""

        async def workflow(input, *, system_prompt="default"):
            return system_prompt

        assert (await fn(workflow)("x")).output == "default"
        assert (await fn(workflow)("x", "override")).output == "override"

    @pytest.mark.asyncio
    async def test_mappers(self):
        """map_output, map_cost and map_additional_context read the raw result."""
        raw = {"data": {"vendor": "Acme"}, "usage": {"cost": 0.012}, "trace": "t-1"}

        executor = fn(
            lambda input: raw,
            map_output=lambda r: r["data"],
            map_cost=lambda r: r["usage"]["cost"],
            map_additional_context=lambda r: r["trace"],
        )
        result = await executor({})

        assert result.output == {"vendor": "Acme"}
        assert result.cost == 0.012
        assert result.additional_context == "t-1"

    @pytest.mark.asyncio
    async def test_negative_cost_rejected(self):
        """A negative cost is an executor error."""
        executor = fn(lambda input: {}, map_cost=lambda r: -1.0)

        with pytest.raises(ExecutorError):
            await executor({})

    @pytest.mark.asyncio
    async def test_non_numeric_cost_rejected(self):
        """A cost that is not a number is an executor error."""
        executor = fn(lambda input: {}, map_cost=lambda r: "0.01")

        with pytest.raises(ExecutorError):
            await executor({})

    @pytest.mark.asyncio
    async def test_workflow_exceptions_propagate(self):
        """Failures are left for the orchestrator to record."""

        def workflow(input):
            raise ValueError("model refused")

        with pytest.raises(ValueError):
            await fn(workflow)({})

    def test_satisfies_protocol(self):
        """fn() returns an Executor."""
        assert isinstance(fn(lambda input: input), Executor)


class TestEndpointExecutor:
    """Tests for endpoint()."""

    @pytest.mark.asyncio
    async def test_posts_input_with_system_prompt(self):
        """The input is the JSON body, with systemPrompt added."""
        seen = []
        executor = endpoint(URL, headers={"Authorization": "Bearer t"}, transport=json_transport({"output": {"a": 1}}, seen=seen))

        result = await executor({"text": "invoice"}, "Extract fields.")

        assert result.output == {"a": 1}
        request = seen[0]
        assert request.method == "POST"
        assert request.headers["Authorization"] == "Bearer t"
        assert json.loads(request.content) == {"text": "invoice", "systemPrompt": "Extract fields."}

    @pytest.mark.asyncio
    async def test_scalar_input_is_wrapped(self):
        """Non-mapping inputs are sent as {"input": ...}."""
        seen = []
        executor = endpoint(URL, transport=json_transport({"output": 1}, seen=seen))

        await executor("hello")

        assert json.loads(seen[0].content) == {"input": "hello"}

    @pytest.mark.asyncio
    async def test_response_without_output_key(self):
        """The whole body is the output when there is no 'output' key."""
        executor = endpoint(URL, transport=json_transport({"vendor": "Acme"}))

        result = await executor({})

        assert result.output == {"vendor": "Acme"}

    @pytest.mark.asyncio
    async def test_response_mappers(self):
        """map_response and map_cost read the parsed body."""
        body = {"result": {"vendor": "Acme"}, "cost": 0.5, "id": "run-1"}
        executor = endpoint(
            URL,
            map_response=lambda d: d["result"],
            map_cost=lambda d: d["cost"],
            map_additional_context=lambda d: d["id"],
            transport=json_transport(body),
        )

        result = await executor({})

        assert result == ExecutorResult(output={"vendor": "Acme"}, cost=0.5, additional_context="run-1")

    @pytest.mark.asyncio
    async def test_get_sends_query_params(self):
        """GET requests carry the input as query parameters."""
        seen = []
        executor = endpoint(URL, method="GET", transport=json_transport({"output": 1}, seen=seen))

        await executor({"q": "invoice", "page": 2})

        assert seen[0].method == "GET"
        assert seen[0].url.params["q"] == "invoice"
        assert seen[0].url.params["page"] == "2"

    @pytest.mark.asyncio
    async def test_server_error_is_retryable(self):
        """5xx responses are classified as retryable."""
        executor = endpoint(URL, transport=json_transport({"error": "down"}, status_code=503))

        with pytest.raises(RetryableError) as exc_info:
            await executor({})

        assert exc_info.value.code == ErrorCode.SERVICE_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_client_error_is_terminal(self):
        """4xx responses are classified as terminal."""
        executor = endpoint(URL, transport=json_transport({"error": "bad"}, status_code=401))

        with pytest.raises(TerminalError) as exc_info:
            await executor({})

        assert exc_info.value.code == ErrorCode.UNAUTHORIZED

    @pytest.mark.asyncio
    async def test_no_retry(self):
        """The workflow endpoint is called exactly once, even on 503."""
        seen = []
        executor = endpoint(URL, transport=json_transport({}, status_code=503, seen=seen))

        with pytest.raises(RetryableError):
            await executor({})

        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Timeouts become RetryableError(TIMEOUT)."""

        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        executor = endpoint(URL, timeout=0.1, transport=httpx.MockTransport(handler))

        with pytest.raises(RetryableError) as exc_info:
            await executor({})

        assert exc_info.value.code == ErrorCode.TIMEOUT

    @pytest.mark.asyncio
    async def test_connection_error(self):
        """Connection failures become RetryableError(CONNECTION_ERROR)."""

        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        executor = endpoint(URL, transport=httpx.MockTransport(handler))

        with pytest.raises(RetryableError) as exc_info:
            await executor({})

        assert exc_info.value.code == ErrorCode.CONNECTION_ERROR

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        """A non-JSON body is a terminal error."""
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>"))
        executor = endpoint(URL, transport=transport)

        with pytest.raises(TerminalError) as exc_info:
            await executor({})

        assert exc_info.value.code == ErrorCode.MALFORMED_RESPONSE

    def test_rejects_unsupported_method(self):
        """Only POST and GET are supported."""
        with pytest.raises(ValueError):
            endpoint(URL, method="DELETE")


class TestMockExecutor:
    """Tests for mock()."""

    @pytest.mark.asyncio
    async def test_cycles_outputs(self):
        """Outputs are returned in order, wrapping around."""
        executor = mock([{"n": 1}, {"n": 2}])

        outputs = [(await executor({})).output for _ in range(3)]

        assert outputs == [{"n": 1}, {"n": 2}, {"n": 1}]

    @pytest.mark.asyncio
    async def test_function(self):
        """A function maps each input to an output."""
        executor = mock(lambda input: {"id": input["id"], "processed": True})

        result = await executor({"id": 7})

        assert result.output == {"id": 7, "processed": True}
        assert result.cost == 0.0

    def test_empty_outputs_rejected(self):
        """At least one output is required."""
        with pytest.raises(ValueError):
            mock([])
