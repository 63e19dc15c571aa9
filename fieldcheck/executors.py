"""
Executor adapters.

An executor runs the workflow under test for one input and reports its
output, the cost it incurred and optional context for debugging. Three
adapters are provided:

- fn        - wraps a local sync or async callable
- endpoint  - POSTs the input to an HTTP endpoint (single attempt)
- mock      - canned outputs for tests and dry runs
"""

from __future__ import annotations

import inspect
import json
import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Protocol, Sequence, runtime_checkable

import httpx
from loguru import logger

from fieldcheck.config import settings
from fieldcheck.domain.exceptions import ExecutorError
from fieldcheck.runtime.errors import ErrorCode, RetryableError, ServiceError, TerminalError


@dataclass(frozen=True)
class ExecutorResult:
    """What one workflow run produced."""

    output: Any
    cost: float = 0.0
    additional_context: Any = None


@runtime_checkable
class Executor(Protocol):
    """Runs the workflow under test for a single input."""

    async def __call__(self, input: Any, system_prompt: str | None = None) -> ExecutorResult:
        """
        Execute the workflow.

        Args:
            input: The test case input.
            system_prompt: Optional system prompt forwarded to the workflow.

        Returns:
            ExecutorResult with the output and incurred cost.
        """
        ...


def check_cost(value: Any, source: str) -> float:
    """Validate a cost reported by a workflow."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ExecutorError(f"{source} must return a number, got {type(value).__name__}")
    if math.isnan(value) or value < 0:
        raise ExecutorError(f"{source} must return a non-negative cost, got {value}")
    return float(value)


def _system_prompt_kwargs(func: Callable[..., Any], system_prompt: str | None) -> dict[str, Any]:
    """Keyword arguments that hand the system prompt to a workflow.

    Only a parameter literally named system_prompt receives it. A defaulted
    one is left alone when no prompt is configured.
    """
    try:
        param = inspect.signature(func).parameters.get("system_prompt")
    except (TypeError, ValueError):
        return {}
    if param is None or param.kind not in (inspect.Parameter.POSITIONAL_OR_KEYWORD, inspect.Parameter.KEYWORD_ONLY):
        return {}
    if system_prompt is None and param.default is not inspect.Parameter.empty:
        return {}
    return {"system_prompt": system_prompt}


async def _call_workflow(func: Callable[..., Any], input: Any, system_prompt: str | None) -> Any:
    result = func(input, **_system_prompt_kwargs(func, system_prompt))
    if inspect.isawaitable(result):
        result = await result
    return result


# --- fn ---


class FnExecutor:
    """Executor backed by a local callable."""

    def __init__(
        self,
        func: Callable[..., Any],
        map_output: Callable[[Any], Any] | None = None,
        map_cost: Callable[[Any], float] | None = None,
        map_additional_context: Callable[[Any], Any] | None = None,
    ):
        self.func = func
        self.map_output = map_output
        self.map_cost = map_cost
        self.map_additional_context = map_additional_context

    async def __call__(self, input: Any, system_prompt: str | None = None) -> ExecutorResult:
        raw = await _call_workflow(self.func, input, system_prompt)
        cost = check_cost(self.map_cost(raw), "map_cost") if self.map_cost else 0.0
        return ExecutorResult(
            output=self.map_output(raw) if self.map_output else raw,
            cost=cost,
            additional_context=self.map_additional_context(raw) if self.map_additional_context else None,
        )

    def __repr__(self) -> str:
        return f"FnExecutor({getattr(self.func, '__name__', self.func)!r})"


def fn(
    func: Callable[..., Any],
    map_output: Callable[[Any], Any] | None = None,
    map_cost: Callable[[Any], float] | None = None,
    map_additional_context: Callable[[Any], Any] | None = None,
) -> FnExecutor:
    """
    Wrap a local function as an executor.

    The function is called as func(input). When it declares a system_prompt
    parameter, the configured prompt is passed as that keyword. It may be
    async.

    Example:
        executor = fn(
            parse_invoice,
            map_output=lambda r: r["invoice"],
            map_cost=lambda r: r["usage"]["cost"],
        )
    """
    return FnExecutor(func, map_output=map_output, map_cost=map_cost, map_additional_context=map_additional_context)


# --- endpoint ---


class EndpointExecutor:
    """
    Executor that calls an HTTP endpoint once per input.

    Mapping inputs are sent as the JSON body with a "systemPrompt" key added
    when a system prompt is given; other inputs are wrapped as {"input": ...}.
    Failures are raised as RetryableError or TerminalError for reporting;
    the request is never retried.
    """

    def __init__(
        self,
        url: str,
        method: str = "POST",
        headers: Mapping[str, str] | None = None,
        map_response: Callable[[Any], Any] | None = None,
        map_cost: Callable[[Any], float] | None = None,
        map_additional_context: Callable[[Any], Any] | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        method = method.upper()
        if method not in ("POST", "GET"):
            raise ValueError(f"endpoint() supports POST and GET, got {method}")
        self.url = url
        self.method = method
        self.headers = {"Content-Type": "application/json", **(headers or {})}
        self.map_response = map_response
        self.map_cost = map_cost
        self.map_additional_context = map_additional_context
        self.timeout = settings.ENDPOINT_TIMEOUT_SECONDS if timeout is None else timeout
        self._transport = transport

    def build_body(self, input: Any, system_prompt: str | None) -> dict[str, Any]:
        body = dict(input) if isinstance(input, Mapping) else {"input": input}
        if system_prompt is not None:
            body["systemPrompt"] = system_prompt
        return body

    async def _send(self, body: dict[str, Any]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            if self.method == "GET":
                params = {k: v if isinstance(v, str) else json.dumps(v) for k, v in body.items()}
                return await client.get(self.url, headers=self.headers, params=params)
            return await client.post(self.url, headers=self.headers, json=body)

    async def __call__(self, input: Any, system_prompt: str | None = None) -> ExecutorResult:
        body = self.build_body(input, system_prompt)
        try:
            response = await self._send(body)
        except httpx.TimeoutException as e:
            logger.warning(f"Endpoint {self.url} timed out after {self.timeout}s")
            raise RetryableError(
                code=ErrorCode.TIMEOUT,
                message_safe=f"Request timed out after {self.timeout}s",
                cause=e,
            )
        except httpx.TransportError as e:
            logger.warning(f"Endpoint {self.url} unreachable: {e}")
            raise RetryableError(
                code=ErrorCode.CONNECTION_ERROR,
                message_safe="Failed to connect to endpoint",
                message_debug=str(e),
                cause=e,
            )

        raise_for_status(response)

        try:
            data = response.json()
        except ValueError as e:
            raise TerminalError(
                code=ErrorCode.MALFORMED_RESPONSE,
                message_safe="Endpoint returned invalid JSON",
                message_debug=response.text[:500] if response.text else None,
                cause=e,
            )

        if self.map_response:
            output = self.map_response(data)
        elif isinstance(data, Mapping) and data.get("output") is not None:
            output = data["output"]
        else:
            output = data

        return ExecutorResult(
            output=output,
            cost=check_cost(self.map_cost(data), "map_cost") if self.map_cost else 0.0,
            additional_context=self.map_additional_context(data) if self.map_additional_context else None,
        )

    def __repr__(self) -> str:
        return f"EndpointExecutor({self.method} {self.url})"


def raise_for_status(response: httpx.Response) -> None:
    """Convert an error status into a ServiceError."""
    status = response.status_code
    if status < 400:
        return

    error: ServiceError
    if status == 429:
        error = RetryableError(code=ErrorCode.RATE_LIMITED, message_safe="Rate limited by endpoint")
    elif status >= 500:
        error = RetryableError(
            code=ErrorCode.SERVICE_UNAVAILABLE,
            message_safe=f"Endpoint returned {status}",
            message_debug=response.text[:500] if response.text else None,
        )
    elif status == 401:
        error = TerminalError(code=ErrorCode.UNAUTHORIZED, message_safe="Unauthorized")
    elif status == 403:
        error = TerminalError(code=ErrorCode.FORBIDDEN, message_safe="Forbidden")
    elif status == 404:
        error = TerminalError(code=ErrorCode.NOT_FOUND, message_safe="Endpoint not found")
    else:
        error = TerminalError(
            code=ErrorCode.INVALID_INPUT,
            message_safe=f"Request failed with status {status}",
            message_debug=response.text[:500] if response.text else None,
        )

    logger.warning(f"[{error.debug_id}] {response.request.method} {response.request.url} -> {status}")
    raise error


def endpoint(
    url: str,
    method: str = "POST",
    headers: Mapping[str, str] | None = None,
    map_response: Callable[[Any], Any] | None = None,
    map_cost: Callable[[Any], float] | None = None,
    map_additional_context: Callable[[Any], Any] | None = None,
    timeout: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> EndpointExecutor:
    """
    Call an HTTP endpoint per test case.

    Example:
        executor = endpoint(
            "https://api.example.com/workflow",
            headers={"Authorization": "Bearer token"},
        )
    """
    return EndpointExecutor(
        url,
        method=method,
        headers=headers,
        map_response=map_response,
        map_cost=map_cost,
        map_additional_context=map_additional_context,
        timeout=timeout,
        transport=transport,
    )


# --- mock ---


class MockExecutor:
    """Returns canned outputs: a sequence cycled per call, or a function of the input."""

    def __init__(self, outputs_or_fn: Sequence[Any] | Callable[..., Any]):
        if callable(outputs_or_fn):
            self._fn: Callable[..., Any] | None = outputs_or_fn
            self._outputs: list[Any] = []
        else:
            self._fn = None
            self._outputs = list(outputs_or_fn)
            if not self._outputs:
                raise ValueError("mock() requires at least one output")
        self._calls = 0

    async def __call__(self, input: Any, system_prompt: str | None = None) -> ExecutorResult:
        if self._fn is not None:
            return ExecutorResult(output=await _call_workflow(self._fn, input, system_prompt))
        output = self._outputs[self._calls % len(self._outputs)]
        self._calls += 1
        return ExecutorResult(output=output)


def mock(outputs_or_fn: Sequence[Any] | Callable[..., Any]) -> MockExecutor:
    """
    Mock executor for tests.

    Example:
        executor = mock([
            {"premium": 12500, "policyType": "claims-made"},
            {"premium": 8200, "policyType": "entity"},
        ])
    """
    return MockExecutor(outputs_or_fn)
