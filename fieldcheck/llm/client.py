"""
Async LLM client used by LLM-backed comparators.

Calls Anthropic or OpenAI through their official async SDKs, converts SDK
exceptions into RetryableError/TerminalError, retries transient failures
and prices every call from its token usage.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Literal, Protocol, runtime_checkable

import anthropic
import openai
from loguru import logger

from fieldcheck.config import settings
from fieldcheck.domain.models import LLMConfig, LLMProvider
from fieldcheck.runtime.errors import ErrorCode, RetryableError, ServiceError, TerminalError
from fieldcheck.runtime.retry import RetryPolicy, with_retry

from .providers import get_provider_spec


@dataclass(frozen=True)
class Message:
    role: Literal["system", "user", "assistant"]
    content: str


@dataclass(frozen=True)
class LLMResult:
    """Raw text output of a single model call and what it cost."""

    text: str
    cost: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0
    model: str | None = None


@runtime_checkable
class JudgeModel(Protocol):
    """Capability used by llm_compare: (messages, config) -> judgment text."""

    async def judge(
        self,
        messages: list[Message],
        llm_config: LLMConfig,
        json_schema: dict[str, Any] | None = None,
    ) -> LLMResult:
        """
        Run one judgment call.

        Args:
            messages: System and user messages.
            llm_config: Credentials and provider for this run.
            json_schema: Optional JSON schema the response must follow.

        Returns:
            LLMResult with the raw response text and its cost.

        Raises:
            ServiceError: On transport or provider failure.
        """
        ...


_RETRYABLE_SDK_ERRORS: tuple[type[Exception], ...] = (
    openai.APITimeoutError,
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
    anthropic.APITimeoutError,
    anthropic.APIConnectionError,
    anthropic.RateLimitError,
    anthropic.InternalServerError,
)

_AUTH_SDK_ERRORS: tuple[type[Exception], ...] = (
    openai.AuthenticationError,
    openai.PermissionDeniedError,
    anthropic.AuthenticationError,
    anthropic.PermissionDeniedError,
)


def classify_sdk_error(exc: Exception, model: str) -> ServiceError:
    """Map a provider SDK exception onto the runtime error model."""
    if isinstance(exc, ServiceError):
        return exc
    if isinstance(exc, (openai.APITimeoutError, anthropic.APITimeoutError)):
        return RetryableError(ErrorCode.TIMEOUT, f"LLM call timed out ({model})", cause=exc)
    if isinstance(exc, (openai.RateLimitError, anthropic.RateLimitError)):
        return RetryableError(ErrorCode.RATE_LIMITED, f"LLM call rate limited ({model})", cause=exc)
    if isinstance(exc, _RETRYABLE_SDK_ERRORS):
        return RetryableError(
            ErrorCode.SERVICE_UNAVAILABLE,
            f"LLM provider unavailable ({model})",
            message_debug=str(exc)[:500],
            cause=exc,
        )
    if isinstance(exc, _AUTH_SDK_ERRORS):
        return TerminalError(ErrorCode.UNAUTHORIZED, f"LLM provider rejected credentials ({model})", cause=exc)
    return TerminalError(
        ErrorCode.INVALID_INPUT,
        f"LLM call failed ({model}): {exc}",
        message_debug=str(exc)[:500],
        cause=exc,
    )


class ProviderJudge:
    """
    Default JudgeModel backed by the Anthropic and OpenAI async SDKs.

    One SDK client is kept per (vendor, api_key) so concurrent comparator
    calls share connection pools.

    Usage:
        judge = ProviderJudge()
        result = await judge.judge(messages, LLMConfig(api_key="...", provider=LLMProvider.OPENAI_GPT5_MINI))
    """

    def __init__(self, retry_policy: RetryPolicy | None = None, max_tokens: int = 1024):
        self.retry_policy = retry_policy
        self.max_tokens = max_tokens
        self._clients: dict[tuple[str, str], Any] = {}

    def _get_client(self, llm_config: LLMConfig) -> Any:
        vendor = llm_config.provider.vendor
        key = (vendor, llm_config.api_key)
        if key not in self._clients:
            if vendor == "anthropic":
                self._clients[key] = anthropic.AsyncAnthropic(api_key=llm_config.api_key)
            elif vendor == "openai":
                self._clients[key] = openai.AsyncOpenAI(api_key=llm_config.api_key)
            else:
                raise TerminalError(ErrorCode.UNSUPPORTED_PROVIDER, f"Unsupported provider: {llm_config.provider}")
            logger.debug(f"Created {vendor} client for LLM comparator calls")
        return self._clients[key]

    async def judge(
        self,
        messages: list[Message],
        llm_config: LLMConfig,
        json_schema: dict[str, Any] | None = None,
    ) -> LLMResult:
        call = with_retry(self.retry_policy)(self._call_once)
        return await call(messages, llm_config, json_schema)

    async def _call_once(
        self,
        messages: list[Message],
        llm_config: LLMConfig,
        json_schema: dict[str, Any] | None,
    ) -> LLMResult:
        spec = get_provider_spec(llm_config.provider)
        client = self._get_client(llm_config)
        try:
            if llm_config.provider.vendor == "anthropic":
                return await self._call_anthropic(client, spec, messages)
            return await self._call_openai(client, spec, messages, json_schema)
        except Exception as e:
            raise classify_sdk_error(e, spec.model) from e

    async def _call_anthropic(self, client, spec, messages: list[Message]) -> LLMResult:
        system = next((m.content for m in messages if m.role == "system"), None)
        kwargs: dict[str, Any] = {
            "model": spec.model,
            "max_tokens": min(self.max_tokens, spec.max_tokens),
            "temperature": settings.LLM_TEMPERATURE,
            "messages": [{"role": m.role, "content": m.content} for m in messages if m.role != "system"],
        }
        if system:
            kwargs["system"] = system

        response = await client.messages.create(**kwargs)

        text = " ".join(block.text for block in response.content if block.type == "text")
        input_tokens = response.usage.input_tokens
        output_tokens = response.usage.output_tokens
        return LLMResult(
            text=text,
            cost=spec.cost(input_tokens, output_tokens),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            model=spec.model,
        )

    async def _call_openai(self, client, spec, messages: list[Message], json_schema) -> LLMResult:
        kwargs: dict[str, Any] = {
            "model": spec.model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "max_completion_tokens": min(self.max_tokens, spec.max_tokens),
        }
        if json_schema is not None:
            kwargs["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": "response", "strict": True, "schema": json_schema},
            }

        response = await client.chat.completions.create(**kwargs)

        text = response.choices[0].message.content or ""
        input_tokens = getattr(response.usage, "prompt_tokens", 0) or 0
        output_tokens = getattr(response.usage, "completion_tokens", 0) or 0
        return LLMResult(
            text=text,
            cost=spec.cost(input_tokens, output_tokens),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            model=spec.model,
        )


def parse_json_response(raw_text: str) -> dict[str, Any]:
    """Parse a model response as a JSON object.

    Tolerates markdown code fences and prose around the object.

    Raises:
        TerminalError: If no JSON object can be recovered.
    """
    text = (raw_text or "").strip()
    if text.startswith("```"):
        # Drop optional fence language hint and closing fence
        first_newline = text.find("\n")
        if first_newline != -1:
            text = text[first_newline + 1 :]
        if text.endswith("```"):
            text = text[:-3]
        text = text.strip()

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        start = text.find("{")
        end = text.rfind("}")
        if start == -1 or end <= start:
            raise TerminalError(
                ErrorCode.MALFORMED_RESPONSE,
                "Model returned no JSON object",
                message_debug=raw_text[:500] if raw_text else None,
            )
        try:
            data = json.loads(text[start : end + 1])
        except json.JSONDecodeError as exc:
            raise TerminalError(
                ErrorCode.MALFORMED_RESPONSE,
                "Model returned malformed JSON",
                message_debug=raw_text[:500],
                cause=exc,
            ) from exc

    if not isinstance(data, dict):
        raise TerminalError(ErrorCode.MALFORMED_RESPONSE, "Model returned JSON that is not an object")
    return data
