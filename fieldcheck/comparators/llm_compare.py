"""
LLM-backed semantic comparator.

Asks a model whether an extracted value means the same thing as the
labeled one. The comparator fails closed: malformed model output, transport
failures and missing configuration all become a failed verdict with a
rationale, never an exception.
"""

from __future__ import annotations

import json
from typing import Any

from loguru import logger

from fieldcheck.domain.models import ComparatorContext, ComparatorResult, LLMConfig, LLMProvider
from fieldcheck.llm.client import JudgeModel, Message, ProviderJudge, parse_json_response
from fieldcheck.runtime.errors import ServiceError

from .base import Comparator
from .library import Name

DEFAULT_SYSTEM_PROMPT = (
    "Compare the actual value to the expected value and decide whether they are "
    "semantically equivalent: they refer to the same thing and carry the same meaning, "
    "even if worded, formatted or abbreviated differently."
)

RESPONSE_INSTRUCTIONS = (
    "Respond with JSON only, in the form "
    '{"passed": true or false, "rationale": "<one or two sentences explaining the verdict>"}.'
)

VERDICT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "passed": {"type": "boolean"},
        "rationale": {"type": "string"},
    },
    "required": ["passed", "rationale"],
    "additionalProperties": False,
}

_default_judge: ProviderJudge | None = None


def get_default_judge() -> ProviderJudge:
    """Shared ProviderJudge so SDK clients are reused across comparators."""
    global _default_judge
    if _default_judge is None:
        _default_judge = ProviderJudge()
    return _default_judge


class LLMCompare(Comparator):
    """
    Delegates the verdict to a model call.

    The LLMConfig is taken from the comparator context at call time, so one
    definition can be reused across runs with different credentials. The
    provider may be pinned per comparator.

    Usage:
        comparators = {
            "description": llm_compare(
                system_prompt="Both descriptions should reference the same product or service.",
            ),
        }
    """

    requires_llm = True

    def __init__(
        self,
        system_prompt: str | None = None,
        provider: LLMProvider | None = None,
        judge: JudgeModel | None = None,
    ):
        self.system_prompt = system_prompt or DEFAULT_SYSTEM_PROMPT
        self.provider = provider
        self.judge = judge
        self._proxy = Name()

    @property
    def matching_proxy(self) -> Comparator:
        return self._proxy

    def build_messages(self, expected: Any, actual: Any) -> list[Message]:
        payload = json.dumps({"expected": expected, "actual": actual}, ensure_ascii=False, default=str)
        return [
            Message(role="system", content=f"{self.system_prompt}\n\n{RESPONSE_INSTRUCTIONS}"),
            Message(role="user", content=payload),
        ]

    def _resolve_config(self, context: ComparatorContext) -> LLMConfig | None:
        config = context.llm_config
        if config is not None and self.provider is not None:
            config = config.model_copy(update={"provider": self.provider})
        return config

    async def compare(self, expected: Any, actual: Any, context: ComparatorContext) -> ComparatorResult:
        exp_absent = expected is None or expected == ""
        act_absent = actual is None or actual == ""
        if exp_absent or act_absent:
            if exp_absent and act_absent:
                return ComparatorResult(passed=True)
            side = "expected" if exp_absent else "actual"
            return ComparatorResult(passed=False, rationale=f"{side} value is empty")

        config = self._resolve_config(context)
        if config is None:
            return ComparatorResult(passed=False, rationale="LLM comparison skipped: no LLM configuration provided")

        judge = self.judge or get_default_judge()
        try:
            result = await judge.judge(self.build_messages(expected, actual), config, json_schema=VERDICT_SCHEMA)
        except ServiceError as e:
            logger.warning(f"[{e.debug_id}] LLM comparator call failed: {e}")
            return ComparatorResult(passed=False, rationale=f"LLM comparison failed: {e.message_safe}")
        except Exception as e:
            logger.warning(f"LLM comparator call failed unexpectedly: {e}")
            return ComparatorResult(passed=False, rationale=f"LLM comparison failed: {e}")

        cost = max(result.cost, 0.0)
        try:
            data = parse_json_response(result.text)
        except ServiceError as e:
            logger.warning(f"[{e.debug_id}] LLM comparator returned unusable output: {e.message_safe}")
            return ComparatorResult(passed=False, rationale=f"LLM comparison failed: {e.message_safe}", cost=cost)

        passed = data.get("passed")
        if not isinstance(passed, bool):
            logger.warning(f"LLM comparator returned non-boolean verdict: {passed!r}")
            return ComparatorResult(
                passed=False,
                rationale=f"LLM comparison failed: verdict 'passed' must be a boolean, got {passed!r}",
                cost=cost,
            )

        rationale = str(data.get("rationale") or "").strip() or None
        return ComparatorResult(passed=passed, rationale=rationale, cost=cost)

    def __repr__(self) -> str:
        provider = self.provider.value if self.provider else None
        return f"LLMCompare(provider={provider!r})"


def llm_compare(
    system_prompt: str | None = None,
    provider: LLMProvider | None = None,
    judge: JudgeModel | None = None,
) -> LLMCompare:
    return LLMCompare(system_prompt=system_prompt, provider=provider, judge=judge)
