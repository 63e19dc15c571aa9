"""
Domain models for an evaluation run.

This module defines the data carried through a run, leaf-first:
- LLMConfig / LLMProvider: credentials and model choice for LLM-backed comparators
- ComparatorContext / ComparatorResult: the comparator call contract
- FieldResult: a verdict attached to a field path
- TestCaseResult: all field verdicts for one test case, plus its costs
- EvalReport: run-level totals folded from every TestCaseResult

All models are frozen. They are created once per run and never mutated,
so results built by concurrent tasks can be folded without locking.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator


class LLMProvider(str, Enum):
    """Supported LLM providers for LLM-backed comparators."""

    # Anthropic Claude 4.5
    ANTHROPIC_CLAUDE_OPUS = "anthropic_claude_opus"
    ANTHROPIC_CLAUDE_SONNET = "anthropic_claude_sonnet"
    ANTHROPIC_CLAUDE_HAIKU = "anthropic_claude_haiku"

    # OpenAI GPT-5
    OPENAI_GPT5 = "openai_gpt5"
    OPENAI_GPT5_MINI = "openai_gpt5_mini"

    @property
    def vendor(self) -> str:
        return self.value.split("_", 1)[0]


class LLMConfig(BaseModel):
    """Credentials and provider selection for a run. Never persisted."""

    api_key: str = Field(repr=False)
    provider: LLMProvider = LLMProvider.ANTHROPIC_CLAUDE_HAIKU

    model_config = {"frozen": True}


class TestCase(BaseModel):
    """A single labeled example: workflow input and the expected output."""

    __test__ = False  # not a pytest test class

    input: Any
    expected: Any

    model_config = {"frozen": True}


class ComparatorContext(BaseModel):
    """Context handed to every comparator call.

    The parents give custom comparators cross-field access (e.g. comparing a
    date against a sibling field). llm_config is threaded in by the
    orchestrator rather than captured when the comparator is defined.
    """

    expected_parent: Any = None
    actual_parent: Any = None
    llm_config: LLMConfig | None = None

    model_config = {"frozen": True}


class ComparatorResult(BaseModel):
    """Raw outcome of one comparator call."""

    passed: bool
    similarity: float | None = Field(None, ge=0.0, le=1.0)
    rationale: str | None = None
    cost: float = Field(0.0, ge=0.0)

    model_config = {"frozen": True}

    @property
    def score(self) -> float:
        """Similarity, falling back to 1.0/0.0 from passed."""
        if self.similarity is not None:
            return self.similarity
        return 1.0 if self.passed else 0.0


class FieldResult(BaseModel):
    """A verdict attached to a field path (e.g. 'lineItems[0].total')."""

    path: str
    passed: bool
    similarity: float = Field(0.0, ge=0.0, le=1.0)
    expected: Any = None
    actual: Any = None
    rationale: str | None = None
    cost: float = Field(0.0, ge=0.0)

    model_config = {"frozen": True}


class TestCaseResult(BaseModel):
    """Scored outcome for a single test case."""

    __test__ = False

    input: Any = None
    expected: Any = None
    actual: Any = None
    passed: bool
    pass_rate: float = Field(ge=0.0, le=1.0)
    passed_fields: int = Field(ge=0)
    total_fields: int = Field(gt=0)
    fields: dict[str, FieldResult]
    cost: float = Field(0.0, ge=0.0)
    comparator_cost: float = Field(0.0, ge=0.0)
    additional_context: Any = None
    error: str | None = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_counts(self) -> "TestCaseResult":
        if self.passed_fields > self.total_fields:
            raise ValueError("passed_fields cannot exceed total_fields")
        if self.passed != (self.passed_fields == self.total_fields):
            raise ValueError("passed must equal (passed_fields == total_fields)")
        if not math.isclose(self.pass_rate, self.passed_fields / self.total_fields):
            raise ValueError("pass_rate must equal passed_fields / total_fields")
        return self

    @classmethod
    def from_fields(
        cls,
        fields: list[FieldResult],
        *,
        input: Any = None,
        expected: Any = None,
        actual: Any = None,
        cost: float = 0.0,
        additional_context: Any = None,
        error: str | None = None,
    ) -> "TestCaseResult":
        """Fold field verdicts into a TestCaseResult.

        A failed workflow contributes only failing fields, so it never passes.
        """
        by_path = {f.path: f for f in fields}
        if len(by_path) != len(fields):
            raise ValueError("Duplicate field paths in test case result")

        passed_fields = sum(1 for f in fields if f.passed)
        total_fields = len(fields)
        return cls(
            input=input,
            expected=expected,
            actual=actual,
            passed=passed_fields == total_fields,
            pass_rate=passed_fields / total_fields if total_fields else 0.0,
            passed_fields=passed_fields,
            total_fields=total_fields,
            fields=by_path,
            cost=cost,
            comparator_cost=sum(f.cost for f in fields),
            additional_context=additional_context,
            error=error,
        )

    def failed_fields(self) -> list[FieldResult]:
        return [f for f in self.fields.values() if not f.passed]


class EvalReport(BaseModel):
    """Run-level report. test_cases mirrors the input order."""

    test_cases: list[TestCaseResult]
    total: int
    passed: int
    success_rate: float = Field(ge=0.0, le=1.0)
    cost: float = Field(0.0, ge=0.0)
    comparator_cost: float = Field(0.0, ge=0.0)
    correct_fields: int = 0
    total_fields: int = 0
    accuracy: float = Field(0.0, ge=0.0, le=1.0)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_totals(self) -> "EvalReport":
        if self.total != len(self.test_cases):
            raise ValueError("total must equal the number of test cases")
        if self.total and not math.isclose(self.success_rate, self.passed / self.total):
            raise ValueError("success_rate must equal passed / total")
        return self

    @classmethod
    def from_results(cls, results: list[TestCaseResult]) -> "EvalReport":
        """Fold immutable per-test-case results into run totals."""
        total = len(results)
        passed = sum(1 for r in results if r.passed)
        correct_fields = sum(r.passed_fields for r in results)
        total_fields = sum(r.total_fields for r in results)
        return cls(
            test_cases=list(results),
            total=total,
            passed=passed,
            success_rate=passed / total if total else 0.0,
            cost=math.fsum(r.cost for r in results),
            comparator_cost=math.fsum(r.comparator_cost for r in results),
            correct_fields=correct_fields,
            total_fields=total_fields,
            accuracy=correct_fields / total_fields if total_fields else 0.0,
        )

    @property
    def total_cost(self) -> float:
        return self.cost + self.comparator_cost
