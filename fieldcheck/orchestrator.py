"""
Evaluation orchestrator.

Runs every test case through the executor under a concurrency bound,
scores each output with the comparator spec and folds the per-case results
into an EvalReport. A failing workflow or comparator only fails its own
test case; ConfigurationError and cancellation are the only ways out.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Sequence

from loguru import logger
from pydantic import ValidationError

from fieldcheck.comparators.base import FieldSpec, spec_requires_llm
from fieldcheck.comparators.library import exact
from fieldcheck.config import settings
from fieldcheck.dispatch import MISSING, dispatch, fail_all, validate_spec
from fieldcheck.domain.exceptions import ConfigurationError, ExecutorError
from fieldcheck.domain.models import EvalReport, LLMConfig, TestCase, TestCaseResult
from fieldcheck.executors import Executor, ExecutorResult, check_cost


@dataclass
class EvalConfig:
    """Everything one evaluation run needs."""

    executor: Executor
    test_cases: Sequence[TestCase | Mapping[str, Any]]
    comparators: FieldSpec = field(default_factory=lambda: exact)
    llm_config: LLMConfig | None = None
    system_prompt: str | None = None
    max_concurrency: int | None = None


class Evaluator:
    """
    Runs evaluations with a fixed concurrency bound.

    Usage:
        evaluator = Evaluator(max_concurrency=10)
        report = await evaluator.evaluate(EvalConfig(
            executor=fn(parse_invoice),
            test_cases=cases,
            comparators={"vendor": name, "total": numeric},
        ))
    """

    def __init__(self, max_concurrency: int | None = None):
        self.max_concurrency = max_concurrency or settings.EVAL_MAX_CONCURRENCY

    def validate(self, config: EvalConfig) -> list[TestCase]:
        """
        Check a config before anything runs.

        Returns:
            The test cases as TestCase models.

        Raises:
            ConfigurationError: If the run cannot produce a meaningful report.
        """
        if config.executor is None or not callable(config.executor):
            raise ConfigurationError("An executor is required")
        if not config.test_cases:
            raise ConfigurationError("At least one test case is required")
        if config.max_concurrency is not None and config.max_concurrency < 1:
            raise ConfigurationError(f"max_concurrency must be at least 1, got {config.max_concurrency}")
        if spec_requires_llm(config.comparators) and config.llm_config is None:
            raise ConfigurationError("LLM comparators are used but no llm_config was provided")

        cases: list[TestCase] = []
        for index, case in enumerate(config.test_cases):
            cases.append(self._coerce_case(index, case))

            try:
                leaves = validate_spec(config.comparators, cases[-1].expected)
            except ConfigurationError as e:
                raise ConfigurationError(f"Test case {index}: {e}") from e
            if leaves == 0:
                raise ConfigurationError(f"Test case {index} has no fields to score")
        return cases

    @staticmethod
    def _coerce_case(index: int, case: Any) -> TestCase:
        if isinstance(case, TestCase):
            return case
        if isinstance(case, Mapping):
            try:
                return TestCase(**case)
            except ValidationError as e:
                raise ConfigurationError(f"Test case {index} is invalid: {e}") from e
        raise ConfigurationError(f"Test case {index} must be a TestCase or mapping, got {type(case).__name__}")

    async def evaluate(self, config: EvalConfig) -> EvalReport:
        """
        Run an evaluation.

        Args:
            config: Executor, test cases and comparator spec.

        Returns:
            EvalReport whose test_cases follow the input order.

        Raises:
            ConfigurationError: If the config is invalid. No case is run.
        """
        cases = self.validate(config)
        max_concurrency = config.max_concurrency or self.max_concurrency
        semaphore = asyncio.Semaphore(max_concurrency)

        logger.info(f"Evaluating {len(cases)} test cases with {config.executor!r} (max_concurrency={max_concurrency})")
        start_time = time.time()

        async def process_one(index: int, case: TestCase) -> TestCaseResult:
            async with semaphore:
                return await self._run_case(index, case, config)

        results = await asyncio.gather(*[process_one(i, c) for i, c in enumerate(cases)])
        report = EvalReport.from_results(results)

        elapsed = time.time() - start_time
        logger.info(
            f"Evaluation complete: {report.passed}/{report.total} passed "
            f"({report.success_rate:.1%}), field accuracy {report.accuracy:.1%}, "
            f"cost ${report.cost:.4f} + comparator ${report.comparator_cost:.4f} in {elapsed:.2f}s"
        )
        return report

    async def _run_case(self, index: int, case: TestCase, config: EvalConfig) -> TestCaseResult:
        try:
            result = await config.executor(case.input, config.system_prompt)
            if not isinstance(result, ExecutorResult):
                raise ExecutorError(f"Executor must return ExecutorResult, got {type(result).__name__}")
            cost = check_cost(result.cost, "Executor cost")
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.warning(f"Test case {index}: workflow failed: {message}")
            fields = fail_all(config.comparators, case.expected, MISSING, "", f"workflow failed: {message}")
            return TestCaseResult.from_fields(fields, input=case.input, expected=case.expected, error=message)

        fields = await dispatch(config.comparators, case.expected, result.output, llm_config=config.llm_config)
        case_result = TestCaseResult.from_fields(
            fields,
            input=case.input,
            expected=case.expected,
            actual=result.output,
            cost=cost,
            additional_context=result.additional_context,
        )

        if case_result.passed:
            logger.debug(f"Test case {index}: passed ({case_result.total_fields} fields)")
        else:
            failed = ", ".join(f.path or "<root>" for f in case_result.failed_fields())
            logger.info(
                f"Test case {index}: {case_result.passed_fields}/{case_result.total_fields} fields passed; "
                f"failed: {failed}"
            )
        return case_result


async def evaluate(config: EvalConfig | None = None, **kwargs: Any) -> EvalReport:
    """
    Run an evaluation.

    Accepts an EvalConfig or its fields as keyword arguments:

        report = await evaluate(
            executor=fn(parse_invoice),
            test_cases=[{"input": {...}, "expected": {...}}],
            comparators={"vendor": name, "total": numeric},
        )
    """
    if config is None:
        try:
            config = EvalConfig(**kwargs)
        except TypeError as e:
            raise ConfigurationError(f"Invalid evaluation config: {e}") from e
    elif kwargs:
        raise ConfigurationError("Pass either an EvalConfig or keyword arguments, not both")
    return await Evaluator().evaluate(config)
