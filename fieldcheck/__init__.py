"""
fieldcheck: field-level evaluation of LLM workflows.

    from fieldcheck import evaluate, fn, name, numeric, unordered

    report = await evaluate(
        executor=fn(parse_invoice),
        test_cases=cases,
        comparators={
            "vendor": name,
            "total": numeric,
            "lineItems": unordered({"description": name, "amount": numeric}),
        },
    )
"""

from .comparators import (
    Comparator,
    FieldSpec,
    LLMCompare,
    contains,
    custom,
    date,
    exact,
    llm_compare,
    name,
    numeric,
    numeric_nullable,
    one_of,
    ordered,
    presence,
    unordered,
    within,
)
from .domain import (
    ComparatorContext,
    ComparatorError,
    ComparatorResult,
    ConfigurationError,
    EvalReport,
    ExecutorError,
    FieldcheckError,
    FieldResult,
    LLMConfig,
    LLMProvider,
    TestCase,
    TestCaseResult,
)
from .executors import Executor, ExecutorResult, endpoint, fn, mock
from .orchestrator import EvalConfig, Evaluator, evaluate

__all__ = [
    "evaluate",
    "EvalConfig",
    "Evaluator",
    "Executor",
    "ExecutorResult",
    "endpoint",
    "fn",
    "mock",
    "Comparator",
    "FieldSpec",
    "LLMCompare",
    "contains",
    "custom",
    "date",
    "exact",
    "llm_compare",
    "name",
    "numeric",
    "numeric_nullable",
    "one_of",
    "ordered",
    "presence",
    "unordered",
    "within",
    "ComparatorContext",
    "ComparatorResult",
    "EvalReport",
    "FieldResult",
    "LLMConfig",
    "LLMProvider",
    "TestCase",
    "TestCaseResult",
    "FieldcheckError",
    "ConfigurationError",
    "ExecutorError",
    "ComparatorError",
]
