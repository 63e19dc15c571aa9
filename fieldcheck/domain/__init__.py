from .exceptions import ComparatorError, ConfigurationError, ExecutorError, FieldcheckError
from .models import (
    ComparatorContext,
    ComparatorResult,
    EvalReport,
    FieldResult,
    LLMConfig,
    LLMProvider,
    TestCase,
    TestCaseResult,
)

__all__ = [
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
