"""
Comparators for field-level verdicts.

Deterministic comparators live in library, the model-backed one in
llm_compare. Sequence comparators (ordered, unordered) wrap an element
spec and are expanded by fieldcheck.dispatch.
"""

from .base import (
    Comparator,
    FieldSpec,
    Ordered,
    SequenceComparator,
    Unordered,
    ordered,
    spec_requires_llm,
    unordered,
)
from .library import (
    Contains,
    Custom,
    Date,
    Exact,
    Name,
    Numeric,
    OneOf,
    Presence,
    Within,
    contains,
    custom,
    date,
    deep_equal,
    exact,
    name,
    normalize_date,
    normalize_name,
    normalize_numeric,
    numeric,
    numeric_nullable,
    one_of,
    presence,
    within,
)
from .llm_compare import LLMCompare, llm_compare
from .matching import MatchResult, match_sequences, solve_assignment

__all__ = [
    "Comparator",
    "FieldSpec",
    "Ordered",
    "SequenceComparator",
    "Unordered",
    "ordered",
    "spec_requires_llm",
    "unordered",
    "Contains",
    "Custom",
    "Date",
    "Exact",
    "Name",
    "Numeric",
    "OneOf",
    "Presence",
    "Within",
    "contains",
    "custom",
    "date",
    "deep_equal",
    "exact",
    "name",
    "normalize_date",
    "normalize_name",
    "normalize_numeric",
    "numeric",
    "numeric_nullable",
    "one_of",
    "presence",
    "within",
    "LLMCompare",
    "llm_compare",
    "MatchResult",
    "match_sequences",
    "solve_assignment",
]
