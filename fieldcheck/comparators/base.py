"""
Comparator base definitions.

A comparator spec (FieldSpec) is either a single Comparator or a mapping
from field name to a nested FieldSpec, mirroring the shape of the expected
output. Sequence comparators (Ordered, Unordered) carry the comparator spec for their
elements and are expanded by the dispatcher rather than called directly.
"""

from __future__ import annotations

import abc
from collections.abc import Mapping
from typing import Any, Awaitable, Union

from fieldcheck.domain.models import ComparatorContext, ComparatorResult


class Comparator(abc.ABC):
    """Compares one expected value against one actual value."""

    #: True for comparators that call a model and need an LLMConfig.
    requires_llm: bool = False

    @abc.abstractmethod
    def compare(
        self,
        expected: Any,
        actual: Any,
        context: ComparatorContext,
    ) -> ComparatorResult | Awaitable[ComparatorResult]:
        """
        Compare expected against actual.

        Args:
            expected: The labeled value.
            actual: The value produced by the workflow.
            context: Parents of both values and the run's LLM config.

        Returns:
            ComparatorResult, or an awaitable of one for async comparators.
        """
        ...

    @property
    def matching_proxy(self) -> "Comparator":
        """Comparator used when scoring candidate pairs for unordered matching.

        Must not incur cost; LLM-backed comparators override this with a
        deterministic stand-in.
        """
        return self

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class SequenceComparator(Comparator):
    """Base for comparators that pair up the elements of two sequences."""

    unordered: bool = False

    def __init__(self, item_spec: "FieldSpec"):
        self.item_spec = item_spec

    @property
    def requires_llm(self) -> bool:  # type: ignore[override]
        return spec_requires_llm(self.item_spec)

    async def compare(self, expected: Any, actual: Any, context: ComparatorContext) -> ComparatorResult:
        """Standalone use: passes iff every element-level leaf passes."""
        from fieldcheck.dispatch import dispatch

        fields = await dispatch(self, expected, actual, llm_config=context.llm_config)
        failed = [f.path for f in fields if not f.passed]
        return ComparatorResult(
            passed=not failed,
            similarity=(len(fields) - len(failed)) / len(fields) if fields else 1.0,
            rationale=f"Mismatched elements: {', '.join(failed)}" if failed else None,
            cost=sum(f.cost for f in fields),
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.item_spec!r})"


class Ordered(SequenceComparator):
    """Pairs expected[i] with actual[i]."""


class Unordered(SequenceComparator):
    """Pairs elements by the assignment that maximises passing fields."""

    unordered = True


FieldSpec = Union[Comparator, Mapping[str, "FieldSpec"]]


def spec_requires_llm(spec: FieldSpec) -> bool:
    """Whether any comparator in a comparator spec needs an LLMConfig."""
    if isinstance(spec, Comparator):
        return spec.requires_llm
    if isinstance(spec, Mapping):
        return any(spec_requires_llm(sub) for sub in spec.values())
    return False


def unordered(item_spec: FieldSpec) -> Unordered:
    """Compare a sequence without regard to element order.

    Example:
        comparators = {"lineItems": unordered({"sku": exact, "total": numeric})}
    """
    return Unordered(item_spec)


def ordered(item_spec: FieldSpec) -> Ordered:
    """Compare a sequence element by element, index for index."""
    return Ordered(item_spec)
