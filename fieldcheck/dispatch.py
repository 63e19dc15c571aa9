"""
Structural dispatcher.

Walks a comparator spec over (expected, actual) in lockstep and produces
one FieldResult per leaf:

- Comparator leaf       -> invoke it, one FieldResult at the current path
- Mapping of sub-specs  -> recurse per key; a missing key is a failing leaf
- Ordered / Unordered   -> pair up elements, recurse per pair; surplus
                           elements on either side become failing leaves

validate_spec() checks a comparator spec against each expected value before a run
and returns the number of leaves that value will produce.
"""

from __future__ import annotations

import dataclasses
import inspect
from collections.abc import Mapping
from typing import Any

from loguru import logger
from pydantic import BaseModel

from fieldcheck.comparators.base import Comparator, FieldSpec, SequenceComparator
from fieldcheck.comparators.matching import match_sequences
from fieldcheck.domain.exceptions import ConfigurationError
from fieldcheck.domain.models import ComparatorContext, ComparatorResult, FieldResult, LLMConfig

FIELD_MISSING = "field missing"
FIELD_MISSING_FROM_EXPECTED = "field missing from expected"
NO_MATCHING_ACTUAL = "no matching actual element"
UNEXPECTED_ACTUAL = "unexpected actual element"


class _Missing:
    """Marks a value absent on one side (distinct from an explicit None)."""

    def __repr__(self) -> str:
        return "<missing>"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


def join_path(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


def index_path(path: str, index: int | str) -> str:
    return f"{path}[{index}]"


def to_plain(value: Any) -> Any:
    """Convert pydantic models and dataclasses to plain dicts/lists for comparison."""
    if isinstance(value, BaseModel):
        return value.model_dump()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    return value


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def _public(value: Any) -> Any:
    return None if value is MISSING else value


# --- validation ---


def _static_paths(spec: FieldSpec, path: str) -> list[str]:
    """Leaf paths of a spec whose expected value is absent."""
    if isinstance(spec, Comparator):
        return [path]
    if isinstance(spec, Mapping):
        return [leaf for key, sub in spec.items() for leaf in _static_paths(sub, join_path(path, key))]
    raise ConfigurationError(f"Invalid comparator spec at {path or '<root>'}: {spec!r}")


def leaf_paths(spec: FieldSpec, expected: Any, path: str = "") -> list[str]:
    """Paths of the FieldResults a comparator spec yields for an expected value, in order."""
    expected = to_plain(expected)
    where = path or "<root>"

    if isinstance(spec, SequenceComparator):
        if expected is MISSING:
            return [path]
        if not _is_sequence(expected):
            raise ConfigurationError(
                f"{type(spec).__name__} spec at {where} requires a sequence, got {type(expected).__name__}"
            )
        return [
            leaf
            for i, item in enumerate(expected)
            for leaf in leaf_paths(spec.item_spec, item, index_path(path, i))
        ]

    if isinstance(spec, Comparator):
        return [path]

    if isinstance(spec, Mapping):
        if expected is MISSING:
            return _static_paths(spec, path)
        if not isinstance(expected, Mapping):
            raise ConfigurationError(
                f"Comparator mapping at {where} requires a mapping, got {type(expected).__name__}"
            )
        return [
            leaf
            for key, sub in spec.items()
            for leaf in leaf_paths(sub, expected.get(key, MISSING), join_path(path, key))
        ]

    raise ConfigurationError(f"Invalid comparator spec at {where}: {spec!r}")


def validate_spec(spec: FieldSpec, expected: Any, path: str = "") -> int:
    """
    Check that a comparator spec fits the shape of an expected value.

    Args:
        spec: Comparator or nested mapping of comparators.
        expected: The labeled value the comparator spec will be applied to.
        path: Field path of this value (for error messages).

    Returns:
        Number of leaf verdicts this expected value will produce.

    Raises:
        ConfigurationError: On a shape mismatch, a non-comparator in the
            comparator spec, or two leaves sharing a path (e.g. keys "a.b"
            and "a" -> "b").
    """
    paths = leaf_paths(spec, expected, path)
    seen: set[str] = set()
    for leaf in paths:
        if leaf in seen:
            raise ConfigurationError(f"Field path {leaf or '<root>'!r} is produced by more than one comparator")
        seen.add(leaf)
    return len(paths)


def count_leaves(spec: FieldSpec, expected: Any) -> int:
    """Number of FieldResults dispatch() will produce for this expected value."""
    return validate_spec(spec, expected)


# --- dispatch ---


async def _run_leaf(
    comparator: Comparator,
    expected: Any,
    actual: Any,
    context: ComparatorContext,
    path: str,
) -> FieldResult:
    try:
        result = comparator.compare(expected, actual, context)
        if inspect.isawaitable(result):
            result = await result
    except Exception as e:
        logger.warning(f"Comparator {comparator!r} raised at {path or '<root>'}: {e}")
        result = ComparatorResult(passed=False, rationale=f"comparator error: {e}")

    return FieldResult(
        path=path,
        passed=result.passed,
        similarity=result.score,
        expected=expected,
        actual=actual,
        rationale=result.rationale,
        cost=result.cost,
    )


def fail_all(
    spec: FieldSpec,
    expected: Any,
    actual: Any,
    path: str,
    rationale: str,
) -> list[FieldResult]:
    """
    Failing leaves for every field the comparator spec would have scored.

    Elements of an expected sequence each get their own leaves. A sequence
    spec with no expected sequence is a single leaf, so the leaf count always
    matches validate_spec().
    """
    expected = to_plain(expected)
    actual = to_plain(actual)

    if isinstance(spec, SequenceComparator) and _is_sequence(expected):
        return [
            leaf
            for i, item in enumerate(expected)
            for leaf in fail_all(spec.item_spec, item, MISSING, index_path(path, i), rationale)
        ]

    if isinstance(spec, Comparator):
        return [
            FieldResult(
                path=path,
                passed=False,
                expected=_public(expected),
                actual=_public(actual),
                rationale=rationale,
            )
        ]

    results: list[FieldResult] = []
    for key, sub in spec.items():
        exp_value = expected.get(key, MISSING) if isinstance(expected, Mapping) else MISSING
        act_value = actual.get(key, MISSING) if isinstance(actual, Mapping) else MISSING
        results.extend(fail_all(sub, exp_value, act_value, join_path(path, key), rationale))
    return results


async def dispatch(
    spec: FieldSpec,
    expected: Any,
    actual: Any,
    *,
    llm_config: LLMConfig | None = None,
    path: str = "",
    expected_parent: Any = None,
    actual_parent: Any = None,
    scoring: bool = False,
) -> list[FieldResult]:
    """
    Apply a comparator spec to (expected, actual).

    Args:
        spec: Comparator or nested mapping of comparators.
        expected: Labeled value.
        actual: Workflow output (MISSING if absent).
        llm_config: Threaded into every comparator context.
        path: Field path of this value.
        expected_parent: Mapping that contains expected, if any.
        actual_parent: Mapping that contains actual, if any.
        scoring: Use each comparator's matching_proxy (no model calls).

    Returns:
        Leaf FieldResults in spec order.
    """
    expected = to_plain(expected)
    actual = to_plain(actual)

    if isinstance(spec, SequenceComparator):
        return await _dispatch_sequence(
            spec,
            expected,
            actual,
            llm_config=llm_config,
            path=path,
            expected_parent=expected_parent,
            actual_parent=actual_parent,
            scoring=scoring,
        )

    if isinstance(spec, Comparator):
        if actual is MISSING:
            return fail_all(spec, expected, MISSING, path, FIELD_MISSING)
        comparator = spec.matching_proxy if scoring else spec
        context = ComparatorContext(
            expected_parent=expected_parent,
            actual_parent=actual_parent,
            llm_config=llm_config,
        )
        return [await _run_leaf(comparator, expected, actual, context, path)]

    if not isinstance(spec, Mapping):
        raise ConfigurationError(f"Invalid comparator spec at {path or '<root>'}: {spec!r}")
    if not isinstance(expected, Mapping):
        raise ConfigurationError(
            f"Comparator mapping at {path or '<root>'} requires a mapping, got {type(expected).__name__}"
        )

    if actual is MISSING:
        return fail_all(spec, expected, MISSING, path, FIELD_MISSING)
    if not isinstance(actual, Mapping):
        return fail_all(spec, expected, MISSING, path, f"expected a mapping, got {type(actual).__name__}")

    results: list[FieldResult] = []
    for key, sub in spec.items():
        field_path = join_path(path, key)
        if key not in expected:
            results.extend(fail_all(sub, MISSING, actual.get(key, MISSING), field_path, FIELD_MISSING_FROM_EXPECTED))
            continue
        results.extend(
            await dispatch(
                sub,
                expected[key],
                actual.get(key, MISSING),
                llm_config=llm_config,
                path=field_path,
                expected_parent=expected,
                actual_parent=actual,
                scoring=scoring,
            )
        )
    return results


async def _dispatch_sequence(
    spec: SequenceComparator,
    expected: Any,
    actual: Any,
    *,
    llm_config: LLMConfig | None,
    path: str,
    expected_parent: Any,
    actual_parent: Any,
    scoring: bool,
) -> list[FieldResult]:
    if not _is_sequence(expected):
        raise ConfigurationError(
            f"{type(spec).__name__} spec at {path or '<root>'} requires a sequence, got {type(expected).__name__}"
        )
    if actual is MISSING:
        return fail_all(spec, expected, MISSING, path, FIELD_MISSING)
    if not _is_sequence(actual):
        return fail_all(spec, expected, MISSING, path, f"expected a sequence, got {type(actual).__name__}")

    if spec.unordered:

        async def score_pair(exp_item: Any, act_item: Any) -> int:
            leaves = await dispatch(
                spec.item_spec,
                exp_item,
                act_item,
                llm_config=llm_config,
                expected_parent=expected_parent,
                actual_parent=actual_parent,
                scoring=True,
            )
            return sum(1 for leaf in leaves if leaf.passed)

        match = await match_sequences(expected, actual, score_pair)
        pairs = match.assignments
        unmatched_expected = match.unmatched_expected
        unmatched_actual = match.unmatched_actual
    else:
        shared = min(len(expected), len(actual))
        pairs = [(i, i) for i in range(shared)]
        unmatched_expected = list(range(shared, len(expected)))
        unmatched_actual = list(range(shared, len(actual)))

    results: list[FieldResult] = []
    for exp_idx, act_idx in pairs:
        results.extend(
            await dispatch(
                spec.item_spec,
                expected[exp_idx],
                actual[act_idx],
                llm_config=llm_config,
                path=index_path(path, exp_idx),
                expected_parent=expected_parent,
                actual_parent=actual_parent,
                scoring=scoring,
            )
        )
    for exp_idx in unmatched_expected:
        results.extend(fail_all(spec.item_spec, expected[exp_idx], MISSING, index_path(path, exp_idx), NO_MATCHING_ACTUAL))
    for act_idx in unmatched_actual:
        results.extend(
            fail_all(spec.item_spec, MISSING, actual[act_idx], index_path(path, f"+{act_idx}"), UNEXPECTED_ACTUAL)
        )

    return results
