"""
Deterministic comparators.

- exact     - recursive structural equality (default)
- numeric   - number equality within an explicit tolerance
- within    - number equality within a caller-chosen tolerance
- name      - normalized name/term comparison
- date      - calendar-day comparison of parsed dates
- contains  - substring check
- one_of    - enum validation
- presence  - value exists check
- custom    - user-defined logic
"""

from __future__ import annotations

import inspect
import math
import re
import unicodedata
from collections.abc import Mapping
from datetime import date as date_type, datetime
from typing import Any, Awaitable, Callable, Iterable, Literal

from dateutil import parser as date_parser
from rapidfuzz import fuzz

from fieldcheck.config import settings
from fieldcheck.domain.exceptions import ComparatorError
from fieldcheck.domain.models import ComparatorContext, ComparatorResult

from .base import Comparator


def _passed(passed: bool, rationale: str | None = None) -> ComparatorResult:
    return ComparatorResult(passed=passed, similarity=1.0 if passed else 0.0, rationale=rationale)


def _is_absent(value: Any) -> bool:
    return value is None or value == ""


# --- exact ---


def deep_equal(a: Any, b: Any) -> bool:
    """Structural equality: order-sensitive for sequences, key-set-sensitive for mappings."""
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        if set(a.keys()) != set(b.keys()):
            return False
        return all(deep_equal(a[k], b[k]) for k in a)
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return len(a) == len(b) and all(deep_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, (Mapping, list, tuple)) or isinstance(b, (Mapping, list, tuple)):
        return False
    return a == b


class Exact(Comparator):
    """Deep equality comparison. Default when no comparator is specified."""

    def compare(self, expected: Any, actual: Any, context: ComparatorContext) -> ComparatorResult:
        return _passed(deep_equal(expected, actual))


# --- numeric ---

_NUMERIC_NOISE = re.compile(r"[^0-9.\-]")


def normalize_numeric(value: Any) -> float | None:
    """Parse a number, stripping currency symbols, separators and whitespace.

    '(1,234.50)' is read as -1234.5. Returns None when nothing parses.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return None if math.isnan(value) else float(value)

    text = str(value).strip()
    try:
        number = float(text)
    except ValueError:
        pass
    else:
        return None if math.isnan(number) else number

    negative_parens = text.startswith("(") and text.endswith(")")
    cleaned = _NUMERIC_NOISE.sub("", text)
    if negative_parens and not cleaned.startswith("-"):
        cleaned = "-" + cleaned
    try:
        number = float(cleaned)
    except ValueError:
        return None
    return None if math.isnan(number) else number


class Numeric(Comparator):
    """
    Number equality within an explicit tolerance.

    Passes iff both values parse as numbers and
    math.isclose(actual, expected, rel_tol=rel_tol, abs_tol=abs_tol).
    Defaults come from settings (abs 0.005, rel 1e-9). Both sides absent
    (None or "") passes; with nullable=True an absent side counts as 0.
    """

    def __init__(
        self,
        abs_tol: float | None = None,
        rel_tol: float | None = None,
        nullable: bool = False,
    ):
        self.abs_tol = abs_tol
        self.rel_tol = rel_tol
        self.nullable = nullable

    def compare(self, expected: Any, actual: Any, context: ComparatorContext) -> ComparatorResult:
        exp_num = normalize_numeric(expected)
        act_num = normalize_numeric(actual)

        if self.nullable:
            exp_num = 0.0 if _is_absent(expected) else exp_num
            act_num = 0.0 if _is_absent(actual) else act_num

        if exp_num is None and act_num is None and _is_absent(expected) and _is_absent(actual):
            return _passed(True)
        if exp_num is None or act_num is None:
            side = "expected" if exp_num is None else "actual"
            return _passed(False, f"{side} value is not a number")

        abs_tol = settings.NUMERIC_ABS_TOLERANCE if self.abs_tol is None else self.abs_tol
        rel_tol = settings.NUMERIC_REL_TOLERANCE if self.rel_tol is None else self.rel_tol
        if math.isclose(act_num, exp_num, rel_tol=rel_tol, abs_tol=abs_tol):
            return _passed(True)
        return _passed(False, f"difference {abs(act_num - exp_num):g} exceeds tolerance")

    def __repr__(self) -> str:
        return f"Numeric(abs_tol={self.abs_tol}, rel_tol={self.rel_tol}, nullable={self.nullable})"


class Within(Comparator):
    """Checks if a numeric value is within tolerance (percentage or absolute)."""

    def __init__(self, tolerance: float, mode: Literal["percentage", "absolute"] = "percentage"):
        if tolerance < 0:
            raise ValueError("within() tolerance must be non-negative")
        self.tolerance = tolerance
        self.mode = mode

    def compare(self, expected: Any, actual: Any, context: ComparatorContext) -> ComparatorResult:
        exp_num = normalize_numeric(expected)
        act_num = normalize_numeric(actual)
        if exp_num is None or act_num is None:
            return _passed(False, "value is not a number")

        diff = abs(exp_num - act_num)
        threshold = self.tolerance if self.mode == "absolute" else abs(exp_num * self.tolerance)
        passed = diff <= threshold

        # 1.0 at exact match, 0.5 at the boundary, decays beyond
        if threshold > 0:
            similarity = math.exp(-diff / threshold * 0.693)
        else:
            similarity = 1.0 if diff == 0 else 0.0
        return ComparatorResult(passed=passed, similarity=min(similarity, 1.0))


# --- name ---

# Requires at least one word before the suffix
_NAME_SUFFIXES = re.compile(r"(?<=\S)\s+(inc|llc|ltd|corp|corporation|company|co)$")
_DROPPED_PUNCTUATION = re.compile(r"[.'’]")
_OTHER_PUNCTUATION = re.compile(r"[^0-9a-z\s]")
_DIGITS = re.compile(r"\d+")


def normalize_name(value: Any) -> str | None:
    """Normalize a name or term for comparison.

    Lowercases, folds accents, maps '&' to 'and', deletes periods and
    apostrophes, turns other punctuation into spaces, collapses whitespace
    and strips one trailing business suffix (Inc, LLC, Corp, ...).
    """
    if _is_absent(value):
        return None
    text = unicodedata.normalize("NFKD", str(value))
    text = "".join(ch for ch in text if not unicodedata.combining(ch)).lower()
    text = text.replace("&", " and ")
    text = _DROPPED_PUNCTUATION.sub("", text)
    text = _OTHER_PUNCTUATION.sub(" ", text)
    text = " ".join(text.split())
    text = _NAME_SUFFIXES.sub("", text).strip()
    return text or None


class Name(Comparator):
    """
    Normalized name comparison.

    Names match when they are equal after normalize_name() with all spaces
    removed ("Net 30" == "NET30"). When the digit sequences of both names
    agree, two looser rules also pass: same first and last token (middle
    name tolerance) and a rapidfuzz ratio at or above the fuzzy threshold.
    Names whose numbers differ ("Net 30" vs "Net 60") never match.
    """

    def __init__(self, fuzzy_threshold: float | None = None):
        self.fuzzy_threshold = fuzzy_threshold

    def compare(self, expected: Any, actual: Any, context: ComparatorContext) -> ComparatorResult:
        exp_name = normalize_name(expected)
        act_name = normalize_name(actual)

        if exp_name is None and act_name is None:
            return _passed(True)
        if exp_name is None or act_name is None:
            return _passed(False, "one side is empty")

        if exp_name.replace(" ", "") == act_name.replace(" ", ""):
            return _passed(True)

        similarity = fuzz.ratio(exp_name, act_name) / 100.0
        if _DIGITS.findall(exp_name) != _DIGITS.findall(act_name):
            return ComparatorResult(passed=False, similarity=similarity, rationale="numbers differ")

        exp_tokens = exp_name.split()
        act_tokens = act_name.split()
        if len(exp_tokens) >= 2 and len(act_tokens) >= 2:
            if exp_tokens[0] == act_tokens[0] and exp_tokens[-1] == act_tokens[-1]:
                return ComparatorResult(passed=True, similarity=max(similarity, 0.95))

        threshold = settings.NAME_FUZZY_THRESHOLD if self.fuzzy_threshold is None else self.fuzzy_threshold
        return ComparatorResult(passed=similarity * 100 >= threshold, similarity=similarity)


# --- date ---


def normalize_date(value: Any) -> date_type | None:
    if _is_absent(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date_type):
        return value
    try:
        return date_parser.parse(str(value)).date()
    except (ValueError, OverflowError):
        return None


class Date(Comparator):
    """Compares dates after parsing various formats (ISO, US, written)."""

    def compare(self, expected: Any, actual: Any, context: ComparatorContext) -> ComparatorResult:
        exp_date = normalize_date(expected)
        act_date = normalize_date(actual)

        if exp_date is None and act_date is None:
            return _passed(True)
        if exp_date is None or act_date is None:
            return _passed(False, "date missing or unparseable")

        days = abs((exp_date - act_date).days)
        return ComparatorResult(passed=days == 0, similarity=math.exp(-days / 30))


# --- small comparators ---


class Contains(Comparator):
    """Checks if the actual string contains a substring."""

    def __init__(self, substring: str):
        self.substring = substring

    def compare(self, expected: Any, actual: Any, context: ComparatorContext) -> ComparatorResult:
        return _passed(isinstance(actual, str) and self.substring in actual)


class OneOf(Comparator):
    """Validates that actual equals expected AND both are in the allowed set."""

    def __init__(self, allowed_values: Iterable[Any]):
        self.allowed = list(allowed_values)
        if not self.allowed:
            raise ValueError("one_of() requires at least one allowed value")

    def compare(self, expected: Any, actual: Any, context: ComparatorContext) -> ComparatorResult:
        if actual not in self.allowed:
            return _passed(False, f"{actual!r} is not an allowed value")
        return _passed(expected == actual)


class Presence(Comparator):
    """Passes if expected is absent, or if actual has any value."""

    def compare(self, expected: Any, actual: Any, context: ComparatorContext) -> ComparatorResult:
        return _passed(_is_absent(expected) or not _is_absent(actual))


CustomFn = Callable[[Any, Any, ComparatorContext], "bool | ComparatorResult | Awaitable[bool | ComparatorResult]"]


class Custom(Comparator):
    """Wraps user-defined comparison logic (sync or async)."""

    def __init__(self, compare_fn: CustomFn):
        self.compare_fn = compare_fn

    async def compare(self, expected: Any, actual: Any, context: ComparatorContext) -> ComparatorResult:
        result = self.compare_fn(expected, actual, context)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, ComparatorResult):
            return result
        if not isinstance(result, bool):
            raise ComparatorError(f"custom comparator must return bool or ComparatorResult, got {type(result).__name__}")
        return _passed(result)


exact = Exact()
numeric = Numeric()
numeric_nullable = Numeric(nullable=True)
name = Name()
date = Date()
presence = Presence()


def within(tolerance: float, mode: Literal["percentage", "absolute"] = "percentage") -> Within:
    return Within(tolerance, mode)


def contains(substring: str) -> Contains:
    return Contains(substring)


def one_of(allowed_values: Iterable[Any]) -> OneOf:
    return OneOf(allowed_values)


def custom(compare_fn: CustomFn) -> Custom:
    return Custom(compare_fn)
