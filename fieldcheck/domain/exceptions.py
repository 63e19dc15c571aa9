"""
Standard exceptions for fieldcheck.

Only ConfigurationError escapes an evaluation run. Executor and comparator
failures are converted into failed results by the orchestrator and the
comparators themselves.
"""


class FieldcheckError(Exception):
    """Base exception for all fieldcheck errors."""
    pass


class ConfigurationError(FieldcheckError):
    """The run is misconfigured; no meaningful report can be produced."""
    pass


class ExecutorError(FieldcheckError):
    """The workflow under test could not produce a usable result."""
    pass


class ComparatorError(FieldcheckError):
    """A comparator could not reach a verdict."""
    pass
