"""Usage instrumentation: field and caller tallies with a read-only report."""

from .usage import (
    ExecutionInput,
    FieldUsage,
    Selection,
    Tally,
    UsageInstrumentation,
    UsageReport,
    UserUsage,
    remove_new_lines,
)

__all__ = [
    "ExecutionInput",
    "FieldUsage",
    "Selection",
    "Tally",
    "UsageInstrumentation",
    "UsageReport",
    "UserUsage",
    "remove_new_lines",
]
