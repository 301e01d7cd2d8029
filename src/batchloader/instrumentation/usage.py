"""Usage instrumentation: per-field and per-caller request tallies.

Observes traversal events handed in by the query layer; it never takes part in
batching. Counters live for the whole process and are safe for racing
increments from concurrent traversals (tasks or threads).

Example:
    >>> usage = UsageInstrumentation()
    >>> usage.instrument_execution(
    ...     "employees",
    ...     [Selection("employees", [Selection("name"), Selection("company", [Selection("name")])])],
    ...     user="alice",
    ... )
    >>> usage.field_usage.fields
    {'employees': 1, 'employees.company': 1, 'employees.company.name': 1, 'employees.name': 1}
"""

from __future__ import annotations

import re
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from batchloader.foundation.config import UsageSettings, get_settings
from batchloader.foundation.errors import UsageNotAuthorizedError
from batchloader.runtime.observability import get_logger

log = get_logger("batchloader.usage")

_WHITESPACE = re.compile(r"\s+")


def remove_new_lines(query: str) -> str:
    """Collapse newlines and runs of whitespace into single spaces."""
    return _WHITESPACE.sub(" ", query.replace("\n", " "))


@dataclass(frozen=True, slots=True)
class Selection:
    """One field of a selection set, with its nested selections."""
    name: str
    children: tuple[Selection, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "children", tuple(self.children))


@dataclass(frozen=True, slots=True)
class ExecutionInput:
    """What the query layer received for one traversal."""
    query: str
    operation_name: str | None = None
    variables: Mapping[str, Any] = field(default_factory=dict)
    user: str | None = None


class Tally:
    """Increment-only counters keyed by string, read as sorted snapshots."""

    __slots__ = ("_counts", "_lock")

    def __init__(self) -> None:
        self._counts: dict[str, int] = {}
        self._lock = threading.Lock()

    def increment(self, key: str, by: int = 1) -> int:
        if by < 0:
            raise ValueError("Tally counters only increase")
        with self._lock:
            value = self._counts[key] = self._counts.get(key, 0) + by
        return value

    def get(self, key: str) -> int:
        return self._counts.get(key, 0)

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            items = list(self._counts.items())
        return dict(sorted(items))

    def __len__(self) -> int:
        return len(self._counts)


class FieldUsage:
    """Counts each dotted field path selected by a traversal."""

    __slots__ = ("_tally", "_skip_prefix")

    def __init__(self, skip_prefix: str = "__schema") -> None:
        self._tally = Tally()
        self._skip_prefix = skip_prefix

    @property
    def fields(self) -> dict[str, int]:
        return self._tally.snapshot()

    def update(self, selections: Iterable[Selection] | None, parent: str | None = None) -> None:
        for sel in selections or ():
            full_name = sel.name if parent is None else f"{parent}.{sel.name}"
            if full_name.startswith(self._skip_prefix):
                continue
            self._tally.increment(full_name)
            self.update(sel.children, full_name)


class UserUsage:
    """Counts traversals per caller identity."""

    __slots__ = ("_tally", "_anonymous")

    def __init__(self, anonymous: str = "anonymous") -> None:
        self._tally = Tally()
        self._anonymous = anonymous

    @property
    def users(self) -> dict[str, int]:
        return self._tally.snapshot()

    def update(self, user: str | None) -> None:
        self._tally.increment(user or self._anonymous)


class UsageReport(BaseModel):
    """Read-only snapshot of the usage counters since start_time."""

    model_config = ConfigDict(frozen=True)

    start_time: datetime
    fields: dict[str, int] = Field(default_factory=dict)
    users: dict[str, int] = Field(default_factory=dict)

    def used_fields(self, name_contains: str | None = None) -> dict[str, int]:
        """Field counts, optionally only paths containing name_contains."""
        if name_contains is None:
            return dict(self.fields)
        return {name: count for name, count in self.fields.items() if name_contains in name}


class UsageInstrumentation:
    """Hook called by the query layer at the start of every traversal.

    Introspection traversals are neither logged nor counted.
    """

    __slots__ = ("settings", "field_usage", "user_usage", "start_time")

    def __init__(self, settings: UsageSettings | None = None) -> None:
        self.settings = settings or get_settings().usage
        self.field_usage = FieldUsage(self.settings.skip_prefix)
        self.user_usage = UserUsage(self.settings.anonymous_user)
        self.start_time = datetime.now(UTC)

    def _is_introspection(self, operation_name: str | None) -> bool:
        return operation_name == self.settings.introspection_operation

    def instrument_execution_input(self, execution_input: ExecutionInput) -> ExecutionInput:
        """Log the incoming query. Mutations log only their variable keys."""
        if self._is_introspection(execution_input.operation_name):
            return execution_input
        query = remove_new_lines(execution_input.query)
        if query.lstrip().startswith("mutation"):
            log.info("mutation", query=query, variable_keys=sorted(execution_input.variables))
        elif execution_input.variables:
            log.info("query", query=query, variables=dict(execution_input.variables))
        else:
            log.info("query", query=query)
        return execution_input

    def instrument_execution(
        self,
        operation_name: str | None,
        selections: Iterable[Selection] | None,
        user: str | None = None,
    ) -> None:
        """Count the operation's selected fields and its caller."""
        if not self.settings.enabled or self._is_introspection(operation_name):
            return
        self.field_usage.update(selections)
        self.user_usage.update(user)

    def report(self, user: str | None, *, name_contains: str | None = None) -> UsageReport:
        """Snapshot for the reporting query, readable only by the configured report user.

        Raises:
            UsageNotAuthorizedError: user is not settings.report_user
        """
        if user != self.settings.report_user:
            log.warning("usage report denied", user=user)
            raise UsageNotAuthorizedError(user)
        snapshot = UsageReport(start_time=self.start_time, fields=self.field_usage.fields, users=self.user_usage.users)
        if name_contains is None:
            return snapshot
        return snapshot.model_copy(update={"fields": snapshot.used_fields(name_contains)})
