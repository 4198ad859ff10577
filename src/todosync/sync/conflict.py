"""Interface for pluggable conflict resolution.

No merge algorithm ships with todosync. A resolver is supplied by the
application and is consulted for every file/database task pair that the
orchestrator matches, unless the strategy is ``last_write_wins``.
"""

from dataclasses import dataclass, field
from typing import Protocol

from todosync.db.models import Task
from todosync.sync.models import ConflictPolicy


@dataclass
class FieldConflict:
    """A field the resolver could not settle automatically."""

    field: str
    file_value: object
    db_value: object
    base_value: object = None


@dataclass
class MergeResult:
    """Resolver output: the task to write and what stayed in conflict."""

    resolved: Task
    conflicts: list[FieldConflict] = field(default_factory=list)


class ConflictResolver(Protocol):
    """Three-way merge strategy."""

    def resolve(
        self,
        base: Task | None,
        file_version: Task,
        db_version: Task,
        policy: ConflictPolicy,
    ) -> MergeResult: ...
