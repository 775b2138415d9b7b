"""
Per-record outcomes and the aggregated migration report.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from taskboard.types import EntityType, MigrationState

EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_FATAL = 2


@dataclass(frozen=True)
class RecordOutcome:
    """Result of migrating one legacy record: a new id or a failure reason."""

    entity: EntityType
    legacy_id: str
    new_id: Optional[int] = None
    error: Optional[str] = None
    # Assignment references that matched no contact (tasks only).
    skipped_assignees: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(
        cls,
        entity: EntityType,
        legacy_id: str,
        new_id: int,
        skipped_assignees: tuple[str, ...] = (),
    ) -> "RecordOutcome":
        return cls(
            entity=entity,
            legacy_id=legacy_id,
            new_id=new_id,
            skipped_assignees=skipped_assignees,
        )

    @classmethod
    def failure(cls, entity: EntityType, legacy_id: str, error: str) -> "RecordOutcome":
        return cls(entity=entity, legacy_id=legacy_id, error=error)


@dataclass
class EntityStats:
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0

    def as_dict(self) -> dict:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
        }


@dataclass(frozen=True)
class RecordFailure:
    entity: EntityType
    legacy_id: str
    message: str


@dataclass
class MigrationReport:
    state: MigrationState = MigrationState.NOT_STARTED
    stats: dict[EntityType, EntityStats] = field(
        default_factory=lambda: {entity: EntityStats() for entity in EntityType}
    )
    failures: list[RecordFailure] = field(default_factory=list)
    stage_errors: list[str] = field(default_factory=list)
    skipped_assignments: int = 0
    fatal_error: Optional[str] = None

    def add(self, outcome: RecordOutcome) -> None:
        stats = self.stats[outcome.entity]
        stats.attempted += 1
        if outcome.ok:
            stats.succeeded += 1
        else:
            stats.failed += 1
            self.failures.append(
                RecordFailure(
                    entity=outcome.entity,
                    legacy_id=outcome.legacy_id,
                    message=outcome.error or "",
                )
            )
        self.skipped_assignments += len(outcome.skipped_assignees)

    @property
    def succeeded(self) -> bool:
        """True only for a completed run with no failed records or stages."""
        return (
            self.state == MigrationState.COMPLETED
            and not self.failures
            and not self.stage_errors
        )

    def exit_code(self) -> int:
        if self.state != MigrationState.COMPLETED:
            return EXIT_FATAL
        return EXIT_OK if self.succeeded else EXIT_PARTIAL

    def summary_lines(self) -> list[str]:
        if self.state == MigrationState.COMPLETED:
            headline = (
                "✓ Migration completed successfully!"
                if self.succeeded
                else "✓ Migration completed with errors"
            )
        else:
            headline = f"✗ Migration failed: {self.fatal_error or self.state.value}"
        lines = [headline, "Summary:"]
        for entity in EntityType:
            stats = self.stats[entity]
            lines.append(
                f"- {entity.value.capitalize()}s: {stats.succeeded} migrated, "
                f"{stats.failed} failed ({stats.attempted} attempted)"
            )
        if self.skipped_assignments:
            lines.append(f"- Assignments skipped: {self.skipped_assignments}")
        for stage_error in self.stage_errors:
            lines.append(f"! {stage_error}")
        for failure in self.failures:
            lines.append(
                f"✗ {failure.entity.value} {failure.legacy_id}: {failure.message}"
            )
        return lines

    def as_dict(self) -> dict:
        return {
            "state": self.state.value,
            "stats": {entity.value: s.as_dict() for entity, s in self.stats.items()},
            "failures": [
                {
                    "entity": f.entity.value,
                    "legacy_id": f.legacy_id,
                    "message": f.message,
                }
                for f in self.failures
            ],
            "stage_errors": list(self.stage_errors),
            "skipped_assignments": self.skipped_assignments,
            "fatal_error": self.fatal_error,
        }
