"""Data model for staged transformation operations."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Literal

from regen_shared.artifacts import ArtifactCategory, StagedFile, StageResult
from regen_shared.gateway.history.abc import CategoryOutcome

# Number of generation stages in every operation
STAGE_COUNT = 2


class StagingStatus(Enum):
    STAGING = "staging"
    STAGE1_COMPLETE = "stage1-complete"
    STAGE2_COMPLETE = "stage2-complete"
    VALIDATING = "validating"
    COMMITTING = "committing"
    COMMITTED = "committed"
    ROLLING_BACK = "rolling-back"
    ROLLED_BACK = "rolled-back"
    FAILED = "failed"

    @classmethod
    def parse(cls, value: str) -> "StagingStatus":
        """Parse a persisted status; unknown values raise ValueError."""
        for status in cls:
            if status.value == value:
                return status
        raise ValueError(f"Unknown staging status '{value}'")

    @property
    def is_terminal(self) -> bool:
        """True once the operation reached a cleanly resolved end state.

        FAILED is deliberately excluded: a partial commit leaves its staging
        directory in place for manual inspection.
        """
        return self in (StagingStatus.COMMITTED, StagingStatus.ROLLED_BACK)


ALLOWED_TRANSITIONS: dict[StagingStatus, frozenset[StagingStatus]] = {
    StagingStatus.STAGING: frozenset({StagingStatus.STAGE1_COMPLETE, StagingStatus.ROLLING_BACK}),
    StagingStatus.STAGE1_COMPLETE: frozenset(
        {StagingStatus.STAGE2_COMPLETE, StagingStatus.ROLLING_BACK}
    ),
    StagingStatus.STAGE2_COMPLETE: frozenset({StagingStatus.VALIDATING, StagingStatus.ROLLING_BACK}),
    StagingStatus.VALIDATING: frozenset({StagingStatus.COMMITTING, StagingStatus.ROLLING_BACK}),
    StagingStatus.COMMITTING: frozenset(
        {StagingStatus.COMMITTED, StagingStatus.FAILED, StagingStatus.ROLLING_BACK}
    ),
    StagingStatus.ROLLING_BACK: frozenset({StagingStatus.ROLLED_BACK}),
    StagingStatus.COMMITTED: frozenset(),
    StagingStatus.ROLLED_BACK: frozenset(),
    StagingStatus.FAILED: frozenset(),
}

# Statuses from which a commit may be (re)started
COMMITTABLE_STATUSES = frozenset(
    {StagingStatus.STAGE2_COMPLETE, StagingStatus.VALIDATING, StagingStatus.COMMITTING}
)


@dataclass(frozen=True)
class FileBaseline:
    """Production file metadata. mod_time_ns and size are None when absent."""

    exists: bool
    mod_time_ns: int | None
    size: int | None

    @classmethod
    def missing(cls) -> "FileBaseline":
        return cls(exists=False, mod_time_ns=None, size=None)


@dataclass(frozen=True)
class ValidationRecord:
    accepted: bool
    diagnostics: tuple[str, ...]


@dataclass(frozen=True)
class CommitProgress:
    """Which categories have been swapped into production.

    in_flight is set (and persisted) just before a category's production
    directory is first renamed, and cleared once the swap completes.
    """

    completed: tuple[ArtifactCategory, ...]
    in_flight: ArtifactCategory | None

    @classmethod
    def empty(cls) -> "CommitProgress":
        return cls(completed=(), in_flight=None)

    @property
    def production_touched(self) -> bool:
        return bool(self.completed) or self.in_flight is not None


@dataclass(frozen=True)
class StagingDescriptor:
    """Persisted state of one operation; the single source of truth for its progress.

    Instances are immutable. Every change produces a new descriptor via
    dataclasses.replace and is persisted through StagingStore.update.
    """

    target_version: str
    previous_version: str | None
    status: StagingStatus
    start_time: datetime
    updated_at: datetime
    stage_results: tuple[StageResult | None, ...]
    production_baseline: dict[str, FileBaseline]
    validation: ValidationRecord | None
    commit_progress: CommitProgress
    error: str | None
    history_recorded: bool

    @property
    def completed_stage_results(self) -> tuple[StageResult, ...]:
        return tuple(r for r in self.stage_results if r is not None)

    def stage_files(self, *, before: int = STAGE_COUNT) -> tuple[str, ...]:
        """Staging-relative files written by successful stages preceding index before."""
        files: list[str] = []
        for result in self.stage_results[:before]:
            if result is not None and result.success:
                files.extend(result.files_written)
        return tuple(files)

    def failed_stage(self) -> StageResult | None:
        for result in self.completed_stage_results:
            if not result.success:
                return result
        return None

    def full_replacement_categories(self) -> frozenset[ArtifactCategory]:
        categories: set[ArtifactCategory] = set()
        for result in self.completed_stage_results:
            if result.success:
                categories.update(result.full_replacement)
        return frozenset(categories)


@dataclass(frozen=True)
class DriftConflict:
    key: str
    baseline: FileBaseline
    current: FileBaseline

    def describe(self) -> str:
        if self.baseline.exists and not self.current.exists:
            return f"{self.key}: deleted since baseline"
        if not self.baseline.exists and self.current.exists:
            return f"{self.key}: created since baseline"
        return (
            f"{self.key}: changed since baseline "
            f"(size {self.baseline.size} -> {self.current.size}, "
            f"mtime {self.baseline.mod_time_ns} -> {self.current.mod_time_ns})"
        )


@dataclass(frozen=True)
class PipelineOutcome:
    """Final report of an operation, whatever its result.

    reason explains a rollback or failure; conflicts is populated when the
    reason was drift.
    """

    target_version: str
    status: StagingStatus
    files_committed: tuple[str, ...]
    files_discarded: tuple[str, ...]
    category_outcomes: dict[ArtifactCategory, CategoryOutcome]
    conflicts: tuple[DriftConflict, ...]
    diagnostics: tuple[str, ...]
    reason: str | None


class RecoveryAction(Enum):
    INSPECT = "inspect"
    COMMIT = "commit"
    ROLLBACK = "rollback"


OrphanKind = Literal["crash", "possibly-running", "corrupt", "partial-commit"]


@dataclass(frozen=True)
class Orphan:
    """A staging directory left behind by an operation that has not finished.

    status and age_ms are None for a corrupt descriptor; error then holds
    the parse failure.
    """

    target_version: str
    kind: OrphanKind
    status: StagingStatus | None
    age_ms: int | None
    available_actions: tuple[RecoveryAction, ...]
    error: str | None


@dataclass(frozen=True)
class StagingInspection:
    target_version: str
    descriptor: StagingDescriptor | None
    descriptor_error: str | None
    file_counts: dict[ArtifactCategory, int]
    staged_files: tuple[StagedFile, ...]

    @property
    def total_files(self) -> int:
        return sum(self.file_counts.values())


@dataclass(frozen=True)
class RecoveryResult:
    target_version: str
    action: RecoveryAction
    inspection: StagingInspection | None
    outcome: PipelineOutcome | None
