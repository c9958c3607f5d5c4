"""Exceptions raised by the staging engine.

Refusals are raised before anything is written. Failures during a pipeline
are converted into a rollback by the engine; PartialCommitError is the only
pipeline failure that escapes run_pipeline.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from regen.staging.models import (
        DriftConflict,
        PipelineOutcome,
        RecoveryAction,
        StagingStatus,
    )


class InvalidVersionError(ValueError):
    """Target version cannot be used as a staging directory name."""

    def __init__(self, version: str, reason: str) -> None:
        self.version = version
        super().__init__(f"Invalid target version '{version}': {reason}")


class InvalidTransitionError(RuntimeError):
    """A status change that the state machine does not allow."""

    def __init__(self, current: StagingStatus, requested: StagingStatus) -> None:
        self.current = current
        self.requested = requested
        super().__init__(
            f"Invalid staging status transition: {current.value} -> {requested.value}"
        )


class DescriptorError(Exception):
    """A staging descriptor that cannot be read, parsed or migrated."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Unreadable staging descriptor {path}: {reason}")


class BaselineCaptureError(Exception):
    """Production metadata could not be read; the operation is aborted."""

    def __init__(self, path: Path, cause: OSError) -> None:
        self.path = path
        super().__init__(f"Cannot capture production baseline at {path}: {cause}")


class OperationInProgressError(Exception):
    """A fresh, non-terminal staging directory exists for this version."""

    def __init__(self, version: str, status: str, age_ms: int | None) -> None:
        self.version = version
        self.status = status
        self.age_ms = age_ms
        age = f"{age_ms // 1000}s old" if age_ms is not None else "age unknown"
        super().__init__(
            f"An operation for {version} may still be running (status {status}, {age}). "
            "Wait for the staleness threshold or force a recovery action."
        )


class OrphanedStagingError(Exception):
    """Other versions have unfinished staging directories on the same production tree."""

    def __init__(self, versions: list[str]) -> None:
        self.versions = versions
        super().__init__(
            f"Orphaned staging directories detected: {', '.join(versions)}. "
            "Recover them before starting a new operation."
        )


class DriftConflictError(Exception):
    """Production changed between baseline capture and commit."""

    def __init__(self, conflicts: tuple[DriftConflict, ...]) -> None:
        self.conflicts = conflicts
        paths = ", ".join(c.key for c in conflicts)
        super().__init__(f"Drift conflict: production changed since baseline: {paths}")


class CommitPreconditionError(Exception):
    """Commit cannot proceed safely; nothing in production was touched."""


class PartialCommitError(Exception):
    """Some categories were committed before a later category failed.

    Production now mixes old and new artifacts. This is never resolved
    automatically; the staging directory is kept for manual inspection.
    """

    def __init__(self, outcome: PipelineOutcome) -> None:
        self.outcome = outcome
        super().__init__(outcome.reason or "Partial commit failure")


class RecoveryActionUnavailableError(Exception):
    """The requested recovery action is not offered for this orphan."""

    def __init__(self, version: str, action: RecoveryAction, reason: str) -> None:
        self.version = version
        self.action = action
        super().__init__(f"Cannot {action.value} {version}: {reason}")
