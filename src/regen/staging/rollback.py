"""Discards a staged operation without touching production."""

import logging

from regen_shared.artifacts import ArtifactCategory

from regen.staging.journal import HistoryJournal
from regen.staging.models import (
    DriftConflict,
    PipelineOutcome,
    StagingDescriptor,
    StagingStatus,
)
from regen.staging.store import StagingStore

logger = logging.getLogger(__name__)


class RollbackCoordinator:
    def __init__(self, *, store: StagingStore, journal: HistoryJournal) -> None:
        self._store = store
        self._journal = journal

    def rollback(
        self,
        version: str,
        *,
        reason: str | None,
        conflicts: tuple[DriftConflict, ...] = (),
    ) -> PipelineOutcome:
        """Roll back version by name. A missing staging directory is a no-op success."""
        if not self._store.exists(version):
            logger.debug("Nothing to roll back for %s", version)
            return self._outcome(version, files_discarded=(), reason=reason, conflicts=conflicts)
        return self.rollback_descriptor(
            self._store.load(version), reason=reason, conflicts=conflicts
        )

    def rollback_descriptor(
        self,
        descriptor: StagingDescriptor,
        *,
        reason: str | None,
        conflicts: tuple[DriftConflict, ...] = (),
    ) -> PipelineOutcome:
        """Discard everything staged for descriptor and record the rollback.

        Re-entrant: a descriptor already in rolling-back or rolled-back
        finishes the remaining steps. Raises ValueError once any category
        has reached production.
        """
        version = descriptor.target_version
        status = descriptor.status
        if status in (StagingStatus.COMMITTED, StagingStatus.FAILED):
            raise ValueError(f"Cannot roll back {version}: status is {status.value}")
        if status == StagingStatus.COMMITTING and descriptor.commit_progress.production_touched:
            raise ValueError(
                f"Cannot roll back {version}: categories were already committed to production"
            )

        error = reason if reason is not None else descriptor.error
        if status not in (StagingStatus.ROLLING_BACK, StagingStatus.ROLLED_BACK):
            descriptor = self._store.transition(
                descriptor, StagingStatus.ROLLING_BACK, error=error
            )

        discarded: tuple[str, ...] = ()
        if descriptor.status == StagingStatus.ROLLING_BACK:
            removed = self._store.discard_category_contents(version)
            discarded = tuple(sorted(set(removed) | set(descriptor.stage_files())))
            descriptor = self._store.transition(descriptor, StagingStatus.ROLLED_BACK)
        else:
            discarded = descriptor.stage_files()

        descriptor = self._journal.record(
            descriptor,
            outcome="rolled-back",
            files_committed=(),
            files_discarded=discarded,
            category_outcomes={c: "unchanged" for c in ArtifactCategory},
        )
        try:
            self._store.remove(descriptor)
        except OSError as e:
            logger.warning(
                "Rolled back %s but could not remove its staging directory: %s", version, e
            )

        logger.info("Rolled back %s: %s", version, descriptor.error or "no reason recorded")
        return self._outcome(
            version,
            files_discarded=discarded,
            reason=descriptor.error,
            conflicts=conflicts,
            diagnostics=descriptor.validation.diagnostics if descriptor.validation else (),
        )

    def _outcome(
        self,
        version: str,
        *,
        files_discarded: tuple[str, ...],
        reason: str | None,
        conflicts: tuple[DriftConflict, ...],
        diagnostics: tuple[str, ...] = (),
    ) -> PipelineOutcome:
        return PipelineOutcome(
            target_version=version,
            status=StagingStatus.ROLLED_BACK,
            files_committed=(),
            files_discarded=files_discarded,
            category_outcomes={c: "unchanged" for c in ArtifactCategory},
            conflicts=conflicts,
            diagnostics=diagnostics,
            reason=reason,
        )
