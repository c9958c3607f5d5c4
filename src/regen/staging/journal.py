"""Appends history entries for operations that reached an end state."""

import dataclasses
import logging
from collections.abc import Mapping

from regen_shared.artifacts import ArtifactCategory
from regen_shared.gateway.history.abc import (
    CategoryOutcome,
    HistoryEntry,
    HistoryOutcome,
    HistorySink,
)
from regen_shared.gateway.time.abc import Time

from regen.staging.models import StagingDescriptor, StagingStatus
from regen.staging.store import StagingStore

logger = logging.getLogger(__name__)


class HistoryJournal:
    """Write the history entry for a finished operation, then mark it recorded.

    The sink is append-only; a failed append is logged and the descriptor is
    returned unchanged so the decided outcome stands.
    """

    def __init__(self, *, store: StagingStore, history: HistorySink, time: Time) -> None:
        self._store = store
        self._history = history
        self._time = time

    def record(
        self,
        descriptor: StagingDescriptor,
        *,
        outcome: HistoryOutcome,
        files_committed: tuple[str, ...],
        files_discarded: tuple[str, ...],
        category_outcomes: Mapping[ArtifactCategory, CategoryOutcome],
    ) -> StagingDescriptor:
        if descriptor.history_recorded:
            return descriptor

        entry = HistoryEntry(
            target_version=descriptor.target_version,
            previous_version=descriptor.previous_version,
            committed=outcome == "committed",
            outcome=outcome,
            stage_results=descriptor.completed_stage_results,
            files_committed=files_committed,
            files_discarded=files_discarded,
            category_outcomes={c.value: o for c, o in category_outcomes.items()},
            diagnostics=descriptor.validation.diagnostics if descriptor.validation else (),
            error=descriptor.error,
            timestamp=self._time.now(),
        )
        try:
            self._history.append(entry)
        except (OSError, ValueError) as e:
            logger.error(
                "Failed to append history entry for %s (%s): %s",
                descriptor.target_version,
                outcome,
                e,
            )
            return descriptor
        return self._store.update(dataclasses.replace(descriptor, history_recorded=True))

    def finalize(self, descriptor: StagingDescriptor) -> None:
        """Record history if still missing, then delete the staging directory.

        Only for terminal descriptors whose directory outlived the operation.
        """
        version = descriptor.target_version
        if descriptor.status == StagingStatus.COMMITTED:
            committed = tuple(f.key for f in self._store.staged_files(version))
            completed = set(descriptor.commit_progress.completed)
            descriptor = self.record(
                descriptor,
                outcome="committed",
                files_committed=committed,
                files_discarded=(),
                category_outcomes={
                    c: "committed" if c in completed else "unchanged" for c in ArtifactCategory
                },
            )
        else:
            descriptor = self.record(
                descriptor,
                outcome="rolled-back",
                files_committed=(),
                files_discarded=descriptor.stage_files(),
                category_outcomes={c: "unchanged" for c in ArtifactCategory},
            )
        self._store.remove(descriptor)
        logger.warning(
            "Removed leftover staging directory for %s (%s)", version, descriptor.status.value
        )
