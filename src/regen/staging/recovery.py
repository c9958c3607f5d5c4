"""Finds and classifies staging directories left behind by earlier runs.

Classification of a version directory:

- terminal status (committed/rolled-back): cleanup-only, removed during the
  scan after recording any missing history entry; never reported.
- failed: a partial commit; inspect only.
- unreadable descriptor: corrupt; inspect only.
- non-terminal and started within the staleness threshold: possibly still
  running; no actions unless forced.
- non-terminal and older than the threshold: crash orphan; inspect,
  commit (from stage2-complete onwards) and rollback.
"""

import logging
from datetime import timedelta

from regen_shared.gateway.time.abc import Time

from regen.staging.errors import DescriptorError, RecoveryActionUnavailableError
from regen.staging.journal import HistoryJournal
from regen.staging.models import (
    COMMITTABLE_STATUSES,
    Orphan,
    RecoveryAction,
    StagingDescriptor,
    StagingStatus,
)
from regen.staging.store import StagingStore

logger = logging.getLogger(__name__)


def _crash_actions(descriptor: StagingDescriptor) -> tuple[RecoveryAction, ...]:
    actions = [RecoveryAction.INSPECT]
    if descriptor.status in COMMITTABLE_STATUSES:
        actions.append(RecoveryAction.COMMIT)
    touched = (
        descriptor.status == StagingStatus.COMMITTING
        and descriptor.commit_progress.production_touched
    )
    if not touched:
        actions.append(RecoveryAction.ROLLBACK)
    return tuple(actions)


class OrphanRecovery:
    def __init__(
        self,
        *,
        store: StagingStore,
        journal: HistoryJournal,
        time: Time,
        stale_after: timedelta,
    ) -> None:
        if stale_after <= timedelta(0):
            raise ValueError(f"Staleness threshold must be positive, got {stale_after}")
        self._store = store
        self._journal = journal
        self._time = time
        self._stale_after = stale_after

    @property
    def stale_after(self) -> timedelta:
        return self._stale_after

    def age_ms(self, descriptor: StagingDescriptor) -> int:
        return int((self._time.now() - descriptor.start_time).total_seconds() * 1000)

    def is_stale(self, descriptor: StagingDescriptor) -> bool:
        return self._time.now() - descriptor.start_time >= self._stale_after

    def scan(self, *, force: bool = False) -> list[Orphan]:
        """Classify every version directory, removing cleanup-only ones.

        Scratch leftovers of interrupted creations and removals are purged
        first.
        """
        for name in self._store.purge_scratch():
            logger.warning("Purged interrupted staging scratch directory %s", name)

        orphans: list[Orphan] = []
        for version in self._store.list_versions():
            orphan = self.classify(version, force=force)
            if orphan is not None:
                orphans.append(orphan)
        return orphans

    def classify(self, version: str, *, force: bool = False) -> Orphan | None:
        """Return the orphan for version, or None if nothing is left of it."""
        if not self._store.exists(version):
            return None
        try:
            descriptor = self._store.load(version)
        except DescriptorError as e:
            return Orphan(
                target_version=version,
                kind="corrupt",
                status=None,
                age_ms=None,
                available_actions=(RecoveryAction.INSPECT,),
                error=str(e),
            )

        if descriptor.status.is_terminal:
            try:
                self._journal.finalize(descriptor)
            except OSError as e:
                logger.warning("Could not remove leftover staging directory for %s: %s", version, e)
            return None

        age_ms = self.age_ms(descriptor)
        if descriptor.status == StagingStatus.FAILED:
            return Orphan(
                target_version=version,
                kind="partial-commit",
                status=descriptor.status,
                age_ms=age_ms,
                available_actions=(RecoveryAction.INSPECT,),
                error=descriptor.error,
            )
        if not self.is_stale(descriptor):
            return Orphan(
                target_version=version,
                kind="possibly-running",
                status=descriptor.status,
                age_ms=age_ms,
                available_actions=_crash_actions(descriptor) if force else (),
                error=descriptor.error,
            )
        return Orphan(
            target_version=version,
            kind="crash",
            status=descriptor.status,
            age_ms=age_ms,
            available_actions=_crash_actions(descriptor),
            error=descriptor.error,
        )

    def authorize(
        self, version: str, action: RecoveryAction, *, force: bool
    ) -> StagingDescriptor | None:
        """Check that action may run on version and return its descriptor.

        Inspect is always allowed and returns None for a corrupt descriptor.
        Raises RecoveryActionUnavailableError otherwise.
        """
        orphan = self.classify(version, force=force)
        if orphan is None:
            raise RecoveryActionUnavailableError(version, action, "no staging directory exists")

        if action == RecoveryAction.INSPECT:
            if orphan.kind == "corrupt":
                return None
            return self._store.load(version)

        if action not in orphan.available_actions:
            raise RecoveryActionUnavailableError(version, action, self._refusal(orphan, action))
        return self._store.load(version)

    def _refusal(self, orphan: Orphan, action: RecoveryAction) -> str:
        if orphan.kind == "corrupt":
            return (
                f"descriptor is unreadable ({orphan.error}); inspect it and delete "
                f"{self._store.layout.version_dir(orphan.target_version)} manually"
            )
        if orphan.kind == "partial-commit":
            return (
                "a partial commit needs manual inspection; production mixes old and "
                "new artifacts"
            )
        if orphan.kind == "possibly-running":
            return (
                "the operation may still be running "
                f"(started {(orphan.age_ms or 0) // 1000}s ago, threshold "
                f"{int(self._stale_after.total_seconds())}s); pass --force to override"
            )
        assert orphan.status is not None
        if action == RecoveryAction.COMMIT:
            return f"status {orphan.status.value} has not reached stage2-complete"
        return "categories were already committed to production; resume the commit instead"
