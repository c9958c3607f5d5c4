"""Public entry point: start, drive and recover staged transformations.

Typical use by a host:

    engine = build_engine(layout=..., stages=[s1, s2], validator=..., history=..., time=RealTime(),
                          stale_after=timedelta(minutes=60))
    descriptor = engine.start_operation(target_version="1.4.0", previous_version=None, force=False)
    outcome = engine.run_pipeline(descriptor)

run_pipeline always ends in committed or rolled-back, except for a partial
commit which is raised as PartialCommitError.
"""

import logging
from collections.abc import Sequence
from datetime import timedelta

from regen_shared.gateway.history.abc import HistorySink
from regen_shared.gateway.stage.abc import GenerationStage
from regen_shared.gateway.time.abc import Time
from regen_shared.gateway.validator.abc import ArtifactValidator

from regen.staging.commit import CommitCoordinator
from regen.staging.errors import (
    BaselineCaptureError,
    CommitPreconditionError,
    DriftConflictError,
    OperationInProgressError,
    OrphanedStagingError,
)
from regen.staging.journal import HistoryJournal
from regen.staging.layout import StagingLayout, check_version_name
from regen.staging.models import (
    Orphan,
    PipelineOutcome,
    RecoveryAction,
    RecoveryResult,
    StagingDescriptor,
    StagingStatus,
)
from regen.staging.recovery import OrphanRecovery
from regen.staging.rollback import RollbackCoordinator
from regen.staging.runner import StageFailure, StageRunner
from regen.staging.store import StagingStore
from regen.staging.validation import ValidationGate, ValidationRejection

logger = logging.getLogger(__name__)


class TransformEngine:
    def __init__(
        self,
        *,
        store: StagingStore,
        runner: StageRunner,
        gate: ValidationGate,
        committer: CommitCoordinator,
        rollback: RollbackCoordinator,
        recovery: OrphanRecovery,
        history: HistorySink,
    ) -> None:
        self._store = store
        self._runner = runner
        self._gate = gate
        self._committer = committer
        self._rollback = rollback
        self._recovery = recovery
        self._history = history

    @property
    def store(self) -> StagingStore:
        return self._store

    def start_operation(
        self,
        *,
        target_version: str,
        previous_version: str | None,
        force: bool,
    ) -> StagingDescriptor:
        """Create the staging directory for target_version, or resume an existing one.

        Refuses (before writing anything) when the same version may still be
        running, when it is corrupt or partially committed, or when another
        version has unfinished staging. force overrides the running check
        and the cross-version check.
        """
        check_version_name(target_version)
        orphans = self._recovery.scan(force=force)

        own = next((o for o in orphans if o.target_version == target_version), None)
        if own is not None:
            if own.kind in ("corrupt", "partial-commit"):
                raise OrphanedStagingError([target_version])
            if own.kind == "possibly-running" and not force:
                raise OperationInProgressError(
                    target_version,
                    own.status.value if own.status is not None else "unknown",
                    own.age_ms,
                )

        others = [o.target_version for o in orphans if o.target_version != target_version]
        if others and not force:
            raise OrphanedStagingError(others)
        if others:
            logger.warning("Starting %s despite unfinished staging for %s", target_version, others)

        if previous_version is None:
            try:
                previous_version = self._history.latest_committed_version()
            except (OSError, ValueError) as e:
                logger.warning("Could not read the previous version from history: %s", e)

        descriptor, created = self._store.open(
            target_version=target_version,
            previous_version=previous_version,
            extra_baseline_keys=(),
        )
        if created:
            logger.info(
                "Started %s (previous %s) with %d baseline paths",
                target_version,
                previous_version or "none",
                len(descriptor.production_baseline),
            )
        else:
            logger.info("Resuming %s from status %s", target_version, descriptor.status.value)
        return descriptor

    def run_pipeline(self, descriptor: StagingDescriptor) -> PipelineOutcome:
        """Drive descriptor from its current status to committed or rolled-back."""
        version = descriptor.target_version
        status = descriptor.status
        if status.is_terminal or status == StagingStatus.FAILED:
            raise ValueError(f"Operation {version} already ended with status {status.value}")
        if status == StagingStatus.ROLLING_BACK:
            return self._rollback.rollback_descriptor(descriptor, reason=None)

        failed = descriptor.failed_stage()
        if failed is not None:
            return self._rollback.rollback_descriptor(
                descriptor, reason=f"stage '{failed.name}' failed: {failed.error}"
            )

        if descriptor.status in (StagingStatus.STAGING, StagingStatus.STAGE1_COMPLETE):
            ran = self._runner.run(descriptor)
            if isinstance(ran, StageFailure):
                return self._rollback.rollback_descriptor(
                    ran.descriptor,
                    reason=f"stage {ran.stage_index + 1} failed: {ran.reason}",
                )
            descriptor = ran

        if descriptor.status in (StagingStatus.STAGE2_COMPLETE, StagingStatus.VALIDATING):
            verdict = self._gate.run(descriptor)
            if isinstance(verdict, ValidationRejection):
                return self._rollback.rollback_descriptor(
                    verdict.descriptor, reason=verdict.reason
                )
            descriptor = verdict

        try:
            return self._committer.commit(descriptor)
        except DriftConflictError as e:
            return self._rollback.rollback(version, reason=str(e), conflicts=e.conflicts)
        except (CommitPreconditionError, BaselineCaptureError) as e:
            return self._rollback.rollback(version, reason=str(e))

    def list_orphans(self) -> list[Orphan]:
        return self._recovery.scan()

    def recover_orphan(
        self, *, target_version: str, action: RecoveryAction, force: bool
    ) -> RecoveryResult:
        """Run one operator-chosen recovery action on a leftover staging directory."""
        check_version_name(target_version)
        descriptor = self._recovery.authorize(target_version, action, force=force)

        if action == RecoveryAction.INSPECT:
            return RecoveryResult(
                target_version=target_version,
                action=action,
                inspection=self._store.inspect(target_version),
                outcome=None,
            )

        assert descriptor is not None
        logger.info(
            "Recovering %s from status %s with %s",
            target_version,
            descriptor.status.value,
            action.value,
        )
        if action == RecoveryAction.COMMIT:
            outcome = self.run_pipeline(descriptor)
        else:
            reason = descriptor.error
            if reason is None:
                reason = f"rolled back by recovery from status {descriptor.status.value}"
            outcome = self._rollback.rollback_descriptor(descriptor, reason=reason)
        return RecoveryResult(
            target_version=target_version, action=action, inspection=None, outcome=outcome
        )


def build_engine(
    *,
    layout: StagingLayout,
    stages: Sequence[GenerationStage],
    validator: ArtifactValidator,
    history: HistorySink,
    time: Time,
    stale_after: timedelta,
) -> TransformEngine:
    store = StagingStore(layout=layout, time=time)
    journal = HistoryJournal(store=store, history=history, time=time)
    return TransformEngine(
        store=store,
        runner=StageRunner(store=store, stages=stages, time=time),
        gate=ValidationGate(store=store, validator=validator),
        committer=CommitCoordinator(store=store, journal=journal),
        rollback=RollbackCoordinator(store=store, journal=journal),
        recovery=OrphanRecovery(
            store=store, journal=journal, time=time, stale_after=stale_after
        ),
        history=history,
    )
