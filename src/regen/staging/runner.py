"""Runs the two generation stages in order against the staging tree."""

import dataclasses
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from regen_shared.artifacts import StageResult
from regen_shared.gateway.stage.abc import GenerationStage, StageOutput, StagingOutputs
from regen_shared.gateway.time.abc import Time

from regen.staging.models import STAGE_COUNT, StagingDescriptor, StagingStatus
from regen.staging.store import StagingStore

logger = logging.getLogger(__name__)

# Status required before stage N runs, and the status it leads to
_STAGE_STATUSES = (
    (StagingStatus.STAGING, StagingStatus.STAGE1_COMPLETE),
    (StagingStatus.STAGE1_COMPLETE, StagingStatus.STAGE2_COMPLETE),
)


@dataclass(frozen=True)
class StageFailure:
    """A stage reported failure, raised, or broke the staging discipline.

    descriptor already has the failed Stage Result persisted.
    """

    descriptor: StagingDescriptor
    stage_index: int
    reason: str


class StageRunner:
    def __init__(
        self, *, store: StagingStore, stages: Sequence[GenerationStage], time: Time
    ) -> None:
        self._store = store
        self._stages = tuple(stages)
        self._time = time

    def run(self, descriptor: StagingDescriptor) -> StagingDescriptor | StageFailure:
        """Run every stage not yet completed, starting from the descriptor's status.

        Returns the stage2-complete descriptor, or the first failure. A
        stage never runs after an earlier one failed.
        """
        if len(self._stages) != STAGE_COUNT:
            raise ValueError(f"Expected {STAGE_COUNT} generation stages, got {len(self._stages)}")
        for index, (required, _completed) in enumerate(_STAGE_STATUSES):
            if descriptor.status != required:
                continue
            result = self._run_stage(descriptor, index)
            if isinstance(result, StageFailure):
                return result
            descriptor = result
        return descriptor

    def _prepare(self, descriptor: StagingDescriptor, index: int) -> None:
        version = descriptor.target_version
        if index == 0:
            discarded = self._store.discard_category_contents(version)
        else:
            keep = descriptor.stage_files(before=index)
            discarded = self._store.discard_files_except(version, keep)
        if discarded:
            logger.info(
                "Discarded %d leftover staged files before stage %d of %s",
                len(discarded),
                index + 1,
                version,
            )

    def _run_stage(
        self, descriptor: StagingDescriptor, index: int
    ) -> StagingDescriptor | StageFailure:
        stage = self._stages[index]
        version = descriptor.target_version

        if index > 0:
            prior = descriptor.stage_results[index - 1]
            if prior is None or not prior.success:
                return StageFailure(
                    descriptor=descriptor,
                    stage_index=index,
                    reason=f"stage {index + 1} cannot run: stage {index} did not succeed",
                )

        self._prepare(descriptor, index)
        outputs = StagingOutputs(
            target_version=version,
            previous_version=descriptor.previous_version,
            root=self._store.layout.version_dir(version),
            category_dirs=self._store.layout.staging_category_dirs(version),
            prior_files=descriptor.stage_files(before=index),
        )

        before = self._store.fingerprint(version)
        started = self._time.monotonic()
        logger.debug("Running stage %d (%s) for %s", index + 1, stage.name, version)
        try:
            output = stage.run(outputs=outputs)
        except Exception as e:
            logger.warning("Stage %s raised", stage.name, exc_info=True)
            output = StageOutput(
                success=False,
                files_written=(),
                error=f"{type(e).__name__}: {e}",
                full_replacement=frozenset(),
            )
        duration_ms = int((self._time.monotonic() - started) * 1000)
        after = self._store.fingerprint(version)

        written = tuple(sorted(k for k, digest in after.items() if before.get(k) != digest))
        error = output.error if not output.success else None
        if output.success:
            error = self._check_discipline(
                outputs=outputs,
                reported=output.files_written,
                before=before,
                after=after,
            )
        if not output.success and error is None:
            error = f"stage '{stage.name}' failed without an error message"

        success = error is None
        result = StageResult(
            name=stage.name,
            success=success,
            files_written=written,
            error=error,
            duration_ms=duration_ms,
            full_replacement=output.full_replacement if success else frozenset(),
        )
        stage_results = list(descriptor.stage_results)
        stage_results[index] = result

        if not success:
            assert error is not None
            updated = self._store.update(
                dataclasses.replace(
                    descriptor, stage_results=tuple(stage_results), error=error
                )
            )
            logger.info("Stage %d (%s) failed for %s: %s", index + 1, stage.name, version, error)
            return StageFailure(descriptor=updated, stage_index=index, reason=error)

        return self._store.transition(
            descriptor, _STAGE_STATUSES[index][1], stage_results=tuple(stage_results)
        )

    def _check_discipline(
        self,
        *,
        outputs: StagingOutputs,
        reported: Sequence[str],
        before: dict[str, str],
        after: dict[str, str],
    ) -> str | None:
        """Return an error if a successful stage broke the staging contract."""
        for path_str in reported:
            path = Path(path_str)
            if path.is_absolute():
                try:
                    path = path.relative_to(outputs.root)
                except ValueError:
                    return f"reported file outside the staging tree: {path_str}"
            if path.as_posix() not in after:
                return f"reported file not found in the staging tree: {path_str}"

        modified = [k for k in outputs.prior_files if before.get(k) != after.get(k)]
        if modified:
            return f"modified output of an earlier stage: {', '.join(sorted(modified))}"
        return None
