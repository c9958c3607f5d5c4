"""Validation gate between the last stage and commit.

Delegates the actual checks to an ArtifactValidator; its only job here is
to drive stage2-complete -> validating and record the verdict.
"""

import dataclasses
import logging
from dataclasses import dataclass

from regen_shared.gateway.validator.abc import ArtifactValidator

from regen.staging.models import StagingDescriptor, StagingStatus, ValidationRecord
from regen.staging.store import StagingStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationRejection:
    descriptor: StagingDescriptor
    reason: str
    diagnostics: tuple[str, ...]


class ValidationGate:
    def __init__(self, *, store: StagingStore, validator: ArtifactValidator) -> None:
        self._store = store
        self._validator = validator

    def run(self, descriptor: StagingDescriptor) -> StagingDescriptor | ValidationRejection:
        """Validate all staged files once; returns the accepted descriptor or a rejection."""
        if descriptor.status == StagingStatus.STAGE2_COMPLETE:
            descriptor = self._store.transition(descriptor, StagingStatus.VALIDATING)
        elif descriptor.status != StagingStatus.VALIDATING:
            raise ValueError(
                f"Validation requires stage2-complete or validating, got {descriptor.status.value}"
            )
        elif descriptor.validation is not None and descriptor.validation.accepted:
            return descriptor

        staged = self._store.staged_files(descriptor.target_version)
        try:
            report = self._validator.validate(staged_files=staged)
            accepted = report.accepted
            diagnostics = tuple(d.render() for d in report.diagnostics)
        except Exception as e:
            logger.warning("Validator raised", exc_info=True)
            accepted = False
            diagnostics = (f"error: validator raised {type(e).__name__}: {e}",)

        record = ValidationRecord(accepted=accepted, diagnostics=diagnostics)
        reason = None if accepted else "validation rejected the staged artifacts"
        descriptor = self._store.update(
            dataclasses.replace(descriptor, validation=record, error=reason)
        )
        if accepted:
            logger.debug(
                "Validation accepted %d staged files for %s",
                len(staged),
                descriptor.target_version,
            )
            return descriptor

        assert reason is not None
        logger.info("Validation rejected %s: %s", descriptor.target_version, "; ".join(diagnostics))
        return ValidationRejection(descriptor=descriptor, reason=reason, diagnostics=diagnostics)
