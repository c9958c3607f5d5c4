"""Tests for transform command rendering helpers."""

import pytest
from regen_shared.artifacts import ArtifactCategory

from regen.cli.commands.transform.render import (
    EXIT_COMMITTED,
    EXIT_PARTIAL_COMMIT,
    EXIT_ROLLED_BACK,
    _format_age,
    outcome_exit_code,
)
from regen.staging.models import PipelineOutcome, StagingStatus


def _outcome(status: StagingStatus) -> PipelineOutcome:
    return PipelineOutcome(
        target_version="2.0.0",
        status=status,
        files_committed=(),
        files_discarded=(),
        category_outcomes={c: "unchanged" for c in ArtifactCategory},
        conflicts=(),
        diagnostics=(),
        reason=None,
    )


@pytest.mark.parametrize(
    ("status", "code"),
    [
        (StagingStatus.COMMITTED, EXIT_COMMITTED),
        (StagingStatus.ROLLED_BACK, EXIT_ROLLED_BACK),
        (StagingStatus.FAILED, EXIT_PARTIAL_COMMIT),
    ],
)
def test_outcome_exit_code(status: StagingStatus, code: int) -> None:
    assert outcome_exit_code(_outcome(status)) == code


@pytest.mark.parametrize(
    ("age_ms", "expected"),
    [
        (None, "-"),
        (59_000, "59s"),
        (61_000, "1m"),
        (2 * 3600_000 + 5 * 60_000, "2h 5m"),
    ],
)
def test_format_age(age_ms: int | None, expected: str) -> None:
    assert _format_age(age_ms) == expected
