"""Tests for discarding staged operations."""

import pytest
from regen_shared.artifacts import ArtifactCategory
from regen_shared.gateway.history.fake import FakeHistorySink
from regen_shared.gateway.time.fake import FakeTime

from regen.staging.journal import HistoryJournal
from regen.staging.models import CommitProgress, StagingStatus, ValidationRecord
from regen.staging.rollback import RollbackCoordinator
from regen.staging.store import StagingStore
from tests.test_utils.engine_env import snapshot_production
from tests.test_utils.staging import advance_to_stage2_complete, advance_to_validated


@pytest.fixture
def history() -> FakeHistorySink:
    return FakeHistorySink()


@pytest.fixture
def rollback(
    store: StagingStore, history: FakeHistorySink, fake_time: FakeTime
) -> RollbackCoordinator:
    journal = HistoryJournal(store=store, history=history, time=fake_time)
    return RollbackCoordinator(store=store, journal=journal)


def test_discards_staging_and_records_history(
    store: StagingStore, rollback: RollbackCoordinator, history: FakeHistorySink
) -> None:
    prod = store.layout.production_path("scripts/a.ts")
    prod.parent.mkdir(parents=True)
    prod.write_text("production", encoding="utf-8")
    advance_to_stage2_complete(store, files={"scripts/a.ts": "staged", "agents/r.md": "r"})
    before = snapshot_production(store.layout)

    outcome = rollback.rollback("2.0.0", reason="operator abandoned")

    assert outcome.status == StagingStatus.ROLLED_BACK
    assert outcome.files_discarded == ("agents/r.md", "scripts/a.ts")
    assert outcome.reason == "operator abandoned"
    assert set(outcome.category_outcomes.values()) == {"unchanged"}
    assert snapshot_production(store.layout) == before
    assert not store.exists("2.0.0")
    [entry] = history.entries()
    assert entry.outcome == "rolled-back"
    assert entry.error == "operator abandoned"


def test_second_rollback_is_a_noop(
    store: StagingStore, rollback: RollbackCoordinator, history: FakeHistorySink
) -> None:
    advance_to_stage2_complete(store, files={"scripts/a.ts": "a"})

    rollback.rollback("2.0.0", reason="first")
    again = rollback.rollback("2.0.0", reason="second")

    assert again.status == StagingStatus.ROLLED_BACK
    assert again.files_discarded == ()
    assert len(history.entries()) == 1


def test_interrupted_rollback_is_finished(
    store: StagingStore, rollback: RollbackCoordinator, history: FakeHistorySink
) -> None:
    descriptor = advance_to_stage2_complete(store, files={"commands/x.md": "x"})
    descriptor = store.transition(descriptor, StagingStatus.ROLLING_BACK, error="drift")

    outcome = rollback.rollback_descriptor(descriptor, reason=None)

    assert outcome.reason == "drift"
    assert outcome.files_discarded == ("commands/x.md",)
    assert not store.exists("2.0.0")
    assert len(history.entries()) == 1


def test_refuses_once_production_was_touched(
    store: StagingStore, rollback: RollbackCoordinator
) -> None:
    descriptor = advance_to_validated(store, files={"scripts/a.ts": "a"})
    descriptor = store.transition(
        descriptor,
        StagingStatus.COMMITTING,
        commit_progress=CommitProgress(completed=(), in_flight=ArtifactCategory.SCRIPTS),
    )

    with pytest.raises(ValueError, match="already committed"):
        rollback.rollback_descriptor(descriptor, reason="too late")

    assert store.load("2.0.0").status == StagingStatus.COMMITTING


def test_committing_before_any_swap_can_roll_back(
    store: StagingStore, rollback: RollbackCoordinator
) -> None:
    descriptor = advance_to_validated(store, files={"scripts/a.ts": "a"})
    store.transition(descriptor, StagingStatus.COMMITTING)

    outcome = rollback.rollback("2.0.0", reason="commit precondition failed")

    assert outcome.status == StagingStatus.ROLLED_BACK
    assert not store.exists("2.0.0")


def test_validation_diagnostics_are_reported(
    store: StagingStore, rollback: RollbackCoordinator
) -> None:
    descriptor = advance_to_stage2_complete(store, files={"commands/x.md": "x"})
    store.transition(
        descriptor,
        StagingStatus.VALIDATING,
        validation=ValidationRecord(accepted=False, diagnostics=("error: commands/x.md: bad",)),
        error="validation rejected the staged artifacts",
    )

    outcome = rollback.rollback("2.0.0", reason=None)

    assert outcome.diagnostics == ("error: commands/x.md: bad",)
    assert outcome.reason == "validation rejected the staged artifacts"
