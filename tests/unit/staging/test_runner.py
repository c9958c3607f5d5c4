"""Tests for the stage runner's ordering and staging discipline."""

import dataclasses
from collections.abc import Sequence

from regen_shared.artifacts import ArtifactCategory
from regen_shared.gateway.stage.abc import GenerationStage, StagingOutputs
from regen_shared.gateway.stage.fake import FakeGenerationStage
from regen_shared.gateway.time.fake import FakeTime

from regen.staging.models import StagingDescriptor, StagingStatus
from regen.staging.runner import StageFailure, StageRunner
from regen.staging.store import StagingStore


def _open(store: StagingStore) -> StagingDescriptor:
    descriptor, _ = store.open(
        target_version="2.0.0", previous_version="1.0.0", extra_baseline_keys=()
    )
    return descriptor


def _runner(
    store: StagingStore, fake_time: FakeTime, stages: Sequence[GenerationStage]
) -> StageRunner:
    return StageRunner(store=store, stages=stages, time=fake_time)


def test_both_stages_run_in_order(store: StagingStore, fake_time: FakeTime) -> None:
    stage1 = FakeGenerationStage.writing("scripts", {"scripts/a.ts": "a"})
    stage2 = FakeGenerationStage(
        name="extract",
        files={"commands/x.md": "x"},
        full_replacement=frozenset({ArtifactCategory.SKILLS}),
    )

    result = _runner(store, fake_time, [stage1, stage2]).run(_open(store))

    assert isinstance(result, StagingDescriptor)
    assert result.status == StagingStatus.STAGE2_COMPLETE
    assert stage2.run_calls[0].prior_files == ("scripts/a.ts",)
    first, second = result.stage_results
    assert first is not None and first.files_written == ("scripts/a.ts",)
    assert second is not None and second.files_written == ("commands/x.md",)
    assert result.full_replacement_categories() == frozenset({ArtifactCategory.SKILLS})


def test_files_written_come_from_the_tree_not_the_report(
    store: StagingStore, fake_time: FakeTime
) -> None:
    stage1 = FakeGenerationStage(
        name="scripts", files={"scripts/a.ts": "a", "scripts/b.ts": "b"}, reported_files=()
    )
    stage2 = FakeGenerationStage.writing("extract", {})

    result = _runner(store, fake_time, [stage1, stage2]).run(_open(store))

    assert isinstance(result, StagingDescriptor)
    first = result.stage_results[0]
    assert first is not None
    assert first.files_written == ("scripts/a.ts", "scripts/b.ts")


def test_failed_stage_stops_the_pipeline(store: StagingStore, fake_time: FakeTime) -> None:
    stage1 = FakeGenerationStage.failing("scripts", "upstream unreachable")
    stage2 = FakeGenerationStage.writing("extract", {"commands/x.md": "x"})

    result = _runner(store, fake_time, [stage1, stage2]).run(_open(store))

    assert isinstance(result, StageFailure)
    assert result.stage_index == 0
    assert result.reason == "upstream unreachable"
    assert stage2.run_count == 0
    assert store.load("2.0.0").status == StagingStatus.STAGING
    persisted = store.load("2.0.0").stage_results[0]
    assert persisted is not None and persisted.success is False


def test_raising_stage_is_a_failure(store: StagingStore, fake_time: FakeTime) -> None:
    stage1 = FakeGenerationStage(name="scripts", files={}, raises=RuntimeError("kaput"))
    stage2 = FakeGenerationStage.writing("extract", {})

    result = _runner(store, fake_time, [stage1, stage2]).run(_open(store))

    assert isinstance(result, StageFailure)
    assert result.reason == "RuntimeError: kaput"


def test_modifying_earlier_output_is_a_failure(store: StagingStore, fake_time: FakeTime) -> None:
    stage1 = FakeGenerationStage.writing("scripts", {"scripts/a.ts": "a"})
    stage2 = FakeGenerationStage.writing("extract", {"scripts/a.ts": "rewritten"})

    result = _runner(store, fake_time, [stage1, stage2]).run(_open(store))

    assert isinstance(result, StageFailure)
    assert result.stage_index == 1
    assert "modified output of an earlier stage: scripts/a.ts" in result.reason


def test_reported_file_missing_from_tree_is_a_failure(
    store: StagingStore, fake_time: FakeTime
) -> None:
    stage1 = FakeGenerationStage(
        name="scripts", files={}, reported_files=("scripts/ghost.ts",)
    )
    stage2 = FakeGenerationStage.writing("extract", {})

    result = _runner(store, fake_time, [stage1, stage2]).run(_open(store))

    assert isinstance(result, StageFailure)
    assert "scripts/ghost.ts" in result.reason


def test_reported_file_outside_staging_is_a_failure(
    store: StagingStore, fake_time: FakeTime
) -> None:
    stage1 = FakeGenerationStage(
        name="scripts", files={}, reported_files=("/etc/passwd",)
    )
    stage2 = FakeGenerationStage.writing("extract", {})

    result = _runner(store, fake_time, [stage1, stage2]).run(_open(store))

    assert isinstance(result, StageFailure)
    assert "outside the staging tree" in result.reason


def test_resume_reruns_only_the_unfinished_stage(
    store: StagingStore, fake_time: FakeTime
) -> None:
    stage1 = FakeGenerationStage.writing("scripts", {"scripts/a.ts": "a"})
    stage2 = FakeGenerationStage.writing("extract", {"commands/x.md": "x"})
    runner = _runner(store, fake_time, [stage1, stage2])
    descriptor = _open(store)
    first = runner.run(descriptor)
    assert isinstance(first, StagingDescriptor)

    # Pretend stage 2 was interrupted: roll the status back and leave a stray file
    partial = store.update(
        dataclasses.replace(
            first,
            status=StagingStatus.STAGE1_COMPLETE,
            stage_results=(first.stage_results[0], None),
        )
    )
    stray = store.layout.staging_path("2.0.0", "agents/half.md")
    stray.write_text("half", encoding="utf-8")

    result = runner.run(partial)

    assert isinstance(result, StagingDescriptor)
    assert stage1.run_count == 1
    assert stage2.run_count == 2
    assert not stray.exists()
    assert [f.key for f in store.staged_files("2.0.0")] == ["commands/x.md", "scripts/a.ts"]


def test_stage_reads_its_staging_outputs(store: StagingStore, fake_time: FakeTime) -> None:
    seen: list[StagingOutputs] = []
    stage1 = FakeGenerationStage(name="scripts", files={}, side_effect=seen.append)
    stage2 = FakeGenerationStage.writing("extract", {})

    _runner(store, fake_time, [stage1, stage2]).run(_open(store))

    assert seen[0].previous_version == "1.0.0"
    assert seen[0].root == store.layout.version_dir("2.0.0")
    assert seen[0].category_dirs[ArtifactCategory.COMMANDS] == store.layout.staging_category_dir(
        "2.0.0", ArtifactCategory.COMMANDS
    )
