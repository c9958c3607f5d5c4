"""Tests for staging.json persistence and schema migration."""

import json
from pathlib import Path

import pytest
from regen_shared.artifacts import ArtifactCategory, StageResult

from regen.staging.descriptor import (
    SCHEMA_VERSION,
    descriptor_from_dict,
    descriptor_to_dict,
    read_descriptor,
)
from regen.staging.errors import DescriptorError
from regen.staging.models import (
    CommitProgress,
    FileBaseline,
    StagingStatus,
    ValidationRecord,
)
from tests.test_utils.descriptors import make_descriptor
from tests.test_utils.staging import successful_result


def _write(path: Path, data: object) -> Path:
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_descriptor_survives_persistence() -> None:
    descriptor = make_descriptor(
        status=StagingStatus.COMMITTING,
        stage_results=(
            StageResult(
                name="scripts",
                success=True,
                files_written=("scripts/a.ts",),
                error=None,
                duration_ms=12,
                full_replacement=frozenset({ArtifactCategory.SCRIPTS}),
            ),
            successful_result("extract"),
        ),
        production_baseline={
            "scripts/a.ts": FileBaseline(
                exists=True, mod_time_ns=1_700_000_000_123_456_789, size=9
            ),
            "commands/x.md": FileBaseline.missing(),
        },
        validation=ValidationRecord(accepted=True, diagnostics=("warning: x: empty body",)),
        commit_progress=CommitProgress(
            completed=(ArtifactCategory.SCRIPTS,), in_flight=ArtifactCategory.COMMANDS
        ),
        error="boom",
        history_recorded=True,
    )

    data = json.loads(json.dumps(descriptor_to_dict(descriptor)))

    assert data["schemaVersion"] == SCHEMA_VERSION
    assert data["productionBaseline"]["commands/x.md"] == {
        "exists": False,
        "modTime": None,
        "size": None,
    }
    assert descriptor_from_dict(data) == descriptor


def test_legacy_descriptor_is_migrated() -> None:
    legacy = {
        "targetVersion": "0.9.0",
        "previousVersion": "0.8.0",
        "status": "agent1-complete",
        "startTime": "2025-11-30T11:00:00+00:00",
        "productionBaseline": {
            "files": {
                ".speck/scripts/a.ts": {"exists": True, "mtime": 1700000000123, "size": 4},
                ".claude/commands/x.md": {"exists": False},
            },
            "capturedAt": "2025-11-30T11:00:00+00:00",
        },
        "agentResults": {
            "agent1": {
                "success": True,
                "filesWritten": ["/p/.speck/.transform-staging/0.9.0/scripts/a.ts"],
                "duration": 1500,
            }
        },
    }

    descriptor = descriptor_from_dict(legacy)

    assert descriptor.status == StagingStatus.STAGE1_COMPLETE
    assert descriptor.production_baseline["scripts/a.ts"] == FileBaseline(
        exists=True, mod_time_ns=1_700_000_000_123_000_000, size=4
    )
    assert descriptor.production_baseline["commands/x.md"] == FileBaseline.missing()
    first = descriptor.stage_results[0]
    assert first is not None
    assert first.files_written == ("scripts/a.ts",)
    assert first.duration_ms == 1500
    assert descriptor.stage_results[1] is None


def test_legacy_ready_status_needs_revalidation() -> None:
    legacy = {
        "targetVersion": "0.9.0",
        "status": "ready",
        "startTime": "2025-11-30T11:00:00+00:00",
        "productionBaseline": {},
        "agentResults": {
            "agent1": {"success": True, "filesWritten": []},
            "agent2": {"success": True, "filesWritten": []},
        },
    }

    descriptor = descriptor_from_dict(legacy)

    assert descriptor.status == StagingStatus.VALIDATING
    assert descriptor.validation is None


def test_newer_schema_is_rejected(tmp_path: Path) -> None:
    data = descriptor_to_dict(make_descriptor())
    data["schemaVersion"] = SCHEMA_VERSION + 1

    with pytest.raises(DescriptorError, match="newer than supported"):
        read_descriptor(_write(tmp_path / "staging.json", data))


def test_unknown_status_is_rejected(tmp_path: Path) -> None:
    data = descriptor_to_dict(make_descriptor())
    data["status"] = "half-done"

    with pytest.raises(DescriptorError, match="half-done"):
        read_descriptor(_write(tmp_path / "staging.json", data))


def test_invalid_json_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "staging.json"
    path.write_text('{"status": ', encoding="utf-8")

    with pytest.raises(DescriptorError, match="invalid JSON"):
        read_descriptor(path)


def test_missing_field_is_rejected(tmp_path: Path) -> None:
    data = descriptor_to_dict(make_descriptor())
    del data["stageResults"]

    with pytest.raises(DescriptorError):
        read_descriptor(_write(tmp_path / "staging.json", data))


def test_missing_file_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(DescriptorError):
        read_descriptor(tmp_path / "staging.json")


def _failed_result(name: str) -> StageResult:
    return StageResult(
        name=name,
        success=False,
        files_written=(),
        error="bad template",
        duration_ms=3,
        full_replacement=frozenset(),
    )


class TestStatusConsistency:
    def test_completed_status_without_stage_results_is_rejected(self, tmp_path: Path) -> None:
        data = descriptor_to_dict(make_descriptor(status=StagingStatus.STAGE2_COMPLETE))

        with pytest.raises(DescriptorError, match="successful result for stage 1"):
            read_descriptor(_write(tmp_path / "staging.json", data))

    def test_failed_stage_under_later_status_is_rejected(self, tmp_path: Path) -> None:
        descriptor = make_descriptor(
            status=StagingStatus.VALIDATING,
            stage_results=(successful_result("scripts"), _failed_result("extract")),
        )

        with pytest.raises(DescriptorError, match="stage 2"):
            read_descriptor(_write(tmp_path / "staging.json", descriptor_to_dict(descriptor)))

    def test_success_recorded_beyond_status_is_rejected(self) -> None:
        data = descriptor_to_dict(
            make_descriptor(stage_results=(successful_result("scripts"), None))
        )

        with pytest.raises(ValueError, match="contradicts"):
            descriptor_from_dict(data)

    def test_persisted_stage_failure_is_accepted(self) -> None:
        """A stage failure is saved before the status moves to rolling-back."""
        descriptor = make_descriptor(
            status=StagingStatus.STAGE1_COMPLETE,
            stage_results=(successful_result("scripts"), _failed_result("extract")),
            error="bad template",
        )

        assert descriptor_from_dict(descriptor_to_dict(descriptor)) == descriptor

    def test_rolling_back_accepts_any_results(self) -> None:
        descriptor = make_descriptor(
            status=StagingStatus.ROLLING_BACK, stage_results=(_failed_result("scripts"), None)
        )

        assert descriptor_from_dict(descriptor_to_dict(descriptor)) == descriptor

    def test_commit_progress_outside_commit_is_rejected(self) -> None:
        descriptor = make_descriptor(
            status=StagingStatus.VALIDATING,
            stage_results=(successful_result("scripts"), successful_result("extract")),
            commit_progress=CommitProgress(completed=(ArtifactCategory.SCRIPTS,), in_flight=None),
        )

        with pytest.raises(ValueError, match="commit progress"):
            descriptor_from_dict(descriptor_to_dict(descriptor))
