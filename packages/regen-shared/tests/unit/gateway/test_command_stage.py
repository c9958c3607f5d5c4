"""Tests for CommandStage."""

import sys
from pathlib import Path

from regen_shared.artifacts import ArtifactCategory
from regen_shared.gateway.stage.abc import StagingOutputs
from regen_shared.gateway.stage.real import CommandStage, build_stage_environment


def _outputs(tmp_path: Path) -> StagingOutputs:
    root = tmp_path / "staging" / "2.0.0"
    category_dirs = {c: root / c.value for c in ArtifactCategory}
    for path in category_dirs.values():
        path.mkdir(parents=True)
    return StagingOutputs(
        target_version="2.0.0",
        previous_version=None,
        root=root,
        category_dirs=category_dirs,
        prior_files=("scripts/a.ts", "scripts/b.ts"),
    )


def _stage(tmp_path: Path, command: list[str], *, timeout: float = 30) -> CommandStage:
    return CommandStage(
        name="extract",
        command=command,
        cwd=tmp_path,
        timeout_seconds=timeout,
        full_replacement=frozenset({ArtifactCategory.SKILLS}),
    )


def test_environment_names_every_output_location(tmp_path: Path) -> None:
    outputs = _outputs(tmp_path)

    env = build_stage_environment(outputs)

    assert env["REGEN_TARGET_VERSION"] == "2.0.0"
    assert env["REGEN_PREVIOUS_VERSION"] == ""
    assert env["REGEN_STAGING_DIR"] == str(outputs.root)
    assert env["REGEN_COMMANDS_DIR"] == str(outputs.root / "commands")
    assert env["REGEN_PRIOR_FILES"] == "scripts/a.ts\nscripts/b.ts"


def test_successful_command_writes_into_staging(tmp_path: Path) -> None:
    outputs = _outputs(tmp_path)
    script = (
        "import os, pathlib; "
        "pathlib.Path(os.environ['REGEN_COMMANDS_DIR'], 'x.md').write_text('hi')"
    )

    output = _stage(tmp_path, [sys.executable, "-c", script]).run(outputs=outputs)

    assert output.success
    assert output.full_replacement == frozenset({ArtifactCategory.SKILLS})
    assert (outputs.root / "commands" / "x.md").read_text() == "hi"


def test_non_zero_exit_reports_stderr_tail(tmp_path: Path) -> None:
    script = "import sys; sys.stderr.write('upstream 404\\n'); sys.exit(3)"

    output = _stage(tmp_path, [sys.executable, "-c", script]).run(outputs=_outputs(tmp_path))

    assert not output.success
    assert output.error == "stage 'extract' exited with status 3: upstream 404"
    assert output.full_replacement == frozenset()


def test_missing_executable(tmp_path: Path) -> None:
    output = _stage(tmp_path, ["definitely-not-a-real-binary-xyz"]).run(
        outputs=_outputs(tmp_path)
    )

    assert not output.success
    assert output.error == "command not found: definitely-not-a-real-binary-xyz"


def test_timeout(tmp_path: Path) -> None:
    script = "import time; time.sleep(5)"

    output = _stage(tmp_path, [sys.executable, "-c", script], timeout=0.2).run(
        outputs=_outputs(tmp_path)
    )

    assert not output.success
    assert output.error == "stage 'extract' timed out after 0.2s"
