"""Generation stage backed by an external command."""

import logging
import os
import shutil
import subprocess
from pathlib import Path

from regen_shared.artifacts import ArtifactCategory
from regen_shared.gateway.stage.abc import GenerationStage, StageOutput, StagingOutputs

logger = logging.getLogger(__name__)

# Keep failure messages readable in history and terminal output
STDERR_TAIL_LINES = 20


def build_stage_environment(outputs: StagingOutputs) -> dict[str, str]:
    """Environment variables that tell a stage command where to write."""
    env = {
        "REGEN_TARGET_VERSION": outputs.target_version,
        "REGEN_PREVIOUS_VERSION": outputs.previous_version or "",
        "REGEN_STAGING_DIR": str(outputs.root),
        "REGEN_PRIOR_FILES": "\n".join(outputs.prior_files),
    }
    for category, path in outputs.category_dirs.items():
        env[f"REGEN_{category.value.upper()}_DIR"] = str(path)
    return env


def _stderr_tail(stderr: str) -> str:
    lines = stderr.strip().splitlines()
    return "\n".join(lines[-STDERR_TAIL_LINES:])


class CommandStage(GenerationStage):
    """Runs a configured command as a generation stage.

    The command learns its output directories from REGEN_* environment
    variables. What it wrote is determined by the engine from the staging
    tree itself, so the command does not need to report files.
    """

    def __init__(
        self,
        *,
        name: str,
        command: list[str],
        cwd: Path,
        timeout_seconds: float,
        full_replacement: frozenset[ArtifactCategory],
    ) -> None:
        self._name = name
        self._command = command
        self._cwd = cwd
        self._timeout_seconds = timeout_seconds
        self._full_replacement = full_replacement

    @property
    def name(self) -> str:
        return self._name

    def run(self, *, outputs: StagingOutputs) -> StageOutput:
        # LBYL: check the executable exists before spawning
        if shutil.which(self._command[0]) is None:
            return StageOutput(
                success=False,
                files_written=(),
                error=f"command not found: {self._command[0]}",
                full_replacement=frozenset(),
            )

        env = {**os.environ, **build_stage_environment(outputs)}
        logger.debug("Running stage %s: %s", self._name, " ".join(self._command))
        try:
            result = subprocess.run(
                self._command,
                cwd=self._cwd,
                env=env,
                check=False,
                capture_output=True,
                text=True,
                timeout=self._timeout_seconds,
            )
        except subprocess.TimeoutExpired:
            return StageOutput(
                success=False,
                files_written=(),
                error=f"stage '{self._name}' timed out after {self._timeout_seconds:g}s",
                full_replacement=frozenset(),
            )

        if result.returncode != 0:
            tail = _stderr_tail(result.stderr)
            message = f"stage '{self._name}' exited with status {result.returncode}"
            if tail:
                message = f"{message}: {tail}"
            return StageOutput(
                success=False,
                files_written=(),
                error=message,
                full_replacement=frozenset(),
            )

        return StageOutput(
            success=True,
            files_written=(),
            error=None,
            full_replacement=self._full_replacement,
        )
