from collections.abc import Callable, Mapping
from dataclasses import dataclass

from regen_shared.artifacts import ArtifactCategory
from regen_shared.gateway.stage.abc import GenerationStage, StageOutput, StagingOutputs


@dataclass(frozen=True)
class StageRunCall:
    target_version: str
    prior_files: tuple[str, ...]


class FakeGenerationStage(GenerationStage):
    """In-memory stage for tests.

    Writes the configured files (staging-relative path -> content) into the
    staging tree and reports them. Failure modes are injected through the
    constructor:

    - error: the stage reports success=False with this message
    - raises: the stage raises this exception from run()
    - reported_files: overrides what the stage claims to have written
    - side_effect: called with the outputs after files are written, e.g. to
      simulate a concurrent change to production during the stage
    """

    def __init__(
        self,
        *,
        name: str,
        files: Mapping[str, str],
        error: str | None = None,
        raises: Exception | None = None,
        reported_files: tuple[str, ...] | None = None,
        full_replacement: frozenset[ArtifactCategory] = frozenset(),
        side_effect: Callable[[StagingOutputs], None] | None = None,
    ) -> None:
        self._name = name
        self._files = dict(files)
        self._error = error
        self._raises = raises
        self._reported_files = reported_files
        self._full_replacement = full_replacement
        self._side_effect = side_effect
        self._run_calls: list[StageRunCall] = []

    @classmethod
    def writing(cls, name: str, files: Mapping[str, str]) -> "FakeGenerationStage":
        """Create a stage that succeeds after writing files."""
        return cls(name=name, files=files)

    @classmethod
    def failing(cls, name: str, error: str) -> "FakeGenerationStage":
        """Create a stage that writes nothing and reports an error."""
        return cls(name=name, files={}, error=error)

    @property
    def name(self) -> str:
        return self._name

    def run(self, *, outputs: StagingOutputs) -> StageOutput:
        self._run_calls.append(
            StageRunCall(target_version=outputs.target_version, prior_files=outputs.prior_files)
        )
        if self._raises is not None:
            raise self._raises

        for relative, content in self._files.items():
            path = outputs.root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")

        if self._side_effect is not None:
            self._side_effect(outputs)

        if self._error is not None:
            return StageOutput(
                success=False,
                files_written=tuple(self._files),
                error=self._error,
                full_replacement=frozenset(),
            )

        reported = self._reported_files if self._reported_files is not None else tuple(self._files)
        return StageOutput(
            success=True,
            files_written=reported,
            error=None,
            full_replacement=self._full_replacement,
        )

    @property
    def run_calls(self) -> list[StageRunCall]:
        return list(self._run_calls)

    @property
    def run_count(self) -> int:
        return len(self._run_calls)
