"""Application context with dependency injection."""

from dataclasses import dataclass
from pathlib import Path

from regen_shared.gateway.history.abc import HistorySink
from regen_shared.gateway.history.fake import FakeHistorySink
from regen_shared.gateway.history.real import JsonHistorySink
from regen_shared.gateway.stage.abc import GenerationStage
from regen_shared.gateway.stage.real import CommandStage
from regen_shared.gateway.time.abc import Time
from regen_shared.gateway.time.fake import FakeTime
from regen_shared.gateway.time.real import RealTime
from regen_shared.gateway.validator.abc import ArtifactValidator
from regen_shared.gateway.validator.fake import FakeArtifactValidator
from regen_shared.gateway.validator.real import RealArtifactValidator

from regen.core.config import RegenConfig, default_config, load_config
from regen.staging.engine import TransformEngine, build_engine


@dataclass(frozen=True)
class RegenContext:
    """Immutable context holding all dependencies for regen operations.

    Created at the CLI entry point and threaded through commands via
    click's pass_obj. Tests build one with for_test() and fakes.
    """

    project_root: Path
    config: RegenConfig
    time: Time
    history: HistorySink
    validator: ArtifactValidator
    stages: tuple[GenerationStage, ...]

    def engine(self) -> TransformEngine:
        return build_engine(
            layout=self.config.layout,
            stages=self.stages,
            validator=self.validator,
            history=self.history,
            time=self.time,
            stale_after=self.config.stale_after,
        )

    @staticmethod
    def for_test(
        project_root: Path,
        *,
        config: RegenConfig | None = None,
        time: Time | None = None,
        history: HistorySink | None = None,
        validator: ArtifactValidator | None = None,
        stages: tuple[GenerationStage, ...] = (),
    ) -> "RegenContext":
        """Create a test context; unspecified collaborators default to fakes."""
        return RegenContext(
            project_root=project_root,
            config=config if config is not None else default_config(project_root),
            time=time if time is not None else FakeTime(),
            history=history if history is not None else FakeHistorySink(),
            validator=validator if validator is not None else FakeArtifactValidator.accepting(),
            stages=stages,
        )


def create_context(*, project_root: Path, config: RegenConfig | None = None) -> RegenContext:
    """Create production context with real implementations.

    Loads .regen/config.toml unless config is given; raises ConfigError when
    it is invalid.
    """
    if config is None:
        config = load_config(project_root)
    stages = tuple(
        CommandStage(
            name=stage.name,
            command=list(stage.command),
            cwd=project_root,
            timeout_seconds=stage.timeout_seconds,
            full_replacement=stage.full_replacement,
        )
        for stage in config.stages
    )
    return RegenContext(
        project_root=project_root,
        config=config,
        time=RealTime(),
        history=JsonHistorySink(path=config.history_path),
        validator=RealArtifactValidator(require_description=config.require_description),
        stages=stages,
    )
