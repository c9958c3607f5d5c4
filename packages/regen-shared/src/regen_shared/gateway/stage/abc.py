"""Contract for a generation stage.

A stage is an opaque unit of work that writes generated artifacts into the
staging category directories it is handed. It must never read or write
production paths; the engine owns everything outside the staging tree.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from regen_shared.artifacts import ArtifactCategory


@dataclass(frozen=True)
class StagingOutputs:
    """Writable locations handed to a stage.

    Attributes:
        target_version: Upstream version being generated
        previous_version: Last committed version, if any
        root: The version's staging directory
        category_dirs: Staging subdirectory for each artifact category
        prior_files: Staging-relative files written by earlier stages
            (readable, must not be modified)
    """

    target_version: str
    previous_version: str | None
    root: Path
    category_dirs: Mapping[ArtifactCategory, Path]
    prior_files: tuple[str, ...]


@dataclass(frozen=True)
class StageOutput:
    """What a stage reports back.

    files_written may hold absolute paths or paths relative to the staging
    root. full_replacement names categories whose production directory
    should be replaced wholesale rather than merged file by file.
    """

    success: bool
    files_written: tuple[str, ...]
    error: str | None
    full_replacement: frozenset[ArtifactCategory]


class GenerationStage(ABC):
    @property
    @abstractmethod
    def name(self) -> str:
        """Short identifier used in diagnostics and history."""
        ...

    @abstractmethod
    def run(self, *, outputs: StagingOutputs) -> StageOutput:
        """Generate artifacts into outputs.category_dirs."""
        ...
