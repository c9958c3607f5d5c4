"""Contract for the validation gate's external checker.

Validators are pure inspection: they read staged files and report, they
never modify anything.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

from regen_shared.artifacts import StagedFile

Severity = Literal["error", "warning"]


@dataclass(frozen=True)
class Diagnostic:
    severity: Severity
    key: str | None  # Production-relative path, None for batch-level findings
    message: str

    def render(self) -> str:
        if self.key is None:
            return f"{self.severity}: {self.message}"
        return f"{self.severity}: {self.key}: {self.message}"


@dataclass(frozen=True)
class ValidationReport:
    accepted: bool
    diagnostics: tuple[Diagnostic, ...]


class ArtifactValidator(ABC):
    @abstractmethod
    def validate(self, *, staged_files: Sequence[StagedFile]) -> ValidationReport:
        """Inspect every staged file across all categories."""
        ...
