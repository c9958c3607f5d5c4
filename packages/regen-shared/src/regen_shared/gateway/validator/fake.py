from collections.abc import Sequence

from regen_shared.artifacts import StagedFile
from regen_shared.gateway.validator.abc import ArtifactValidator, Diagnostic, ValidationReport


class FakeArtifactValidator(ArtifactValidator):
    """Validator with a canned verdict that records what it was shown."""

    def __init__(
        self,
        *,
        accepted: bool,
        diagnostics: tuple[Diagnostic, ...] = (),
        raises: Exception | None = None,
    ) -> None:
        self._accepted = accepted
        self._diagnostics = diagnostics
        self._raises = raises
        self._validated: list[tuple[str, ...]] = []

    @classmethod
    def accepting(cls) -> "FakeArtifactValidator":
        return cls(accepted=True)

    @classmethod
    def rejecting(cls, message: str) -> "FakeArtifactValidator":
        return cls(
            accepted=False,
            diagnostics=(Diagnostic(severity="error", key=None, message=message),),
        )

    def validate(self, *, staged_files: Sequence[StagedFile]) -> ValidationReport:
        self._validated.append(tuple(f.key for f in staged_files))
        if self._raises is not None:
            raise self._raises
        return ValidationReport(accepted=self._accepted, diagnostics=self._diagnostics)

    @property
    def validated_batches(self) -> list[tuple[str, ...]]:
        """Keys of the staged files seen by each validate() call."""
        return list(self._validated)
