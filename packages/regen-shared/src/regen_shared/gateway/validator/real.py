"""Structural checks applied to staged artifacts before commit."""

from collections.abc import Sequence

from regen_shared.artifacts import ArtifactCategory, StagedFile
from regen_shared.gateway.validator.abc import ArtifactValidator, Diagnostic, ValidationReport
from regen_shared.gateway.validator.frontmatter import (
    count_unbalanced_fences,
    parse_markdown_frontmatter,
)

# Categories whose markdown files are loaded by the host as commands/agents/skills
FRONTMATTER_CATEGORIES = frozenset(
    {ArtifactCategory.COMMANDS, ArtifactCategory.AGENTS, ArtifactCategory.SKILLS}
)


class RealArtifactValidator(ArtifactValidator):
    """Checks staged files for emptiness, frontmatter and balanced code fences.

    Any error-severity diagnostic rejects the whole batch. Warnings are
    reported but do not block the commit.
    """

    def __init__(self, *, require_description: bool) -> None:
        self._require_description = require_description

    def validate(self, *, staged_files: Sequence[StagedFile]) -> ValidationReport:
        diagnostics: list[Diagnostic] = []
        for staged in staged_files:
            diagnostics.extend(self._check_file(staged))

        if not staged_files:
            diagnostics.append(
                Diagnostic(severity="warning", key=None, message="No files were staged")
            )

        accepted = not any(d.severity == "error" for d in diagnostics)
        return ValidationReport(accepted=accepted, diagnostics=tuple(diagnostics))

    def _check_file(self, staged: StagedFile) -> list[Diagnostic]:
        if staged.staging_path.stat().st_size == 0:
            return [Diagnostic(severity="error", key=staged.key, message="File is empty")]

        if staged.category not in FRONTMATTER_CATEGORIES:
            return []
        if staged.staging_path.suffix != ".md":
            return []

        try:
            content = staged.staging_path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            return [Diagnostic(severity="error", key=staged.key, message="Not valid UTF-8")]
        parsed = parse_markdown_frontmatter(content)
        if parsed.metadata is None:
            assert parsed.error is not None
            return [Diagnostic(severity="error", key=staged.key, message=parsed.error)]

        diagnostics: list[Diagnostic] = []
        if self._require_description:
            if parsed.description is None:
                diagnostics.append(
                    Diagnostic(
                        severity="error",
                        key=staged.key,
                        message="Frontmatter is missing a non-empty 'description'",
                    )
                )

        if count_unbalanced_fences(parsed.body):
            diagnostics.append(
                Diagnostic(severity="error", key=staged.key, message="Unbalanced code fence")
            )

        if not parsed.body.strip():
            diagnostics.append(
                Diagnostic(severity="warning", key=staged.key, message="Markdown body is empty")
            )
        return diagnostics
