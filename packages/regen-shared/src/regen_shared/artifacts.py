"""Artifact types shared by the engine and its gateways."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class ArtifactCategory(Enum):
    """Independent subtrees that one transformation replaces.

    Each category maps to one staging subdirectory and one production
    directory. Iteration order (definition order) is the commit order.
    """

    SCRIPTS = "scripts"
    COMMANDS = "commands"
    AGENTS = "agents"
    SKILLS = "skills"

    @classmethod
    def parse(cls, value: str) -> "ArtifactCategory":
        for category in cls:
            if category.value == value:
                return category
        valid = ", ".join(c.value for c in cls)
        raise ValueError(f"Unknown artifact category '{value}' (expected one of: {valid})")


@dataclass(frozen=True)
class StagedFile:
    """A file in the staging tree and where it will land in production.

    key is the production-relative path, e.g. "scripts/a.ts".
    """

    category: ArtifactCategory
    key: str
    staging_path: Path
    production_path: Path


@dataclass(frozen=True)
class StageResult:
    """Outcome of one generation stage as recorded in the descriptor and history.

    files_written holds staging-relative keys ("commands/x.md").
    """

    name: str
    success: bool
    files_written: tuple[str, ...]
    error: str | None
    duration_ms: int
    full_replacement: frozenset[ArtifactCategory]


def stage_result_to_dict(result: StageResult) -> dict[str, object]:
    return {
        "name": result.name,
        "success": result.success,
        "filesWritten": list(result.files_written),
        "error": result.error,
        "durationMs": result.duration_ms,
        "fullReplacement": sorted(c.value for c in result.full_replacement),
    }


def stage_result_from_dict(data: dict[str, object]) -> StageResult:
    """Parse a stage result record. Raises KeyError/TypeError/ValueError if malformed."""
    files = data["filesWritten"]
    replacement = data.get("fullReplacement", [])
    if not isinstance(files, list) or not isinstance(replacement, list):
        raise TypeError("filesWritten and fullReplacement must be lists")
    error = data.get("error")
    duration = data["durationMs"]
    if not isinstance(duration, int | float):
        raise TypeError("durationMs must be a number")
    return StageResult(
        name=str(data.get("name", "")),
        success=bool(data["success"]),
        files_written=tuple(str(f) for f in files),
        error=str(error) if error is not None else None,
        duration_ms=int(duration),
        full_replacement=frozenset(ArtifactCategory.parse(str(c)) for c in replacement),
    )
