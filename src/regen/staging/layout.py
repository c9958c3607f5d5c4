"""Filesystem layout of staging and production trees."""

import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from regen_shared.artifacts import ArtifactCategory

from regen.staging.errors import InvalidVersionError

DESCRIPTOR_FILENAME = "staging.json"
# Scratch area inside a version directory used to assemble category swaps
COMMIT_WORKDIR = ".commit"

_VERSION_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._+-]*$")


def check_version_name(version: str) -> None:
    """Raise InvalidVersionError unless version is usable as a directory name."""
    if not version:
        raise InvalidVersionError(version, "must not be empty")
    if not _VERSION_PATTERN.match(version):
        raise InvalidVersionError(
            version,
            "must start with a letter or digit and contain only letters, digits, '.', '_', '+', '-'",
        )


@dataclass(frozen=True)
class StagingLayout:
    """Where staging directories live and where each category lands in production.

    Example (defaults):
        staging_root:      <project>/.regen/.transform-staging
        scripts   -> <project>/.regen/scripts
        commands  -> <project>/.claude/commands
        agents    -> <project>/.claude/agents
        skills    -> <project>/.claude/skills
    """

    staging_root: Path
    production_dirs: Mapping[ArtifactCategory, Path]

    def version_dir(self, version: str) -> Path:
        check_version_name(version)
        return self.staging_root / version

    def descriptor_path(self, version: str) -> Path:
        return self.version_dir(version) / DESCRIPTOR_FILENAME

    def staging_category_dir(self, version: str, category: ArtifactCategory) -> Path:
        return self.version_dir(version) / category.value

    def staging_category_dirs(self, version: str) -> dict[ArtifactCategory, Path]:
        return {c: self.staging_category_dir(version, c) for c in ArtifactCategory}

    def commit_workdir(self, version: str) -> Path:
        return self.version_dir(version) / COMMIT_WORKDIR

    def production_path(self, key: str) -> Path:
        """Resolve a production-relative key such as "scripts/a.ts"."""
        category, relative = split_key(key)
        return self.production_dirs[category] / relative

    def staging_path(self, version: str, key: str) -> Path:
        category, relative = split_key(key)
        return self.staging_category_dir(version, category) / relative


def make_key(category: ArtifactCategory, relative: Path) -> str:
    return f"{category.value}/{relative.as_posix()}"


def split_key(key: str) -> tuple[ArtifactCategory, str]:
    """Split "commands/ns/x.md" into (COMMANDS, "ns/x.md")."""
    head, sep, tail = key.partition("/")
    if not sep or not tail:
        raise ValueError(f"Not a category-relative path: '{key}'")
    return ArtifactCategory.parse(head), tail
