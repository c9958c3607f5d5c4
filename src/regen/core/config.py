import logging
import tomllib
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any

import tomli_w
from regen_shared.artifacts import ArtifactCategory

from regen.staging.layout import StagingLayout

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(".regen") / "config.toml"

DEFAULT_STAGING_ROOT = ".regen/.transform-staging"
DEFAULT_HISTORY_PATH = ".regen/transformation-history.json"
DEFAULT_STALE_AFTER_MINUTES = 60
DEFAULT_STAGE_TIMEOUT_SECONDS = 600
DEFAULT_CATEGORY_DIRS: dict[ArtifactCategory, str] = {
    ArtifactCategory.SCRIPTS: ".regen/scripts",
    ArtifactCategory.COMMANDS: ".claude/commands",
    ArtifactCategory.AGENTS: ".claude/agents",
    ArtifactCategory.SKILLS: ".claude/skills",
}

# Thresholds below this risk reclaiming a slow but live operation
SHORT_STALENESS_MINUTES = 5


class ConfigError(Exception):
    """config.toml exists but cannot be used."""


@dataclass(frozen=True)
class StageConfig:
    name: str
    command: tuple[str, ...]
    timeout_seconds: int
    full_replacement: frozenset[ArtifactCategory]


@dataclass(frozen=True)
class RegenConfig:
    """In-memory representation of `.regen/config.toml`, with paths resolved.

    Example config.toml:
      [staging]
      root = ".regen/.transform-staging"
      stale_after_minutes = 60

      [categories]
      commands = ".claude/commands"

      [[stages]]
      name = "scripts"
      command = ["python", "tools/rewrite_scripts.py"]

      [[stages]]
      name = "extract"
      command = ["python", "tools/extract_commands.py"]
      full_replacement = ["skills"]
    """

    project_root: Path
    staging_root: Path
    stale_after: timedelta
    category_dirs: dict[ArtifactCategory, Path]
    history_path: Path
    stages: tuple[StageConfig, ...]
    require_description: bool

    @property
    def layout(self) -> StagingLayout:
        return StagingLayout(staging_root=self.staging_root, production_dirs=self.category_dirs)


def default_config(project_root: Path) -> RegenConfig:
    return RegenConfig(
        project_root=project_root,
        staging_root=project_root / DEFAULT_STAGING_ROOT,
        stale_after=timedelta(minutes=DEFAULT_STALE_AFTER_MINUTES),
        category_dirs={c: project_root / p for c, p in DEFAULT_CATEGORY_DIRS.items()},
        history_path=project_root / DEFAULT_HISTORY_PATH,
        stages=(),
        require_description=True,
    )


def _table(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key, {})
    if not isinstance(value, dict):
        raise ConfigError(f"[{key}] must be a table")
    return value


def _string(value: Any, where: str) -> str:
    if not isinstance(value, str) or not value:
        raise ConfigError(f"{where} must be a non-empty string")
    return value


def _category(value: Any, where: str) -> ArtifactCategory:
    try:
        return ArtifactCategory.parse(_string(value, where))
    except ValueError as e:
        raise ConfigError(f"{where}: {e}") from e


def _parse_stage(index: int, raw: Any) -> StageConfig:
    where = f"stages[{index}]"
    if not isinstance(raw, dict):
        raise ConfigError(f"{where} must be a table")
    name = _string(raw.get("name"), f"{where}.name")

    command = raw.get("command")
    if (
        not isinstance(command, list)
        or not command
        or not all(isinstance(part, str) and part for part in command)
    ):
        raise ConfigError(f"{where}.command must be a non-empty list of strings")

    timeout = raw.get("timeout_seconds", DEFAULT_STAGE_TIMEOUT_SECONDS)
    if isinstance(timeout, bool) or not isinstance(timeout, int) or timeout <= 0:
        raise ConfigError(f"{where}.timeout_seconds must be a positive integer")

    full = raw.get("full_replacement", [])
    if not isinstance(full, list):
        raise ConfigError(f"{where}.full_replacement must be a list of categories")

    return StageConfig(
        name=name,
        command=tuple(command),
        timeout_seconds=timeout,
        full_replacement=frozenset(
            _category(c, f"{where}.full_replacement") for c in full
        ),
    )


def load_config(project_root: Path) -> RegenConfig:
    """Load .regen/config.toml if present; otherwise return defaults.

    Raises ConfigError for malformed TOML, unknown categories or invalid values.
    """
    cfg_path = project_root / CONFIG_PATH
    if not cfg_path.exists():
        return default_config(project_root)

    try:
        data = tomllib.loads(cfg_path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"{cfg_path}: {e}") from e

    defaults = default_config(project_root)

    staging = _table(data, "staging")
    staging_root = defaults.staging_root
    if "root" in staging:
        staging_root = project_root / _string(staging["root"], "staging.root")

    minutes = staging.get("stale_after_minutes", DEFAULT_STALE_AFTER_MINUTES)
    if isinstance(minutes, bool) or not isinstance(minutes, int | float) or minutes <= 0:
        raise ConfigError("staging.stale_after_minutes must be a positive number")
    if minutes < SHORT_STALENESS_MINUTES:
        logger.warning(
            "staging.stale_after_minutes=%s is very short; a slow but live operation "
            "may be reclaimed as a crash orphan",
            minutes,
        )

    category_dirs = dict(defaults.category_dirs)
    for name, path in _table(data, "categories").items():
        category = _category(name, "categories")
        category_dirs[category] = project_root / _string(path, f"categories.{name}")

    history = _table(data, "history")
    history_path = defaults.history_path
    if "path" in history:
        history_path = project_root / _string(history["path"], "history.path")

    raw_stages = data.get("stages", [])
    if not isinstance(raw_stages, list):
        raise ConfigError("[[stages]] must be an array of tables")
    stages = tuple(_parse_stage(i, raw) for i, raw in enumerate(raw_stages))

    validation = _table(data, "validation")
    require_description = validation.get("require_description", True)
    if not isinstance(require_description, bool):
        raise ConfigError("validation.require_description must be true or false")

    return RegenConfig(
        project_root=project_root,
        staging_root=staging_root,
        stale_after=timedelta(minutes=minutes),
        category_dirs=category_dirs,
        history_path=history_path,
        stages=stages,
        require_description=require_description,
    )


def default_config_document() -> dict[str, Any]:
    """Starter config.toml contents written by `regen init`."""
    return {
        "staging": {
            "root": DEFAULT_STAGING_ROOT,
            "stale_after_minutes": DEFAULT_STALE_AFTER_MINUTES,
        },
        "categories": {c.value: p for c, p in DEFAULT_CATEGORY_DIRS.items()},
        "history": {"path": DEFAULT_HISTORY_PATH},
        "validation": {"require_description": True},
    }


def write_config(project_root: Path, document: dict[str, Any]) -> Path:
    cfg_path = project_root / CONFIG_PATH
    cfg_path.parent.mkdir(parents=True, exist_ok=True)
    cfg_path.write_text(tomli_w.dumps(document), encoding="utf-8")
    return cfg_path
