"""Tests for loading .regen/config.toml."""

import logging
from datetime import timedelta
from pathlib import Path

import pytest
from regen_shared.artifacts import ArtifactCategory

from regen.core.config import (
    ConfigError,
    default_config,
    default_config_document,
    load_config,
    write_config,
)


def _write(root: Path, content: str) -> None:
    path = root / ".regen" / "config.toml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def test_missing_file_gives_defaults(tmp_path: Path) -> None:
    assert load_config(tmp_path) == default_config(tmp_path)


def test_default_document_loads_to_defaults(tmp_path: Path) -> None:
    write_config(tmp_path, default_config_document())

    assert load_config(tmp_path) == default_config(tmp_path)


def test_full_config(tmp_path: Path) -> None:
    _write(
        tmp_path,
        """
[staging]
root = "build/staging"
stale_after_minutes = 15

[categories]
commands = "cmds"

[history]
path = "build/history.json"

[validation]
require_description = false

[[stages]]
name = "scripts"
command = ["python", "tools/scripts.py"]

[[stages]]
name = "extract"
command = ["python", "tools/extract.py", "--all"]
timeout_seconds = 30
full_replacement = ["skills"]
""",
    )

    config = load_config(tmp_path)

    assert config.staging_root == tmp_path / "build" / "staging"
    assert config.stale_after == timedelta(minutes=15)
    assert config.category_dirs[ArtifactCategory.COMMANDS] == tmp_path / "cmds"
    assert config.category_dirs[ArtifactCategory.AGENTS] == tmp_path / ".claude" / "agents"
    assert config.history_path == tmp_path / "build" / "history.json"
    assert config.require_description is False
    assert [s.name for s in config.stages] == ["scripts", "extract"]
    assert config.stages[0].timeout_seconds == 600
    assert config.stages[1].command == ("python", "tools/extract.py", "--all")
    assert config.stages[1].full_replacement == frozenset({ArtifactCategory.SKILLS})
    assert config.layout.staging_root == config.staging_root


@pytest.mark.parametrize(
    ("content", "message"),
    [
        ("[staging\n", "config.toml"),
        ("staging = 3\n", "[staging] must be a table"),
        ("[staging]\nstale_after_minutes = 0\n", "positive number"),
        ("[staging]\nstale_after_minutes = true\n", "positive number"),
        ("[categories]\nwidgets = \"w\"\n", "Unknown artifact category 'widgets'"),
        ("[[stages]]\nname = \"s\"\ncommand = []\n", "stages[0].command"),
        ("[[stages]]\ncommand = [\"x\"]\n", "stages[0].name"),
        (
            "[[stages]]\nname = \"s\"\ncommand = [\"x\"]\ntimeout_seconds = -1\n",
            "timeout_seconds",
        ),
        (
            "[[stages]]\nname = \"s\"\ncommand = [\"x\"]\nfull_replacement = [\"docs\"]\n",
            "full_replacement",
        ),
        ("[validation]\nrequire_description = \"yes\"\n", "require_description"),
    ],
)
def test_invalid_config(tmp_path: Path, content: str, message: str) -> None:
    _write(tmp_path, content)

    with pytest.raises(ConfigError) as exc_info:
        load_config(tmp_path)

    assert message in str(exc_info.value)


def test_short_staleness_warns(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    _write(tmp_path, "[staging]\nstale_after_minutes = 2\n")

    with caplog.at_level(logging.WARNING, logger="regen.core.config"):
        config = load_config(tmp_path)

    assert config.stale_after == timedelta(minutes=2)
    assert "very short" in caplog.text
