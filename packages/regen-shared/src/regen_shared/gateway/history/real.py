"""JSON file implementation of the transformation history."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, get_args

from regen_shared.artifacts import stage_result_from_dict, stage_result_to_dict
from regen_shared.atomic_write import atomic_write_json
from regen_shared.gateway.history.abc import HistoryEntry, HistoryOutcome, HistorySink

logger = logging.getLogger(__name__)

HISTORY_SCHEMA_VERSION = "1.0.0"


def history_entry_to_dict(entry: HistoryEntry) -> dict[str, Any]:
    return {
        "targetVersion": entry.target_version,
        "previousVersion": entry.previous_version,
        "committed": entry.committed,
        "outcome": entry.outcome,
        "stageResults": [stage_result_to_dict(r) for r in entry.stage_results],
        "filesCommitted": list(entry.files_committed),
        "filesDiscarded": list(entry.files_discarded),
        "categoryOutcomes": dict(entry.category_outcomes),
        "diagnostics": list(entry.diagnostics),
        "error": entry.error,
        "timestamp": entry.timestamp.isoformat(),
    }


def history_entry_from_dict(data: dict[str, Any]) -> HistoryEntry:
    """Parse one entry. Raises KeyError/TypeError/ValueError on malformed data."""
    target_version = data["targetVersion"]
    if not isinstance(target_version, str):
        raise TypeError(f"targetVersion must be a string, got {target_version!r}")
    if data["outcome"] not in get_args(HistoryOutcome):
        raise ValueError(f"Unknown history outcome {data['outcome']!r}")
    return HistoryEntry(
        target_version=target_version,
        previous_version=data.get("previousVersion"),
        committed=bool(data["committed"]),
        outcome=data["outcome"],
        stage_results=tuple(stage_result_from_dict(r) for r in data.get("stageResults", [])),
        files_committed=tuple(data.get("filesCommitted", [])),
        files_discarded=tuple(data.get("filesDiscarded", [])),
        category_outcomes=dict(data.get("categoryOutcomes", {})),
        diagnostics=tuple(data.get("diagnostics", [])),
        error=data.get("error"),
        timestamp=datetime.fromisoformat(data["timestamp"]),
    )


class JsonHistorySink(HistorySink):
    """Stores history as {schemaVersion, latestVersion, entries} with newest first.

    latestVersion tracks the most recently committed version only; rolled
    back and partial operations are recorded but never become "latest".
    """

    def __init__(self, *, path: Path) -> None:
        self._path = path

    def _load(self) -> dict[str, Any]:
        """Read the history file, raising ValueError when its shape is not the known one."""
        if not self._path.exists():
            return {"schemaVersion": HISTORY_SCHEMA_VERSION, "latestVersion": "", "entries": []}
        data = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"History file {self._path} does not hold a JSON object")
        if data.get("schemaVersion") != HISTORY_SCHEMA_VERSION:
            raise ValueError(
                f"Unsupported history schema version {data.get('schemaVersion')!r} "
                f"in {self._path}"
            )
        if not isinstance(data.get("entries"), list):
            raise ValueError(f"History file {self._path} has no entries list")
        if not isinstance(data.get("latestVersion"), str):
            raise ValueError(f"History file {self._path} has no latestVersion string")
        return data

    def append(self, entry: HistoryEntry) -> None:
        data = self._load()
        data["entries"].insert(0, history_entry_to_dict(entry))
        if entry.committed:
            data["latestVersion"] = entry.target_version
        atomic_write_json(self._path, data)
        logger.debug("Appended %s history entry for %s", entry.outcome, entry.target_version)

    def entries(self) -> list[HistoryEntry]:
        parsed: list[HistoryEntry] = []
        for index, raw in enumerate(self._load()["entries"]):
            if not isinstance(raw, dict):
                raise ValueError(f"History entry {index} in {self._path} is not an object")
            try:
                parsed.append(history_entry_from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                raise ValueError(
                    f"History entry {index} in {self._path} is malformed: "
                    f"{type(e).__name__}: {e}"
                ) from e
        return parsed

    def latest_committed_version(self) -> str | None:
        latest = self._load()["latestVersion"]
        return latest or None
