"""Versioned JSON schema for the staging descriptor (staging.json).

Readers must never guess: anything that cannot be parsed into a known
schema raises DescriptorError, which Orphan Recovery reports as an
inspect-only orphan.
"""

import json
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

from regen_shared.artifacts import ArtifactCategory, stage_result_from_dict, stage_result_to_dict

from regen.staging.errors import DescriptorError
from regen.staging.models import (
    STAGE_COUNT,
    CommitProgress,
    FileBaseline,
    StagingDescriptor,
    StagingStatus,
    ValidationRecord,
)

SCHEMA_VERSION = 1


def descriptor_to_dict(descriptor: StagingDescriptor) -> dict[str, Any]:
    validation = None
    if descriptor.validation is not None:
        validation = {
            "accepted": descriptor.validation.accepted,
            "diagnostics": list(descriptor.validation.diagnostics),
        }
    progress = descriptor.commit_progress
    return {
        "schemaVersion": SCHEMA_VERSION,
        "targetVersion": descriptor.target_version,
        "previousVersion": descriptor.previous_version,
        "status": descriptor.status.value,
        "startTime": descriptor.start_time.isoformat(),
        "updatedAt": descriptor.updated_at.isoformat(),
        "stageResults": [
            stage_result_to_dict(r) if r is not None else None for r in descriptor.stage_results
        ],
        "productionBaseline": {
            key: {"exists": b.exists, "modTime": b.mod_time_ns, "size": b.size}
            for key, b in descriptor.production_baseline.items()
        },
        "validation": validation,
        "commitProgress": {
            "completed": [c.value for c in progress.completed],
            "inFlight": progress.in_flight.value if progress.in_flight is not None else None,
        },
        "error": descriptor.error,
        "historyRecorded": descriptor.history_recorded,
    }


def _legacy_mtime_ns(mtime_ms: Any) -> int | None:
    # Legacy baselines stored milliseconds; precision lost there surfaces as drift
    if mtime_ms is None:
        return None
    if isinstance(mtime_ms, int):
        return mtime_ms * 1_000_000
    return int(float(mtime_ms) * 1_000_000)


def _legacy_key(path: str) -> str:
    """Map ".claude/commands/x.md" style paths onto "commands/x.md" keys."""
    parts = path.split("/")
    categories = {c.value for c in ArtifactCategory}
    for index, part in enumerate(parts[:-1]):
        if part in categories:
            return "/".join(parts[index:])
    raise ValueError(f"legacy baseline path outside any category: {path!r}")


def _legacy_staged_file(path: str, version: str) -> str:
    """Map an absolute legacy staging path onto a staging-relative key."""
    parts = path.split("/")
    if version in parts:
        last = len(parts) - 1 - parts[::-1].index(version)
        parts = parts[last + 1 :]
    return _legacy_key("/".join(parts))


def _migrate_legacy(data: dict[str, Any]) -> dict[str, Any]:
    """Upgrade descriptors written before schemaVersion existed.

    The legacy format kept per-agent results under agentResults.agent1/agent2,
    used agentN-complete statuses and a 'ready' status meaning "both stages
    done, awaiting commit", and stored the baseline as {files, capturedAt}.
    """
    status_map = {
        "agent1-complete": "stage1-complete",
        "agent2-complete": "stage2-complete",
        "ready": "validating",
    }
    agent_results = data.get("agentResults") or {}
    stage_results = []
    for index, slot in enumerate(("agent1", "agent2"), start=1):
        legacy = agent_results.get(slot)
        if legacy is None:
            stage_results.append(None)
            continue
        stage_results.append(
            {
                "name": f"stage{index}",
                "success": legacy["success"],
                "filesWritten": [
                    _legacy_staged_file(f, data["targetVersion"])
                    for f in legacy.get("filesWritten", [])
                ],
                "error": legacy.get("error"),
                "durationMs": legacy.get("duration", 0),
                "fullReplacement": [],
            }
        )

    baseline = data.get("productionBaseline") or {}
    files = baseline.get("files", {}) if "files" in baseline else baseline
    status = data["status"]
    return {
        "schemaVersion": 1,
        "targetVersion": data["targetVersion"],
        "previousVersion": data.get("previousVersion"),
        "status": status_map.get(status, status),
        "startTime": data["startTime"],
        "updatedAt": data["startTime"],
        "stageResults": stage_results,
        "productionBaseline": {
            _legacy_key(key): {
                "exists": b["exists"],
                "modTime": _legacy_mtime_ns(b.get("mtime")),
                "size": b.get("size"),
            }
            for key, b in files.items()
        },
        "validation": None,
        "commitProgress": {"completed": [], "inFlight": None},
        "error": None,
        "historyRecorded": False,
    }


# schemaVersion -> upgrader to the next version; 0 denotes the unversioned legacy format
_MIGRATIONS: dict[int, Callable[[dict[str, Any]], dict[str, Any]]] = {
    0: _migrate_legacy,
}


def _migrate(data: dict[str, Any]) -> dict[str, Any]:
    version = data.get("schemaVersion", 0)
    if not isinstance(version, int):
        raise ValueError(f"schemaVersion must be an integer, got {version!r}")
    if version > SCHEMA_VERSION:
        raise ValueError(
            f"schemaVersion {version} is newer than supported version {SCHEMA_VERSION}"
        )
    while version < SCHEMA_VERSION:
        data = _MIGRATIONS[version](data)
        version = data["schemaVersion"]
    return data


def _parse_time(value: Any) -> datetime:
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        raise ValueError(f"timestamp without timezone: {value!r}")
    return parsed


# Leading stage slots that must hold successful results for each status.
# Rolling-back and rolled-back may carry any mix of results.
_REQUIRED_SUCCESSES: dict[StagingStatus, int] = {
    StagingStatus.STAGING: 0,
    StagingStatus.STAGE1_COMPLETE: 1,
    StagingStatus.STAGE2_COMPLETE: STAGE_COUNT,
    StagingStatus.VALIDATING: STAGE_COUNT,
    StagingStatus.COMMITTING: STAGE_COUNT,
    StagingStatus.COMMITTED: STAGE_COUNT,
    StagingStatus.FAILED: STAGE_COUNT,
}

_PROGRESS_STATUSES = frozenset(
    {StagingStatus.COMMITTING, StagingStatus.FAILED, StagingStatus.COMMITTED}
)


def check_consistency(descriptor: StagingDescriptor) -> None:
    """Raise ValueError when the status disagrees with the recorded stage results.

    A failed stage is persisted without a status change, so the slot right
    after the required successes may hold a failure; later slots stay empty.
    """
    status = descriptor.status
    required = _REQUIRED_SUCCESSES.get(status)
    if required is not None:
        for index, result in enumerate(descriptor.stage_results):
            if index < required:
                if result is None or not result.success:
                    raise ValueError(
                        f"status {status.value} requires a successful result for stage {index + 1}"
                    )
            elif index == required:
                if result is not None and result.success:
                    raise ValueError(
                        f"status {status.value} contradicts the successful result "
                        f"recorded for stage {index + 1}"
                    )
            elif result is not None:
                raise ValueError(
                    f"status {status.value} contradicts the result recorded for stage {index + 1}"
                )

    if descriptor.commit_progress.production_touched and status not in _PROGRESS_STATUSES:
        raise ValueError(f"status {status.value} cannot carry commit progress")


def descriptor_from_dict(data: dict[str, Any]) -> StagingDescriptor:
    """Parse (and migrate) a descriptor. Raises KeyError/TypeError/ValueError."""
    data = _migrate(data)

    raw_results = data["stageResults"]
    if not isinstance(raw_results, list) or len(raw_results) != STAGE_COUNT:
        raise ValueError(f"stageResults must be a list of {STAGE_COUNT} slots")

    validation_data = data.get("validation")
    validation = None
    if validation_data is not None:
        validation = ValidationRecord(
            accepted=bool(validation_data["accepted"]),
            diagnostics=tuple(str(d) for d in validation_data["diagnostics"]),
        )

    progress_data = data["commitProgress"]
    in_flight = progress_data.get("inFlight")
    progress = CommitProgress(
        completed=tuple(ArtifactCategory.parse(c) for c in progress_data["completed"]),
        in_flight=ArtifactCategory.parse(in_flight) if in_flight is not None else None,
    )

    descriptor = StagingDescriptor(
        target_version=str(data["targetVersion"]),
        previous_version=data.get("previousVersion"),
        status=StagingStatus.parse(data["status"]),
        start_time=_parse_time(data["startTime"]),
        updated_at=_parse_time(data["updatedAt"]),
        stage_results=tuple(
            stage_result_from_dict(r) if r is not None else None for r in raw_results
        ),
        production_baseline={
            str(key): FileBaseline(
                exists=bool(b["exists"]),
                mod_time_ns=b.get("modTime"),
                size=b.get("size"),
            )
            for key, b in data["productionBaseline"].items()
        },
        validation=validation,
        commit_progress=progress,
        error=data.get("error"),
        history_recorded=bool(data.get("historyRecorded", False)),
    )
    check_consistency(descriptor)
    return descriptor


def read_descriptor(path: Path) -> StagingDescriptor:
    """Load a descriptor file, raising DescriptorError for any unreadable content."""
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise DescriptorError(path, str(e)) from e

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise DescriptorError(path, f"invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise DescriptorError(path, "top-level value is not an object")

    try:
        return descriptor_from_dict(data)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise DescriptorError(path, f"{type(e).__name__}: {e}") from e
