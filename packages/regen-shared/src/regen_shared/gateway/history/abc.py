"""Append-only record of completed transformation operations."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from regen_shared.artifacts import StageResult

HistoryOutcome = Literal["committed", "rolled-back", "partial-commit"]
CategoryOutcome = Literal["committed", "failed", "pending", "unchanged"]


@dataclass(frozen=True)
class HistoryEntry:
    """One completed operation.

    files_committed is populated for committed (and partially committed)
    operations, files_discarded for rolled-back ones.
    """

    target_version: str
    previous_version: str | None
    committed: bool
    outcome: HistoryOutcome
    stage_results: tuple[StageResult, ...]
    files_committed: tuple[str, ...]
    files_discarded: tuple[str, ...]
    category_outcomes: dict[str, CategoryOutcome]
    diagnostics: tuple[str, ...]
    error: str | None
    timestamp: datetime


class HistorySink(ABC):
    @abstractmethod
    def append(self, entry: HistoryEntry) -> None:
        """Durably append an entry.

        Raises OSError when the write fails and ValueError when the existing
        history cannot be read; callers treat both as a failed append.
        """
        ...

    @abstractmethod
    def entries(self) -> list[HistoryEntry]:
        """Return all entries, newest first. Raises ValueError for malformed history."""
        ...

    @abstractmethod
    def latest_committed_version(self) -> str | None:
        """Return the target version of the most recent committed entry.

        Raises OSError or ValueError when the history cannot be read.
        """
        ...
