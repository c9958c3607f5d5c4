from regen_shared.gateway.history.abc import HistoryEntry, HistorySink


class FakeHistorySink(HistorySink):
    """In-memory history that can be told to fail appends."""

    def __init__(
        self,
        *,
        initial_entries: list[HistoryEntry] | None = None,
        append_error: OSError | ValueError | None = None,
    ) -> None:
        self._entries = list(initial_entries) if initial_entries is not None else []
        self._append_error = append_error
        self._failed_appends: list[HistoryEntry] = []

    def append(self, entry: HistoryEntry) -> None:
        if self._append_error is not None:
            self._failed_appends.append(entry)
            raise self._append_error
        self._entries.insert(0, entry)

    def entries(self) -> list[HistoryEntry]:
        return list(self._entries)

    def latest_committed_version(self) -> str | None:
        for entry in self._entries:
            if entry.committed:
                return entry.target_version
        return None

    @property
    def failed_appends(self) -> list[HistoryEntry]:
        return list(self._failed_appends)
