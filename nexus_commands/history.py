"""
Execution history for one console session.

Every line the router is asked to execute is appended here, oldest
first. The up/down arrow keys walk it through previous() and next().
"""

from __future__ import annotations

from typing import Iterator, Optional


class HistoryLog:
    """Append-only list of submitted command lines, most recent last.

    The navigation cursor sits "just past" the newest entry after every
    append, which is where an empty prompt lives. Walking off either
    end clamps instead of wrapping around.

    Parameters
    ----------
    max_entries : int or None
        Keep at most this many lines, dropping the oldest. None or 0
        means unbounded.
    """

    def __init__(self, max_entries: Optional[int] = None):
        self.max_entries = max_entries or None
        self._entries: list[str] = []
        self._cursor = 0

    def append(self, line: str) -> None:
        self._entries.append(line)
        if self.max_entries is not None and len(self._entries) > self.max_entries:
            del self._entries[: len(self._entries) - self.max_entries]
        self._cursor = len(self._entries)

    def previous(self) -> Optional[str]:
        """Step back one entry. Stays on the oldest once reached.

        Returns None only when the history is empty.
        """
        if not self._entries:
            return None
        if self._cursor > 0:
            self._cursor -= 1
        return self._entries[self._cursor]

    def next(self) -> Optional[str]:
        """Step forward one entry.

        Past the newest entry this returns "" (the empty prompt) and
        stays there. Returns None only when the history is empty.
        """
        if not self._entries:
            return None
        if self._cursor < len(self._entries):
            self._cursor += 1
        if self._cursor == len(self._entries):
            return ""
        return self._entries[self._cursor]

    def reset_cursor(self) -> None:
        self._cursor = len(self._entries)

    def clear(self) -> int:
        """Forget everything. Returns how many lines were dropped."""
        count = len(self._entries)
        self._entries.clear()
        self._cursor = 0
        return count

    def entries(self) -> list[str]:
        return list(self._entries)

    @property
    def cursor(self) -> int:
        return self._cursor

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))
