"""Undo/redo history built on immutable graph snapshots.

Each recorded action stores the snapshot taken *before* it ran. Undoing
restores that snapshot and moves the current state onto the redo stack, so
both directions are exact state restorations rather than inverse commands.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ._store import GraphSnapshot

DEFAULT_HISTORY_LIMIT = 100


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    """One undoable step.

    Attributes:
        label: Name of the action, e.g. "Add module".
        snapshot: State to restore when this entry is applied.
        timestamp: When the entry was recorded.

    """

    label: str
    snapshot: GraphSnapshot
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class History:
    """Bounded undo and redo stacks of graph snapshots."""

    def __init__(self, limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        if limit < 1:
            msg = f"History limit must be at least 1, got {limit}"
            raise ValueError(msg)
        self.limit = limit
        self._undo: list[HistoryEntry] = []
        self._redo: list[HistoryEntry] = []

    def can_undo(self) -> bool:
        return bool(self._undo)

    def can_redo(self) -> bool:
        return bool(self._redo)

    def record(self, label: str, before: GraphSnapshot) -> None:
        """Record an action together with the state preceding it.

        Recording a new action discards anything that could be redone.
        """
        self._undo.append(HistoryEntry(label, before))
        self._redo.clear()
        if len(self._undo) > self.limit:
            self._undo.pop(0)

    def undo(self, current: GraphSnapshot) -> HistoryEntry | None:
        """Step back one action.

        Args:
            current: The state right now, kept so the step can be redone.

        Returns:
            The entry whose snapshot should be restored, or None if there is
            nothing to undo.

        """
        if not self._undo:
            return None
        entry = self._undo.pop()
        self._redo.append(HistoryEntry(entry.label, current))
        return entry

    def redo(self, current: GraphSnapshot) -> HistoryEntry | None:
        """Step forward one action. The inverse of :meth:`undo`."""
        if not self._redo:
            return None
        entry = self._redo.pop()
        self._undo.append(HistoryEntry(entry.label, current))
        return entry

    def labels(self) -> list[str]:
        """Labels of undoable actions, oldest first."""
        return [entry.label for entry in self._undo]

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()

    def __len__(self) -> int:
        return len(self._undo)
