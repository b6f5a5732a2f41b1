"""Linear undo/redo over immutable preparation-state snapshots."""
from contextlib import contextmanager
from typing import Generic, Iterator, List, Optional, TypeVar

T = TypeVar("T")


class HistoryStack(Generic[T]):
    """Snapshots plus a cursor.

    ``record`` truncates everything after the cursor before appending, so a
    commit made after an undo discards the redo branch. While a snapshot is
    being restored (inside :meth:`restoring`) ``record`` is a no-op; this is
    what keeps an undo from being written back as a new entry.
    """

    def __init__(self, initial: Optional[T] = None):
        self._entries: List[T] = []
        self._index = -1
        self._restoring = False
        if initial is not None:
            self.record(initial)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def index(self) -> int:
        return self._index

    @property
    def current(self) -> Optional[T]:
        return self._entries[self._index] if self._entries else None

    @property
    def can_undo(self) -> bool:
        return self._index > 0

    @property
    def can_redo(self) -> bool:
        return self._index < len(self._entries) - 1

    @property
    def is_restoring(self) -> bool:
        return self._restoring

    @contextmanager
    def restoring(self) -> Iterator[None]:
        previous, self._restoring = self._restoring, True
        try:
            yield
        finally:
            self._restoring = previous

    def record(self, snapshot: T) -> bool:
        if self._restoring:
            return False
        del self._entries[self._index + 1:]
        self._entries.append(snapshot)
        self._index = len(self._entries) - 1
        return True

    def undo(self) -> Optional[T]:
        if not self.can_undo:
            return None
        self._index -= 1
        return self._entries[self._index]

    def redo(self) -> Optional[T]:
        if not self.can_redo:
            return None
        self._index += 1
        return self._entries[self._index]

    def reset(self, snapshot: T) -> None:
        self._entries = [snapshot]
        self._index = 0
