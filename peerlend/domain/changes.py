"""
Change log for in-memory marketplace state.

Each write to a record table or an in-place record edit stores the
before-image first. A failed operation replays the before-images backwards,
so records come back as the same objects callers already hold, and the cost
of a rollback is proportional to what the operation changed.
"""

import copy
from typing import Any, Callable, Dict, List

_MISSING = object()


class ChangeLog:
    """Undo log, recorded only while an operation is open"""

    def __init__(self):
        self._undo: List[Callable[[], None]] = []
        self._depth = 0

    def begin(self) -> int:
        self._depth += 1
        return len(self._undo)

    def rollback(self, mark: int) -> None:
        while len(self._undo) > mark:
            self._undo.pop()()
        self._end()

    def commit(self, mark: int) -> None:
        self._end()

    def _end(self) -> None:
        self._depth -= 1
        if self._depth == 0:
            self._undo.clear()

    def put(self, table: Dict[Any, Any], key: Any, value: Any) -> None:
        if self._depth:
            previous = table.get(key, _MISSING)
            self._undo.append(lambda: _reset(table, key, previous))
        table[key] = value

    def drop(self, table: Dict[Any, Any], key: Any) -> Any:
        value = table.pop(key)
        if self._depth:
            self._undo.append(lambda: table.__setitem__(key, value))
        return value

    def touch(self, record: Any) -> None:
        """Save a record's fields before it is edited in place"""
        if self._depth:
            state = copy.deepcopy(vars(record))
            self._undo.append(lambda: vars(record).update(state))


def _reset(table: Dict[Any, Any], key: Any, previous: Any) -> None:
    if previous is _MISSING:
        table.pop(key, None)
    else:
        table[key] = previous
