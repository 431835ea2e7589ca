from __future__ import annotations
from dataclasses import dataclass
from typing import Iterator, List, Optional

from sortedcontainers import SortedDict

from parser import Statement


@dataclass(frozen=True)
class Line:
    number: int
    statement: Statement


class LineRange:
    """Lines whose numbers fall in [low, high], in ascending order.

    Each iteration works on the line numbers present when it starts, so the
    store may be edited while a listing is in progress without disturbing it.
    """

    def __init__(self, store: "ProgramStore", low: int, high: Optional[int]) -> None:
        self._store = store
        self.low = low
        self.high = high

    def __iter__(self) -> Iterator[Line]:
        numbers: List[int] = list(self._store._lines.irange(self.low, self.high))
        for number in numbers:
            statement = self._store._lines.get(number)
            if statement is not None:
                yield Line(number, statement)


class ProgramStore:
    """Stored program lines keyed by line number, kept in ascending order."""

    def __init__(self) -> None:
        self._lines: SortedDict = SortedDict()

    def __len__(self) -> int:
        return len(self._lines)

    def __contains__(self, number: object) -> bool:
        return number in self._lines

    def __iter__(self) -> Iterator[Line]:
        return iter(self.ascending_range(1))

    def get(self, number: int) -> Optional[Statement]:
        return self._lines.get(number)

    def insert_or_replace(self, number: int, statement: Statement) -> None:
        if number <= 0:
            raise ValueError(f"line number must be positive: {number}")
        self._lines[number] = statement

    def delete(self, number: int) -> None:
        self._lines.pop(number, None)

    def delete_range(self, low: int, high: int) -> None:
        for number in list(self._lines.irange(low, high)):
            del self._lines[number]

    def first_line_at_or_after(self, number: int) -> Optional[Line]:
        for key in self._lines.irange(minimum=number):
            return Line(key, self._lines[key])
        return None

    def ascending_range(self, low: int, high: Optional[int] = None) -> LineRange:
        return LineRange(self, low, high)

    def clear(self) -> None:
        self._lines.clear()
