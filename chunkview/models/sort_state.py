from dataclasses import dataclass
from typing import Tuple

ASCENDING = 'asc'
DESCENDING = 'desc'


def normalize_direction(direction: str) -> str:
    return DESCENDING if str(direction).lower() == DESCENDING else ASCENDING


@dataclass(frozen=True)
class SortState:
    """Ordered sort keys passed through untouched to the data source."""
    fields: Tuple[str, ...] = ()
    directions: Tuple[str, ...] = ()

    def direction_of(self, field: str):
        if field in self.fields:
            return self.directions[self.fields.index(field)]
        return None

    def toggle(self, field: str) -> 'SortState':
        """Cycle a field through ascending, descending and unsorted."""
        if field not in self.fields:
            return SortState(self.fields + (field,), self.directions + (ASCENDING,))
        position = self.fields.index(field)
        if self.directions[position] == ASCENDING:
            directions = list(self.directions)
            directions[position] = DESCENDING
            return SortState(self.fields, tuple(directions))
        return self.remove(field)

    def add(self, field: str, direction: str = ASCENDING) -> 'SortState':
        """Append a field as the lowest-priority key, moving it if present."""
        trimmed = self.remove(field)
        return SortState(trimmed.fields + (field,),
                         trimmed.directions + (normalize_direction(direction),))

    def remove(self, field: str) -> 'SortState':
        kept = [(f, d) for f, d in zip(self.fields, self.directions) if f != field]
        return SortState(tuple(f for f, _ in kept), tuple(d for _, d in kept))

    @classmethod
    def single(cls, field: str, direction: str = ASCENDING) -> 'SortState':
        return cls((field,), (normalize_direction(direction),))
