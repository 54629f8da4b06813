"""
Chunk bookkeeping: request parameters, cached chunks and the pure
functions deciding which chunks to fetch and which to drop.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Iterable, List, Optional, Tuple, TypeVar

from chunkview.models.bounding_area import BoundingArea

T = TypeVar('T')


@dataclass(frozen=True)
class DataRequest:
    """Parameters of one `load_chunk` call."""
    start: int
    count: int
    sort_fields: Tuple[str, ...] = ()
    sort_directions: Tuple[str, ...] = ()
    filters: Tuple[Tuple[str, Any], ...] = ()

    @property
    def filter_map(self) -> Dict[str, Any]:
        return dict(self.filters)

    def same_view(self, other: 'DataRequest') -> bool:
        """True if both requests read the same sorted/filtered dataset."""
        return (self.sort_fields == other.sort_fields
                and self.sort_directions == other.sort_directions
                and self.filters == other.filters)


def freeze_filters(filters: Optional[Dict[str, Any]]) -> Tuple[Tuple[str, Any], ...]:
    if not filters:
        return ()
    return tuple(sorted(filters.items(), key=lambda entry: entry[0]))


def create_chunk_request(chunk_start: int, chunk_size: int, total_items: int,
                         sort_fields=(), sort_directions=(), filters=None) -> DataRequest:
    """Request for the chunk at `chunk_start`, shortened at the dataset end."""
    count = max(0, min(chunk_size, total_items - chunk_start))
    return DataRequest(
        start=chunk_start,
        count=count,
        sort_fields=tuple(sort_fields),
        sort_directions=tuple(sort_directions),
        filters=filters if isinstance(filters, tuple) else freeze_filters(filters),
    )


@dataclass
class Row(Generic[T]):
    """One record as delivered by a data source."""
    id: str
    item: T
    selected: bool = False
    disabled: bool = False
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class Chunk(Generic[T]):
    start_index: int
    items: Tuple[Row[T], ...]
    request: DataRequest
    loaded_at: float = field(default_factory=time.time)

    @property
    def end_index(self) -> int:
        return self.start_index + len(self.items) - 1

    def __len__(self) -> int:
        return len(self.items)

    def item_at(self, index: int) -> Optional[Row[T]]:
        offset = index - self.start_index
        if 0 <= offset < len(self.items):
            return self.items[offset]
        return None


# ========== Chunk arithmetic ==========

def chunk_start_for(index: int, chunk_size: int) -> int:
    return (index // chunk_size) * chunk_size


def chunks_needed(area: BoundingArea, chunk_size: int, total_items: int) -> List[int]:
    """Chunk-aligned start indices covering `area`, clipped to the dataset."""
    if total_items <= 0 or area.is_empty:
        return []
    first = chunk_start_for(max(0, area.start_index), chunk_size)
    last = chunk_start_for(min(area.end_index, total_items - 1), chunk_size)
    return list(range(first, last + 1, chunk_size))


def missing_chunks(needed: Iterable[int], resident: Iterable[int], loading: Iterable[int]) -> List[int]:
    """Needed chunks that are neither cached nor already requested."""
    skip = set(resident) | set(loading)
    return [start for start in needed if start not in skip]


def chunks_to_evict(resident: Iterable[int], area: BoundingArea, chunk_size: int) -> List[int]:
    """
    Resident chunks that lie completely outside `area`.

    Eviction is by distance from the viewport only; a chunk that partially
    overlaps the area stays, regardless of when it was last read.
    """
    return sorted(start for start in resident
                  if not area.intersects(start, start + chunk_size - 1))


# ========== Cache ==========

class ChunkCache(Generic[T]):
    """Map of chunk start index to loaded chunk."""

    def __init__(self, chunk_size: int):
        self.chunk_size = chunk_size
        self._chunks: Dict[int, Chunk[T]] = {}

    def __len__(self) -> int:
        return len(self._chunks)

    def __contains__(self, chunk_start: int) -> bool:
        return chunk_start in self._chunks

    def store(self, chunk: Chunk[T]):
        """Store a chunk, replacing whatever was cached at its start index."""
        self._chunks[chunk.start_index] = chunk

    def evict(self, chunk_start: int) -> Optional[Chunk[T]]:
        return self._chunks.pop(chunk_start, None)

    def clear(self):
        self._chunks.clear()

    def get(self, chunk_start: int) -> Optional[Chunk[T]]:
        return self._chunks.get(chunk_start)

    def resident_starts(self) -> List[int]:
        return sorted(self._chunks)

    def chunks(self) -> List[Chunk[T]]:
        return [self._chunks[start] for start in sorted(self._chunks)]

    def is_resident(self, index: int) -> bool:
        chunk = self._chunks.get(chunk_start_for(index, self.chunk_size))
        return chunk is not None and chunk.item_at(index) is not None

    def item_at(self, index: int) -> Optional[Row[T]]:
        if index < 0:
            return None
        chunk = self._chunks.get(chunk_start_for(index, self.chunk_size))
        if chunk is None:
            return None
        return chunk.item_at(index)

    def find_index(self, item_id: str) -> int:
        """Absolute index of a resident row by ID, or -1."""
        for chunk in self._chunks.values():
            for offset, row in enumerate(chunk.items):
                if row.id == item_id:
                    return chunk.start_index + offset
        return -1

    @property
    def loaded_item_count(self) -> int:
        return sum(len(chunk) for chunk in self._chunks.values())
