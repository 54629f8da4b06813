"""
Messages exchanged between `ChunkEngine` and whatever drives it.

Effects are returned by the engine and carried out by the owner (dispatching
a load, notifying listeners). Responses are what the owner feeds back once a
data-source call has finished. Each load is a request/response pair keyed by
its chunk start index.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Sequence, Tuple

from chunkview.models.chunks import DataRequest, Row
from chunkview.models.viewport import ViewportState


# ========== Effects ==========

@dataclass(frozen=True)
class LoadChunk:
    request: DataRequest
    # Selection refreshes reload resident chunks without entering the loading set.
    refresh: bool = False
    # Reload the request was issued in; answers from an older one are dropped.
    generation: int = 0

    @property
    def chunk_start(self) -> int:
        return self.request.start


@dataclass(frozen=True)
class RequestTotal:
    pass


@dataclass(frozen=True)
class ChunkLoadStarted:
    chunk_start: int
    request: DataRequest


@dataclass(frozen=True)
class ChunkLoadCompleted:
    chunk_start: int
    item_count: int
    request: DataRequest


@dataclass(frozen=True)
class ChunkUnloaded:
    chunk_start: int


@dataclass(frozen=True)
class DataLoadError:
    error: Any
    chunk_start: Optional[int] = None


@dataclass(frozen=True)
class ViewportChanged:
    state: ViewportState
    viewport_moved: bool
    cursor_moved: bool
    threshold_changed: bool


# ========== Responses ==========

@dataclass(frozen=True)
class ChunkLoaded:
    start_index: int
    items: Sequence[Row]
    request: DataRequest
    generation: int = 0


@dataclass(frozen=True)
class ChunkLoadFailed:
    start_index: int
    request: DataRequest
    error: Any
    generation: int = 0


@dataclass(frozen=True)
class TotalLoaded:
    total: int


@dataclass(frozen=True)
class TotalFailed:
    error: Any


@dataclass(frozen=True)
class SelectionResult:
    """Outcome of a selection call on the data source."""
    success: bool
    operation: str
    index: Optional[int] = None
    id: Optional[str] = None
    selected: Optional[bool] = None
    error: Any = None
    affected_ids: Tuple[str, ...] = field(default_factory=tuple)
