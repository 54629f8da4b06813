"""
Chunk virtualization engine shared by the list, table and tree models.

`ChunkEngine` owns the viewport state, the chunk cache and the loading set.
It never talks to a data source itself: every entry point mutates the
engine and returns a list of effects (see `chunkview.models.events`) for the
owner to carry out. Completed loads are fed back through
`handle_chunk_loaded` / `handle_chunk_failed`, one event at a time, on the
same thread that issues navigation.
"""

import logging
from dataclasses import replace
from enum import Enum
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, TypeVar

from chunkview.models.bounding_area import BoundingArea, calculate_bounding_area
from chunkview.models.chunks import (Chunk, ChunkCache, DataRequest, Row, chunk_start_for,
                                     chunks_needed, chunks_to_evict, create_chunk_request,
                                     freeze_filters, missing_chunks)
from chunkview.models.events import (ChunkLoadCompleted, ChunkLoaded, ChunkLoadFailed,
                                     ChunkLoadStarted, ChunkUnloaded, DataLoadError, LoadChunk,
                                     RequestTotal, SelectionResult, TotalFailed, TotalLoaded,
                                     ViewportChanged)
from chunkview.models.loading_gate import LoadingGate
from chunkview.models.sort_state import SortState
from chunkview.models.viewport import (Navigation, ViewportConfig, ViewportState, clamp_to_total,
                                       fix_viewport_config, initial_viewport_state, navigate,
                                       update_bounds, visible_range)

logger = logging.getLogger(__name__)

T = TypeVar('T')

ImmediateLoader = Callable[[DataRequest], Sequence[Row]]


class LoadingPhase(str, Enum):
    IDLE = 'idle'
    LOADING_CRITICAL = 'loading_critical'
    LOADING_BACKGROUND = 'loading_background'


class ChunkEngine(Generic[T]):
    """Viewport, chunk cache and loading gate behind one set of entry points."""

    def __init__(self, config: Optional[ViewportConfig] = None,
                 immediate_loader: Optional[ImmediateLoader] = None):
        self._config = fix_viewport_config(config or ViewportConfig())
        self._state = ViewportState()
        self._total_items = 0
        self._has_total = False

        self._cache: ChunkCache[T] = ChunkCache(self._config.chunk_size)
        self._gate = LoadingGate()
        # Request dispatched for each chunk in the loading set.
        self._pending: Dict[int, DataRequest] = {}
        # Bumped whenever cached and in-flight rows are invalidated wholesale.
        self._generation = 0

        # Passed through to the data source; never interpreted here.
        self._sort = SortState()
        self._filters: Dict[str, Any] = {}

        self.immediate_loader = immediate_loader
        self.last_error = None

    # ========== Read accessors ==========

    @property
    def state(self) -> ViewportState:
        return self._state

    @property
    def config(self) -> ViewportConfig:
        return self._config

    @property
    def total_items(self) -> int:
        return self._total_items

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def can_scroll(self) -> bool:
        return self._gate.can_scroll

    @property
    def has_loading_chunks(self) -> bool:
        return self._gate.has_loading_chunks

    @property
    def loading_starts(self) -> List[int]:
        return self._gate.loading_starts()

    @property
    def resident_starts(self) -> List[int]:
        return self._cache.resident_starts()

    @property
    def bounding_area(self) -> BoundingArea:
        return calculate_bounding_area(self._state, self._config, self._total_items)

    @property
    def sort_state(self) -> SortState:
        return self._sort

    @property
    def filters(self) -> Dict[str, Any]:
        return dict(self._filters)

    @property
    def phase(self) -> LoadingPhase:
        if not self._gate.has_loading_chunks:
            return LoadingPhase.IDLE
        if self._gate.critical_starts(self._state, self._config):
            return LoadingPhase.LOADING_CRITICAL
        return LoadingPhase.LOADING_BACKGROUND

    def visible_range(self) -> tuple[int, int]:
        return visible_range(self._state, self._config, self._total_items)

    def current_request_view(self) -> DataRequest:
        """Sort and filter parameters every new request is issued with."""
        return DataRequest(
            start=0,
            count=0,
            sort_fields=self._sort.fields,
            sort_directions=self._sort.directions,
            filters=freeze_filters(self._filters),
        )

    def is_loading_row(self, index: int) -> bool:
        return self._gate.is_loading(chunk_start_for(index, self._config.chunk_size))

    def debug_summary(self) -> str:
        start, end = self.visible_range()
        state = self._state
        return (f"Viewport[{start}:{end}] Cursor[{state.cursor_index}:{state.cursor_viewport_index}] "
                f"T[{state.is_at_top_threshold},{state.is_at_bottom_threshold}] "
                f"B[{state.at_dataset_start},{state.at_dataset_end}] "
                f"Chunks[{len(self._cache)}] Loading{self._gate.loading_starts()} "
                f"Phase[{self.phase.value}]")

    # ========== Item access ==========

    def item_at(self, index: int) -> Optional[Row[T]]:
        """
        Return the row at an absolute index.

        A miss falls back to a synchronous load through `immediate_loader`
        when one is configured, so a render pass can avoid a gap the
        prefetch pipeline has not caught up with yet. Such a direct load
        produces no effects, so the owner emits no completion or
        rows-changed signal for it; the caller already has the row.
        """
        if index < 0 or index >= self._total_items:
            return None
        row = self._cache.item_at(index)
        if row is not None or self.immediate_loader is None:
            return row

        chunk_start = chunk_start_for(index, self._config.chunk_size)
        request = self._request_for(chunk_start)
        logger.debug("[CHUNK] Immediate load of chunk %d for row %d", chunk_start, index)
        try:
            items = self.immediate_loader(request)
        except Exception as e:
            logger.warning("[CHUNK] Immediate load of chunk %d failed: %s", chunk_start, e)
            self.last_error = e
            return None
        self.handle_chunk_loaded(ChunkLoaded(chunk_start, items, request, self._generation))
        return self._cache.item_at(index)

    def current_item(self) -> Optional[Row[T]]:
        if self._total_items <= 0:
            return None
        return self.item_at(self._state.cursor_index)

    def visible_items(self) -> List[Optional[Row[T]]]:
        """Rows of the current viewport; None marks a row that is not resident yet."""
        start, end = self.visible_range()
        return [self.item_at(index) for index in range(start, end)]

    def find_item_index(self, item_id: str) -> int:
        return self._cache.find_index(item_id)

    # ========== Navigation ==========

    def handle_navigation(self, navigation: Navigation, index: Optional[int] = None) -> list:
        """Apply a navigation intent and return the resulting effects."""
        if self._total_items <= 0:
            return []

        previous = self._state
        candidate = navigate(navigation, previous, self._config, self._total_items, index)
        if candidate == previous:
            return []

        if not self._gate.can_scroll and self._crosses_loaded_boundary(previous, candidate):
            logger.debug("[CHUNK] Navigation %s blocked while critical chunks load: %s",
                         navigation, self._gate.critical_starts(previous, self._config))
            return []

        self._state = candidate
        effects: list = [self._viewport_changed(previous, candidate)]
        effects.extend(self.smart_chunk_management())
        return effects

    def cursor_up(self) -> list:
        return self.handle_navigation(Navigation.UP)

    def cursor_down(self) -> list:
        return self.handle_navigation(Navigation.DOWN)

    def page_up(self) -> list:
        return self.handle_navigation(Navigation.PAGE_UP)

    def page_down(self) -> list:
        return self.handle_navigation(Navigation.PAGE_DOWN)

    def jump_to_start(self) -> list:
        return self.handle_navigation(Navigation.START)

    def jump_to_end(self) -> list:
        return self.handle_navigation(Navigation.END)

    def jump_to(self, index: int) -> list:
        return self.handle_navigation(Navigation.JUMP, index)

    def _crosses_loaded_boundary(self, previous: ViewportState, candidate: ViewportState) -> bool:
        if candidate.viewport_start_index != previous.viewport_start_index:
            return True
        return not self._cache.is_resident(candidate.cursor_index)

    @staticmethod
    def _viewport_changed(previous: ViewportState, current: ViewportState) -> ViewportChanged:
        return ViewportChanged(
            state=current,
            viewport_moved=current.viewport_start_index != previous.viewport_start_index,
            cursor_moved=current.cursor_index != previous.cursor_index,
            threshold_changed=(current.is_at_top_threshold != previous.is_at_top_threshold
                               or current.is_at_bottom_threshold != previous.is_at_bottom_threshold),
        )

    # ========== Chunk management ==========

    def _request_for(self, chunk_start: int) -> DataRequest:
        return create_chunk_request(
            chunk_start,
            self._config.chunk_size,
            self._total_items,
            sort_fields=self._sort.fields,
            sort_directions=self._sort.directions,
            filters=self._filters,
        )

    def smart_chunk_management(self) -> list:
        """
        Load what the bounding area is missing and drop what left it.

        Every missing chunk enters the loading set before its load effect is
        returned, so a chunk is never requested twice while in flight.
        """
        effects: list = []
        chunk_size = self._config.chunk_size
        area = self.bounding_area

        needed = chunks_needed(area, chunk_size, self._total_items)
        for chunk_start in missing_chunks(needed, self._cache.resident_starts(),
                                          self._gate.loading_starts()):
            if not self._gate.mark_loading(chunk_start):
                continue
            request = self._request_for(chunk_start)
            self._pending[chunk_start] = request
            logger.debug("[CHUNK] Requesting chunk %d (%d items)", chunk_start, request.count)
            effects.append(ChunkLoadStarted(chunk_start, request))
            effects.append(LoadChunk(request, generation=self._generation))

        for chunk_start in chunks_to_evict(self._cache.resident_starts(), area, chunk_size):
            self._cache.evict(chunk_start)
            logger.debug("[CHUNK] Evicted chunk %d", chunk_start)
            effects.append(ChunkUnloaded(chunk_start))

        self._gate.update(self._state, self._config)
        return effects

    def _is_stale(self, start_index: int, request: DataRequest, generation: int) -> bool:
        """
        True if a response no longer describes the current dataset.

        Anything issued before the last reload is stale. After that, the
        request dispatched for a loading chunk is always current. Any other
        response (a selection refresh, a result that outlived a total
        change) is kept only if it matches what would be requested now.
        """
        if generation != self._generation:
            return True
        if self._pending.get(start_index) == request:
            return False
        if not request.same_view(self.current_request_view()):
            return True
        return (start_index % self._config.chunk_size != 0
                or request.count != self._request_for(start_index).count)

    def _release(self, chunk_start: int, request: Optional[DataRequest] = None):
        """Remove a chunk from the loading set if `request` is the one in flight."""
        if request is not None and self._pending.get(chunk_start) != request:
            return
        self._pending.pop(chunk_start, None)
        self._gate.mark_done(chunk_start)

    def _invalidate_loads(self):
        self._generation += 1
        self._pending.clear()
        self._gate.clear()

    def handle_chunk_loaded(self, event: ChunkLoaded) -> list:
        """Merge a completed load into the cache."""
        start = event.start_index
        if self._is_stale(start, event.request, event.generation):
            logger.debug("[CHUNK] Dropping stale chunk %d", start)
            return []

        self._release(start, event.request)
        items = tuple(event.items)[:self._config.chunk_size]
        if items and start < self._total_items:
            # Replaces any earlier copy, including one evicted while this was in flight.
            self._cache.store(Chunk(start_index=start, items=items, request=event.request))
        self._gate.update(self._state, self._config)
        logger.debug("[CHUNK] Loaded chunk %d (%d items)", start, len(items))
        return [ChunkLoadCompleted(start, len(items), event.request)]

    def handle_chunk_failed(self, event: ChunkLoadFailed) -> list:
        """Release the chunk so a later pass can retry it, and report the error."""
        start = event.start_index
        if self._is_stale(start, event.request, event.generation):
            logger.debug("[CHUNK] Ignoring failure of stale chunk %d", start)
            return []

        self._release(start, event.request)
        self._gate.update(self._state, self._config)
        self.last_error = event.error
        logger.warning("[CHUNK] Loading chunk %d failed: %s", start, event.error)
        return [DataLoadError(event.error, chunk_start=start)]

    # ========== Dataset size ==========

    def set_total(self, total: int) -> list:
        """Adopt a new item count, clamp the cursor and reload around it."""
        total = max(0, int(total))
        previous = self._state
        self._total_items = total

        if not self._has_total:
            self._state = initial_viewport_state(self._config, total)
            self._has_total = True
        else:
            self._state = clamp_to_total(previous, self._config, total)

        chunk_size = self._config.chunk_size
        for chunk_start, request in list(self._pending.items()):
            # In flight with a range the new total invalidates; reissued below if still needed.
            if request.count != max(0, min(chunk_size, total - chunk_start)):
                self._release(chunk_start)
        for chunk in self._cache.chunks():
            # Chunks past the end, or a tail chunk whose length no longer
            # matches the dataset, are fetched again.
            if len(chunk) != max(0, min(chunk_size, total - chunk.start_index)):
                self._cache.evict(chunk.start_index)

        logger.debug("[TOTAL] Total items set to %d", total)
        effects: list = []
        if self._state != previous:
            effects.append(self._viewport_changed(previous, self._state))
        effects.extend(self.smart_chunk_management())
        return effects

    def handle_total_loaded(self, event: TotalLoaded) -> list:
        return self.set_total(event.total)

    def handle_total_failed(self, event: TotalFailed) -> list:
        self.last_error = event.error
        logger.warning("[TOTAL] Loading total failed: %s", event.error)
        return [DataLoadError(event.error)]

    def refresh(self) -> list:
        """Drop every cached and pending chunk and ask for a fresh total."""
        self._cache.clear()
        self._invalidate_loads()
        return [RequestTotal()]

    # ========== Configuration ==========

    def set_config(self, config: ViewportConfig) -> list:
        """
        Replace the configuration wholesale.

        A chunk size change invalidates the cache; the bounding area is
        recomputed on the next navigation event.
        """
        previous_state = self._state
        old = self._config
        new = fix_viewport_config(config)
        self._config = new

        if new.chunk_size != old.chunk_size:
            self._cache = ChunkCache(new.chunk_size)
            self._invalidate_loads()

        self._state = update_bounds(self._state, new, self._total_items)
        self._gate.update(self._state, new)
        if self._state != previous_state:
            return [self._viewport_changed(previous_state, self._state)]
        return []

    def resize(self, height: int) -> list:
        if height <= 0:
            return []
        return self.set_config(replace(self._config, height=height))

    # ========== Selection ==========

    def handle_selection_result(self, result: SelectionResult) -> list:
        """Reload resident chunks so their rows pick up the new selection flags."""
        if not result.success:
            logger.warning("[SELECT] %s failed: %s", result.operation, result.error)
            return []
        return [LoadChunk(self._request_for(chunk_start), refresh=True,
                          generation=self._generation)
                for chunk_start in self._cache.resident_starts()]

    # ========== Sorting & filtering ==========

    def toggle_sort(self, field: str) -> list:
        self._sort = self._sort.toggle(field)
        return self.refresh()

    def set_sort(self, field: str, direction: str = 'asc') -> list:
        self._sort = SortState.single(field, direction)
        return self.refresh()

    def add_sort(self, field: str, direction: str = 'asc') -> list:
        self._sort = self._sort.add(field, direction)
        return self.refresh()

    def remove_sort(self, field: str) -> list:
        if field not in self._sort.fields:
            return []
        self._sort = self._sort.remove(field)
        return self.refresh()

    def clear_sorts(self) -> list:
        self._sort = SortState()
        return self.refresh()

    def set_filter(self, field: str, value: Any) -> list:
        self._filters[field] = value
        return self.refresh()

    def clear_filter(self, field: str) -> list:
        if field not in self._filters:
            return []
        del self._filters[field]
        return self.refresh()

    def clear_filters(self) -> list:
        self._filters = {}
        return self.refresh()
