"""
Qt driver for `ChunkEngine`.

Data-source calls run on a small thread pool. Their results are emitted back
through a queued signal, so every completion is processed as one discrete
event on the thread that owns the loader, serialized with navigation.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from PySide6.QtCore import QObject, Qt, Signal, Slot

from chunkview.models.chunks import DataRequest
from chunkview.models.engine import ChunkEngine
from chunkview.models.events import (ChunkLoadCompleted, ChunkLoaded, ChunkLoadFailed,
                                     ChunkLoadStarted, ChunkUnloaded, DataLoadError, LoadChunk,
                                     RequestTotal, SelectionResult, TotalFailed, TotalLoaded,
                                     ViewportChanged)
from chunkview.models.viewport import Navigation, ViewportConfig
from chunkview.utils.data_source import DataSource
from chunkview.utils.settings import (DEFAULT_SETTINGS, get_bool_setting, get_int_setting,
                                      settings, viewport_config_from_settings)

logger = logging.getLogger(__name__)


class ChunkLoader(QObject):
    """Owns one engine, one data source and the worker pool feeding it."""

    # Observability
    chunk_load_started = Signal(int)  # chunk start
    chunk_load_completed = Signal(int, int)  # chunk start, item count
    chunk_unloaded = Signal(int)  # chunk start
    data_load_error = Signal(object)  # DataLoadError
    total_count_changed = Signal(int)
    viewport_changed = Signal(object)  # ViewportState
    selection_changed = Signal(object)  # SelectionResult

    # For item models
    rows_changed = Signal(int, int)  # first row, last row (inclusive)
    reset_started = Signal()
    reset_finished = Signal()

    # Worker thread -> owner thread
    _response_ready = Signal(object)

    def __init__(self, data_source: DataSource, config: Optional[ViewportConfig] = None,
                 executor=None, immediate_loading: Optional[bool] = None, parent=None):
        super().__init__(parent)
        self.data_source = data_source

        if config is None:
            config = viewport_config_from_settings(settings)
        if immediate_loading is None:
            immediate_loading = get_bool_setting(settings, 'immediate_chunk_loading')

        self.engine = ChunkEngine(
            config, immediate_loader=data_source.load_chunk if immediate_loading else None)

        if executor is None:
            workers = max(1, get_int_setting(settings, 'load_worker_count')
                          or DEFAULT_SETTINGS['load_worker_count'])
            executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix='chunk_load')
        self._executor = executor

        self._response_ready.connect(self._on_response, Qt.ConnectionType.QueuedConnection)

    # ========== Lifecycle ==========

    def load(self):
        """Fetch the total count and the chunks around the initial cursor."""
        self._apply(self.engine.refresh())

    def cleanup(self):
        """Clean up resources."""
        self._executor.shutdown(wait=False)
        self.data_source.close()

    # ========== Worker side ==========

    def _run_load(self, request: DataRequest, generation: int):
        try:
            items = self.data_source.load_chunk(request)
        except Exception as e:
            self._response_ready.emit(ChunkLoadFailed(request.start, request, e, generation))
            return
        self._response_ready.emit(ChunkLoaded(request.start, items, request, generation))

    def _run_total(self, request: DataRequest):
        try:
            total = self.data_source.get_total(request)
        except Exception as e:
            self._response_ready.emit(TotalFailed(e))
            return
        self._response_ready.emit(TotalLoaded(total))

    def _run_selection(self, operation: str, method, *args):
        try:
            result = method(*args)
        except Exception as e:
            result = SelectionResult(success=False, operation=operation, error=e)
        self._response_ready.emit(result)

    # ========== Owner side ==========

    @Slot(object)
    def _on_response(self, event):
        if isinstance(event, ChunkLoaded):
            effects = self.engine.handle_chunk_loaded(event)
        elif isinstance(event, ChunkLoadFailed):
            effects = self.engine.handle_chunk_failed(event)
        elif isinstance(event, TotalLoaded):
            effects = self._set_total(event.total)
        elif isinstance(event, TotalFailed):
            effects = self.engine.handle_total_failed(event)
        elif isinstance(event, SelectionResult):
            self.selection_changed.emit(event)
            effects = self.engine.handle_selection_result(event)
        else:
            logger.warning("[CHUNK] Unexpected response %r", event)
            return
        self._apply(effects)

    def _set_total(self, total: int) -> list:
        if total == self.engine.total_items:
            return self.engine.set_total(total)
        self.reset_started.emit()
        effects = self.engine.set_total(total)
        self.reset_finished.emit()
        self.total_count_changed.emit(self.engine.total_items)
        return effects

    def _emit_rows_changed(self, first: int, count: int):
        last = min(first + count, self.engine.total_items) - 1
        if last >= first:
            self.rows_changed.emit(first, last)

    def _apply(self, effects: list):
        """Carry out the effects returned by the engine, in order."""
        for effect in effects:
            if isinstance(effect, LoadChunk):
                self._executor.submit(self._run_load, effect.request, effect.generation)
            elif isinstance(effect, RequestTotal):
                self._executor.submit(self._run_total, self.engine.current_request_view())
            elif isinstance(effect, ChunkLoadStarted):
                self.chunk_load_started.emit(effect.chunk_start)
            elif isinstance(effect, ChunkLoadCompleted):
                self._emit_rows_changed(effect.chunk_start, effect.item_count)
                self.chunk_load_completed.emit(effect.chunk_start, effect.item_count)
            elif isinstance(effect, ChunkUnloaded):
                self._emit_rows_changed(effect.chunk_start, self.engine.config.chunk_size)
                self.chunk_unloaded.emit(effect.chunk_start)
            elif isinstance(effect, DataLoadError):
                self.data_load_error.emit(effect)
            elif isinstance(effect, ViewportChanged):
                self.viewport_changed.emit(effect.state)

    def _reset(self, effects: list):
        """Apply effects that invalidate every cached row."""
        self.reset_started.emit()
        self.reset_finished.emit()
        self._apply(effects)

    # ========== Navigation ==========

    def navigate(self, navigation: Navigation, index: Optional[int] = None) -> bool:
        """Apply a navigation intent. False if it was a no-op or was blocked."""
        effects = self.engine.handle_navigation(navigation, index)
        self._apply(effects)
        return bool(effects)

    def cursor_up(self) -> bool:
        return self.navigate(Navigation.UP)

    def cursor_down(self) -> bool:
        return self.navigate(Navigation.DOWN)

    def page_up(self) -> bool:
        return self.navigate(Navigation.PAGE_UP)

    def page_down(self) -> bool:
        return self.navigate(Navigation.PAGE_DOWN)

    def jump_to_start(self) -> bool:
        return self.navigate(Navigation.START)

    def jump_to_end(self) -> bool:
        return self.navigate(Navigation.END)

    def jump_to(self, index: int) -> bool:
        return self.navigate(Navigation.JUMP, index)

    # ========== Configuration ==========

    def set_config(self, config: ViewportConfig):
        chunk_size = self.engine.config.chunk_size
        effects = self.engine.set_config(config)
        if self.engine.config.chunk_size != chunk_size:
            self._reset(effects + self.engine.smart_chunk_management())
        else:
            self._apply(effects)

    def resize(self, height: int):
        self._apply(self.engine.resize(height))

    # ========== Selection ==========

    def _submit_selection(self, operation: str, method, *args):
        self._executor.submit(self._run_selection, operation, method, *args)

    def set_selected(self, index: int, selected: bool):
        self._submit_selection('select', self.data_source.set_selected, index, selected,
                               self.engine.current_request_view())

    def set_selected_by_id(self, item_id: str, selected: bool):
        self._submit_selection('select', self.data_source.set_selected_by_id, item_id, selected)

    def toggle_current(self) -> bool:
        """Flip the selection of the row under the cursor, if it is resident."""
        row = self.engine.current_item()
        if row is None:
            return False
        self.set_selected(self.engine.state.cursor_index, not row.selected)
        return True

    def select_all(self):
        self._submit_selection('selectAll', self.data_source.select_all,
                               self.engine.current_request_view())

    def clear_selection(self):
        self._submit_selection('clear', self.data_source.clear_selection)

    def select_range(self, start_id: str, end_id: str):
        self._submit_selection('range', self.data_source.select_range, start_id, end_id,
                               self.engine.current_request_view())

    # ========== Sorting & filtering ==========

    def toggle_sort(self, field: str):
        self._reset(self.engine.toggle_sort(field))

    def set_sort(self, field: str, direction: str = 'asc'):
        self._reset(self.engine.set_sort(field, direction))

    def add_sort(self, field: str, direction: str = 'asc'):
        self._reset(self.engine.add_sort(field, direction))

    def remove_sort(self, field: str):
        effects = self.engine.remove_sort(field)
        if effects:
            self._reset(effects)

    def clear_sorts(self):
        self._reset(self.engine.clear_sorts())

    def set_filter(self, field: str, value):
        self._reset(self.engine.set_filter(field, value))

    def clear_filter(self, field: str):
        effects = self.engine.clear_filter(field)
        if effects:
            self._reset(effects)

    def clear_filters(self):
        self._reset(self.engine.clear_filters())
