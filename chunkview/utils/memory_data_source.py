import threading
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from chunkview.models.chunks import DataRequest, Row
from chunkview.models.events import SelectionResult
from chunkview.models.sort_state import DESCENDING
from chunkview.utils.data_source import DataSource


def get_field(item: Any, field: str):
    """Read a field from a mapping key or an attribute."""
    if isinstance(item, dict):
        return item.get(field)
    return getattr(item, field, None)


def _sort_key(field: str):
    def key(item):
        value = get_field(item, field)
        # None sorts before every real value.
        return (value is not None, value)
    return key


def _matches(item: Any, filters: Sequence[Tuple[str, Any]]) -> bool:
    for field, expected in filters:
        if callable(expected):
            if not expected(get_field(item, field)):
                return False
        elif get_field(item, field) != expected:
            return False
    return True


class InMemoryDataSource(DataSource):
    """Data source over a Python list, sorted and filtered on demand."""

    def __init__(self, items: Sequence[Any], id_getter: Optional[Callable[[Any], str]] = None):
        self._items = list(items)
        self._id_getter = id_getter or (lambda item: str(get_field(item, 'id')))
        self._selected: Set[str] = set()
        self._lock = threading.Lock()
        # Last computed view, keyed by its sort and filter parameters.
        self._view_key = None
        self._view: List[Any] = []

    def set_items(self, items: Sequence[Any]):
        with self._lock:
            self._items = list(items)
            self._view_key = None

    # ========== Views ==========

    def _view_for(self, request: Optional[DataRequest]) -> List[Any]:
        """Sorted, filtered view for a request. Caller holds the lock."""
        request = request or DataRequest(0, 0)
        key = (request.sort_fields, request.sort_directions, request.filters)
        if key == self._view_key:
            return self._view

        view = [item for item in self._items if _matches(item, request.filters)]
        # Stable sorts applied from the lowest-priority key upwards.
        for field, direction in reversed(list(zip(request.sort_fields, request.sort_directions))):
            view.sort(key=_sort_key(field), reverse=direction == DESCENDING)

        self._view_key = key
        self._view = view
        return view

    def _row(self, item: Any) -> Row:
        item_id = self._id_getter(item)
        return Row(id=item_id, item=item, selected=item_id in self._selected)

    def get_total(self, request: Optional[DataRequest] = None) -> int:
        with self._lock:
            return len(self._view_for(request))

    def load_chunk(self, request: DataRequest) -> List[Row]:
        with self._lock:
            view = self._view_for(request)
            start = max(0, request.start)
            return [self._row(item) for item in view[start:start + request.count]]

    def find_index(self, item_id: str, request: Optional[DataRequest] = None) -> int:
        with self._lock:
            for index, item in enumerate(self._view_for(request)):
                if self._id_getter(item) == item_id:
                    return index
        return -1

    # ========== Selection ==========

    @property
    def selected_ids(self) -> Set[str]:
        with self._lock:
            return set(self._selected)

    def _apply(self, item_id: str, selected: bool):
        if selected:
            self._selected.add(item_id)
        else:
            self._selected.discard(item_id)

    def set_selected(self, index: int, selected: bool,
                     request: Optional[DataRequest] = None) -> SelectionResult:
        with self._lock:
            view = self._view_for(request)
            if index < 0 or index >= len(view):
                return SelectionResult(success=False, operation='select', index=index,
                                       selected=selected,
                                       error=IndexError(f'Index {index} out of range'))
            item_id = self._id_getter(view[index])
            self._apply(item_id, selected)
        return SelectionResult(success=True, operation='select', index=index, id=item_id,
                               selected=selected, affected_ids=(item_id,))

    def set_selected_by_id(self, item_id: str, selected: bool) -> SelectionResult:
        with self._lock:
            known = any(self._id_getter(item) == item_id for item in self._items)
            if not known:
                return SelectionResult(success=False, operation='select', id=item_id,
                                       selected=selected,
                                       error=KeyError(f'Unknown item ID {item_id!r}'))
            self._apply(item_id, selected)
        return SelectionResult(success=True, operation='select', id=item_id,
                               selected=selected, affected_ids=(item_id,))

    def select_all(self, request: Optional[DataRequest] = None) -> SelectionResult:
        with self._lock:
            ids = tuple(self._id_getter(item) for item in self._view_for(request))
            self._selected.update(ids)
        return SelectionResult(success=True, operation='selectAll', selected=True,
                               affected_ids=ids)

    def clear_selection(self) -> SelectionResult:
        with self._lock:
            ids = tuple(sorted(self._selected))
            self._selected.clear()
        return SelectionResult(success=True, operation='clear', selected=False,
                               affected_ids=ids)

    def select_range(self, start_id: str, end_id: str,
                     request: Optional[DataRequest] = None) -> SelectionResult:
        with self._lock:
            view = self._view_for(request)
            positions: Dict[str, int] = {}
            for index, item in enumerate(view):
                item_id = self._id_getter(item)
                if item_id in (start_id, end_id):
                    positions[item_id] = index
            if start_id not in positions or end_id not in positions:
                return SelectionResult(success=False, operation='range', id=start_id,
                                       selected=True,
                                       error=KeyError(f'Range {start_id!r}..{end_id!r} not found'))
            low, high = sorted((positions[start_id], positions[end_id]))
            ids = tuple(self._id_getter(item) for item in view[low:high + 1])
            self._selected.update(ids)
        return SelectionResult(success=True, operation='range', index=low, id=start_id,
                               selected=True, affected_ids=ids)
