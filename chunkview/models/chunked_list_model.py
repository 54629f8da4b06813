"""
List model over a dataset of any size.

Only the chunks around the viewport are held in memory. Rows outside them
report a "Loading..." placeholder until their chunk arrives.
"""

from typing import Any, Callable, Optional

from PySide6.QtCore import QAbstractListModel, QModelIndex, Qt

from chunkview.models.chunk_loader import ChunkLoader
from chunkview.models.chunks import Row
from chunkview.models.engine import ChunkEngine
from chunkview.models.viewport import ViewportConfig
from chunkview.utils.data_source import DataSource

LOADING_TEXT = 'Loading...'


class ChunkedModelMixin:
    """Loader wiring and forwarding shared by the list and table models."""

    loader: ChunkLoader

    def _init_loader(self, data_source: DataSource, config: Optional[ViewportConfig],
                     executor, immediate_loading: Optional[bool]):
        self.loader = ChunkLoader(data_source, config=config, executor=executor,
                                  immediate_loading=immediate_loading, parent=self)
        self.loader.rows_changed.connect(self._on_rows_changed)
        self.loader.reset_started.connect(self.beginResetModel)
        self.loader.reset_finished.connect(self.endResetModel)

    def _on_rows_changed(self, first: int, last: int):
        raise NotImplementedError

    @property
    def engine(self) -> ChunkEngine:
        return self.loader.engine

    @property
    def data_source(self) -> DataSource:
        return self.loader.data_source

    def row_at(self, index: int) -> Optional[Row]:
        if index < 0 or index >= self.engine.total_items:
            return None
        return self.engine.item_at(index)

    def load(self):
        self.loader.load()

    def cleanup(self):
        self.loader.cleanup()

    # Navigation

    def cursor_up(self) -> bool:
        return self.loader.cursor_up()

    def cursor_down(self) -> bool:
        return self.loader.cursor_down()

    def page_up(self) -> bool:
        return self.loader.page_up()

    def page_down(self) -> bool:
        return self.loader.page_down()

    def jump_to_start(self) -> bool:
        return self.loader.jump_to_start()

    def jump_to_end(self) -> bool:
        return self.loader.jump_to_end()

    def jump_to(self, index: int) -> bool:
        return self.loader.jump_to(index)

    # Selection

    def set_selected(self, index: int, selected: bool):
        self.loader.set_selected(index, selected)

    def toggle_current(self) -> bool:
        return self.loader.toggle_current()

    def select_all(self):
        self.loader.select_all()

    def clear_selection(self):
        self.loader.clear_selection()

    # Sorting & filtering

    def toggle_sort(self, field: str):
        self.loader.toggle_sort(field)

    def set_filter(self, field: str, value):
        self.loader.set_filter(field, value)

    def clear_filters(self):
        self.loader.clear_filters()


class ChunkedListModel(ChunkedModelMixin, QAbstractListModel):
    def __init__(self, data_source: DataSource, config: Optional[ViewportConfig] = None,
                 executor=None, immediate_loading: Optional[bool] = None,
                 display_text: Optional[Callable[[Any], str]] = None, parent=None):
        super().__init__(parent)
        self.display_text = display_text or str
        self._init_loader(data_source, config, executor, immediate_loading)

    def _on_rows_changed(self, first: int, last: int):
        self.dataChanged.emit(self.index(first), self.index(last))

    def rowCount(self, parent=QModelIndex()) -> int:
        """Return the total number of rows, loaded or not."""
        if parent.isValid():
            return 0
        return self.engine.total_items

    def flags(self, index: QModelIndex) -> Qt.ItemFlag:
        if not index.isValid():
            return Qt.ItemFlag.NoItemFlags
        return (Qt.ItemFlag.ItemIsEnabled | Qt.ItemFlag.ItemIsSelectable
                | Qt.ItemFlag.ItemIsUserCheckable)

    def data(self, index: QModelIndex, role: int = Qt.ItemDataRole.DisplayRole):
        if not index.isValid():
            return None
        row = self.row_at(index.row())

        if row is None:
            if role == Qt.ItemDataRole.DisplayRole:
                return LOADING_TEXT
            return None

        if role == Qt.ItemDataRole.DisplayRole:
            return self.display_text(row.item)
        elif role == Qt.ItemDataRole.CheckStateRole:
            return Qt.CheckState.Checked if row.selected else Qt.CheckState.Unchecked
        elif role == Qt.ItemDataRole.UserRole:
            return row
        return None

    def setData(self, index: QModelIndex, value, role: int = Qt.ItemDataRole.EditRole) -> bool:
        if not index.isValid() or role != Qt.ItemDataRole.CheckStateRole:
            return False
        # Applied asynchronously; the refreshed chunk emits dataChanged.
        self.set_selected(index.row(), Qt.CheckState(value) == Qt.CheckState.Checked)
        return True
