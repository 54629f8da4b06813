from dataclasses import dataclass
from typing import List, Optional, Sequence

from PySide6.QtCore import QAbstractTableModel, QModelIndex, QSize, Qt

from chunkview.models.chunked_list_model import LOADING_TEXT, ChunkedModelMixin
from chunkview.models.viewport import ViewportConfig
from chunkview.utils.data_source import DataSource
from chunkview.utils.memory_data_source import get_field


@dataclass(frozen=True)
class TableColumn:
    title: str
    field: str
    width: int = 100
    alignment: Qt.AlignmentFlag = Qt.AlignmentFlag.AlignLeft


class ChunkedTableModel(ChunkedModelMixin, QAbstractTableModel):
    """
    Table model whose rows come from the chunk engine.

    The first column carries the selection check box.
    """

    def __init__(self, data_source: DataSource, columns: Sequence[TableColumn],
                 config: Optional[ViewportConfig] = None, executor=None,
                 immediate_loading: Optional[bool] = None, parent=None):
        super().__init__(parent)
        self.columns: List[TableColumn] = list(columns)
        self._init_loader(data_source, config, executor, immediate_loading)

    def _on_rows_changed(self, first: int, last: int):
        if self.columns:
            self.dataChanged.emit(self.index(first, 0),
                                  self.index(last, len(self.columns) - 1))

    def rowCount(self, parent=QModelIndex()) -> int:
        if parent.isValid():
            return 0
        return self.engine.total_items

    def columnCount(self, parent=QModelIndex()) -> int:
        if parent.isValid():
            return 0
        return len(self.columns)

    def headerData(self, section: int, orientation: Qt.Orientation,
                   role: int = Qt.ItemDataRole.DisplayRole):
        if orientation == Qt.Orientation.Vertical:
            if role == Qt.ItemDataRole.DisplayRole:
                return str(section + 1)
            return None
        if section < 0 or section >= len(self.columns):
            return None
        column = self.columns[section]
        if role == Qt.ItemDataRole.DisplayRole:
            return column.title
        elif role == Qt.ItemDataRole.TextAlignmentRole:
            return column.alignment
        elif role == Qt.ItemDataRole.SizeHintRole:
            return QSize(column.width, 0)
        return None

    def flags(self, index: QModelIndex) -> Qt.ItemFlag:
        if not index.isValid():
            return Qt.ItemFlag.NoItemFlags
        flags = Qt.ItemFlag.ItemIsEnabled | Qt.ItemFlag.ItemIsSelectable
        if index.column() == 0:
            flags |= Qt.ItemFlag.ItemIsUserCheckable
        return flags

    def setData(self, index: QModelIndex, value, role: int = Qt.ItemDataRole.EditRole) -> bool:
        if (not index.isValid() or index.column() != 0
                or role != Qt.ItemDataRole.CheckStateRole):
            return False
        self.set_selected(index.row(), Qt.CheckState(value) == Qt.CheckState.Checked)
        return True

    def data(self, index: QModelIndex, role: int = Qt.ItemDataRole.DisplayRole):
        if not index.isValid() or index.column() >= len(self.columns):
            return None
        column = self.columns[index.column()]
        row = self.row_at(index.row())

        if row is None:
            if role == Qt.ItemDataRole.DisplayRole and index.column() == 0:
                return LOADING_TEXT
            return None

        if role == Qt.ItemDataRole.DisplayRole:
            value = get_field(row.item, column.field)
            return '' if value is None else str(value)
        elif role == Qt.ItemDataRole.TextAlignmentRole:
            return column.alignment | Qt.AlignmentFlag.AlignVCenter
        elif role == Qt.ItemDataRole.CheckStateRole and index.column() == 0:
            return Qt.CheckState.Checked if row.selected else Qt.CheckState.Unchecked
        elif role == Qt.ItemDataRole.UserRole:
            return row
        return None
