"""SQLite-backed data source: large tables paged with LIMIT/OFFSET."""

import logging
import sqlite3
import threading
from pathlib import Path
from typing import List, Optional, Tuple

from chunkview.models.chunks import DataRequest, Row
from chunkview.models.events import SelectionResult
from chunkview.models.sort_state import DESCENDING
from chunkview.utils.data_source import DataSource

logger = logging.getLogger(__name__)

SELECTION_TABLE = '_chunkview_selection'


class SqliteDataSource(DataSource):
    """
    Serve rows of one table.

    Sort fields and filter keys are checked against the table's columns;
    anything else raises `ValueError`, which the model reports as a load
    error. Selection is persisted in a side table keyed by item ID.
    """

    def __init__(self, database, table: str, id_column: str = 'id'):
        self.db_path = database if database == ':memory:' else str(Path(database))
        self.table = table
        self.id_column = id_column
        self._lock = threading.Lock()

        # Worker threads share the connection; `_lock` serializes access.
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.columns = self._read_columns()
        if id_column not in self.columns:
            raise ValueError(f'Table {table!r} has no column {id_column!r}')
        self._init_selection_table()

    def _read_columns(self) -> List[str]:
        cursor = self.conn.execute(f'PRAGMA table_info({self._quote(self.table)})')
        columns = [row['name'] for row in cursor.fetchall()]
        if not columns:
            raise ValueError(f'Table {self.table!r} does not exist')
        return columns

    def _init_selection_table(self):
        with self._lock:
            self.conn.execute(f'''
                CREATE TABLE IF NOT EXISTS {SELECTION_TABLE} (
                    item_id TEXT PRIMARY KEY
                )
            ''')
            self.conn.commit()

    @staticmethod
    def _quote(identifier: str) -> str:
        return '"' + identifier.replace('"', '""') + '"'

    def _column(self, name: str) -> str:
        if name not in self.columns:
            raise ValueError(f'Unknown column {name!r} for table {self.table!r}')
        return self._quote(name)

    # ========== Query building ==========

    def _where(self, request: Optional[DataRequest]) -> Tuple[str, tuple]:
        if request is None or not request.filters:
            return '', ()
        clauses = []
        bindings = []
        for field, value in request.filters:
            if callable(value):
                raise ValueError(f'Predicate filters are not supported for column {field!r}')
            if value is None:
                clauses.append(f't.{self._column(field)} IS NULL')
            else:
                clauses.append(f't.{self._column(field)} = ?')
                bindings.append(value)
        return 'WHERE ' + ' AND '.join(clauses), tuple(bindings)

    def _order_by(self, request: Optional[DataRequest]) -> str:
        terms = []
        if request is not None:
            for field, direction in zip(request.sort_fields, request.sort_directions):
                terms.append(f't.{self._column(field)} {"DESC" if direction == DESCENDING else "ASC"}')
        # rowid keeps paging stable between calls.
        terms.append('t.rowid ASC')
        return 'ORDER BY ' + ', '.join(terms)

    def _row(self, record: sqlite3.Row) -> Row:
        data = {key: record[key] for key in record.keys() if key != '_selected'}
        return Row(id=str(data[self.id_column]), item=data, selected=bool(record['_selected']))

    # ========== DataSource ==========

    def get_total(self, request: Optional[DataRequest] = None) -> int:
        where, bindings = self._where(request)
        with self._lock:
            cursor = self.conn.execute(
                f'SELECT COUNT(*) AS total FROM {self._quote(self.table)} t {where}', bindings)
            return int(cursor.fetchone()['total'])

    def load_chunk(self, request: DataRequest) -> List[Row]:
        where, bindings = self._where(request)
        order_by = self._order_by(request)
        id_column = self._column(self.id_column)
        query = f'''
            SELECT t.*, (s.item_id IS NOT NULL) AS _selected
            FROM {self._quote(self.table)} t
            LEFT JOIN {SELECTION_TABLE} s ON s.item_id = CAST(t.{id_column} AS TEXT)
            {where}
            {order_by}
            LIMIT ? OFFSET ?
        '''
        with self._lock:
            cursor = self.conn.execute(query, bindings + (request.count, max(0, request.start)))
            return [self._row(record) for record in cursor.fetchall()]

    def _id_at(self, index: int, request: Optional[DataRequest]) -> Optional[str]:
        where, bindings = self._where(request)
        query = f'''
            SELECT CAST(t.{self._column(self.id_column)} AS TEXT) AS item_id
            FROM {self._quote(self.table)} t
            {where}
            {self._order_by(request)}
            LIMIT 1 OFFSET ?
        '''
        row = self.conn.execute(query, bindings + (index,)).fetchone()
        return row['item_id'] if row else None

    def _apply(self, item_id: str, selected: bool):
        if selected:
            self.conn.execute(f'INSERT OR IGNORE INTO {SELECTION_TABLE} (item_id) VALUES (?)',
                              (item_id,))
        else:
            self.conn.execute(f'DELETE FROM {SELECTION_TABLE} WHERE item_id = ?', (item_id,))

    def set_selected(self, index: int, selected: bool,
                     request: Optional[DataRequest] = None) -> SelectionResult:
        try:
            with self._lock:
                item_id = self._id_at(index, request) if index >= 0 else None
                if item_id is None:
                    return SelectionResult(success=False, operation='select', index=index,
                                           selected=selected,
                                           error=IndexError(f'Index {index} out of range'))
                self._apply(item_id, selected)
                self.conn.commit()
        except sqlite3.Error as e:
            logger.warning('[SELECT] Database write error: %s', e)
            return SelectionResult(success=False, operation='select', index=index,
                                   selected=selected, error=e)
        return SelectionResult(success=True, operation='select', index=index, id=item_id,
                               selected=selected, affected_ids=(item_id,))

    def set_selected_by_id(self, item_id: str, selected: bool) -> SelectionResult:
        id_column = self._column(self.id_column)
        try:
            with self._lock:
                row = self.conn.execute(
                    f'SELECT 1 FROM {self._quote(self.table)} '
                    f'WHERE CAST({id_column} AS TEXT) = ?', (item_id,)).fetchone()
                if row is None:
                    return SelectionResult(success=False, operation='select', id=item_id,
                                           selected=selected,
                                           error=KeyError(f'Unknown item ID {item_id!r}'))
                self._apply(item_id, selected)
                self.conn.commit()
        except sqlite3.Error as e:
            logger.warning('[SELECT] Database write error: %s', e)
            return SelectionResult(success=False, operation='select', id=item_id,
                                   selected=selected, error=e)
        return SelectionResult(success=True, operation='select', id=item_id,
                               selected=selected, affected_ids=(item_id,))

    def select_all(self, request: Optional[DataRequest] = None) -> SelectionResult:
        where, bindings = self._where(request)
        id_column = self._column(self.id_column)
        try:
            with self._lock:
                cursor = self.conn.execute(
                    f'INSERT OR IGNORE INTO {SELECTION_TABLE} (item_id) '
                    f'SELECT CAST(t.{id_column} AS TEXT) FROM {self._quote(self.table)} t {where}',
                    bindings)
                self.conn.commit()
        except sqlite3.Error as e:
            logger.warning('[SELECT] Database write error: %s', e)
            return SelectionResult(success=False, operation='selectAll', selected=True, error=e)
        logger.debug('[SELECT] Selected %d new rows', cursor.rowcount)
        return SelectionResult(success=True, operation='selectAll', selected=True)

    def clear_selection(self) -> SelectionResult:
        try:
            with self._lock:
                self.conn.execute(f'DELETE FROM {SELECTION_TABLE}')
                self.conn.commit()
        except sqlite3.Error as e:
            logger.warning('[SELECT] Database write error: %s', e)
            return SelectionResult(success=False, operation='clear', selected=False, error=e)
        return SelectionResult(success=True, operation='clear', selected=False)

    def select_range(self, start_id: str, end_id: str,
                     request: Optional[DataRequest] = None) -> SelectionResult:
        where, bindings = self._where(request)
        id_column = self._column(self.id_column)
        order_by = self._order_by(request)
        numbered = f'''
            SELECT CAST(t.{id_column} AS TEXT) AS item_id,
                   ROW_NUMBER() OVER ({order_by}) - 1 AS position
            FROM {self._quote(self.table)} t
            {where}
        '''
        try:
            with self._lock:
                positions = {
                    row['item_id']: row['position']
                    for row in self.conn.execute(
                        f'SELECT item_id, position FROM ({numbered}) WHERE item_id IN (?, ?)',
                        bindings + (start_id, end_id)).fetchall()
                }
                if start_id not in positions or end_id not in positions:
                    return SelectionResult(
                        success=False, operation='range', id=start_id, selected=True,
                        error=KeyError(f'Range {start_id!r}..{end_id!r} not found'))
                low, high = sorted((positions[start_id], positions[end_id]))
                ids = tuple(row['item_id'] for row in self.conn.execute(
                    f'SELECT item_id FROM ({numbered}) WHERE position BETWEEN ? AND ? '
                    f'ORDER BY position', bindings + (low, high)).fetchall())
                for item_id in ids:
                    self._apply(item_id, True)
                self.conn.commit()
        except sqlite3.Error as e:
            logger.warning('[SELECT] Database write error: %s', e)
            return SelectionResult(success=False, operation='range', id=start_id,
                                   selected=True, error=e)
        return SelectionResult(success=True, operation='range', index=low, id=start_id,
                               selected=True, affected_ids=ids)

    def close(self):
        """Close database connection."""
        if self.conn:
            try:
                self.conn.commit()
                self.conn.close()
            except sqlite3.Error:
                pass
            self.conn = None
