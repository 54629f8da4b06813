import logging
import os
import signal
import sys
import threading

from PySide6.QtCore import QModelIndex
from PySide6.QtWidgets import QApplication, QListView, QMainWindow

from chunkview.models.chunked_list_model import ChunkedListModel
from chunkview.utils.memory_data_source import InMemoryDataSource
from chunkview.utils.settings import settings

logger = logging.getLogger(__name__)

DEMO_ROW_COUNT = 1_000_000


def configure_logging():
    """Log chunk activity only in a development environment."""
    environment = os.getenv('CHUNKVIEW_ENVIRONMENT')
    if environment == 'development':
        print('Running in development environment.')
        logging.basicConfig(level=logging.DEBUG,
                            format='%(asctime)s %(threadName)s %(name)s: %(message)s')
        return
    logging.basicConfig(level=logging.WARNING)


def install_crash_handlers():
    """Log unhandled exceptions from the main thread and from workers."""
    def _unhandled_exception(exc_type, exc_value, exc_traceback):
        logger.critical('UNHANDLED EXCEPTION',
                        exc_info=(exc_type, exc_value, exc_traceback))
        sys.__excepthook__(exc_type, exc_value, exc_traceback)

    def _thread_exception(args):
        thread_name = getattr(args.thread, 'name', 'unknown')
        logger.critical('THREAD EXCEPTION (%s)', thread_name,
                        exc_info=(args.exc_type, args.exc_value, args.exc_traceback))

    sys.excepthook = _unhandled_exception
    threading.excepthook = _thread_exception


class DemoWindow(QMainWindow):
    def __init__(self, model: ChunkedListModel):
        super().__init__()
        self.model = model
        # Row the user last asked for, by clicking or by scrolling.
        self._target_row = None
        self.setWindowTitle(f'chunkview: {DEMO_ROW_COUNT:,} rows')
        self.resize(480, 640)

        self.list_view = QListView(self)
        self.list_view.setUniformItemSizes(True)
        self.list_view.setModel(model)
        self.setCentralWidget(self.list_view)

        self.list_view.selectionModel().currentChanged.connect(self._on_current_changed)
        self.list_view.verticalScrollBar().valueChanged.connect(self._on_scrolled)
        model.loader.chunk_load_completed.connect(self._on_chunk_loaded)
        model.loader.data_load_error.connect(self._on_load_error)
        model.loader.total_count_changed.connect(self._on_total_changed)

    def _visible_rows(self) -> int:
        row_height = self.list_view.sizeHintForRow(0)
        if row_height <= 0:
            return 0
        return max(1, self.list_view.viewport().height() // row_height)

    def _sync_height(self):
        rows = self._visible_rows()
        if rows and rows != self.model.engine.config.height:
            self.model.loader.resize(rows)

    def _go_to(self, row: int):
        self._target_row = row
        self.model.jump_to(row)

    def _on_total_changed(self, total: int):
        self.statusBar().showMessage(f'{total:,} rows')
        self._sync_height()

    def _on_current_changed(self, current: QModelIndex, previous: QModelIndex):
        if current.isValid():
            self._go_to(current.row())

    def _on_scrolled(self, value: int):
        # Scroll value is the top row; jumps centre their target.
        total = self.model.rowCount()
        if total:
            self._go_to(min(value + self.model.engine.config.height // 2, total - 1))

    def _on_chunk_loaded(self, chunk_start: int, item_count: int):
        self.statusBar().showMessage(
            f'Loaded rows {chunk_start:,}-{chunk_start + item_count - 1:,} '
            f'({len(self.model.engine.resident_starts)} chunks resident)')
        # A jump made while the gate was closed is retried once loading settles.
        target = self._target_row
        if target is not None and target != self.model.engine.state.cursor_index:
            self.model.jump_to(target)

    def _on_load_error(self, error):
        self.statusBar().showMessage(f'Load failed: {error.error}')

    def resizeEvent(self, event):
        super().resizeEvent(event)
        self._sync_height()

    def closeEvent(self, event):
        self.model.cleanup()
        settings.sync()
        super().closeEvent(event)


def run_demo() -> int:
    app = QApplication([])
    app.setApplicationName('chunkview')
    app.setApplicationDisplayName('chunkview demo')
    app.setStyle('Fusion')

    data_source = InMemoryDataSource(
        [{'id': str(i), 'name': f'Item {i}'} for i in range(DEMO_ROW_COUNT)])
    model = ChunkedListModel(data_source, display_text=lambda item: item['name'])
    window = DemoWindow(model)
    window.show()
    model.load()

    def signal_handler(signum, frame):
        print('\n[SHUTDOWN] Closing...')
        window.close()
        app.quit()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    return int(app.exec())


def main():
    configure_logging()
    install_crash_handlers()
    sys.exit(run_demo())


if __name__ == '__main__':
    main()
