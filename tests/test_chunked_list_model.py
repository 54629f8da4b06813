import time
from concurrent.futures import ThreadPoolExecutor

from PySide6.QtCore import QCoreApplication, Qt

from chunkview.models.chunked_list_model import LOADING_TEXT, ChunkedListModel
from chunkview.models.chunked_table_model import ChunkedTableModel, TableColumn
from chunkview.models.events import DataLoadError, SelectionResult
from chunkview.models.viewport import ViewportConfig
from chunkview.run_demo import DemoWindow
from chunkview.utils.memory_data_source import InMemoryDataSource

DISPLAY = Qt.ItemDataRole.DisplayRole
CHECK = Qt.ItemDataRole.CheckStateRole


class FakeExecutor:
    """Collects submitted work and runs it on demand, on the test thread."""

    def __init__(self):
        self.submissions = []
        self.shutdown_calls = []

    def submit(self, fn, *args):
        self.submissions.append((fn, args))
        return 'fake-future'

    def run_pending(self):
        submissions, self.submissions = self.submissions, []
        for fn, args in submissions:
            fn(*args)

    def shutdown(self, wait=True):
        self.shutdown_calls.append(wait)


class FakeSource(InMemoryDataSource):
    def __init__(self, count=1000, fail_starts=()):
        super().__init__([{'id': str(i), 'name': f'item{i:04d}',
                           'kind': 'even' if i % 2 == 0 else 'odd'} for i in range(count)])
        self.fail_starts = set(fail_starts)
        self.closed = False

    def load_chunk(self, request):
        if request.start in self.fail_starts:
            raise OSError(f'cannot read chunk {request.start}')
        return super().load_chunk(request)

    def close(self):
        self.closed = True


def settle(executor):
    """Run queued work and deliver its results until nothing is left."""
    for _ in range(100):
        QCoreApplication.processEvents()
        if not executor.submissions:
            return
        executor.run_pending()
        QCoreApplication.processEvents()
    raise AssertionError('loader did not settle')


def make_model(qapp, source=None, **config):
    executor = FakeExecutor()
    model = ChunkedListModel(source or FakeSource(), config=ViewportConfig(**config),
                             executor=executor, immediate_loading=False,
                             display_text=lambda item: item['name'])
    return model, executor


def record(signal):
    seen = []
    signal.connect(lambda *args: seen.append(args))
    return seen


def test_load_fetches_total_then_first_chunk(qapp):
    model, executor = make_model(qapp)
    totals = record(model.loader.total_count_changed)
    started = record(model.loader.chunk_load_started)
    completed = record(model.loader.chunk_load_completed)
    resets = record(model.modelReset)
    assert model.rowCount() == 0

    model.load()
    settle(executor)

    assert totals == [(1000,)]
    assert resets == [()]
    assert model.rowCount() == 1000
    assert started == [(0,)]
    assert completed == [(0, 100)]
    assert model.data(model.index(5), DISPLAY) == 'item0005'


def test_unloaded_rows_show_placeholder(qapp):
    model, executor = make_model(qapp)
    model.load()
    settle(executor)

    index = model.index(500)
    assert model.data(index, DISPLAY) == LOADING_TEXT
    assert model.data(index, CHECK) is None
    assert model.data(index, Qt.ItemDataRole.UserRole) is None


def test_completed_chunk_emits_data_changed(qapp):
    model, executor = make_model(qapp)
    changed = record(model.dataChanged)
    model.load()
    settle(executor)

    first, last = changed[0][0], changed[0][1]
    assert (first.row(), last.row()) == (0, 99)


def test_navigation_blocked_while_viewport_chunk_loads(qapp):
    model, executor = make_model(qapp)
    model.load()
    executor.run_pending()
    QCoreApplication.processEvents()

    # Total known, first chunk dispatched but not finished.
    assert model.rowCount() == 1000
    assert model.engine.can_scroll is False
    assert model.cursor_down() is False

    settle(executor)
    assert model.cursor_down() is True
    assert model.engine.state.cursor_index == 1


def test_jump_loads_target_and_evicts_old_chunk(qapp):
    model, executor = make_model(qapp)
    unloaded = record(model.loader.chunk_unloaded)
    viewports = record(model.loader.viewport_changed)
    model.load()
    settle(executor)

    assert model.jump_to(500) is True
    settle(executor)

    assert unloaded == [(0,)]
    assert viewports[-1][0].cursor_index == 500
    assert model.data(model.index(500), DISPLAY) == 'item0500'
    assert model.data(model.index(3), DISPLAY) == LOADING_TEXT
    assert model.engine.resident_starts == [400, 500]


def test_load_failure_is_reported(qapp):
    model, executor = make_model(qapp, source=FakeSource(fail_starts={0}))
    errors = record(model.loader.data_load_error)
    model.load()
    settle(executor)

    assert len(errors) == 1
    error = errors[0][0]
    assert isinstance(error, DataLoadError)
    assert error.chunk_start == 0
    assert isinstance(error.error, OSError)
    assert model.engine.loading_starts == []
    assert model.engine.can_scroll is True


def test_selection_round_trip_refreshes_rows(qapp):
    model, executor = make_model(qapp)
    selections = record(model.loader.selection_changed)
    model.load()
    settle(executor)

    model.set_selected(3, True)
    settle(executor)
    assert isinstance(selections[0][0], SelectionResult)
    assert selections[0][0].id == '3'
    assert model.data(model.index(3), CHECK) == Qt.CheckState.Checked

    assert model.setData(model.index(4), Qt.CheckState.Checked, CHECK) is True
    settle(executor)
    assert model.data(model.index(4), CHECK) == Qt.CheckState.Checked

    assert model.toggle_current() is True
    settle(executor)
    assert model.data(model.index(0), CHECK) == Qt.CheckState.Checked

    model.clear_selection()
    settle(executor)
    assert model.data(model.index(3), CHECK) == Qt.CheckState.Unchecked


def test_failed_selection_is_reported_without_refresh(qapp):
    model, executor = make_model(qapp)
    selections = record(model.loader.selection_changed)
    model.load()
    settle(executor)

    model.loader.set_selected_by_id('missing', True)
    settle(executor)
    assert selections[0][0].success is False


def test_sort_and_filter_reset_and_reload(qapp):
    model, executor = make_model(qapp)
    resets = record(model.modelReset)
    model.load()
    settle(executor)

    model.toggle_sort('name')
    model.toggle_sort('name')
    settle(executor)
    assert model.data(model.index(0), DISPLAY) == 'item0999'

    model.set_filter('kind', 'odd')
    settle(executor)
    assert model.rowCount() == 500
    assert model.data(model.index(0), DISPLAY) == 'item0999'

    model.clear_filters()
    settle(executor)
    assert model.rowCount() == 1000
    assert len(resets) >= 4


def test_chunk_size_change_reloads_around_cursor(qapp):
    model, executor = make_model(qapp)
    model.load()
    settle(executor)

    model.loader.set_config(ViewportConfig(chunk_size=40))
    settle(executor)
    assert model.engine.config.chunk_size == 40
    assert model.engine.resident_starts == [0, 40]
    assert model.data(model.index(45), DISPLAY) == 'item0045'


def test_immediate_loading_fills_rows_synchronously(qapp):
    executor = FakeExecutor()
    model = ChunkedListModel(FakeSource(), config=ViewportConfig(), executor=executor,
                             immediate_loading=True, display_text=lambda item: item['name'])
    model.load()
    settle(executor)
    assert model.data(model.index(700), DISPLAY) == 'item0700'


def test_cleanup_shuts_down_executor_and_source(qapp):
    source = FakeSource()
    model, executor = make_model(qapp, source=source)
    model.cleanup()
    assert executor.shutdown_calls == [False]
    assert source.closed is True


def test_table_model_columns(qapp):
    executor = FakeExecutor()
    columns = [TableColumn('Name', 'name', width=200),
               TableColumn('Kind', 'kind', alignment=Qt.AlignmentFlag.AlignRight)]
    model = ChunkedTableModel(FakeSource(), columns, config=ViewportConfig(), executor=executor,
                              immediate_loading=False)
    model.load()
    settle(executor)

    assert model.columnCount() == 2
    assert model.rowCount() == 1000
    assert model.headerData(0, Qt.Orientation.Horizontal, DISPLAY) == 'Name'
    assert model.headerData(2, Qt.Orientation.Vertical, DISPLAY) == '3'
    assert model.data(model.index(2, 0), DISPLAY) == 'item0002'
    assert model.data(model.index(2, 1), DISPLAY) == 'even'
    assert model.data(model.index(2, 1), CHECK) is None
    assert model.data(model.index(2, 0), CHECK) == Qt.CheckState.Unchecked
    assert model.data(model.index(600, 0), DISPLAY) == LOADING_TEXT
    assert model.headerData(0, Qt.Orientation.Horizontal,
                            Qt.ItemDataRole.SizeHintRole).width() == 200

    assert model.setData(model.index(2, 1), Qt.CheckState.Checked, CHECK) is False
    assert model.setData(model.index(2, 0), Qt.CheckState.Checked, CHECK) is True
    settle(executor)
    assert model.data(model.index(2, 0), CHECK) == Qt.CheckState.Checked


def test_worker_threads_deliver_results_on_qt_thread(qapp):
    executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix='test_chunk_load')
    model = ChunkedListModel(FakeSource(), config=ViewportConfig(), executor=executor,
                             immediate_loading=False, display_text=lambda item: item['name'])
    completed = record(model.loader.chunk_load_completed)
    model.load()

    deadline = time.monotonic() + 5
    while not completed and time.monotonic() < deadline:
        QCoreApplication.processEvents()
        time.sleep(0.01)

    assert completed == [(0, 100)]
    assert model.data(model.index(10), DISPLAY) == 'item0010'
    model.cleanup()


def test_demo_window_follows_scrollbar(qapp):
    executor = FakeExecutor()
    model = ChunkedListModel(FakeSource(), config=ViewportConfig(), executor=executor,
                             immediate_loading=False, display_text=lambda item: item['name'])
    window = DemoWindow(model)
    model.load()
    executor.run_pending()
    QCoreApplication.processEvents()
    assert model.engine.can_scroll is False

    target = 500 + model.engine.config.height // 2
    window.list_view.verticalScrollBar().valueChanged.emit(500)
    # Blocked until the first chunk lands, then retried.
    assert model.engine.state.cursor_index != target
    settle(executor)

    assert model.engine.state.cursor_index == target
    assert model.data(model.index(target), DISPLAY) == f'item{target:04d}'
