from chunkview.models.loading_gate import LoadingGate
from chunkview.models.sort_state import ASCENDING, DESCENDING, SortState, normalize_direction
from chunkview.models.viewport import ViewportConfig, ViewportState

CONFIG = ViewportConfig()


def test_mark_loading_rejects_duplicates():
    gate = LoadingGate()
    assert gate.mark_loading(100) is True
    assert gate.mark_loading(100) is False
    assert gate.loading_starts() == [100]
    assert gate.mark_done(100) is True
    assert gate.mark_done(100) is False
    assert not gate.has_loading_chunks


def test_only_viewport_chunks_are_critical():
    state = ViewportState(viewport_start_index=195, cursor_index=200)
    # Viewport 195..204 overlaps chunks 100 and 200.
    assert LoadingGate.is_critical(100, state, CONFIG)
    assert LoadingGate.is_critical(200, state, CONFIG)
    assert not LoadingGate.is_critical(0, state, CONFIG)
    assert not LoadingGate.is_critical(300, state, CONFIG)


def test_background_loading_does_not_block_scrolling():
    gate = LoadingGate()
    state = ViewportState()
    gate.mark_loading(100)
    assert gate.update(state, CONFIG) is True
    assert gate.can_scroll


def test_critical_loading_blocks_until_done():
    gate = LoadingGate()
    state = ViewportState()
    gate.mark_loading(0)
    assert gate.update(state, CONFIG) is False
    assert gate.critical_starts(state, CONFIG) == [0]

    gate.mark_done(0)
    assert gate.update(state, CONFIG) is True


def test_clear_reopens_gate():
    gate = LoadingGate()
    gate.mark_loading(0)
    gate.update(ViewportState(), CONFIG)
    gate.clear()
    assert gate.can_scroll
    assert gate.loading_starts() == []


def test_sort_toggle_cycles_through_directions():
    sort = SortState().toggle('name')
    assert sort.direction_of('name') == ASCENDING
    sort = sort.toggle('name')
    assert sort.direction_of('name') == DESCENDING
    sort = sort.toggle('name')
    assert sort == SortState()


def test_sort_add_keeps_priority_order():
    sort = SortState.single('name').add('size', 'DESC').add('date')
    assert sort.fields == ('name', 'size', 'date')
    assert sort.directions == (ASCENDING, DESCENDING, ASCENDING)

    sort = sort.add('name', 'desc')
    assert sort.fields == ('size', 'date', 'name')
    assert sort.remove('size').fields == ('date', 'name')
    assert sort.direction_of('missing') is None


def test_normalize_direction():
    assert normalize_direction('DESC') == DESCENDING
    assert normalize_direction('whatever') == ASCENDING
