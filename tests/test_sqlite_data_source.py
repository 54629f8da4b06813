import sqlite3

import pytest

from chunkview.models.chunks import DataRequest, create_chunk_request
from chunkview.utils.sqlite_data_source import SqliteDataSource


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / 'items.db'
    conn = sqlite3.connect(path)
    conn.execute('CREATE TABLE items (id INTEGER PRIMARY KEY, name TEXT, kind TEXT, size INTEGER)')
    conn.executemany(
        'INSERT INTO items (id, name, kind, size) VALUES (?, ?, ?, ?)',
        [(i, f'item{i:03d}', 'even' if i % 2 == 0 else 'odd', i % 3) for i in range(250)])
    conn.commit()
    conn.close()
    return path


@pytest.fixture
def source(db_path):
    source = SqliteDataSource(db_path, 'items')
    yield source
    source.close()


def test_unknown_table_or_id_column_is_rejected(db_path):
    with pytest.raises(ValueError):
        SqliteDataSource(db_path, 'missing')
    with pytest.raises(ValueError):
        SqliteDataSource(db_path, 'items', id_column='uuid')


def test_total_and_chunks(source):
    assert source.get_total() == 250
    rows = source.load_chunk(DataRequest(100, 100))
    assert len(rows) == 100
    assert rows[0].id == '100'
    assert rows[0].item['name'] == 'item100'
    assert rows[0].selected is False
    assert len(source.load_chunk(DataRequest(200, 100))) == 50


def test_sort_and_filter(source):
    request = create_chunk_request(0, 5, 125, sort_fields=('size', 'name'),
                                   sort_directions=('desc', 'asc'), filters={'kind': 'odd'})
    assert source.get_total(request) == 125
    rows = source.load_chunk(request)
    assert [row.item['id'] for row in rows] == [5, 11, 17, 23, 29]


def test_unknown_sort_field_raises(source):
    with pytest.raises(ValueError):
        source.load_chunk(DataRequest(0, 10, sort_fields=('nope',), sort_directions=('asc',)))


def test_predicate_filter_raises(source):
    with pytest.raises(ValueError):
        source.get_total(DataRequest(0, 10, filters=(('size', lambda size: size > 1),)))


def test_selection_is_joined_into_rows(source):
    assert source.set_selected(3, True).id == '3'
    assert source.set_selected_by_id('7', True).success
    rows = source.load_chunk(DataRequest(0, 10))
    assert [row.id for row in rows if row.selected] == ['3', '7']

    assert source.set_selected_by_id('3', False).success
    rows = source.load_chunk(DataRequest(0, 10))
    assert [row.id for row in rows if row.selected] == ['7']


def test_selection_failures(source):
    assert isinstance(source.set_selected(1000, True).error, IndexError)
    assert isinstance(source.set_selected_by_id('9999', True).error, KeyError)
    assert isinstance(source.select_range('1', '9999').error, KeyError)


def test_select_all_respects_filters(source):
    request = create_chunk_request(0, 100, 125, filters={'kind': 'even'})
    assert source.select_all(request).success
    rows = source.load_chunk(DataRequest(0, 4))
    assert [row.selected for row in rows] == [True, False, True, False]

    assert source.clear_selection().success
    assert not any(row.selected for row in source.load_chunk(DataRequest(0, 250)))


def test_select_range_uses_view_order(source):
    request = DataRequest(0, 0, sort_fields=('id',), sort_directions=('desc',))
    result = source.select_range('12', '10', request)
    assert result.success
    assert result.affected_ids == ('12', '11', '10')


def test_selection_survives_reopen(db_path):
    source = SqliteDataSource(db_path, 'items')
    source.set_selected_by_id('5', True)
    source.close()

    reopened = SqliteDataSource(db_path, 'items')
    assert reopened.load_chunk(DataRequest(5, 1))[0].selected is True
    reopened.close()
