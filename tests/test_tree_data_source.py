from chunkview.models.chunks import DataRequest
from chunkview.utils.tree_data_source import FlatTreeItem, TreeDataSource, TreeNode


def make_tree():
    return [
        TreeNode('a', 'A', [
            TreeNode('a1', 'A1', [TreeNode('a1x', 'A1x')]),
            TreeNode('a2', 'A2'),
        ]),
        TreeNode('b', 'B', [TreeNode('b1', 'B1')]),
        TreeNode('c', 'C'),
    ]


def ids(source):
    return [row.id for row in source.load_chunk(DataRequest(0, 100))]


def test_collapsed_tree_shows_roots():
    source = TreeDataSource(make_tree())
    assert source.get_total() == 3
    assert ids(source) == ['a', 'b', 'c']


def test_expand_and_collapse_change_rows():
    source = TreeDataSource(make_tree())
    assert source.expand('a') is True
    assert source.expand('a') is False
    assert ids(source) == ['a', 'a1', 'a2', 'b', 'c']

    source.expand('a1')
    assert ids(source) == ['a', 'a1', 'a1x', 'a2', 'b', 'c']

    assert source.collapse('a') is True
    assert ids(source) == ['a', 'b', 'c']
    # Nested expansion is remembered.
    source.toggle('a')
    assert source.get_total() == 6


def test_leaves_cannot_expand():
    source = TreeDataSource(make_tree())
    assert source.expand('c') is False
    assert source.expand('unknown') is False


def test_expand_all_and_collapse_all():
    source = TreeDataSource(make_tree())
    source.expand_all()
    assert source.get_total() == 7
    source.collapse_all()
    assert source.get_total() == 3


def test_rows_carry_depth_and_parent():
    source = TreeDataSource(make_tree())
    source.expand_all()
    rows = source.load_chunk(DataRequest(1, 2))
    entry = rows[1].item
    assert isinstance(entry, FlatTreeItem)
    assert entry.node.id == 'a1x'
    assert entry.depth == 2
    assert entry.parent_id == 'a1'
    assert entry.item == 'A1x'
    assert rows[0].metadata == {'depth': 1}
    assert rows[0].item.has_children
    assert rows[0].item.expanded


def test_cascading_selection_covers_descendants():
    source = TreeDataSource(make_tree(), cascading_selection=True)
    result = source.set_selected_by_id('a', True)
    assert set(result.affected_ids) == {'a', 'a1', 'a1x', 'a2'}

    source.expand_all()
    selected = [row.id for row in source.load_chunk(DataRequest(0, 100)) if row.selected]
    assert selected == ['a', 'a1', 'a1x', 'a2']


def test_plain_selection_and_range():
    source = TreeDataSource(make_tree())
    source.expand('a')
    assert source.set_selected(1, True).id == 'a1'
    assert source.set_selected(10, True).success is False

    result = source.select_range('a2', 'a')
    assert result.affected_ids == ('a', 'a1', 'a2')
    # Hidden nodes cannot be range endpoints.
    assert source.select_range('a', 'b1').success is False

    assert source.clear_selection().success
    assert not any(row.selected for row in source.load_chunk(DataRequest(0, 100)))
