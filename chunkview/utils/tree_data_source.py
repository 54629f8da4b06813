"""
Tree data flattened into rows so a tree view can share the chunk engine.

Only expanded nodes contribute their children to the flattened sequence.
Sort and filter parameters are ignored: a tree keeps its own order.
"""

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from chunkview.models.chunks import DataRequest, Row
from chunkview.models.events import SelectionResult
from chunkview.utils.data_source import DataSource


@dataclass
class TreeNode:
    id: str
    item: Any
    children: List['TreeNode'] = field(default_factory=list)


@dataclass(frozen=True)
class FlatTreeItem:
    node: TreeNode
    depth: int
    parent_id: Optional[str]
    expanded: bool

    @property
    def has_children(self) -> bool:
        return bool(self.node.children)

    @property
    def item(self) -> Any:
        return self.node.item


class TreeDataSource(DataSource):
    def __init__(self, roots: Iterable[TreeNode], cascading_selection: bool = False):
        self._roots = list(roots)
        self.cascading_selection = cascading_selection
        self._expanded: Set[str] = set()
        self._selected: Set[str] = set()
        self._nodes: Dict[str, TreeNode] = {}
        self._flat: Optional[List[FlatTreeItem]] = None
        self._lock = threading.Lock()
        self._index_nodes(self._roots)

    def _index_nodes(self, nodes: Iterable[TreeNode]):
        for node in nodes:
            self._nodes[node.id] = node
            self._index_nodes(node.children)

    # ========== Expansion ==========

    def _flatten(self) -> List[FlatTreeItem]:
        """Flattened view of the expanded tree. Caller holds the lock."""
        if self._flat is not None:
            return self._flat

        flat: List[FlatTreeItem] = []

        def visit(nodes, depth, parent_id):
            for node in nodes:
                expanded = node.id in self._expanded
                flat.append(FlatTreeItem(node, depth, parent_id, expanded))
                if expanded:
                    visit(node.children, depth + 1, node.id)

        visit(self._roots, 0, None)
        self._flat = flat
        return flat

    def is_expanded(self, node_id: str) -> bool:
        with self._lock:
            return node_id in self._expanded

    def _set_expanded(self, node_id: str, expanded: bool) -> bool:
        with self._lock:
            node = self._nodes.get(node_id)
            if node is None or not node.children:
                return False
            if expanded == (node_id in self._expanded):
                return False
            if expanded:
                self._expanded.add(node_id)
            else:
                self._expanded.discard(node_id)
            self._flat = None
            return True

    def expand(self, node_id: str) -> bool:
        """Expand a node. True if the flattened rows changed."""
        return self._set_expanded(node_id, True)

    def collapse(self, node_id: str) -> bool:
        return self._set_expanded(node_id, False)

    def toggle(self, node_id: str) -> bool:
        return self._set_expanded(node_id, not self.is_expanded(node_id))

    def expand_all(self):
        with self._lock:
            self._expanded = {node_id for node_id, node in self._nodes.items() if node.children}
            self._flat = None

    def collapse_all(self):
        with self._lock:
            self._expanded.clear()
            self._flat = None

    # ========== DataSource ==========

    def get_total(self, request: Optional[DataRequest] = None) -> int:
        with self._lock:
            return len(self._flatten())

    def load_chunk(self, request: DataRequest) -> List[Row]:
        with self._lock:
            flat = self._flatten()
            start = max(0, request.start)
            return [
                Row(id=entry.node.id, item=entry, selected=entry.node.id in self._selected,
                    metadata={'depth': entry.depth})
                for entry in flat[start:start + request.count]
            ]

    def _descendant_ids(self, node: TreeNode) -> List[str]:
        ids = []
        for child in node.children:
            ids.append(child.id)
            ids.extend(self._descendant_ids(child))
        return ids

    def _apply(self, node_id: str, selected: bool) -> tuple:
        affected = [node_id]
        if self.cascading_selection:
            affected.extend(self._descendant_ids(self._nodes[node_id]))
        for affected_id in affected:
            if selected:
                self._selected.add(affected_id)
            else:
                self._selected.discard(affected_id)
        return tuple(affected)

    def set_selected(self, index: int, selected: bool,
                     request: Optional[DataRequest] = None) -> SelectionResult:
        with self._lock:
            flat = self._flatten()
            if index < 0 or index >= len(flat):
                return SelectionResult(success=False, operation='select', index=index,
                                       selected=selected,
                                       error=IndexError(f'Index {index} out of range'))
            node_id = flat[index].node.id
            affected = self._apply(node_id, selected)
        return SelectionResult(success=True, operation='select', index=index, id=node_id,
                               selected=selected, affected_ids=affected)

    def set_selected_by_id(self, item_id: str, selected: bool) -> SelectionResult:
        with self._lock:
            if item_id not in self._nodes:
                return SelectionResult(success=False, operation='select', id=item_id,
                                       selected=selected,
                                       error=KeyError(f'Unknown node ID {item_id!r}'))
            affected = self._apply(item_id, selected)
        return SelectionResult(success=True, operation='select', id=item_id,
                               selected=selected, affected_ids=affected)

    def select_all(self, request: Optional[DataRequest] = None) -> SelectionResult:
        with self._lock:
            ids = tuple(self._nodes)
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
            positions = {entry.node.id: index for index, entry in enumerate(self._flatten())}
            if start_id not in positions or end_id not in positions:
                return SelectionResult(
                    success=False, operation='range', id=start_id, selected=True,
                    error=KeyError(f'Range {start_id!r}..{end_id!r} not visible'))
            low, high = sorted((positions[start_id], positions[end_id]))
            ids = tuple(entry.node.id for entry in self._flat[low:high + 1])
            self._selected.update(ids)
        return SelectionResult(success=True, operation='range', index=low, id=start_id,
                               selected=True, affected_ids=ids)
