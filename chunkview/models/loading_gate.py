from typing import List, Set

from chunkview.models.viewport import ViewportConfig, ViewportState


class LoadingGate:
    """
    Tracks in-flight chunk requests and decides whether the cursor may move.

    Background prefetch never blocks scrolling; only a pending chunk that
    overlaps the current viewport (a critical chunk) does.
    """

    def __init__(self):
        self._loading: Set[int] = set()
        self.can_scroll = True

    @property
    def has_loading_chunks(self) -> bool:
        return bool(self._loading)

    def loading_starts(self) -> List[int]:
        return sorted(self._loading)

    def is_loading(self, chunk_start: int) -> bool:
        return chunk_start in self._loading

    def mark_loading(self, chunk_start: int) -> bool:
        """Add a chunk to the loading set. False if it was already there."""
        if chunk_start in self._loading:
            return False
        self._loading.add(chunk_start)
        return True

    def mark_done(self, chunk_start: int) -> bool:
        if chunk_start not in self._loading:
            return False
        self._loading.discard(chunk_start)
        return True

    def clear(self):
        self._loading.clear()
        self.can_scroll = True

    @staticmethod
    def is_critical(chunk_start: int, state: ViewportState, config: ViewportConfig) -> bool:
        viewport_start = state.viewport_start_index
        viewport_end = viewport_start + config.height
        chunk_end = chunk_start + config.chunk_size
        return not (chunk_end <= viewport_start or chunk_start >= viewport_end)

    def critical_starts(self, state: ViewportState, config: ViewportConfig) -> List[int]:
        return sorted(start for start in self._loading
                      if self.is_critical(start, state, config))

    def update(self, state: ViewportState, config: ViewportConfig) -> bool:
        """Recompute `can_scroll` for the current viewport and return it."""
        self.can_scroll = not any(self.is_critical(start, state, config)
                                  for start in self._loading)
        return self.can_scroll
