from dataclasses import dataclass

from chunkview.models.viewport import ViewportConfig, ViewportState


@dataclass(frozen=True)
class BoundingArea:
    """Inclusive index range that should stay resident around the viewport."""

    start_index: int
    end_index: int

    def __len__(self) -> int:
        return max(0, self.end_index - self.start_index + 1)

    @property
    def is_empty(self) -> bool:
        return self.end_index < self.start_index

    def contains(self, index: int) -> bool:
        return self.start_index <= index <= self.end_index

    def intersects(self, start: int, end: int) -> bool:
        """True if the inclusive range [start, end] overlaps this area."""
        if self.is_empty:
            return False
        return start <= self.end_index and end >= self.start_index


EMPTY_BOUNDING_AREA = BoundingArea(0, -1)


def calculate_bounding_area(state: ViewportState, config: ViewportConfig,
                            total_items: int) -> BoundingArea:
    """Visible window widened by the configured before/after buffers."""
    if total_items <= 0:
        return EMPTY_BOUNDING_AREA

    start = max(0, state.viewport_start_index - config.bounding_area_before)
    end = min(total_items - 1,
              state.viewport_start_index + config.height - 1 + config.bounding_area_after)
    return BoundingArea(start, end)
