"""Interface between the chunked models and whatever holds the data."""

from abc import ABC, abstractmethod
from typing import List, Optional

from chunkview.models.chunks import DataRequest, Row
from chunkview.models.events import SelectionResult


class DataSource(ABC):
    """
    Provider of the total count and of contiguous, sorted/filtered ranges.

    Methods are plain blocking calls. `ChunkLoader` runs them on worker
    threads and delivers the results back to the Qt thread, so an
    implementation shared between several models must synchronize its own
    state. Selection lives here, not in the models.
    """

    @abstractmethod
    def get_total(self, request: Optional[DataRequest] = None) -> int:
        """Number of items matching the request's filters."""

    @abstractmethod
    def load_chunk(self, request: DataRequest) -> List[Row]:
        """
        Rows `request.start` .. `request.start + request.count - 1`.

        A range running past the end returns fewer rows, never padding.
        """

    @abstractmethod
    def set_selected(self, index: int, selected: bool,
                     request: Optional[DataRequest] = None) -> SelectionResult:
        pass

    @abstractmethod
    def set_selected_by_id(self, item_id: str, selected: bool) -> SelectionResult:
        pass

    @abstractmethod
    def select_all(self, request: Optional[DataRequest] = None) -> SelectionResult:
        pass

    @abstractmethod
    def clear_selection(self) -> SelectionResult:
        pass

    @abstractmethod
    def select_range(self, start_id: str, end_id: str,
                     request: Optional[DataRequest] = None) -> SelectionResult:
        pass

    def close(self):
        """Release held resources."""
