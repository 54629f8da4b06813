"""
Viewport arithmetic for chunked list, table and tree models.

Every function here is pure: it takes the current `ViewportState`, the
`ViewportConfig` and the dataset size, and returns a new state. Nothing in
this module performs I/O or touches the chunk cache.
"""

from dataclasses import dataclass, replace
from enum import Enum


DEFAULT_HEIGHT = 10
DEFAULT_CHUNK_SIZE = 100
MIN_AUTO_CHUNK_SIZE = 20


class Navigation(str, Enum):
    UP = 'up'
    DOWN = 'down'
    PAGE_UP = 'page_up'
    PAGE_DOWN = 'page_down'
    START = 'start'
    END = 'end'
    JUMP = 'jump'


@dataclass(frozen=True)
class ViewportConfig:
    """Viewport geometry and buffering. Build through `fix_viewport_config`."""
    height: int = DEFAULT_HEIGHT
    chunk_size: int = DEFAULT_CHUNK_SIZE
    top_threshold: int = 2
    bottom_threshold: int = 7
    initial_index: int = 0
    bounding_area_before: int = 50
    bounding_area_after: int = 50


@dataclass(frozen=True)
class ViewportState:
    viewport_start_index: int = 0
    cursor_index: int = 0
    cursor_viewport_index: int = 0
    is_at_top_threshold: bool = False
    is_at_bottom_threshold: bool = False
    at_dataset_start: bool = True
    at_dataset_end: bool = True


def calculate_thresholds(height: int) -> tuple[int, int]:
    """Return reasonable (top, bottom) threshold rows for a viewport height."""
    if height <= 1:
        return 0, 0
    if height == 2:
        return 0, 1
    if height == 3:
        return 0, 2
    if height <= 5:
        return 1, height - 2

    top = max(1, height // 5)
    bottom = height - 1 - (height // 5)
    if bottom <= top:
        bottom = top + 1
    return top, min(bottom, height - 1)


def fix_viewport_config(config: ViewportConfig) -> ViewportConfig:
    """
    Correct every invalid field to the nearest usable value.

    Invalid configuration is never rejected, so a model can always be
    constructed from whatever the caller (or the settings file) provides.
    """
    height = config.height if config.height >= 1 else DEFAULT_HEIGHT

    chunk_size = config.chunk_size
    if chunk_size < 1:
        chunk_size = max(MIN_AUTO_CHUNK_SIZE, height * 2)

    top, bottom = config.top_threshold, config.bottom_threshold
    if (top < 0 or top >= height or bottom < 0 or bottom >= height
            or (height > 1 and bottom <= top)):
        top, bottom = calculate_thresholds(height)

    return ViewportConfig(
        height=height,
        chunk_size=chunk_size,
        top_threshold=top,
        bottom_threshold=bottom,
        initial_index=max(0, config.initial_index),
        bounding_area_before=max(0, config.bounding_area_before),
        bounding_area_after=max(0, config.bounding_area_after),
    )


# ========== Bounds ==========

def update_bounds(state: ViewportState, config: ViewportConfig, total_items: int) -> ViewportState:
    """
    Recompute threshold and dataset-edge flags for the current cursor.

    The viewport is only moved when the incoming state violates an
    invariant (cursor outside the window, window past the dataset end),
    so calling this on a valid state never moves anything.
    """
    if total_items <= 0:
        return ViewportState()

    height = config.height
    cursor = min(max(0, state.cursor_index), total_items - 1)
    max_start = max(0, total_items - height)
    start = min(max(0, state.viewport_start_index), max_start)

    if cursor < start:
        start = cursor
    elif cursor >= start + height:
        start = cursor - height + 1

    cursor_row = cursor - start
    return ViewportState(
        viewport_start_index=start,
        cursor_index=cursor,
        cursor_viewport_index=cursor_row,
        is_at_top_threshold=cursor_row <= config.top_threshold and start > 0,
        is_at_bottom_threshold=(cursor_row >= config.bottom_threshold
                                and start + height < total_items),
        at_dataset_start=cursor == 0,
        at_dataset_end=cursor == total_items - 1,
    )


def clamp_to_total(state: ViewportState, config: ViewportConfig, total_items: int) -> ViewportState:
    """Pull the cursor back into range after the dataset size changed."""
    return update_bounds(state, config, total_items)


def initial_viewport_state(config: ViewportConfig, total_items: int) -> ViewportState:
    """State for a freshly loaded dataset, cursor on `initial_index`."""
    if total_items <= 0:
        return ViewportState()
    index = min(config.initial_index, total_items - 1)
    if index < config.height:
        return update_bounds(ViewportState(cursor_index=index), config, total_items)
    return jump_to(ViewportState(), config, total_items, index)


def visible_range(state: ViewportState, config: ViewportConfig, total_items: int) -> tuple[int, int]:
    """Return the visible rows as a half-open (start, end) range."""
    start = state.viewport_start_index
    return start, max(start, min(start + config.height, total_items))


# ========== Navigation ==========

def cursor_up(state: ViewportState, config: ViewportConfig, total_items: int) -> ViewportState:
    current = update_bounds(state, config, total_items)
    if total_items <= 0 or current.cursor_index <= 0:
        return current

    if current.is_at_top_threshold:
        # Scroll the window and keep the cursor on the same row.
        moved = replace(current,
                        viewport_start_index=current.viewport_start_index - 1,
                        cursor_index=current.cursor_index - 1)
    else:
        moved = replace(current, cursor_index=current.cursor_index - 1)
    return update_bounds(moved, config, total_items)


def cursor_down(state: ViewportState, config: ViewportConfig, total_items: int) -> ViewportState:
    current = update_bounds(state, config, total_items)
    if total_items <= 0 or current.cursor_index >= total_items - 1:
        return current

    if current.is_at_bottom_threshold:
        moved = replace(current,
                        viewport_start_index=current.viewport_start_index + 1,
                        cursor_index=current.cursor_index + 1)
    else:
        moved = replace(current, cursor_index=current.cursor_index + 1)
    return update_bounds(moved, config, total_items)


def page_up(state: ViewportState, config: ViewportConfig, total_items: int) -> ViewportState:
    current = update_bounds(state, config, total_items)
    if total_items <= 0 or current.cursor_index <= 0:
        return current

    moved = replace(current,
                    viewport_start_index=max(0, current.viewport_start_index - config.height),
                    cursor_index=max(0, current.cursor_index - config.height))
    return update_bounds(moved, config, total_items)


def page_down(state: ViewportState, config: ViewportConfig, total_items: int) -> ViewportState:
    current = update_bounds(state, config, total_items)
    if total_items <= 0 or current.cursor_index >= total_items - 1:
        return current

    max_start = max(0, total_items - config.height)
    moved = replace(current,
                    viewport_start_index=min(max_start, current.viewport_start_index + config.height),
                    cursor_index=min(total_items - 1, current.cursor_index + config.height))
    return update_bounds(moved, config, total_items)


def jump_to_start(state: ViewportState, config: ViewportConfig, total_items: int) -> ViewportState:
    if total_items <= 0:
        return update_bounds(state, config, total_items)
    return update_bounds(ViewportState(), config, total_items)


def jump_to_end(state: ViewportState, config: ViewportConfig, total_items: int) -> ViewportState:
    if total_items <= 0:
        return update_bounds(state, config, total_items)
    # Last row aligned to the bottom of the window.
    return update_bounds(
        ViewportState(viewport_start_index=max(0, total_items - config.height),
                      cursor_index=total_items - 1),
        config, total_items)


def jump_to(state: ViewportState, config: ViewportConfig, total_items: int, index: int) -> ViewportState:
    """
    Centre the viewport on `index`.

    Out-of-range indices leave the state untouched. The resulting state
    depends only on the target, so jumping away and back restores it.
    """
    if index is None or index < 0 or index >= total_items:
        return state

    max_start = max(0, total_items - config.height)
    start = min(max(0, index - config.height // 2), max_start)
    return update_bounds(ViewportState(viewport_start_index=start, cursor_index=index),
                         config, total_items)


_NAVIGATORS = {
    Navigation.UP: cursor_up,
    Navigation.DOWN: cursor_down,
    Navigation.PAGE_UP: page_up,
    Navigation.PAGE_DOWN: page_down,
    Navigation.START: jump_to_start,
    Navigation.END: jump_to_end,
}


def navigate(navigation: Navigation, state: ViewportState, config: ViewportConfig,
             total_items: int, index: int | None = None) -> ViewportState:
    """Apply one navigation intent. Every intent is a no-op on an empty dataset."""
    if total_items <= 0:
        return state
    if navigation == Navigation.JUMP:
        return jump_to(state, config, total_items, index)
    return _NAVIGATORS[Navigation(navigation)](state, config, total_items)
