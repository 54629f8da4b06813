from PySide6.QtCore import QSettings, Signal

from chunkview.models.viewport import ViewportConfig, fix_viewport_config

# Defaults for settings that are accessed from multiple places.
DEFAULT_SETTINGS = {
    'viewport_height': 10,
    'chunk_size': 100,
    'top_threshold': 2,
    'bottom_threshold': 7,
    'initial_index': 0,
    # Rows kept resident above and below the visible window.
    'bounding_area_before': 50,
    'bounding_area_after': 50,
    'load_worker_count': 2,
    # Load a missing chunk synchronously when a view asks for one of its rows.
    'immediate_chunk_loading': False,
}

_VIEWPORT_KEYS = {
    'height': 'viewport_height',
    'chunk_size': 'chunk_size',
    'top_threshold': 'top_threshold',
    'bottom_threshold': 'bottom_threshold',
    'initial_index': 'initial_index',
    'bounding_area_before': 'bounding_area_before',
    'bounding_area_after': 'bounding_area_after',
}


class Settings(QSettings):
    # Signal that shows that the setting with the given string was changed
    change = Signal(str, object, name='settingsChanged')

    def __init__(self, *args):
        if not args:
            args = ('chunkview', 'chunkview')
        super().__init__(*args)

    def setValue(self, key, value):
        super().setValue(key, value)
        self.change.emit(key, value)


def get_int_setting(source: QSettings, key: str) -> int:
    value = source.value(key, defaultValue=DEFAULT_SETTINGS[key], type=int)
    try:
        return int(value)
    except (TypeError, ValueError):
        return DEFAULT_SETTINGS[key]


def get_bool_setting(source: QSettings, key: str) -> bool:
    return bool(source.value(key, defaultValue=DEFAULT_SETTINGS[key], type=bool))


def viewport_config_from_settings(source: QSettings) -> ViewportConfig:
    """Build a corrected `ViewportConfig` from stored settings."""
    values = {field_name: get_int_setting(source, key)
              for field_name, key in _VIEWPORT_KEYS.items()}
    return fix_viewport_config(ViewportConfig(**values))


def save_viewport_config(source: QSettings, config: ViewportConfig):
    for field_name, key in _VIEWPORT_KEYS.items():
        source.setValue(key, getattr(config, field_name))


# Common shared instance to ensure the Signal is also shared
settings = Settings()
