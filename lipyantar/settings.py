"""Synchronized user settings with change notification."""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Mapping

import structlog

from .errors import StorageError
from .storage import KeyValueStorage
from .structures import DisplayMode, TransliterationMode

logger = structlog.get_logger(__name__)

TRANSLITERATION_MODE = "transliterationMode"
DISPLAY_MODE = "displayMode"

DEFAULT_SETTINGS: Dict[str, str] = {
    TRANSLITERATION_MODE: TransliterationMode.OFF.value,
    DISPLAY_MODE: DisplayMode.REPLACE.value,
}

_VALIDATORS: Dict[str, Callable[[Any], str]] = {
    TRANSLITERATION_MODE: lambda value: TransliterationMode.parse(value).value,
    DISPLAY_MODE: lambda value: DisplayMode(str(value).strip().lower()).value,
}

SettingsListener = Callable[[Dict[str, str]], None]


def normalise_setting(key: str, value: Any) -> str:
    """Validate a setting and return its canonical stored form."""

    validator = _VALIDATORS.get(key)
    if validator is None:
        raise ValueError(f"Unknown setting '{key}'.")
    return validator(value)


class SettingsManager:
    """Reads and writes settings in the synchronized storage namespace."""

    def __init__(self, storage: KeyValueStorage) -> None:
        self.storage = storage
        self.default_settings = dict(DEFAULT_SETTINGS)
        self._listeners: List[SettingsListener] = []

    def get_settings(self) -> Dict[str, str]:
        settings = dict(self.default_settings)
        for key in self.default_settings:
            try:
                raw = self.storage.get_item(key)
            except StorageError as exc:
                logger.error("settings_load_failed", key=key, error=str(exc))
                return dict(self.default_settings)
            if raw is None:
                continue
            try:
                settings[key] = normalise_setting(key, json.loads(raw))
            except (json.JSONDecodeError, ValueError) as exc:
                logger.warning("settings_value_ignored", key=key, error=str(exc))
        return settings

    def get_mode(self) -> TransliterationMode:
        return TransliterationMode.parse(self.get_settings()[TRANSLITERATION_MODE])

    def set_setting(self, key: str, value: Any) -> bool:
        return self.set_settings({key: value})

    def set_settings(self, settings: Mapping[str, Any]) -> bool:
        normalised = {key: normalise_setting(key, value) for key, value in settings.items()}
        current = self.get_settings()
        try:
            for key, value in normalised.items():
                self.storage.set_item(key, json.dumps(value))
        except StorageError as exc:
            logger.error("settings_save_failed", error=str(exc))
            return False

        changes = {
            key: value for key, value in normalised.items() if current.get(key) != value
        }
        if changes:
            self._notify(changes)
        return True

    def on_settings_changed(self, callback: SettingsListener) -> Callable[[], None]:
        """Register ``callback`` for changed keys; returns an unsubscribe function."""

        self._listeners.append(callback)

        def _unsubscribe() -> None:
            self._listeners = [item for item in self._listeners if item is not callback]

        return _unsubscribe

    def _notify(self, changes: Dict[str, str]) -> None:
        for listener in list(self._listeners):
            listener(dict(changes))
