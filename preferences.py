"""
Durable storage for the terminal preferences (command history, sound flag).

Values are kept as strings under fixed keys in a small JSON file, the same
way a browser keeps them in local storage.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

HISTORY_KEY = "command_history"
SOUND_KEY = "sound_enabled"


class PreferenceStoreError(RuntimeError):
    """Raised when the preference file cannot be written."""


class PreferenceStore:
    def __init__(self, path, logger=None):
        self.path = Path(path)
        self.logger = logger or _NullLogger()
        self._values = self._read()

    def _read(self) -> Dict[str, str]:
        if not self.path.is_file():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            self.logger.log("preferences_load_failed", path=str(self.path), reason=str(exc))
            return {}
        if not isinstance(data, dict):
            self.logger.log("preferences_load_failed", path=str(self.path), reason="not_a_mapping")
            return {}
        return {str(key): value for key, value in data.items() if isinstance(value, str)}

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value
        self._write()

    def _write(self) -> None:
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            if not self.path.parent.exists():
                self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(self._values, indent=2), encoding="utf-8")
            tmp_path.replace(self.path)
        except OSError as exc:
            raise PreferenceStoreError(f"Could not persist preferences to {self.path}") from exc


def load_history(store: PreferenceStore) -> List[str]:
    raw = store.get(HISTORY_KEY)
    if not raw:
        return []
    try:
        entries: Any = json.loads(raw)
    except ValueError:
        store.logger.log("preferences_load_failed", key=HISTORY_KEY, reason="invalid_json")
        return []
    if not isinstance(entries, list):
        return []
    return [entry for entry in entries if isinstance(entry, str)]


def save_history(store: PreferenceStore, history: List[str]) -> None:
    store.set(HISTORY_KEY, json.dumps(list(history)))


def load_sound_enabled(store: PreferenceStore) -> bool:
    return store.get(SOUND_KEY) == "true"


def save_sound_enabled(store: PreferenceStore, enabled: bool) -> None:
    store.set(SOUND_KEY, "true" if enabled else "false")


class _NullLogger:
    def log(self, *args, **kwargs) -> None:
        return
