"""
Persisted, watchable preference documents.

A JSONPreference wraps a single JSON file (e.g. "MIDI Controls/Settings.cpMIDI")
holding one document. A PreferenceKey is a view over one top-level key of a
dict-valued JSONPreference, used for the settings file where many small
values (enable flags, active banks, migration flags) live side by side.

Both expose the same get/set/watch/update surface so callers can treat a
whole file and a single key the same way.
"""

import copy
import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Callable, Optional, Union

from midiroute.logging_config import get_logger

logger = get_logger(__name__)

PreferenceWatcher = Callable[[Any], None]


class PreferenceError(Exception):
    """Raised when a preference document cannot be written."""

    pass


class _Watchable:
    """Shared watcher bookkeeping."""

    def __init__(self) -> None:
        self._watchers: list[PreferenceWatcher] = []
        self._watch_lock = threading.RLock()

    def watch(self, callback: PreferenceWatcher) -> "_Watchable":
        """
        Register a callback fired with the new value whenever it changes.

        Returns self so calls can be chained after construction.
        """
        with self._watch_lock:
            self._watchers.append(callback)
        return self

    def unwatch(self, callback: PreferenceWatcher) -> bool:
        """Remove a watcher. Returns True if it was registered."""
        with self._watch_lock:
            if callback in self._watchers:
                self._watchers.remove(callback)
                return True
        return False

    def get(self) -> Any:
        raise NotImplementedError

    def update(self) -> None:
        """Fire all watchers with the current value."""
        self._notify(self.get())

    def _notify(self, value: Any) -> None:
        with self._watch_lock:
            watchers = self._watchers.copy()

        for callback in watchers:
            try:
                callback(value)
            except Exception as e:
                callback_name = getattr(callback, "__name__", repr(callback))
                logger.exception(f"Error in preference watcher '{callback_name}': {e}")

    def __call__(self, *args: Any) -> Any:
        """Read with no argument, write with one."""
        if args:
            self.set(args[0])
            return args[0]
        return self.get()

    def set(self, value: Any) -> None:
        raise NotImplementedError


class JSONPreference(_Watchable):
    """
    A JSON document persisted to a file.

    Reads return a deep copy so callers can freely mutate the result and
    write it back with set(). A missing or malformed file reads as the
    default value.
    """

    def __init__(self, path: Union[str, Path], default: Any = None):
        """
        Args:
            path: Path of the JSON file
            default: Value returned when the file is absent or unreadable
        """
        super().__init__()
        self._path = Path(path)
        self._default = default if default is not None else {}
        self._lock = threading.RLock()
        self._cache: Optional[Any] = None
        self._loaded = False

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        """Check whether the backing file exists on disk."""
        return self._path.exists()

    def get(self) -> Any:
        return copy.deepcopy(self.peek())

    def peek(self) -> Any:
        """
        Return the cached document without copying.

        For read-only use on hot paths; the result must not be mutated.
        """
        with self._lock:
            if not self._loaded:
                self._cache = self._read()
                self._loaded = True
            return self._cache

    def set(self, value: Any) -> None:
        """
        Persist a new document and notify watchers.

        Raises:
            PreferenceError: If the file cannot be written
        """
        with self._lock:
            self._write(value)
            self._cache = copy.deepcopy(value)
            self._loaded = True
        self._notify(self.get())

    def reload(self) -> None:
        """Drop the cached document so the next read hits the disk."""
        with self._lock:
            self._loaded = False
            self._cache = None

    def _read(self) -> Any:
        if not self._path.exists():
            return copy.deepcopy(self._default)
        try:
            with open(self._path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read preferences from {self._path}, using defaults: {e}")
            return copy.deepcopy(self._default)

    def _write(self, value: Any) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self._path.parent, prefix=".tmp-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(value, f, indent=2, sort_keys=True)
                os.replace(tmp_path, self._path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except (OSError, TypeError, ValueError) as e:
            raise PreferenceError(f"Failed to write preferences to {self._path}: {e}") from e


class PreferenceKey(_Watchable):
    """A single key inside a dict-valued JSONPreference."""

    def __init__(self, document: JSONPreference, key: str, default: Any = None):
        super().__init__()
        self._document = document
        self._key = key
        self._default = default

    @property
    def key(self) -> str:
        return self._key

    def get(self) -> Any:
        return copy.deepcopy(self.peek())

    def peek(self) -> Any:
        """Return the value without copying. The result must not be mutated."""
        data = self._document.peek()
        if not isinstance(data, dict) or self._key not in data:
            return self._default
        return data[self._key]

    def set(self, value: Any) -> None:
        data = self._document.get()
        if not isinstance(data, dict):
            data = {}
        data[self._key] = value
        self._document.set(data)
        self._notify(self.get())

    def toggle(self) -> bool:
        """Flip a boolean key and return the new value."""
        value = not bool(self.get())
        self.set(value)
        return value


class SettingsStore:
    """
    Key-addressed settings file.

    Example:
        >>> settings = SettingsStore(path)
        >>> active_banks = settings.prop("midi.activeBanks", {})
        >>> active_banks()["com.apple.FinalCut"]
    """

    def __init__(self, path: Union[str, Path]):
        self._document = JSONPreference(path, default={})
        self._props: dict[str, PreferenceKey] = {}

    @property
    def document(self) -> JSONPreference:
        return self._document

    def prop(self, key: str, default: Any = None) -> PreferenceKey:
        """Get (or create) the prop for a key. Props are shared per key."""
        if key not in self._props:
            self._props[key] = PreferenceKey(self._document, key, default)
        return self._props[key]
