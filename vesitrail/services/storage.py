"""Small key-value stores for client-side update state.

The update manager only needs ``get``/``set``/``remove``; which backend holds
the values (browser-like memory, the settings table) is up to the caller.
"""

import threading


class KeyValueStore:
    """Interface for string key-value persistence."""

    def get(self, key: str, default: str = None) -> str:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    """Process-local store; loses everything on restart."""

    def __init__(self, initial: dict = None):
        self._data = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key, default=None):
        with self._lock:
            return self._data.get(key, default)

    def set(self, key, value):
        with self._lock:
            self._data[key] = value

    def remove(self, key):
        with self._lock:
            self._data.pop(key, None)

    def clear(self):
        with self._lock:
            self._data.clear()

    def keys(self):
        with self._lock:
            return list(self._data)


class SettingsStore(KeyValueStore):
    """Durable store backed by the ``settings`` table.

    Keys are prefixed with *namespace* so several clients can share the
    table. Must be used inside an application context.
    """

    def __init__(self, namespace: str = "client"):
        self.namespace = namespace

    def _key(self, key):
        return f"{self.namespace}:{key}"

    def get(self, key, default=None):
        from vesitrail.models import Settings
        return Settings.get(self._key(key), default)

    def set(self, key, value):
        from vesitrail.models import Settings
        Settings.set(self._key(key), value)

    def remove(self, key):
        from vesitrail.models import Settings
        Settings.remove(self._key(key))
