"""
Local key-value storage media for the queue store.

MemoryStorage is process-local and mostly useful in tests; FileStorage keeps
one file per key in a directory so the queue survives restarts.
"""

import os
import tempfile


class QuotaExceededError(OSError):
    """Raised when a write would exceed the storage quota."""


class MemoryStorage:
    """Dict-backed storage with an optional quota in bytes."""

    def __init__(self, quota=None):
        self._items = {}
        self.quota = quota

    def get(self, key):
        return self._items.get(key)

    def set(self, key, value):
        if self.quota is not None:
            used = sum(len(v) for k, v in self._items.items() if k != key)
            if used + len(value) > self.quota:
                raise QuotaExceededError(f"storage quota of {self.quota} bytes exceeded writing '{key}'")
        self._items[key] = value

    def remove(self, key):
        self._items.pop(key, None)

    def keys(self):
        return list(self._items)


class FileStorage:
    """One UTF-8 file per key inside a directory."""

    def __init__(self, directory):
        self.directory = os.fspath(directory)

    def _path(self, key):
        if not key or os.sep in key or key.startswith('.'):
            raise ValueError(f'poolsync: invalid storage key "{key}"')
        return os.path.join(self.directory, key + '.json')

    def get(self, key):
        try:
            with open(self._path(key), encoding='utf-8') as f:
                return f.read()
        except FileNotFoundError:
            return None

    def set(self, key, value):
        """Write via a temp file and os.replace so readers never see a partial value."""
        os.makedirs(self.directory, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix='.' + key, dir=self.directory)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(value)
            os.replace(tmp, self._path(key))
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def remove(self, key):
        try:
            os.unlink(self._path(key))
        except FileNotFoundError:
            pass


def memory_storage(quota=None):
    """Create a new in-memory storage."""
    return MemoryStorage(quota)


def file_storage(directory):
    """Create a new file-backed storage rooted at directory."""
    return FileStorage(directory)
