"""
Persistent queue store.

Holds the ordered list of pending operations and the sync metadata under two
storage keys. Loads never raise; saves report failures as a result dict
({ ok, error }) and leave it to the caller to decide what to ignore.
"""

import json
import logging

from .operation import MUTATING_METHODS

logger = logging.getLogger(__name__)

QUEUE_KEY = 'pool-offline-queue-v1'
META_KEY = 'pool-offline-meta-v1'


def _ok():
    return {'ok': True, 'error': None}


def _failed(exc):
    return {'ok': False, 'error': f"{type(exc).__name__}: {exc}"}


def _well_formed(op):
    """An entry the sync engine can send: an id, a mutating method and a url."""
    return (
        isinstance(op, dict)
        and isinstance(op.get('id'), str) and op['id'] != ''
        and op.get('method') in MUTATING_METHODS
        and isinstance(op.get('url'), str) and op['url'] != ''
        and isinstance(op.get('headers') or {}, dict)
    )


class QueueStore:
    """Read-modify-write access to the queued operations over a key-value storage."""

    def __init__(self, storage, queue_key=QUEUE_KEY, meta_key=META_KEY):
        self.storage = storage
        self.queue_key = queue_key
        self.meta_key = meta_key

    def _read(self, key):
        try:
            raw = self.storage.get(key)
        except (OSError, ValueError) as e:
            logger.warning("Could not read %s: %s", key, e)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.warning("Discarding unparsable %s: %s", key, e)
            return None

    def _write(self, key, value):
        try:
            self.storage.set(key, json.dumps(value))
        except (OSError, TypeError, ValueError) as e:
            return _failed(e)
        return _ok()

    def load(self):
        """Return the queued operations in FIFO order ([] when absent or corrupt)."""
        data = self._read(self.queue_key)
        if not isinstance(data, list):
            return []
        operations = [op for op in data if _well_formed(op)]
        if len(operations) != len(data):
            logger.warning("Skipping %d malformed entries in %s", len(data) - len(operations), self.queue_key)
        return operations

    def save(self, operations):
        """Overwrite the stored queue. Returns { ok, error }."""
        return self._write(self.queue_key, list(operations))

    def load_meta(self):
        """Return the sync metadata ({} when absent or corrupt)."""
        data = self._read(self.meta_key)
        return data if isinstance(data, dict) else {}

    def save_meta(self, meta):
        """Overwrite the stored sync metadata. Returns { ok, error }."""
        return self._write(self.meta_key, dict(meta))

    def clear(self):
        """Remove the queue; sync metadata is kept."""
        try:
            self.storage.remove(self.queue_key)
        except OSError as e:
            return _failed(e)
        return _ok()
