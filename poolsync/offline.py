"""
Offline queue for API writes (POST/PUT/DELETE) made without connectivity.
Writes that cannot be confirmed are stored locally and replayed in order
when connectivity is restored.

Usage:
    queue = offline_queue()
    result = await queue.post('/api/submitReading', {'date': '2024-01-01', 'ph': 7.4})
    if result['queued']:
        ...  # delivered later by sync_now()
"""

import asyncio
import logging

from . import events
from .config import load_settings
from .connectivity import Connectivity
from .operation import DEFAULT_HEADERS, MUTATING_METHODS, create_operation, now_ms
from .policy import DROP, HALT, classify
from .storage import FileStorage, MemoryStorage
from .store import QueueStore
from .transport import RequestsTransport

logger = logging.getLogger(__name__)


class OfflineQueue:
    """Durable FIFO of deferred writes with a single-pass sync engine."""

    def __init__(self, store, transport, connectivity=None, clock=None):
        self.store = store
        self.transport = transport
        self.connectivity = connectivity if connectivity is not None else Connectivity()
        self.clock = clock or now_ms
        self.broadcaster = events.Broadcaster(self.get_status)
        self._syncing = False
        self._pass = None

    # -- status -----------------------------------------------------------

    def get_status(self):
        """Current { online, queued, last_sync_at, syncing }, read fresh from the store."""
        return {
            'online': self.connectivity.online,
            'queued': len(self.store.load()),
            'last_sync_at': self.store.load_meta().get('last_sync_at'),
            'syncing': self._syncing,
        }

    def subscribe(self, callback):
        """Register callback(event, status). Returns an unsubscribe function."""
        return self.broadcaster.subscribe(callback)

    @property
    def syncing(self):
        return self._syncing

    @property
    def operations(self):
        """Get all queued operations (copy)."""
        return self.store.load()

    @property
    def length(self):
        """Number of queued operations."""
        return len(self.store.load())

    def clear(self):
        """Clear the queue without delivering anything."""
        result = self.store.clear()
        if not result['ok']:
            logger.warning("Could not clear offline queue: %s", result['error'])
        return result

    # -- enqueue ----------------------------------------------------------

    def enqueue(self, method, url, body=None, headers=None):
        """Append an operation to the end of the queue and return its id."""
        op = create_operation(method, url, body, headers, clock=self.clock)
        queue = self.store.load()
        queue.append(op)
        result = self.store.save(queue)
        if not result['ok']:
            # Durability is best-effort; the caller still gets an id.
            logger.warning("Operation %s not persisted: %s", op['id'], result['error'])
        logger.debug("Queued %s %s as %s", op['method'], op['url'], op['id'])
        self.broadcaster.emit(events.ENQUEUE, id=op['id'])
        return op['id']

    async def try_or_queue(self, method, url, body=None):
        """
        Try the write now; queue it if it fails.

        Returns { ok, queued, res }. The network outcome never raises: a
        network error or a non-2xx response both fall back to enqueue().
        A method or url that could not be queued is rejected with
        ValueError before anything is sent.
        """
        method = (method or '').upper()
        if method not in MUTATING_METHODS:
            raise ValueError(f"poolsync: method must be one of {', '.join(MUTATING_METHODS)}, got '{method}'")
        if not url or not isinstance(url, str):
            raise ValueError("poolsync: url is required and must be a string")
        try:
            res = await self.transport.send(method, url, body, dict(DEFAULT_HEADERS))
            if not 200 <= res.status_code < 300:
                raise RuntimeError(f"HTTP {res.status_code}")
            return {'ok': True, 'queued': False, 'res': res}
        except Exception as e:
            logger.info("%s %s failed (%s); queueing for later", method, url, e)
            self.enqueue(method, url, body)
            return {'ok': True, 'queued': True, 'res': None}

    async def post(self, url, body=None):
        return await self.try_or_queue('POST', url, body)

    async def put(self, url, body=None):
        return await self.try_or_queue('PUT', url, body)

    async def delete(self, url, body=None):
        return await self.try_or_queue('DELETE', url, body)

    # -- sync -------------------------------------------------------------

    async def sync_now(self):
        """
        Drain the queue against the network.

        Only one pass runs at a time: a call made while a pass is in flight
        waits for that pass and returns its summary instead of starting
        another. Returns None when the queue was empty.
        """
        if self._pass is not None and not self._pass.done():
            return await asyncio.shield(self._pass)
        if not self.store.load():
            return None
        self._syncing = True
        self._pass = asyncio.ensure_future(self._drain())
        return await asyncio.shield(self._pass)

    def _remove(self, op_id):
        queue = [op for op in self.store.load() if op['id'] != op_id]
        result = self.store.save(queue)
        if not result['ok']:
            logger.warning("Could not persist removal of %s: %s", op_id, result['error'])
        return queue, result['ok']

    async def _drain(self):
        summary = {'delivered': 0, 'dropped': 0, 'remaining': 0, 'halted': False}
        try:
            self.broadcaster.emit(events.SYNC_START, queued=len(self.store.load()))
            while True:
                queue = self.store.load()
                if not queue:
                    break
                if not self.connectivity.online:
                    logger.info("Offline; stopping sync with %d queued", len(queue))
                    summary['halted'] = True
                    break

                op = queue[0]
                try:
                    res = await self.transport.send(op['method'], op['url'], op.get('body'), op.get('headers'))
                except OSError as e:
                    logger.info("Network failure delivering %s; will retry: %s", op['id'], e)
                    summary['halted'] = True
                    break

                outcome = classify(res.status_code)
                stop = outcome == HALT
                if stop:
                    logger.info("Got %s for %s %s; halting sync", res.status_code, op['method'], op['url'])
                else:
                    if outcome == DROP:
                        logger.warning("Dropping %s %s after %s", op['method'], op['url'], res.status_code)
                        summary['dropped'] += 1
                    else:
                        summary['delivered'] += 1
                    queue, persisted = self._remove(op['id'])
                    # An unpersisted removal would resend the same head forever.
                    stop = not persisted

                self.broadcaster.emit(
                    events.SYNC_PROGRESS, id=op['id'], outcome=outcome, remaining=len(queue)
                )
                if stop:
                    summary['halted'] = True
                    break

            remaining = len(self.store.load())
            summary['remaining'] = remaining
            if not remaining:
                meta = self.store.load_meta()
                meta['last_sync_at'] = self.clock()
                result = self.store.save_meta(meta)
                if not result['ok']:
                    logger.warning("Could not record last sync time: %s", result['error'])
        finally:
            self._syncing = False
            self.broadcaster.emit(events.SYNC_END, remaining=summary['remaining'], halted=summary['halted'])
        return summary


def offline_queue(settings=None, storage=None, transport=None, connectivity=None, clock=None):
    """
    Create a new offline queue.

    Missing parts are built from settings (config.load_settings() by
    default): FileStorage when storage_dir is set, MemoryStorage otherwise,
    and a RequestsTransport against base_url.
    """
    if storage is None or transport is None:
        settings = settings or load_settings()
    if storage is None:
        storage = FileStorage(settings['storage_dir']) if settings['storage_dir'] else MemoryStorage()
    if transport is None:
        transport = RequestsTransport(settings['base_url'], timeout=settings['timeout'])
    return OfflineQueue(QueueStore(storage), transport, connectivity, clock)
