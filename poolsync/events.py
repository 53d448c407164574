"""
Status broadcaster.

Observers subscribe a callback and receive (event, status) for every emitted
event. Events are dicts with a 'type' of ENQUEUE, SYNC_START, SYNC_PROGRESS or
SYNC_END plus event-specific fields.
"""

import logging

logger = logging.getLogger(__name__)

ENQUEUE = 'enqueue'
SYNC_START = 'sync-start'
SYNC_PROGRESS = 'sync-progress'
SYNC_END = 'sync-end'

EVENT_TYPES = (ENQUEUE, SYNC_START, SYNC_PROGRESS, SYNC_END)


class Broadcaster:
    def __init__(self, status=None):
        self._subscribers = []
        self._status = status

    def subscribe(self, callback):
        """Register callback(event, status). Returns an unsubscribe function."""
        handle = [callback]
        self._subscribers.append(handle)

        def unsubscribe():
            if handle in self._subscribers:
                self._subscribers.remove(handle)

        return unsubscribe

    def emit(self, type_, **fields):
        """Deliver an event to every subscriber; a failing subscriber is logged and skipped."""
        if type_ not in EVENT_TYPES:
            raise ValueError(f"poolsync: unknown event type '{type_}'")
        event = {'type': type_, **fields}
        status = self._status() if self._status else None
        for handle in list(self._subscribers):
            try:
                handle[0](event, status)
            except Exception:
                logger.warning("Subscriber %r failed on %s event", handle[0], type_, exc_info=True)
        return event
