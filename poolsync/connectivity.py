"""Connectivity signal: an online flag plus listeners for transitions."""

import logging
import threading

logger = logging.getLogger(__name__)


class Connectivity:
    """
    Tracks whether the network is believed reachable.

    Listeners are called with the new state on every offline/online
    transition, never on a repeated value.
    """

    def __init__(self, online=True):
        self._online = bool(online)
        self._listeners = []
        self._lock = threading.Lock()

    @property
    def online(self):
        return self._online

    def set_online(self, online):
        """Update the flag. Returns True when this was a transition."""
        online = bool(online)
        with self._lock:
            if online == self._online:
                return False
            self._online = online
            listeners = list(self._listeners)
        logger.info("Connectivity changed: %s", 'online' if online else 'offline')
        for listener in listeners:
            try:
                listener(online)
            except Exception:
                logger.warning("Connectivity listener %r failed", listener, exc_info=True)
        return True

    def add_listener(self, listener):
        """Register listener(online). Returns a function that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def remove():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return remove

    @property
    def listener_count(self):
        return len(self._listeners)
