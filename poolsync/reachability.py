"""
Reachability probe for the sync server.

A device can report a network while the server is unreachable. The monitor
probes an authenticated endpoint and feeds the answer into Connectivity, so
the scheduler sees a real offline/online signal.
"""

import asyncio
import logging
import time

from .config import load_settings

logger = logging.getLogger(__name__)

BASE_DELAY = 15.0
MAX_BACKOFF = 5 * 60.0
HEALTHY_DELAY = 10 * 60.0


async def check_reachable(transport, path='/.auth/me'):
    """GET path with a cache-busting timestamp. True on 2xx, False otherwise."""
    try:
        res = await transport.send('GET', path, params={'ts': int(time.time() * 1000)})
    except OSError as e:
        logger.debug("Probe %s failed: %s", path, e)
        return False
    return 200 <= res.status_code < 300


def next_probe_delay(previous, reachable):
    """Seconds until the next probe: exponential backoff while unreachable, slow cadence otherwise."""
    if not reachable:
        return min((previous or BASE_DELAY) * 2, MAX_BACKOFF)
    return HEALTHY_DELAY


class ReachabilityMonitor:
    def __init__(self, transport, connectivity, path=None, settings=None):
        if path is None:
            path = (settings or load_settings())['probe_path']
        self.transport = transport
        self.connectivity = connectivity
        self.path = path
        self.reachable = None
        self.delay = 0.0
        self._task = None
        self._loop = None
        self._wake = None
        self._probing = False
        self._remove_listener = None

    async def probe(self):
        """Probe once, publish the result and return the delay before the next probe."""
        self._probing = True
        try:
            ok = await check_reachable(self.transport, self.path)
            self.reachable = ok
            self.connectivity.set_online(ok)
        finally:
            self._probing = False
        self.delay = next_probe_delay(self.delay, ok)
        return self.delay

    async def _run(self):
        while True:
            delay = await self.probe()
            self._wake.clear()
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

    def _on_connectivity(self, online):
        if self._probing or not online or self._wake is None:
            return
        # Another source reported the network back: probe now with a fresh backoff.
        self.delay = 0.0
        self._loop.call_soon_threadsafe(self._wake.set)

    def start(self, loop=None):
        if self._task is not None and not self._task.done():
            return self._task
        self._loop = loop or asyncio.get_running_loop()
        self._wake = asyncio.Event()
        self._remove_listener = self.connectivity.add_listener(self._on_connectivity)
        self._task = self._loop.create_task(self._run())
        return self._task

    def stop(self):
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None
        if self._task is not None:
            self._task.cancel()
            self._task = None
