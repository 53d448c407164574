"""
Connectivity-triggered scheduling of sync passes.

Usage:
    teardown = init_offline_queue(queue)
    ...
    teardown()
"""

import asyncio
import logging

from .config import load_settings

logger = logging.getLogger(__name__)


def init_offline_queue(queue, interval=None, initial_delay=None, loop=None, settings=None):
    """
    Start syncing the queue automatically.

    A pass is kicked off when connectivity comes back, every `interval`
    seconds while online, and once `initial_delay` seconds after start to
    flush a backlog left by a previous run. Returns teardown().

    Timings not given explicitly come from settings (sync_interval and
    initial_delay, see config.load_settings).
    """
    if interval is None or initial_delay is None:
        settings = settings or load_settings()
        interval = settings['sync_interval'] if interval is None else interval
        initial_delay = settings['initial_delay'] if initial_delay is None else initial_delay
    loop = loop or asyncio.get_running_loop()
    pending = set()

    def kick(reason):
        logger.debug("Sync triggered (%s)", reason)
        task = loop.create_task(queue.sync_now())
        pending.add(task)
        task.add_done_callback(_finished)

    def _finished(task):
        pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Scheduled sync failed", exc_info=task.exception())

    def on_connectivity(online):
        if online:
            loop.call_soon_threadsafe(kick, 'online')

    async def periodic():
        while True:
            await asyncio.sleep(interval)
            if queue.connectivity.online:
                kick('interval')

    def initial():
        if queue.connectivity.online:
            kick('startup')

    remove_listener = queue.connectivity.add_listener(on_connectivity)
    ticker = loop.create_task(periodic())
    first = loop.call_later(initial_delay, initial)

    def teardown():
        remove_listener()
        ticker.cancel()
        first.cancel()

    return teardown
