import asyncio
import logging
import time
from typing import Dict

from web.server.handle import FetchHandle

logger = logging.getLogger("registry")


class HandleRegistry:
    """
    Maps info-hashes to fetch handles. At most one handle is created per
    info-hash; concurrent requests for the same content share it.
    """

    def __init__(self, engine, clock=time.monotonic):
        self.engine = engine
        self.clock = clock
        self.handles: Dict[str, FetchHandle] = {}
        self.last_used: Dict[str, float] = {}

    def __len__(self):
        return len(self.handles)

    def __contains__(self, info_hash):
        return info_hash in self.handles

    @staticmethod
    def _broken(handle: FetchHandle) -> bool:
        # An error after metadata leaves the state READY but poisons every read.
        if handle.failed:
            return True
        return handle.error is not None and handle.active_readers == 0

    def resolve(self, info_hash: str, magnet: str) -> FetchHandle:
        # No await between lookup and insert: this stays atomic on the loop.
        handle = self.handles.get(info_hash)

        if handle is not None and self._broken(handle):
            logger.warning(f"Replacing failed torrent {info_hash}: {handle.error}")
            self.discard(info_hash)
            handle = None

        if handle is not None:
            logger.info(f"Reusing existing torrent {info_hash}")
        else:
            logger.info(f"Adding new torrent {info_hash}")
            handle = self.engine.add(magnet)
            self.handles[info_hash] = handle

        self.last_used[info_hash] = self.clock()
        return handle

    def discard(self, info_hash: str):
        handle = self.handles.pop(info_hash, None)
        self.last_used.pop(info_hash, None)
        if handle is not None:
            self.engine.remove(handle)

    def prune(self, max_idle: float) -> int:
        now = self.clock()
        removed = 0
        for info_hash, last in list(self.last_used.items()):
            handle = self.handles.get(info_hash)
            if handle is None or handle.active_readers > 0:
                continue
            if now - last > max_idle:
                logger.info(f"Dropping idle torrent {info_hash}")
                self.discard(info_hash)
                removed += 1
        return removed

    async def cleanup_idle(self, max_idle: float, interval: float = 60):
        while True:
            await asyncio.sleep(interval)
            self.prune(max_idle)
