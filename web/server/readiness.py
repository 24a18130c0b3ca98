import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from web.server.exceptions import (
    FetchError,
    MetadataTimeout,
    NoPlayableFile,
    NotHealthy,
)
from web.server.handle import FetchHandle, TorrentFile

logger = logging.getLogger("readiness")

MAX_RETRIES = 10
INTERVAL = 1.0  # seconds


@dataclass(frozen=True)
class ReadinessPolicy:
    """
    Retry budget shared by the stream and download paths.

    Each wait checks ``retries + 1`` times around ``retries`` sleeps of
    ``interval``; the last check runs after the final sleep, so a handle that
    turns ready during that sleep is still accepted.

    ``health_retries=None`` skips health confirmation: streaming starts as
    soon as metadata is resolved.
    """

    retries: int = MAX_RETRIES
    interval: float = INTERVAL
    event_driven: bool = False
    health_retries: Optional[int] = MAX_RETRIES


class ReadinessGate:
    def __init__(self, policy: ReadinessPolicy, extensions: Sequence[str], sleep=asyncio.sleep):
        self.policy = policy
        self.extensions = tuple(extensions)
        self.sleep = sleep

    async def _poll(self, check, retries: int, what: str) -> bool:
        for attempt in range(1, retries + 1):
            if check():
                return True
            logger.info(f"Waiting for {what}, retry {attempt}/{retries} in {self.policy.interval}s")
            await self.sleep(self.policy.interval)
        return check()

    def _metadata_resolved(self, handle: FetchHandle) -> bool:
        if handle.failed:
            logger.error(f"Torrent {handle.info_hash} failed: {handle.error}")
            raise FetchError()
        return handle.ready

    async def wait_for_metadata(self, handle: FetchHandle):
        if self.policy.event_driven:
            timeout = self.policy.retries * self.policy.interval
            try:
                await asyncio.wait_for(handle.wait_ready(), timeout)
            except asyncio.TimeoutError:
                raise MetadataTimeout()
            logger.info(f"Torrent {handle.info_hash} ready")
            return

        if not await self._poll(lambda: self._metadata_resolved(handle), self.policy.retries, "metadata"):
            logger.warning(f"Metadata for {handle.info_hash} not resolved after {self.policy.retries} retries")
            raise MetadataTimeout()

    def playable_file(self, handle: FetchHandle) -> TorrentFile:
        file = handle.playable_file(self.extensions)
        if file is None:
            raise NoPlayableFile()
        return file

    async def confirm_health(self, handle: FetchHandle) -> TorrentFile:
        file = self.playable_file(handle)
        if self.policy.health_retries is None:
            return file

        def healthy():
            peers = handle.num_peers
            logger.info(f"Peers connected: {peers} | File size: {file.length} bytes")
            return peers > 0 and file.length > 0

        if not await self._poll(healthy, self.policy.health_retries, "a healthy torrent"):
            raise NotHealthy()
        return file

    async def open(self, handle: FetchHandle) -> TorrentFile:
        await self.wait_for_metadata(handle)
        for f in handle.files:
            logger.info(f"File: {f.name}")
        return await self.confirm_health(handle)
