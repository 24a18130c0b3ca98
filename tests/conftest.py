import asyncio

import pytest

from web import web_server
from web.server.exceptions import AddFetchError, StreamError
from web.server.handle import FetchHandle, TorrentFile
from web.server.readiness import ReadinessPolicy

INFO_HASH = "0123456789abcdef0123456789abcdef01234567"
MAGNET = f"magnet:?xt=urn:btih:{INFO_HASH.upper()}&dn=Big+Buck+Bunny"


class FakeHandle(FetchHandle):
    """In-memory torrent: file contents are plain bytes."""

    def __init__(self, info_hash, contents=None, peers=1, chunk_size=64, fail_after=None, delay=0):
        super().__init__(info_hash)
        self.contents = contents or {}
        self.peers = peers
        self.chunk_size = chunk_size
        self.fail_after = fail_after
        self.delay = delay
        self.closed_reads = 0
        self.mark_pending()

    @property
    def num_peers(self):
        return self.peers

    def resolve(self):
        self.set_ready([
            TorrentFile(name, len(data), index=i)
            for i, (name, data) in enumerate(self.contents.items())
        ])

    async def read(self, file, start, end):
        data = self.contents[file.name][start:end + 1]
        sent = 0
        try:
            for pos in range(0, len(data), self.chunk_size):
                if self.fail_after is not None and sent >= self.fail_after:
                    raise StreamError("peer went away")
                await asyncio.sleep(self.delay)
                chunk = data[pos:pos + self.chunk_size]
                sent += len(chunk)
                yield chunk
        finally:
            self.closed_reads += 1


class FakeEngine:
    def __init__(self, factory=None, fail=False):
        self.factory = factory or (lambda magnet: FakeHandle(INFO_HASH))
        self.fail = fail
        self.added = []
        self.handles = []
        self.removed = []

    def add(self, magnet):
        if self.fail:
            raise AddFetchError()
        handle = self.factory(magnet)
        self.added.append(magnet)
        self.handles.append(handle)
        return handle

    def remove(self, handle):
        self.removed.append(handle)


class FakeSleep:
    """Records requested delays instead of waiting; lets other tasks run."""

    def __init__(self, on_sleep=None):
        self.calls = []
        self.on_sleep = on_sleep

    @property
    def elapsed(self):
        return sum(self.calls)

    async def __call__(self, delay):
        self.calls.append(delay)
        if self.on_sleep is not None:
            self.on_sleep(len(self.calls))
        await asyncio.sleep(0)


def movie_bytes(size=1000):
    return bytes(i % 251 for i in range(size))


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def make_client(aiohttp_client, fake_sleep):
    async def factory(engine, policy=None, **kwargs):
        kwargs.setdefault("auth_users", {"admin": "secret123"})
        kwargs.setdefault("search_url", "http://127.0.0.1:1/unused")
        kwargs.setdefault("sleep", fake_sleep)
        app = web_server(
            engine,
            policy=policy or ReadinessPolicy(retries=10, interval=1.0, health_retries=10),
            extensions=(".mp4", ".mkv", ".webm"),
            **kwargs,
        )
        return await aiohttp_client(app)
    return factory
