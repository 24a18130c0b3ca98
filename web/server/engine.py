import asyncio
import logging
import os
from typing import Dict, List

import libtorrent as lt

from web.server.exceptions import AddFetchError, StreamError
from web.server.handle import FetchHandle, TorrentFile, piece_slices

logger = logging.getLogger("torrent_engine")

# ================= CONFIG ================= #

ALERT_POLL_INTERVAL = 0.1
READ_AHEAD_PIECES = 8
DEADLINE_STEP_MS = 100

# ========================================= #


def default_settings(listen_interfaces: str) -> dict:
    return {
        "listen_interfaces": listen_interfaces,
        "enable_dht": True,
        "enable_lsd": True,
        "announce_to_all_trackers": True,
        "alert_mask": lt.alert.category_t.all_categories,
    }


class LibtorrentHandle(FetchHandle):
    def __init__(self, info_hash: str, torrent):
        super().__init__(info_hash)
        self.torrent = torrent
        self.piece_length = 0
        self.piece_waiters: Dict[int, List[asyncio.Future]] = {}
        self.read_waiters: Dict[int, List[asyncio.Future]] = {}

    @property
    def num_peers(self) -> int:
        if not self.torrent.is_valid():
            return 0
        return self.torrent.status().num_peers

    # ---------------- ALERT CALLBACKS ---------------- #

    def on_metadata(self):
        if self.ready:
            return
        info = self.torrent.torrent_file()
        storage = info.files()
        self.piece_length = info.piece_length()
        self.set_ready([
            TorrentFile(
                name=storage.file_path(i),
                length=storage.file_size(i),
                index=i,
                offset=storage.file_offset(i),
            )
            for i in range(storage.num_files())
        ])

    def on_error(self, reason: str):
        self.set_failed(reason)
        for waiters in (self.piece_waiters, self.read_waiters):
            for futures in waiters.values():
                for fut in futures:
                    if not fut.done():
                        fut.set_exception(StreamError(reason))
            waiters.clear()

    def on_piece_finished(self, piece: int):
        for fut in self.piece_waiters.pop(piece, []):
            if not fut.done():
                fut.set_result(None)

    def on_read_piece(self, piece: int, data: bytes, error: str = None):
        for fut in self.read_waiters.pop(piece, []):
            if fut.done():
                continue
            if error:
                fut.set_exception(StreamError(error))
            else:
                fut.set_result(data)

    # ---------------- READING ---------------- #

    def _waiter(self, waiters: Dict[int, List[asyncio.Future]], piece: int) -> asyncio.Future:
        fut = asyncio.get_running_loop().create_future()
        waiters.setdefault(piece, []).append(fut)
        return fut

    def _prioritize(self, pieces: List[int]):
        for step, piece in enumerate(pieces):
            if not self.torrent.have_piece(piece):
                self.torrent.set_piece_deadline(piece, step * DEADLINE_STEP_MS)

    async def _read_piece(self, piece: int) -> bytes:
        if self.error:
            raise StreamError(self.error)
        if not self.torrent.have_piece(piece):
            await self._waiter(self.piece_waiters, piece)
        fut = self._waiter(self.read_waiters, piece)
        self.torrent.read_piece(piece)
        return await fut

    async def read(self, file: TorrentFile, start: int, end: int):
        slices = piece_slices(file.offset, start, end, self.piece_length)
        pieces = [piece for piece, _, _ in slices]
        try:
            for n, (piece, first_cut, last_cut) in enumerate(slices):
                self._prioritize(pieces[n:n + READ_AHEAD_PIECES])
                data = await self._read_piece(piece)
                yield data[first_cut:last_cut]
        finally:
            for piece in pieces:
                if self.torrent.is_valid() and not self.torrent.have_piece(piece):
                    self.torrent.reset_piece_deadline(piece)


class TorrentEngine:
    """
    Owns the libtorrent session and routes its alerts to the handles it
    created.
    """

    def __init__(self, download_dir: str, settings: dict, session=None):
        os.makedirs(download_dir, exist_ok=True)
        self.download_dir = download_dir
        self.session = session if session is not None else lt.session(settings)
        self.handles: Dict[str, LibtorrentHandle] = {}
        self._alert_task = None

    def start(self):
        if self._alert_task is None:
            self._alert_task = asyncio.create_task(self.pump_alerts())

    async def close(self):
        if self._alert_task is not None:
            self._alert_task.cancel()
            try:
                await self._alert_task
            except asyncio.CancelledError:
                pass
            self._alert_task = None
        self.session.pause()

    def add(self, magnet: str) -> LibtorrentHandle:
        try:
            params = lt.parse_magnet_uri(magnet)
            params.save_path = self.download_dir
            params.storage_mode = lt.storage_mode_t.storage_mode_sparse
            params.flags |= lt.torrent_flags.sequential_download
            torrent = self.session.add_torrent(params)
        except RuntimeError as e:
            logger.error(f"Failed to add torrent: {e}")
            raise AddFetchError()

        handle = LibtorrentHandle(str(torrent.info_hash()), torrent)
        handle.mark_pending()
        self.handles[handle.info_hash] = handle
        if torrent.status().has_metadata:
            handle.on_metadata()
        return handle

    def remove(self, handle: LibtorrentHandle):
        self.handles.pop(handle.info_hash, None)
        if handle.torrent.is_valid():
            self.session.remove_torrent(handle.torrent)

    async def pump_alerts(self):
        while True:
            for alert in self.session.pop_alerts():
                try:
                    self.dispatch(alert)
                except Exception as e:
                    logger.exception(f"Failed to dispatch {alert.what()}: {e}")
            await asyncio.sleep(ALERT_POLL_INTERVAL)

    def dispatch(self, alert):
        torrent = getattr(alert, "handle", None)
        if torrent is None or not torrent.is_valid():
            return
        handle = self.handles.get(str(torrent.info_hash()))
        if handle is None:
            return

        kind = alert.what()
        if kind == "metadata_received":
            logger.info(f"Metadata received for {handle.info_hash}")
            handle.on_metadata()
        elif kind == "torrent_error":
            logger.error(f"Torrent error for {handle.info_hash}: {alert.message()}")
            handle.on_error(alert.message())
        elif kind == "piece_finished":
            handle.on_piece_finished(alert.piece_index)
        elif kind == "read_piece":
            error = alert.error.message() if alert.error.value() else None
            handle.on_read_piece(alert.piece, alert.buffer, error)
